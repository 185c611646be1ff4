"""slimapi — expose plain callables as HTTP API methods."""

from slimapi.caching import CachePolicy, CacheProvider, MemoryCacheProvider, cache_key
from slimapi.codec import JsonDocumentCodec
from slimapi.compression import CompressionMethod, select_encoding
from slimapi.context import InvocationContext, current_context
from slimapi.decoders import DecoderBinding, DecoderLayout, MemberPriority, classify
from slimapi.dispatch import Dispatcher, DispatchOutcome, translate_api_error
from slimapi.errors import (
    ApiError,
    ArgumentConversionError,
    CacheProviderError,
    ConfigurationError,
    DocumentContractError,
    DocumentFormatError,
    FormatNotSupportedError,
    InvocationError,
    MethodNotFoundError,
    SlimApiError,
)
from slimapi.logsetup import LogSetup
from slimapi.method import MethodDescriptor, ParameterShape
from slimapi.registry import LazyRegistry, MethodRegistry
from slimapi.request import (
    BufferedResponse,
    FileCollection,
    MemoryRequest,
    RequestSource,
    ResponseSink,
    UploadedFile,
)
from slimapi.setup_api import ApiSetup, api_method, build_registry

__all__ = [
    "ApiSetup",
    "api_method",
    "build_registry",
    "MethodDescriptor",
    "ParameterShape",
    "MethodRegistry",
    "LazyRegistry",
    "Dispatcher",
    "DispatchOutcome",
    "translate_api_error",
    "DecoderBinding",
    "DecoderLayout",
    "MemberPriority",
    "classify",
    "InvocationContext",
    "current_context",
    "CachePolicy",
    "CacheProvider",
    "MemoryCacheProvider",
    "cache_key",
    "CompressionMethod",
    "select_encoding",
    "JsonDocumentCodec",
    "LogSetup",
    "RequestSource",
    "ResponseSink",
    "MemoryRequest",
    "BufferedResponse",
    "FileCollection",
    "UploadedFile",
    "SlimApiError",
    "ConfigurationError",
    "ArgumentConversionError",
    "DocumentFormatError",
    "DocumentContractError",
    "MethodNotFoundError",
    "FormatNotSupportedError",
    "InvocationError",
    "CacheProviderError",
    "ApiError",
]
