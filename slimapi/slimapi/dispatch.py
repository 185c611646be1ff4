"""Dispatch driver.

One call flows ``ResolveMethod → ResolveDecoder → DecodeParams → Invoke →
Respond``; any step may short-circuit into a failure outcome.  Nothing
raised while handling a request escapes ``Dispatcher.dispatch``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from shared.envelope import (
    BAD_REQUEST,
    INTERNAL_ERROR,
    KNOWN_FORMATS,
    ApiResponse,
)
from slimapi.codec import DocumentCodec, JsonDocumentCodec
from slimapi.compression import CompressionMethod, compress, select_encoding
from slimapi.errors import (
    ApiError,
    ArgumentConversionError,
    DocumentError,
    FormatNotSupportedError,
    MethodNotFoundError,
)
from slimapi.invoker import build_context, invoke
from slimapi.logsetup import LogSetup
from slimapi.method import MethodDescriptor
from slimapi.registry import LazyRegistry, MethodRegistry
from slimapi.request import RequestSource, ResponseSink

ErrorTranslator = Callable[[Exception], "ApiResponse | None"]

OK = 200

MSG_NO_METHOD_NAME = "Method name not specified."
MSG_METHOD_NOT_FOUND = "Method not found."
MSG_UNKNOWN_FORMAT = "Unknown format."
MSG_FORMAT_NOT_SUPPORTED = "The format is not supported on the method."
MSG_INVALID_PARAMETER = "Invalid parameter value."
MSG_BAD_DOCUMENT = "Bad JSON."
MSG_UNHANDLED = "Unhandled exception."

_JSONP_CALLBACK = re.compile(r"^[A-Za-z_$][\w$.]*$", re.ASCII)


def translate_api_error(exc: Exception) -> ApiResponse | None:
    """Default error translator: ``ApiError`` becomes a business response."""
    if isinstance(exc, ApiError):
        return ApiResponse.fail(exc.code, exc.message, exc.data)
    return None


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    """The single result of one dispatch."""

    status_code: int
    response: ApiResponse
    method: MethodDescriptor | None = None
    error: BaseException | None = None

    @property
    def compression(self) -> CompressionMethod:
        return CompressionMethod.NONE if self.method is None else self.method.compression


class Dispatcher:
    """Runs requests against a method registry.

    Parameters
    ----------
    registry : MethodRegistry | LazyRegistry
        The methods to dispatch to.  A ``LazyRegistry`` is built on the
        first request.
    error_translator : callable, optional
        Maps an exception raised by a method body to a successful
        ``ApiResponse``; returning ``None`` keeps it a 500 failure.
    """

    def __init__(
        self,
        registry: MethodRegistry | LazyRegistry,
        *,
        error_translator: ErrorTranslator | None = translate_api_error,
        codec: DocumentCodec | None = None,
        log_setup: LogSetup | None = None,
    ) -> None:
        self._registry = registry
        self._error_translator = error_translator
        self._codec = codec or JsonDocumentCodec()
        self._log_setup = log_setup or LogSetup()
        self._log = self._log_setup.logger(__name__)

    @property
    def registry(self) -> MethodRegistry:
        if isinstance(self._registry, LazyRegistry):
            return self._registry.get()
        return self._registry

    # -- Dispatch ------------------------------------------------------
    async def dispatch(
        self,
        method_name: str | None,
        format_hint: str | None,
        request: RequestSource,
    ) -> DispatchOutcome:
        registry = self.registry

        # ResolveMethod
        if not method_name:
            return self._fail(request, BAD_REQUEST, MSG_NO_METHOD_NAME, MethodNotFoundError(None))
        entry = registry.entry(method_name)
        if entry is None:
            return self._fail(request, BAD_REQUEST, MSG_METHOD_NOT_FOUND, MethodNotFoundError(method_name))

        # ResolveDecoder
        fmt = format_hint if format_hint is not None else request.declared_format()
        if fmt is not None and fmt.lower() not in KNOWN_FORMATS:
            return self._fail(
                request, BAD_REQUEST, MSG_UNKNOWN_FORMAT,
                FormatNotSupportedError(entry.name, fmt), entry.method,
            )
        decoder = entry.decoders.for_format(fmt)
        if decoder is None:
            return self._fail(
                request, BAD_REQUEST, MSG_FORMAT_NOT_SUPPORTED,
                FormatNotSupportedError(entry.name, fmt), entry.method,
            )

        # DecodeParams
        try:
            args = decoder.decode(request) or {}
        except ArgumentConversionError as exc:
            return self._fail(request, BAD_REQUEST, MSG_INVALID_PARAMETER, exc, entry.method)
        except DocumentError as exc:
            return self._fail(request, BAD_REQUEST, MSG_BAD_DOCUMENT, exc, entry.method)
        except Exception as exc:
            return self._fail(request, INTERNAL_ERROR, MSG_UNHANDLED, exc, entry.method)

        # Invoke
        context = build_context(entry, args, request)
        try:
            result = await invoke(entry, args, context)
        except Exception as exc:
            translated = self._translate(exc)
            if translated is None:
                return self._fail(request, INTERNAL_ERROR, MSG_UNHANDLED, exc, entry.method)
            return self._succeed(request, translated, entry.method, exc)
        except BaseException as exc:
            # Cancellation and interpreter exits go back to the transport.
            self._log.error("%s %s aborted: %r", request.description(), entry.name, exc)
            raise

        return self._succeed(request, ApiResponse.success(result), entry.method)

    def _translate(self, exc: Exception) -> ApiResponse | None:
        if self._error_translator is None:
            return None
        try:
            return self._error_translator(exc)
        except Exception:
            self._log.exception("error translator failed")
            return None

    # -- Outcomes ------------------------------------------------------
    def _payload(self, response: ApiResponse) -> str:
        try:
            return self._codec.encode(response.to_dict()).decode("utf-8")
        except Exception:
            return f"<code={response.code}, unserializable {type(response.data).__name__}>"

    def _succeed(
        self,
        request: RequestSource,
        response: ApiResponse,
        method: MethodDescriptor,
        error: BaseException | None = None,
    ) -> DispatchOutcome:
        setup = self._log_setup
        if setup.log_success and self._log.isEnabledFor(setup.success_level):
            self._log.log(setup.success_level, "%s %s", request.description(), self._payload(response))
        return DispatchOutcome(OK, response, method, error)

    def _fail(
        self,
        request: RequestSource,
        status_code: int,
        message: str,
        error: BaseException,
        method: MethodDescriptor | None = None,
    ) -> DispatchOutcome:
        response = ApiResponse.fail(status_code, message)
        payload = self._payload(response)
        if status_code >= 500:
            self._log.error("%s %s", request.description(), payload, exc_info=error)
        else:
            self._log.log(
                self._log_setup.client_error_level,
                "%s %s (%s)", request.description(), payload, error,
            )
        return DispatchOutcome(status_code, response, method, error)

    # -- Respond -------------------------------------------------------
    def write(
        self,
        outcome: DispatchOutcome,
        sink: ResponseSink,
        accept_encoding: str | None = None,
        callback: str | None = None,
    ) -> None:
        """Serialize *outcome* and write it to *sink*, exactly once.

        A valid *callback* wraps the payload for JSONP.  The compression
        policy of the resolved method picks the content coding.
        """
        try:
            payload = self._codec.encode(outcome.response.to_dict())
        except Exception as exc:
            self._log.error("cannot serialize the result: %r", exc, exc_info=exc)
            outcome = DispatchOutcome(
                INTERNAL_ERROR, ApiResponse.fail(INTERNAL_ERROR, MSG_UNHANDLED), outcome.method, exc
            )
            payload = self._codec.encode(outcome.response.to_dict())

        headers: dict[str, str] = {"Cache-Control": "no-cache", "Pragma": "no-cache"}
        if callback and _JSONP_CALLBACK.match(callback):
            payload = b"".join((callback.encode("ascii"), b"(", payload, b")"))
            headers["Content-Type"] = "text/javascript; charset=utf-8"
        else:
            headers["Content-Type"] = "application/json; charset=utf-8"

        encoding = select_encoding(outcome.compression, accept_encoding)
        if encoding is not None:
            payload = compress(payload, encoding)
            headers["Content-Encoding"] = encoding
            headers["Vary"] = "Accept-Encoding"

        sink.write(outcome.status_code, payload, headers)

    async def handle(
        self,
        method_name: str | None,
        format_hint: str | None,
        request: RequestSource,
        sink: ResponseSink,
        callback: str | None = None,
    ) -> DispatchOutcome:
        """Run ``dispatch`` then ``write`` for one request."""
        outcome = await self.dispatch(method_name, format_hint, request)
        self.write(outcome, sink, request.accept_encodings(), callback)
        return outcome

