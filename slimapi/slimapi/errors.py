"""Error taxonomy for the dispatch engine.

Setup-time problems raise ``ConfigurationError`` and abort registration.
Everything else is per-request and is turned into a failure response by
the dispatcher; none of it escapes ``Dispatcher.dispatch``.
"""

from __future__ import annotations

from typing import Any


class SlimApiError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(SlimApiError):
    """Raised while registering a method with an invalid configuration."""


class ArgumentConversionError(SlimApiError):
    """A raw request value could not be converted to its parameter type."""

    def __init__(self, key: str, value: Any, target: Any) -> None:
        self.key = key
        self.value = value
        self.target = target
        name = getattr(target, "__name__", None) or str(target)
        super().__init__(
            f"Parameter '{key}' - failed on converting value {value!r} to type {name}."
        )


class DocumentError(SlimApiError):
    """Base class for structured-body decoding failures."""


class DocumentFormatError(DocumentError):
    """The request body is not a well-formed document."""


class DocumentContractError(DocumentError):
    """The document is well formed but does not match the expected shape."""


class MethodNotFoundError(SlimApiError):
    """Raised when no method is registered under the requested name."""

    def __init__(self, method: str | None) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class FormatNotSupportedError(SlimApiError):
    """Raised when the requested format has no decoder for the method."""

    def __init__(self, method: str, fmt: str | None) -> None:
        self.method = method
        self.format = fmt
        super().__init__(f"Format {fmt!r} is not supported on method {method!r}")


class InvocationError(SlimApiError):
    """The method body raised."""


class CacheProviderError(InvocationError):
    """The cache provider failed; handled like any invocation failure."""


class ApiError(SlimApiError):
    """An expected, application-level failure.

    Raised from a method body to answer with a business ``code`` instead of
    a transport-level error.  The default error translator turns it into a
    successful response.
    """

    def __init__(self, code: int, message: str = "", data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")
