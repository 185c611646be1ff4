"""Per-call invocation context.

A fresh ``InvocationContext`` is built for each call and published in a
``ContextVar`` while the method body runs, so a body can reach it with
``current_context()``.  Bodies that declare a parameter annotated
``InvocationContext`` get it passed in explicitly instead.
"""

from __future__ import annotations

import contextlib
from contextvars import ContextVar
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Iterator

if TYPE_CHECKING:
    from slimapi.caching import CacheProvider
    from slimapi.request import RequestSource


class InvocationContext:
    """Gives a method body manual access to its own cache entry.

    The cache key is computed lazily on first use and then reused for the
    rest of the call.
    """

    __slots__ = ("_key_factory", "_key", "cache_provider", "cache_expiration", "method_name", "request")

    def __init__(
        self,
        cache_key_factory: Callable[[], str] | None = None,
        cache_provider: "CacheProvider | None" = None,
        cache_expiration: timedelta = timedelta(0),
        method_name: str | None = None,
        request: "RequestSource | None" = None,
    ) -> None:
        self._key_factory = cache_key_factory
        self._key: str | None = None
        self.cache_provider = cache_provider
        self.cache_expiration = cache_expiration
        self.method_name = method_name
        self.request = request

    @property
    def cache_key(self) -> str | None:
        if self._key is None and self._key_factory is not None:
            self._key = self._key_factory()
        return self._key

    def _can_cache(self) -> bool:
        return self.cache_provider is not None and self._key_factory is not None

    def get_cached_result(self) -> Any:
        """Return the value cached for this call, or ``None``."""
        if not self._can_cache():
            return None
        return self.cache_provider.get(self.cache_key)

    def set_cached_result(self, value: Any) -> None:
        """Cache *value* for this call with the method's expiration."""
        if not self._can_cache():
            return
        self.cache_provider.set(self.cache_key, value, self.cache_expiration)


# Handed out when no call is in progress; every operation is a no-op.
EMPTY_CONTEXT = InvocationContext()

_current: ContextVar[InvocationContext | None] = ContextVar(
    "slimapi_invocation_context", default=None
)


def current_context() -> InvocationContext:
    """The context of the call in progress, or an inert empty context."""
    return _current.get() or EMPTY_CONTEXT


@contextlib.contextmanager
def use_context(context: InvocationContext) -> Iterator[InvocationContext]:
    """Publish *context* for the duration of the ``with`` block."""
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)
