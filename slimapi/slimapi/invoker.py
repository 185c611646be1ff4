"""Cache-augmented invocation.

``invoke`` runs one registered method: it publishes the call's
``InvocationContext``, fires the method hooks and, for methods with
automatic caching, answers from the cache when it can.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from slimapi.caching import cache_key
from slimapi.context import InvocationContext, use_context
from slimapi.errors import CacheProviderError
from slimapi.registry import RegistryEntry
from slimapi.request import RequestSource

log = logging.getLogger(__name__)


def build_context(
    entry: RegistryEntry,
    args: Mapping[str, Any],
    request: RequestSource | None = None,
) -> InvocationContext:
    caching = entry.method.caching
    return InvocationContext(
        cache_key_factory=lambda: cache_key(caching.namespace, entry.name, args),
        cache_provider=caching.provider,
        cache_expiration=caching.expiration,
        method_name=entry.name,
        request=request,
    )


async def _invoke_cached(
    entry: RegistryEntry, args: Mapping[str, Any], context: InvocationContext
) -> Any:
    method = entry.method
    provider = method.caching.provider
    key = context.cache_key

    try:
        cached = provider.get(key)
    except Exception as exc:
        raise CacheProviderError(f"cache lookup failed for {entry.name!r}: {exc}") from exc
    # A cached None cannot be told apart from a miss.
    if cached is not None:
        log.debug("cache hit %s", key)
        return cached

    result = await method.invoke(args, context)
    try:
        provider.add(key, result, method.caching.expiration)
    except Exception as exc:
        raise CacheProviderError(f"cache store failed for {entry.name!r}: {exc}") from exc
    return result


async def invoke(
    entry: RegistryEntry,
    args: Mapping[str, Any],
    context: InvocationContext | None = None,
) -> Any:
    """Invoke *entry* with *args* and return its result.

    ``after_invoke`` fires exactly once, with the error if there was one.
    """
    method = entry.method
    context = context or build_context(entry, args)
    result = None
    error: BaseException | None = None

    with use_context(context):
        try:
            if method.before_invoke is not None:
                method.before_invoke(method, args)
            if method.caching.enabled:
                result = await _invoke_cached(entry, args, context)
            else:
                result = await method.invoke(args, context)
            return result
        except BaseException as exc:
            error = exc
            raise
        finally:
            if method.after_invoke is not None:
                method.after_invoke(method, args, result if error is None else None, error)
