"""Method registration front end.

``ApiSetup`` collects method descriptors, either one at a time or in bulk
from an object or a class, and builds the sealed registry::

    def setup(api: ApiSetup) -> None:
        api.cache_base(MemoryCacheProvider(), 10)
        api.auto(OrderService())

        @api.method(name="ping")
        async def ping() -> str:
            return "pong"

    registry = build_registry(setup)
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from slimapi.caching import CacheProvider
from slimapi.codec import DocumentCodec
from slimapi.compression import CompressionMethod
from slimapi.decoders import MemberPriority
from slimapi.errors import ConfigurationError
from slimapi.method import AfterInvoke, BeforeInvoke, Expiration, MethodDescriptor, to_timedelta
from slimapi.registry import MethodRegistry

log = logging.getLogger(__name__)

_OPTIONS_ATTR = "__slimapi_method__"


@dataclass(slots=True, frozen=True)
class MethodOptions:
    """Registration options attached by ``@api_method``."""

    name: str | None = None
    auto_cache: bool | None = None
    cache_expiration: Expiration | None = None
    compression: CompressionMethod | str | None = None
    before_invoke: BeforeInvoke | None = None
    after_invoke: AfterInvoke | None = None


def api_method(
    fn: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    auto_cache: bool | None = None,
    cache_expiration: Expiration | None = None,
    compression: CompressionMethod | str | None = None,
    before_invoke: BeforeInvoke | None = None,
    after_invoke: AfterInvoke | None = None,
):
    """Mark a function as an API method and attach its options.

    Works bare (``@api_method``) or with options
    (``@api_method(auto_cache=True, cache_expiration=3)``).
    """
    options = MethodOptions(
        name=name,
        auto_cache=auto_cache,
        cache_expiration=cache_expiration,
        compression=compression,
        before_invoke=before_invoke,
        after_invoke=after_invoke,
    )

    def decorator(function: Callable[..., Any]) -> Callable[..., Any]:
        setattr(function, _OPTIONS_ATTR, options)
        return function

    if fn is not None:
        return decorator(fn)
    return decorator


def method_options(fn: Any) -> MethodOptions | None:
    return getattr(fn, _OPTIONS_ATTR, None)


class ApiSetup:
    """Collects the methods of one API surface."""

    def __init__(self, namespace: str = "") -> None:
        self.namespace = namespace
        self._descriptors: list[MethodDescriptor] = []
        self._cache_provider: CacheProvider | None = None
        self._cache_expiration: Expiration | None = None

    @property
    def descriptors(self) -> list[MethodDescriptor]:
        return list(self._descriptors)

    def cache_base(self, provider: CacheProvider, expiration: Expiration) -> None:
        """Default cache provider and expiration for later registrations."""
        expiration = to_timedelta(expiration)
        if expiration.total_seconds() <= 0:
            raise ConfigurationError("the expiration time must be greater than zero")
        self._cache_provider = provider
        self._cache_expiration = expiration

    # -- Registration --------------------------------------------------
    def method(
        self,
        fn: Callable[..., Any] | None = None,
        *,
        name: str | None = None,
        auto_cache: bool | None = None,
        cache_expiration: Expiration | None = None,
        cache_provider: CacheProvider | None = None,
        compression: CompressionMethod | str | None = None,
        before_invoke: BeforeInvoke | None = None,
        after_invoke: AfterInvoke | None = None,
    ):
        """Register *fn*.  Explicit options win over ``@api_method`` ones.

        Returns *fn* unchanged, so it also works as a decorator.
        """
        explicit = MethodOptions(
            name=name,
            auto_cache=auto_cache,
            cache_expiration=cache_expiration,
            compression=compression,
            before_invoke=before_invoke,
            after_invoke=after_invoke,
        )

        def register(function: Callable[..., Any]) -> Callable[..., Any]:
            options = _merge(method_options(function), explicit)
            descriptor = MethodDescriptor.create(
                function,
                name=options.name,
                auto_cache=bool(options.auto_cache),
                cache_expiration=(
                    options.cache_expiration
                    if options.cache_expiration is not None
                    else self._cache_expiration
                ),
                cache_provider=cache_provider or self._cache_provider,
                cache_namespace=self.namespace,
                compression=options.compression or CompressionMethod.NONE,
                before_invoke=options.before_invoke,
                after_invoke=options.after_invoke,
            )
            self._descriptors.append(descriptor)
            return function

        if fn is not None:
            return register(fn)
        return register

    def auto(self, provider: Any, attributed_only: bool = True) -> None:
        """Register the public methods of *provider*.

        A class registers its static and class methods (see ``from_type``).
        With *attributed_only*, only members marked by ``@api_method`` are
        taken.
        """
        if inspect.isclass(provider):
            self.from_type(provider, attributed_only)
            return
        for name in _public_names(type(provider)):
            raw = inspect.getattr_static(provider, name)
            if not isinstance(raw, (staticmethod, classmethod)) and not inspect.isfunction(raw):
                continue
            self._register_member(getattr(provider, name), attributed_only)

    def from_type(self, cls: type, attributed_only: bool = True) -> None:
        """Register the static and class methods of *cls*."""
        for name in _public_names(cls):
            raw = inspect.getattr_static(cls, name)
            if not isinstance(raw, (staticmethod, classmethod)):
                continue
            self._register_member(getattr(cls, name), attributed_only)

    def _register_member(self, member: Callable[..., Any], attributed_only: bool) -> None:
        if attributed_only and method_options(member) is None:
            return
        self.method(member)

    # -- Build ---------------------------------------------------------
    def build(
        self,
        name_key: Callable[[str], str] = str.casefold,
        codec: DocumentCodec | None = None,
        member_priority: MemberPriority = MemberPriority.PROPERTY,
    ) -> MethodRegistry:
        registry = MethodRegistry(name_key, codec, member_priority)
        for descriptor in self._descriptors:
            registry.register(descriptor)
        registry.seal()
        return registry


def _public_names(cls: type) -> list[str]:
    names = []
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name in vars(klass):
            if not name.startswith("_") and name not in names:
                names.append(name)
    return names


def _merge(base: MethodOptions | None, override: MethodOptions) -> MethodOptions:
    if base is None:
        return override
    changes = {
        field: getattr(override, field)
        for field in MethodOptions.__dataclass_fields__
        if getattr(override, field) is not None
    }
    return replace(base, **changes)


def build_registry(
    setup: Callable[[ApiSetup], None],
    namespace: str = "",
    name_key: Callable[[str], str] = str.casefold,
    codec: DocumentCodec | None = None,
    member_priority: MemberPriority = MemberPriority.PROPERTY,
) -> MethodRegistry:
    """Run a setup function and return the sealed registry it describes."""
    api = ApiSetup(namespace)
    setup(api)
    registry = api.build(name_key, codec, member_priority)
    log.info("api %r: %s", namespace, ", ".join(registry.methods) or "no methods")
    return registry
