"""Method descriptors.

A ``MethodDescriptor`` is the immutable registration record of one callable:
its external name, its parameter shapes, its caching and compression
policies and the optional hooks run around each invocation.
"""

from __future__ import annotations

import contextvars
import enum
import functools
import inspect
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping

import anyio

from slimapi import typeinfo
from slimapi.caching import CacheProvider, CachePolicy
from slimapi.compression import CompressionMethod
from slimapi.context import InvocationContext
from slimapi.errors import ConfigurationError

log = logging.getLogger(__name__)

BeforeInvoke = Callable[["MethodDescriptor", Mapping[str, Any]], None]
AfterInvoke = Callable[
    ["MethodDescriptor", Mapping[str, Any], Any, "BaseException | None"], None
]
Expiration = timedelta | float | int


class ParameterKind(enum.Enum):
    VALUE = "value"
    STREAM = "stream"
    FILES = "files"


@dataclass(slots=True, frozen=True)
class ParameterShape:
    """Declared name and type of one method parameter."""

    name: str
    annotation: Any
    is_collection: bool = False
    kind: ParameterKind = ParameterKind.VALUE
    default: Any = inspect.Parameter.empty

    @property
    def is_special(self) -> bool:
        return self.kind is not ParameterKind.VALUE

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @classmethod
    def of(cls, name: str, annotation: Any, default: Any = inspect.Parameter.empty) -> "ParameterShape":
        if typeinfo.is_stream_type(annotation):
            kind = ParameterKind.STREAM
        elif typeinfo.is_file_collection_type(annotation):
            kind = ParameterKind.FILES
        else:
            kind = ParameterKind.VALUE
        return cls(
            name=name,
            annotation=annotation,
            is_collection=typeinfo.is_collection(annotation),
            kind=kind,
            default=default,
        )


def to_timedelta(value: Expiration | None) -> timedelta | None:
    if value is None or isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


def _is_coroutine(fn: Callable[..., Any]) -> bool:
    while isinstance(fn, functools.partial):
        fn = fn.func
    if inspect.iscoroutinefunction(fn):
        return True
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def _read_parameters(fn: Callable[..., Any]) -> tuple[tuple[ParameterShape, ...], str | None]:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"cannot read the signature of {fn!r}: {exc}") from exc

    target = fn if inspect.isfunction(fn) or inspect.ismethod(fn) else getattr(fn, "__call__", fn)
    hints = typeinfo.type_hints(target)

    shapes = []
    context_parameter = None
    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD, param.POSITIONAL_ONLY):
            raise ConfigurationError(
                f"parameter '{param.name}' of {fn!r} cannot be bound by name"
            )
        annotation = hints.get(param.name, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = Any
        if annotation is InvocationContext:
            context_parameter = param.name
            continue
        shapes.append(ParameterShape.of(param.name, annotation, param.default))
    return tuple(shapes), context_parameter


@dataclass(slots=True, frozen=True)
class MethodDescriptor:
    """Immutable metadata of one registered method.

    Build it with ``MethodDescriptor.create`` which validates the
    configuration; the descriptor is shared read-only by every request.
    """

    name: str
    callable: Callable[..., Any]
    parameters: tuple[ParameterShape, ...]
    caching: CachePolicy
    compression: CompressionMethod
    before_invoke: BeforeInvoke | None = None
    after_invoke: AfterInvoke | None = None
    context_parameter: str | None = None
    is_coroutine: bool = False

    @classmethod
    def create(
        cls,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        auto_cache: bool = False,
        cache_expiration: Expiration | None = None,
        cache_provider: CacheProvider | None = None,
        cache_namespace: str = "",
        compression: CompressionMethod | str = CompressionMethod.NONE,
        before_invoke: BeforeInvoke | None = None,
        after_invoke: AfterInvoke | None = None,
    ) -> "MethodDescriptor":
        if not callable(fn):
            raise ConfigurationError(f"{fn!r} is not callable")

        if name is None:
            name = getattr(fn, "__name__", None)
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"a method name is required for {fn!r}")

        expiration = to_timedelta(cache_expiration)
        if expiration is not None and expiration <= timedelta(0):
            raise ConfigurationError(
                f"method '{name}': the expiration time must be greater than zero"
            )
        if auto_cache:
            if cache_provider is None:
                raise ConfigurationError(
                    f"method '{name}': automatic caching needs a cache provider"
                )
            if expiration is None:
                raise ConfigurationError(
                    f"method '{name}': automatic caching needs an expiration time"
                )

        try:
            compression = CompressionMethod(compression)
        except ValueError as exc:
            raise ConfigurationError(f"method '{name}': {exc}") from exc

        parameters, context_parameter = _read_parameters(fn)
        if auto_cache and any(p.is_special for p in parameters):
            raise ConfigurationError(
                f"method '{name}': stream/file parameters cannot be cached automatically"
            )

        caching = CachePolicy(
            enabled=auto_cache,
            expiration=expiration or timedelta(0),
            provider=cache_provider,
            namespace=cache_namespace,
        )
        return cls(
            name=name,
            callable=fn,
            parameters=parameters,
            caching=caching,
            compression=compression,
            before_invoke=before_invoke,
            after_invoke=after_invoke,
            context_parameter=context_parameter,
            is_coroutine=_is_coroutine(fn),
        )

    # -- Introspection -------------------------------------------------
    @property
    def qualname(self) -> str:
        fn = self.callable
        module = getattr(fn, "__module__", None) or ""
        qualname = getattr(fn, "__qualname__", None) or type(fn).__qualname__
        return f"{module}.{qualname}" if module else qualname

    def parameter(self, name: str) -> ParameterShape | None:
        for shape in self.parameters:
            if shape.name == name:
                return shape
        return None

    # -- Invocation ----------------------------------------------------
    def _call_arguments(
        self, args: Mapping[str, Any], context: InvocationContext
    ) -> dict[str, Any]:
        kwargs = {}
        for shape in self.parameters:
            if shape.name in args:
                kwargs[shape.name] = args[shape.name]
            elif not shape.has_default:
                kwargs[shape.name] = None
        if self.context_parameter is not None:
            kwargs[self.context_parameter] = context
        return kwargs

    async def invoke(self, args: Mapping[str, Any], context: InvocationContext) -> Any:
        """Call the underlying callable with *args*.

        Missing parameters without a default are passed as ``None``.  Plain
        functions run in a worker thread inside a copy of the current
        context, so ``current_context()`` still works there.
        """
        kwargs = self._call_arguments(args, context)
        if self.is_coroutine:
            return await self.callable(**kwargs)
        ctx = contextvars.copy_context()
        return await anyio.to_thread.run_sync(functools.partial(ctx.run, self.callable, **kwargs))
