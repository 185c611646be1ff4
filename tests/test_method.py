"""Tests for method descriptors, the registry and the setup front end."""

import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO

import pytest
from slimapi import (
    ApiSetup,
    CompressionMethod,
    ConfigurationError,
    InvocationContext,
    LazyRegistry,
    MemoryCacheProvider,
    MethodDescriptor,
    MethodRegistry,
    api_method,
    build_registry,
)
from slimapi.method import ParameterKind
from slimapi.request import FileCollection


def add(a: int, b: int = 1) -> int:
    return a + b


def upload(name: str, body: BinaryIO) -> int:
    return len(body.read())


def no_params() -> int:
    return 0


# ── Descriptor ───────────────────────────────────────────────────────


class TestMethodDescriptor:
    def test_defaults(self):
        m = MethodDescriptor.create(add)
        assert m.name == "add"
        assert [p.name for p in m.parameters] == ["a", "b"]
        assert m.parameters[0].annotation is int
        assert not m.parameters[0].has_default
        assert m.parameters[1].default == 1
        assert m.compression is CompressionMethod.NONE
        assert not m.caching.enabled
        assert not m.is_coroutine

    def test_special_parameter_kinds(self):
        m = MethodDescriptor.create(upload)
        assert m.parameter("body").kind is ParameterKind.STREAM
        assert m.parameter("name").kind is ParameterKind.VALUE

        def files(f: FileCollection) -> int:
            return len(f)

        assert MethodDescriptor.create(files).parameters[0].kind is ParameterKind.FILES

    def test_context_parameter_is_not_a_parameter(self):
        async def counter(page: str, context: InvocationContext) -> int:
            return 0

        m = MethodDescriptor.create(counter)
        assert [p.name for p in m.parameters] == ["page"]
        assert m.context_parameter == "context"
        assert m.is_coroutine

    def test_compression_from_string(self):
        m = MethodDescriptor.create(no_params, compression="gzip")
        assert m.compression is CompressionMethod.GZIP

    def test_expiration_from_seconds(self):
        m = MethodDescriptor.create(
            no_params, auto_cache=True, cache_expiration=3, cache_provider=MemoryCacheProvider()
        )
        assert m.caching.enabled
        assert m.caching.expiration == timedelta(seconds=3)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"cache_expiration": 0},
            {"cache_expiration": timedelta(seconds=-1)},
            {"auto_cache": True, "cache_expiration": 5},
            {"auto_cache": True, "cache_provider": MemoryCacheProvider()},
            {"compression": "brotli"},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ConfigurationError):
            MethodDescriptor.create(no_params, **kwargs)

    def test_not_callable(self):
        with pytest.raises(ConfigurationError, match="not callable"):
            MethodDescriptor.create(42)  # type: ignore[arg-type]

    def test_var_args_rejected(self):
        def variadic(*values: int) -> int:
            return 0

        with pytest.raises(ConfigurationError, match="values"):
            MethodDescriptor.create(variadic)

    def test_auto_cache_with_stream_rejected(self):
        with pytest.raises(ConfigurationError, match="cached"):
            MethodDescriptor.create(
                upload, auto_cache=True, cache_expiration=5, cache_provider=MemoryCacheProvider()
            )

    def test_unresolvable_annotation(self):
        @dataclass
        class Local:
            x: int = 0

        def lookup(a: int, b: "Local | None" = None) -> int:
            return a

        with pytest.raises(ConfigurationError, match="Local"):
            MethodDescriptor.create(lookup)

    def test_unresolvable_member_annotation(self):
        @dataclass
        class Holder:
            item: "Missing" = None  # noqa: F821

        def keep(h: Holder) -> None:
            pass

        registry = MethodRegistry()
        with pytest.raises(ConfigurationError, match="Missing"):
            registry.register(MethodDescriptor.create(keep))
        assert len(registry) == 0

    @pytest.mark.anyio
    async def test_invoke_passes_none_for_missing(self):
        def echo(a: int, b: str, c: int = 7):
            return (a, b, c)

        m = MethodDescriptor.create(echo)
        assert await m.invoke({"a": 1}, InvocationContext()) == (1, None, 7)


# ── Registry ─────────────────────────────────────────────────────────


class TestMethodRegistry:
    def test_register_and_lookup_case_insensitive(self):
        registry = MethodRegistry()
        assert registry.register(MethodDescriptor.create(add)) == "add"
        assert registry.lookup("ADD").callable is add
        assert "Add" in registry
        assert registry.lookup("missing") is None
        assert registry.lookup(None) is None

    def test_overloads_get_numeric_suffix(self):
        registry = MethodRegistry()
        names = [
            registry.register(MethodDescriptor.create(add, name="X")),
            registry.register(MethodDescriptor.create(no_params, name="X")),
            registry.register(MethodDescriptor.create(upload, name="x")),
        ]
        assert names == ["X", "X2", "x3"]
        assert registry.methods == ["X", "X2", "x3"]
        assert registry.lookup("x").callable is add
        assert registry.lookup("x2").callable is no_params

    def test_suffix_skips_taken_names(self):
        registry = MethodRegistry()
        registry.register(MethodDescriptor.create(add, name="f2"))
        registry.register(MethodDescriptor.create(add, name="f"))
        assert registry.register(MethodDescriptor.create(add, name="f")) == "f3"

    def test_case_sensitive_comparer(self):
        registry = MethodRegistry(name_key=str)
        registry.register(MethodDescriptor.create(add, name="M"))
        assert registry.register(MethodDescriptor.create(add, name="m")) == "m"
        assert len(registry) == 2

    def test_failed_registration_adds_nothing(self):
        def two_streams(a: BinaryIO, b: BinaryIO) -> None:
            pass

        registry = MethodRegistry()
        with pytest.raises(ConfigurationError, match="only one stream/file parameter"):
            registry.register(MethodDescriptor.create(two_streams))
        assert len(registry) == 0

    def test_sealed(self):
        registry = MethodRegistry()
        registry.seal()
        with pytest.raises(ConfigurationError, match="sealed"):
            registry.register(MethodDescriptor.create(add))

    def test_lookup_decoder(self):
        registry = MethodRegistry()
        registry.register(MethodDescriptor.create(add))
        assert registry.lookup_decoder("add", "json") is not None
        assert registry.lookup_decoder("add", "xml") is None


def test_lazy_registry_builds_once():
    calls = []

    def build():
        calls.append(1)
        registry = MethodRegistry()
        registry.register(MethodDescriptor.create(add))
        return registry

    lazy = LazyRegistry(build)
    assert not lazy.built

    results = []
    threads = [threading.Thread(target=lambda: results.append(lazy.get())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert all(r is results[0] for r in results)
    assert results[0].sealed


# ── Setup front end ──────────────────────────────────────────────────


class Service:
    @api_method
    def marked(self) -> str:
        return "marked"

    @api_method(name="renamed", compression=CompressionMethod.AUTO)
    def original(self) -> str:
        return "renamed"

    def unmarked(self) -> str:
        return "unmarked"

    def _private(self) -> str:
        return "private"

    @staticmethod
    @api_method
    def static_marked() -> str:
        return "static"


class TestApiSetup:
    def test_auto_attributed_only(self):
        api = ApiSetup()
        api.auto(Service())
        names = [d.name for d in api.descriptors]
        assert names == ["marked", "renamed", "static_marked"]
        renamed = api.descriptors[1]
        assert renamed.compression is CompressionMethod.AUTO

    def test_auto_all_public(self):
        api = ApiSetup()
        api.auto(Service(), attributed_only=False)
        names = {d.name for d in api.descriptors}
        assert names == {"marked", "renamed", "unmarked", "static_marked"}

    def test_from_type_takes_static_methods_only(self):
        api = ApiSetup()
        api.from_type(Service)
        assert [d.name for d in api.descriptors] == ["static_marked"]

    def test_cache_base_applies_to_later_methods(self):
        provider = MemoryCacheProvider()
        api = ApiSetup(namespace="ns")
        api.cache_base(provider, 10)
        api.method(no_params, auto_cache=True)
        descriptor = api.descriptors[0]
        assert descriptor.caching.provider is provider
        assert descriptor.caching.expiration == timedelta(seconds=10)
        assert descriptor.caching.namespace == "ns"

    def test_cache_base_rejects_zero(self):
        with pytest.raises(ConfigurationError):
            ApiSetup().cache_base(MemoryCacheProvider(), 0)

    def test_explicit_options_win(self):
        api = ApiSetup()
        api.method(Service().original, name="explicit")
        descriptor = api.descriptors[0]
        assert descriptor.name == "explicit"
        assert descriptor.compression is CompressionMethod.AUTO

    def test_method_as_decorator(self):
        api = ApiSetup()

        @api.method(name="ping")
        async def ping() -> str:
            return "pong"

        assert ping.__name__ == "ping"
        assert api.descriptors[0].name == "ping"

    def test_build_registry(self):
        def setup(api):
            api.method(add)
            api.method(add)

        registry = build_registry(setup)
        assert registry.sealed
        assert registry.methods == ["add", "add2"]
