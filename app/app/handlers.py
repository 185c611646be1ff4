"""Example API methods.

``setup`` registers everything here on an ``ApiSetup``; the server builds
its registry from it on the first request.
"""

from __future__ import annotations

import datetime
import enum
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import BinaryIO

import anyio

from app.config import Settings
from slimapi import (
    ApiError,
    ApiSetup,
    CompressionMethod,
    FileCollection,
    InvocationContext,
    MemoryCacheProvider,
    api_method,
    current_context,
)

log = logging.getLogger(__name__)

# ── Parameter types ──────────────────────────────────────────────────


class AbcItemType(enum.Enum):
    ITEM_A = "a"
    ITEM_B = "b"
    ITEM_C = "c"


@dataclass
class SimpleObject:
    id: int = 0
    name: str = ""
    number: float = 0.0
    date_time: datetime.datetime | None = None
    guid: uuid.UUID | None = None
    abc: AbcItemType = AbcItemType.ITEM_A


@dataclass
class Point:
    x: int = 0
    y: int = 0


@dataclass
class ComplexData:
    simple_object: SimpleObject | None = None
    string_integer_map: dict[str, int] = field(default_factory=dict)
    points: list[Point] = field(default_factory=list)


# ── Services ─────────────────────────────────────────────────────────


class SimpleServiceProvider:
    """Registered in bulk, no attributes needed."""

    def __init__(self) -> None:
        self._guid = uuid.uuid4()

    def sum(self, values: list[float]) -> float:
        return sum(values or [])

    def add(self, a: int, b: int) -> int:
        return a + b

    def get_guid(self) -> uuid.UUID:
        return self._guid

    def plus_random(self, x: int, y: int) -> int:
        return x + y + random.randrange(1000)

    def error(self, i: int) -> None:
        raise RuntimeError("An error occurred.")

    def get_self(self, simple_object: SimpleObject) -> SimpleObject:
        return simple_object

    def get_complex(self, data: ComplexData) -> ComplexData:
        return data

    def input_stream(self, head: str, input: BinaryIO, tail: str) -> str:
        return head + input.read().decode("utf-8") + tail

    def file_names(self, files: FileCollection) -> list[str]:
        return sorted(f.filename for f in files.values())

    async def slow_echo(self, text: str, delay: float = 0.0) -> str:
        await anyio.sleep(delay)
        return text


class AttributedServiceProvider:
    """Only members marked with ``@api_method`` are registered."""

    def __init__(self) -> None:
        self._value = 0

    @api_method
    def zero(self) -> int:
        return 0

    @api_method(auto_cache=True, cache_expiration=3)
    def now(self) -> str:
        return datetime.datetime.now().isoformat()

    @api_method(cache_expiration=5)
    def manual_cache(self) -> int:
        # Read and write the cache by hand: the body both reads and
        # updates state, which automatic caching cannot express.
        context = current_context()
        value = context.get_cached_result()
        if value is not None:
            return value

        self._value += 1
        context.set_cached_result(self._value)
        return self._value

    @api_method(cache_expiration=5)
    async def visits(self, page: str, context: InvocationContext) -> int:
        count = (context.get_cached_result() or 0) + 1
        context.set_cached_result(count)
        return count

    @api_method(compression=CompressionMethod.GZIP)
    def force_gzip_string(self) -> str:
        return str(uuid.uuid4())

    @api_method(compression=CompressionMethod.DEFLATE)
    def force_deflate_string(self) -> str:
        return str(uuid.uuid4())

    @api_method(compression=CompressionMethod.AUTO)
    def auto_compression_string(self) -> str:
        return str(uuid.uuid4())

    @api_method
    def withdraw(self, amount: int) -> int:
        if amount > 100:
            raise ApiError(1001, "Insufficient balance.")
        return 100 - amount

    def not_exposed(self) -> str:
        return "hidden"


class AbstractServiceProvider:
    @staticmethod
    def hello() -> str:
        return "World!!"


def _greet_formal(name: str) -> str:
    return f"Good day, {name}."


def _greet_casual(name: str) -> str:
    return f"Hi {name}!"


# ── Setup ────────────────────────────────────────────────────────────


def make_setup(settings: Settings | None = None):
    """Return the setup function of the example API."""
    settings = settings or Settings()

    def setup(api: ApiSetup) -> None:
        api.cache_base(MemoryCacheProvider(), settings.cache_expiration)
        api.auto(SimpleServiceProvider(), attributed_only=False)
        api.auto(AttributedServiceProvider())
        api.from_type(AbstractServiceProvider, attributed_only=False)
        # Same external name twice: the second becomes "greet2".
        api.method(_greet_formal, name="greet")
        api.method(_greet_casual, name="greet")

    return setup
