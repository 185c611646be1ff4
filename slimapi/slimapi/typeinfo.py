"""Type conformance helpers.

Pure predicates over type annotations, answering the questions every
decoder-selection decision asks: can this type be built from a string, is it
a collection of such types, is this object "plain" enough to be filled from
form fields.  An unrecognised annotation is simply ``False``; only an
annotation that cannot be resolved at all raises ``ConfigurationError``.

The two converters at the bottom turn raw request strings into values and do
raise (``ValueError``/``TypeError``) on bad input.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import inspect
import io
import types
import typing
import uuid
from collections import abc
from dataclasses import dataclass
from typing import IO, Any, BinaryIO, Callable, ClassVar, Union, get_args, get_origin

from slimapi.errors import ConfigurationError
from slimapi.request import FileCollection

# Types with a documented string → value conversion.
SCALAR_TYPES: tuple[type, ...] = (
    str,
    int,
    float,
    bool,
    decimal.Decimal,
    datetime.datetime,
    datetime.date,
    datetime.time,
    uuid.UUID,
)

_SEQUENCE_ORIGINS = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    abc.Sequence: list,
    abc.MutableSequence: list,
    abc.Collection: list,
    abc.Iterable: list,
    abc.Set: frozenset,
    abc.MutableSet: set,
}
_MAPPING_ORIGINS = {dict, abc.Mapping, abc.MutableMapping}

_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})

# Separators used when a collection travels as a single form value.
ITEM_SEPARATOR = ","
PAIR_SEPARATOR = ":"


# ── Annotation helpers ───────────────────────────────────────────────


def unwrap_optional(tp: Any) -> Any:
    """``Optional[X]`` / ``X | None`` → ``X``; anything else unchanged."""
    if get_origin(tp) in (Union, types.UnionType):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def is_optional(tp: Any) -> bool:
    return get_origin(tp) in (Union, types.UnionType) and type(None) in get_args(tp)


def _collection_args(tp: Any) -> tuple[Any, tuple[Any, ...]] | None:
    """Return ``(origin, element_types)`` for a parameterised collection."""
    tp = unwrap_optional(tp)
    origin = get_origin(tp)
    args = get_args(tp)
    if origin in _SEQUENCE_ORIGINS:
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return origin, (args[0],)
            return None
        if len(args) == 1:
            return origin, args
        return None
    if origin in _MAPPING_ORIGINS and len(args) == 2:
        return origin, args
    return None


# ── Predicates ───────────────────────────────────────────────────────


def is_class(tp: Any) -> bool:
    """A real class; parameterised aliases such as ``list[int]`` are not."""
    return isinstance(tp, type) and get_origin(tp) is None


def can_convert_from_string(tp: Any) -> bool:
    """True for primitives, strings, dates, identifiers and enums.

    An unannotated parameter (``Any``) takes the raw string as is.
    """
    if tp is Any:
        return True
    tp = unwrap_optional(tp)
    if not is_class(tp):
        return False
    if issubclass(tp, enum.Enum):
        return True
    return issubclass(tp, SCALAR_TYPES)


def is_collection(tp: Any) -> bool:
    """True for an ordered or keyed container of string-convertible elements."""
    found = _collection_args(tp)
    if found is None:
        return False
    _, elements = found
    return all(can_convert_from_string(e) for e in elements)


def is_stream_type(tp: Any) -> bool:
    """True for a raw byte-stream parameter."""
    tp = unwrap_optional(tp)
    if tp is BinaryIO or tp is IO or get_origin(tp) is IO:
        return True
    return is_class(tp) and issubclass(tp, io.IOBase)


def is_file_collection_type(tp: Any) -> bool:
    tp = unwrap_optional(tp)
    return is_class(tp) and issubclass(tp, FileCollection)


def is_special_type(tp: Any) -> bool:
    """True for the raw-body kinds: a byte stream or the posted files."""
    return is_stream_type(tp) or is_file_collection_type(tp)


def is_form_convertible(tp: Any, allow_collections: bool = True) -> bool:
    if can_convert_from_string(tp):
        return True
    return allow_collections and is_collection(tp)


def is_plain_parameter_set(
    annotations: typing.Iterable[Any], allow_collections: bool = True
) -> bool:
    """True iff every annotation can travel as one form value."""
    return all(is_form_convertible(a, allow_collections) for a in annotations)


# ── Object members ───────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class MemberInfo:
    """A public, assignable member of an object type."""

    name: str
    annotation: Any
    is_property: bool


def type_hints(obj: Any) -> dict[str, Any]:
    """Resolved annotations of a class or function.

    Raises ``ConfigurationError`` naming the annotation that cannot be
    resolved, e.g. a type only visible inside the defining function.
    """
    if not inspect.isclass(obj) and not getattr(obj, "__annotations__", None):
        return {}
    try:
        return typing.get_type_hints(obj)
    except Exception as exc:
        name = getattr(obj, "__qualname__", None) or repr(obj)
        raise ConfigurationError(f"cannot resolve the annotations of {name}: {exc}") from exc


def is_object_type(tp: Any) -> bool:
    """A class whose state is described by annotated members."""
    tp = unwrap_optional(tp)
    if not is_class(tp) or tp is object:
        return False
    if can_convert_from_string(tp) or is_special_type(tp) or _collection_args(tp):
        return False
    if issubclass(tp, (abc.Mapping, abc.Iterable)):
        return False
    return dataclasses.is_dataclass(tp) or bool(type_hints(tp))


def object_fields(tp: type) -> list[MemberInfo]:
    """Public data fields of *tp*, in declaration order."""
    hints = type_hints(tp)
    if dataclasses.is_dataclass(tp):
        names = [f.name for f in dataclasses.fields(tp)]
    else:
        names = list(hints)
    members = []
    for name in names:
        if name.startswith("_"):
            continue
        annotation = hints.get(name, Any)
        if get_origin(annotation) is ClassVar:
            continue
        members.append(MemberInfo(name, annotation, is_property=False))
    return members


def object_properties(tp: type) -> list[MemberInfo]:
    """Public properties of *tp* that have a setter."""
    members = []
    for name in dir(tp):
        if name.startswith("_"):
            continue
        attr = getattr(tp, name, None)
        if not isinstance(attr, property) or attr.fset is None:
            continue
        annotation = type_hints(attr.fget).get("return", Any) if attr.fget else Any
        members.append(MemberInfo(name, annotation, is_property=True))
    return members


def is_plain_type(tp: Any, allow_collections: bool = True) -> bool:
    """True if every public member can be filled from one form value.

    At most one member may be a byte stream or file collection.
    """
    tp = unwrap_optional(tp)
    if not is_object_type(tp):
        return False
    special = 0
    for member in object_fields(tp) + object_properties(tp):
        if is_special_type(member.annotation):
            special += 1
            if special > 1:
                return False
        elif not is_form_convertible(member.annotation, allow_collections):
            return False
    return True


# ── Converters ───────────────────────────────────────────────────────


def _convert_enum(raw: str, tp: type[enum.Enum]) -> enum.Enum:
    text = raw.strip()
    if text in tp.__members__:
        return tp[text]
    for name, member in tp.__members__.items():
        if name.casefold() == text.casefold():
            return member
    for member in tp:
        if str(member.value) == text:
            return member
    raise ValueError(f"{raw!r} is not a member of {tp.__name__}")


def _convert_bool(raw: str) -> bool:
    text = raw.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{raw!r} is not a boolean")


def _convert_decimal(raw: str) -> decimal.Decimal:
    try:
        return decimal.Decimal(raw.strip())
    except decimal.InvalidOperation as exc:
        raise ValueError(f"{raw!r} is not a decimal") from exc


_CONVERTERS: dict[type, Callable[[str], Any]] = {
    str: str,
    bool: _convert_bool,
    int: lambda raw: int(raw.strip()),
    float: lambda raw: float(raw.strip()),
    decimal.Decimal: _convert_decimal,
    datetime.datetime: lambda raw: datetime.datetime.fromisoformat(raw.strip()),
    datetime.date: lambda raw: datetime.date.fromisoformat(raw.strip()),
    datetime.time: lambda raw: datetime.time.fromisoformat(raw.strip()),
    uuid.UUID: lambda raw: uuid.UUID(raw.strip()),
}


def convert_string(raw: str | None, tp: Any) -> Any:
    """Convert one raw request value to *tp*."""
    optional = is_optional(tp)
    tp = unwrap_optional(tp)
    if raw is None:
        if optional:
            return None
        raise ValueError("missing value")
    if optional and raw == "" and tp is not str:
        return None
    if tp is Any:
        return raw
    if not is_class(tp):
        raise TypeError(f"cannot convert a string to {tp!r}")
    if issubclass(tp, enum.Enum):
        return _convert_enum(raw, tp)
    # Walk the MRO so subclasses (e.g. datetime before date) pick the right one.
    for base in tp.__mro__:
        converter = _CONVERTERS.get(base)
        if converter is not None:
            return converter(raw)
    raise TypeError(f"cannot convert a string to {tp.__name__}")


def convert_collection(raw: str | None, tp: Any) -> Any:
    """Convert a separator-joined raw value to the collection type *tp*."""
    if raw is None and is_optional(tp):
        return None
    found = _collection_args(tp)
    if found is None:
        raise TypeError(f"{tp!r} is not a supported collection type")
    origin, elements = found
    items = [] if not raw else [item.strip() for item in raw.split(ITEM_SEPARATOR)]

    if origin in _MAPPING_ORIGINS:
        key_type, value_type = elements
        result = {}
        for item in items:
            key, sep, value = item.partition(PAIR_SEPARATOR)
            if not sep:
                raise ValueError(f"{item!r} is not a key{PAIR_SEPARATOR}value pair")
            result[convert_string(key.strip(), key_type)] = convert_string(
                value.strip(), value_type
            )
        return result

    values = [convert_string(item, elements[0]) for item in items]
    return _SEQUENCE_ORIGINS[origin](values)
