"""JSON document codec.

Decodes request bodies into typed argument maps or single objects and
encodes response envelopes.  ``to_document``/``from_document`` convert
between typed values (dataclasses, enums, dates, …) and plain JSON values.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import json
import logging
import uuid
from collections import abc
from typing import (
    TYPE_CHECKING,
    Any,
    BinaryIO,
    Callable,
    Protocol,
    Sequence,
    get_args,
    get_origin,
)

from slimapi import typeinfo
from slimapi.errors import DocumentContractError, DocumentFormatError

if TYPE_CHECKING:
    from slimapi.method import ParameterShape

log = logging.getLogger(__name__)


class DocumentCodec(Protocol):
    def decode_arguments(
        self, body: BinaryIO, parameters: Sequence["ParameterShape"]
    ) -> dict[str, Any]: ...

    def decode_object(self, body: BinaryIO, annotation: Any) -> Any: ...

    def encode(self, value: Any) -> bytes: ...


# ── Typed value → JSON value ─────────────────────────────────────────


def to_document(value: Any) -> Any:
    """Convert *value* into something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, enum.Enum):
        return value.name
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, decimal.Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_document(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, abc.Mapping):
        return {str(to_document(k)): to_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_document(v) for v in value]
    if hasattr(value, "__dict__") and not callable(value):
        return {k: to_document(v) for k, v in vars(value).items() if not k.startswith("_")}
    return value


# ── JSON value → typed value ─────────────────────────────────────────


def _contract(path: str, expected: Any, value: Any) -> DocumentContractError:
    name = getattr(expected, "__name__", None) or str(expected)
    return DocumentContractError(
        f"'{path}': cannot convert {type(value).__name__} value {value!r} to {name}"
    )


def _scalar(value: Any, tp: type, path: str) -> Any:
    if isinstance(value, str):
        try:
            return typeinfo.convert_string(value, tp)
        except (ValueError, TypeError) as exc:
            raise _contract(path, tp, value) from exc
    if issubclass(tp, enum.Enum):
        for member in tp:
            if member.value == value:
                return member
        raise _contract(path, tp, value)
    if tp is bool:
        if isinstance(value, bool):
            return value
        raise _contract(path, tp, value)
    if isinstance(value, bool):
        raise _contract(path, tp, value)
    if issubclass(tp, int) and isinstance(value, int):
        return value
    if issubclass(tp, float) and isinstance(value, (int, float)):
        return float(value)
    if issubclass(tp, decimal.Decimal) and isinstance(value, (int, float)):
        return decimal.Decimal(str(value))
    raise _contract(path, tp, value)


def _object(
    value: Any, tp: type, path: str, name_key: Callable[[str], str]
) -> Any:
    if not isinstance(value, dict):
        raise _contract(path, tp, value)
    members = {
        name_key(m.name): m
        for m in typeinfo.object_fields(tp) + typeinfo.object_properties(tp)
    }
    values: dict[str, Any] = {}
    for key, raw in value.items():
        member = members.get(name_key(key))
        if member is None:
            continue
        values[member.name] = from_document(raw, member.annotation, f"{path}.{member.name}", name_key)

    if dataclasses.is_dataclass(tp):
        init_fields = [f for f in dataclasses.fields(tp) if f.init]
        kwargs = {}
        for f in init_fields:
            if f.name in values:
                kwargs[f.name] = values.pop(f.name)
            elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                kwargs[f.name] = None
        try:
            instance = tp(**kwargs)
        except (TypeError, ValueError) as exc:
            raise DocumentContractError(f"'{path}': cannot build {tp.__name__}: {exc}") from exc
    else:
        try:
            instance = tp()
        except TypeError as exc:
            raise DocumentContractError(f"'{path}': cannot build {tp.__name__}: {exc}") from exc
    for name, member_value in values.items():
        object.__setattr__(instance, name, member_value)
    return instance


def from_document(
    value: Any,
    tp: Any,
    path: str = "$",
    name_key: Callable[[str], str] = str.casefold,
) -> Any:
    """Convert a parsed JSON value to the annotation *tp*.

    Raises ``DocumentContractError`` when the value does not fit.
    """
    if tp is Any:
        return value
    if value is None:
        return None
    tp = typeinfo.unwrap_optional(tp)

    if typeinfo.can_convert_from_string(tp):
        return _scalar(value, tp, path)

    origin = get_origin(tp)
    args = get_args(tp)
    if origin in (list, tuple, set, frozenset, abc.Sequence, abc.MutableSequence,
                  abc.Collection, abc.Iterable, abc.Set, abc.MutableSet) or tp in (list, tuple, set, frozenset):
        if not isinstance(value, list):
            raise _contract(path, tp, value)
        element = args[0] if args else Any
        items = [from_document(v, element, f"{path}[{i}]", name_key) for i, v in enumerate(value)]
        container = origin or tp
        if container in (tuple, set, frozenset):
            return container(items)
        if container in (abc.Set,):
            return frozenset(items)
        if container in (abc.MutableSet,):
            return set(items)
        return items

    if origin in (dict, abc.Mapping, abc.MutableMapping) or tp is dict:
        if not isinstance(value, dict):
            raise _contract(path, tp, value)
        key_type, value_type = args if len(args) == 2 else (Any, Any)
        result = {}
        for k, v in value.items():
            key = k if key_type in (Any, str) else from_document(k, key_type, path, name_key)
            result[key] = from_document(v, value_type, f"{path}.{k}", name_key)
        return result

    if typeinfo.is_object_type(tp):
        return _object(value, tp, path, name_key)

    if typeinfo.is_class(tp) and isinstance(value, tp):
        return value
    raise _contract(path, tp, value)


# ── Codec ────────────────────────────────────────────────────────────


class JsonDocumentCodec:
    """``DocumentCodec`` backed by the standard ``json`` module."""

    def __init__(self, name_key: Callable[[str], str] = str.casefold) -> None:
        self._name_key = name_key

    def _load(self, body: BinaryIO) -> Any:
        raw = body.read()
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DocumentFormatError(f"malformed JSON body: {exc}") from exc

    def decode_arguments(
        self, body: BinaryIO, parameters: Sequence["ParameterShape"]
    ) -> dict[str, Any]:
        """Decode a JSON object whose keys are parameter names."""
        doc = self._load(body)
        if doc is None:
            return {}
        if not isinstance(doc, dict):
            raise DocumentContractError(
                f"expected a JSON object of parameters, got {type(doc).__name__}"
            )
        shapes = {self._name_key(p.name): p for p in parameters if not p.is_special}
        args: dict[str, Any] = {}
        for key, raw in doc.items():
            shape = shapes.get(self._name_key(key))
            if shape is None:
                continue
            args[shape.name] = from_document(raw, shape.annotation, shape.name, self._name_key)
        return args

    def decode_object(self, body: BinaryIO, annotation: Any) -> Any:
        """Decode the whole body as one value of *annotation*."""
        doc = self._load(body)
        if doc is None:
            return None
        return from_document(doc, annotation, "$", self._name_key)

    def encode(self, value: Any) -> bytes:
        return json.dumps(to_document(value), ensure_ascii=False).encode("utf-8")
