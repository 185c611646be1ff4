"""Request decoders and decoder-binding resolution.

A decoder turns a request into the ``name → value`` argument map of one
method.  Which decoders a method gets is decided once, at registration, by
``classify``, a pure function over the method's parameter shapes, and
stored as an immutable ``DecoderBinding``.
"""

from __future__ import annotations

import dataclasses
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence

from shared.envelope import FORM_FORMATS, FORMAT_JSON
from slimapi import typeinfo
from slimapi.codec import DocumentCodec, JsonDocumentCodec
from slimapi.errors import ArgumentConversionError, ConfigurationError
from slimapi.method import MethodDescriptor, ParameterKind, ParameterShape
from slimapi.request import RequestSource

log = logging.getLogger(__name__)

NameKey = Callable[[str], str]


class Decoder(Protocol):
    def decode(self, request: RequestSource) -> dict[str, Any]: ...


class MemberPriority(enum.Enum):
    """Which member wins when a property and a field share a name."""

    PROPERTY = "property"
    FIELD = "field"


def _special_conflict(owner: str) -> ConfigurationError:
    return ConfigurationError(
        f"only one stream/file parameter permitted on {owner}"
    )


def _convert(key: str, raw: str | None, annotation: Any, is_collection: bool) -> Any:
    try:
        if is_collection:
            return typeinfo.convert_collection(raw, annotation)
        return typeinfo.convert_string(raw, annotation)
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise ArgumentConversionError(key, raw, annotation) from exc


def _special_value(request: RequestSource, kind: ParameterKind) -> Any:
    if kind is ParameterKind.STREAM:
        body = request.body()
        body.seek(0)
        return body
    return request.files()


def _form_source(
    request: RequestSource, stream_mode: bool
) -> tuple[Iterable[str], Callable[[str], str | None]]:
    # With a stream/file parameter the body is the payload, so only the
    # query string carries the other values.
    if stream_mode:
        return request.query_keys(), request.query_value
    return request.param_keys(), request.param_value


# ── Decoders ─────────────────────────────────────────────────────────


class EmptyDecoder:
    """For methods without parameters."""

    def decode(self, request: RequestSource) -> dict[str, Any]:
        return {}


EMPTY_DECODER = EmptyDecoder()


class InlineParamDecoder:
    """Maps form/query keys one-to-one onto method parameters.

    For ``M(a: int, b: str)`` the request ``a=5&b=x`` decodes to
    ``{"a": 5, "b": "x"}``.  Unknown keys are ignored.
    """

    def __init__(self, method: MethodDescriptor, name_key: NameKey = str.casefold) -> None:
        self._name_key = name_key
        self._params: dict[str, ParameterShape] = {}
        self._special: ParameterShape | None = None

        for shape in method.parameters:
            if shape.is_special:
                if self._special is not None:
                    raise _special_conflict(f"method '{method.name}'")
                self._special = shape
                continue
            if not typeinfo.is_form_convertible(shape.annotation):
                raise ConfigurationError(
                    f"the values for parameter '{shape.name}' ({shape.annotation}) of method "
                    f"'{method.name}' cannot be converted from the query string"
                )
            self._params[name_key(shape.name)] = shape

    def decode(self, request: RequestSource) -> dict[str, Any]:
        args: dict[str, Any] = {}
        stream_mode = self._special is not None
        if stream_mode:
            args[self._special.name] = _special_value(request, self._special.kind)

        keys, value_of = _form_source(request, stream_mode)
        for key in keys:
            if key is None:
                continue
            shape = self._params.get(self._name_key(key))
            if shape is None:
                continue
            raw = value_of(key)
            args[shape.name] = _convert(key, raw, shape.annotation, shape.is_collection)
        return args


@dataclass(slots=True, frozen=True)
class _Member:
    name: str
    annotation: Any
    is_collection: bool
    kind: ParameterKind
    setter: Callable[[Any, Any], None]


def _field_setter(name: str) -> Callable[[Any, Any], None]:
    def setter(instance: Any, value: Any) -> None:
        object.__setattr__(instance, name, value)

    return setter


def _property_setter(prop: property) -> Callable[[Any, Any], None]:
    return prop.fset


def _constructor(tp: type) -> Callable[[], Any]:
    """A zero-argument factory producing an empty instance of *tp*.

    Dataclass fields without a default start out as ``None``.
    """
    if dataclasses.is_dataclass(tp):
        fields = dataclasses.fields(tp)
        if all(
            f.init is False
            or f.default is not dataclasses.MISSING
            or f.default_factory is not dataclasses.MISSING
            for f in fields
        ):
            return tp

        def construct() -> Any:
            instance = tp.__new__(tp)
            for f in fields:
                if f.default is not dataclasses.MISSING:
                    value = f.default
                elif f.default_factory is not dataclasses.MISSING:
                    value = f.default_factory()
                else:
                    value = None
                object.__setattr__(instance, f.name, value)
            return instance

        return construct

    try:
        inspect.signature(tp).bind()
    except TypeError as exc:
        raise ConfigurationError(f"{tp.__name__} cannot be constructed without arguments") from exc
    except ValueError:
        pass
    return tp


class SingleObjectFormDecoder:
    """Fills the members of a method's only parameter from form/query keys.

    The member table (name → setter) is built once here; each request
    builds a fresh instance and assigns the matching members.
    """

    def __init__(
        self,
        method: MethodDescriptor,
        name_key: NameKey = str.casefold,
        priority: MemberPriority = MemberPriority.PROPERTY,
    ) -> None:
        if len(method.parameters) != 1:
            raise ConfigurationError(
                f"method '{method.name}' should have exactly one parameter"
            )
        shape = method.parameters[0]
        tp = typeinfo.unwrap_optional(shape.annotation)

        self._name_key = name_key
        self._param_name = shape.name
        self._construct = _constructor(tp)
        self._members: dict[str, _Member] = {}
        self._special: _Member | None = None

        for info in typeinfo.object_properties(tp):
            prop = getattr(tp, info.name)
            self._add(info, _property_setter(prop), replace=True)
        for info in typeinfo.object_fields(tp):
            self._add(info, _field_setter(info.name), replace=priority is MemberPriority.FIELD)

        specials = [m for m in self._members.values() if m.kind is not ParameterKind.VALUE]
        if len(specials) > 1:
            raise _special_conflict(f"type {tp.__name__}")
        if specials:
            self._special = specials[0]
        for member in self._members.values():
            if member.kind is ParameterKind.VALUE and not typeinfo.is_form_convertible(member.annotation):
                raise ConfigurationError(
                    f"member '{member.name}' of {tp.__name__} cannot be converted from the query string"
                )

    def _add(self, info: typeinfo.MemberInfo, setter: Callable[[Any, Any], None], replace: bool) -> None:
        key = self._name_key(info.name)
        if key in self._members and not replace:
            return
        shape = ParameterShape.of(info.name, info.annotation)
        self._members[key] = _Member(
            name=info.name,
            annotation=info.annotation,
            is_collection=shape.is_collection,
            kind=shape.kind,
            setter=setter,
        )

    @property
    def member_names(self) -> list[str]:
        return [m.name for m in self._members.values()]

    def decode(self, request: RequestSource) -> dict[str, Any]:
        instance = self._construct()
        stream_mode = self._special is not None
        if stream_mode:
            self._special.setter(instance, _special_value(request, self._special.kind))

        keys, value_of = _form_source(request, stream_mode)
        for key in keys:
            if key is None:
                continue
            member = self._members.get(self._name_key(key))
            if member is None or member is self._special:
                continue
            raw = value_of(key)
            member.setter(instance, _convert(key, raw, member.annotation, member.is_collection))
        return {self._param_name: instance}


class InlineDocumentDecoder:
    """Decodes a document whose top-level keys are parameter names."""

    def __init__(self, method: MethodDescriptor, codec: DocumentCodec) -> None:
        if sum(1 for p in method.parameters if p.is_special) > 1:
            raise _special_conflict(f"method '{method.name}'")
        self._parameters: Sequence[ParameterShape] = method.parameters
        self._codec = codec

    def decode(self, request: RequestSource) -> dict[str, Any]:
        return self._codec.decode_arguments(request.body(), self._parameters)


class SingleObjectDocumentDecoder:
    """Decodes the whole document as the method's only parameter."""

    def __init__(self, method: MethodDescriptor, codec: DocumentCodec) -> None:
        if len(method.parameters) != 1:
            raise ConfigurationError(
                f"method '{method.name}' should have exactly one parameter"
            )
        self._shape = method.parameters[0]
        self._codec = codec

    def decode(self, request: RequestSource) -> dict[str, Any]:
        value = self._codec.decode_object(request.body(), self._shape.annotation)
        if value is None:
            return {}
        return {self._shape.name: value}


# ── Binding resolution ───────────────────────────────────────────────


class DecoderLayout(enum.Enum):
    EMPTY = "empty"
    INLINE = "inline"
    SINGLE_PLAIN_OBJECT = "single-plain-object"
    SINGLE_COMPLEX_OBJECT = "single-complex-object"
    DOCUMENT_ONLY = "document-only"


def classify(parameters: Sequence[ParameterShape]) -> DecoderLayout:
    """Decide which decoders a parameter list supports.

    Raises ``ConfigurationError`` if more than one parameter is a stream or
    file collection.
    """
    if not parameters:
        return DecoderLayout.EMPTY
    if sum(1 for p in parameters if p.is_special) > 1:
        raise _special_conflict("a method")
    if typeinfo.is_plain_parameter_set(p.annotation for p in parameters if not p.is_special):
        return DecoderLayout.INLINE
    if len(parameters) == 1:
        if typeinfo.is_plain_type(parameters[0].annotation):
            return DecoderLayout.SINGLE_PLAIN_OBJECT
        return DecoderLayout.SINGLE_COMPLEX_OBJECT
    return DecoderLayout.DOCUMENT_ONLY


@dataclass(slots=True, frozen=True)
class DecoderBinding:
    """The decoders available to one method, by request format."""

    form: Decoder | None = None
    document: Decoder | None = None
    default: Decoder | None = None

    def for_format(self, fmt: str | None) -> Decoder | None:
        """Constant-time lookup; ``None`` means the format is unsupported."""
        if fmt is None:
            return self.default
        fmt = fmt.lower()
        if fmt == FORMAT_JSON:
            return self.document
        if fmt in FORM_FORMATS:
            return self.form
        return None


def resolve_binding(
    method: MethodDescriptor,
    codec: DocumentCodec | None = None,
    name_key: NameKey = str.casefold,
    priority: MemberPriority = MemberPriority.PROPERTY,
) -> DecoderBinding:
    codec = codec or JsonDocumentCodec(name_key)
    layout = classify(method.parameters)
    log.debug("method %r decodes as %s", method.name, layout.value)

    if layout is DecoderLayout.EMPTY:
        return DecoderBinding(form=EMPTY_DECODER, document=EMPTY_DECODER, default=EMPTY_DECODER)

    if layout is DecoderLayout.INLINE:
        form = InlineParamDecoder(method, name_key)
        return DecoderBinding(form=form, document=InlineDocumentDecoder(method, codec), default=form)

    if layout is DecoderLayout.SINGLE_PLAIN_OBJECT:
        document = SingleObjectDocumentDecoder(method, codec)
        form = SingleObjectFormDecoder(method, name_key, priority)
        return DecoderBinding(form=form, document=document, default=document)

    if layout is DecoderLayout.SINGLE_COMPLEX_OBJECT:
        document = SingleObjectDocumentDecoder(method, codec)
        return DecoderBinding(document=document, default=document)

    document = InlineDocumentDecoder(method, codec)
    return DecoderBinding(document=document, default=document)
