"""Tests for decoder selection and the request decoders."""

import json
from dataclasses import dataclass, field
from typing import BinaryIO

import pytest
from slimapi import (
    ArgumentConversionError,
    ConfigurationError,
    DecoderLayout,
    DocumentContractError,
    DocumentFormatError,
    MemoryRequest,
    MethodDescriptor,
    classify,
)
from slimapi.decoders import (
    EMPTY_DECODER,
    InlineDocumentDecoder,
    InlineParamDecoder,
    SingleObjectDocumentDecoder,
    SingleObjectFormDecoder,
    resolve_binding,
)
from slimapi.request import FileCollection, UploadedFile


@dataclass
class Query:
    page: int = 1
    words: list[str] = field(default_factory=list)


@dataclass
class Required:
    id: int
    name: str = ""


@dataclass
class Envelope:
    query: Query | None = None
    scores: dict[str, int] = field(default_factory=dict)


@dataclass
class Upload:
    title: str = ""
    content: BinaryIO | None = None


class Shadowed:
    """``label`` is both a field and a property."""

    label: str

    def __init__(self):
        self.label = ""
        self.set_by = None

    @property
    def label_upper(self) -> str:
        return self.label.upper()

    @label_upper.setter
    def label_upper(self, value: str):
        self.label = value.lower()
        self.set_by = "property"


def inline(a: int, b: str) -> str:
    return f"{a}{b}"


def with_stream(head: str, body: BinaryIO, tail: str) -> str:
    return head + tail


def with_files(name: str, files: FileCollection) -> int:
    return len(files)


def plain(q: Query) -> int:
    return q.page


def complex_arg(e: Envelope) -> int:
    return 0


def two_objects(q: Query, e: Envelope) -> int:
    return 0


def descriptor(fn):
    return MethodDescriptor.create(fn)


def json_body(value) -> bytes:
    return json.dumps(value).encode()


# ── Classification ───────────────────────────────────────────────────


@pytest.mark.parametrize(
    "fn,layout",
    [
        (lambda: None, DecoderLayout.EMPTY),
        (inline, DecoderLayout.INLINE),
        (with_stream, DecoderLayout.INLINE),
        (plain, DecoderLayout.SINGLE_PLAIN_OBJECT),
        (complex_arg, DecoderLayout.SINGLE_COMPLEX_OBJECT),
        (two_objects, DecoderLayout.DOCUMENT_ONLY),
    ],
)
def test_classify(fn, layout):
    assert classify(descriptor(fn).parameters) is layout


def test_classify_two_specials():
    def bad(a: BinaryIO, b: FileCollection) -> None:
        pass

    with pytest.raises(ConfigurationError, match="only one stream/file parameter"):
        classify(descriptor(bad).parameters)


def test_binding_table():
    empty = resolve_binding(descriptor(lambda: None))
    assert empty.for_format("post") is EMPTY_DECODER
    assert empty.for_format("json") is EMPTY_DECODER
    assert empty.for_format(None) is EMPTY_DECODER

    flat = resolve_binding(descriptor(inline))
    assert isinstance(flat.for_format("get"), InlineParamDecoder)
    assert isinstance(flat.for_format("JSON"), InlineDocumentDecoder)
    assert flat.for_format(None) is flat.form

    single = resolve_binding(descriptor(plain))
    assert isinstance(single.for_format("post"), SingleObjectFormDecoder)
    assert isinstance(single.for_format(None), SingleObjectDocumentDecoder)

    nested = resolve_binding(descriptor(complex_arg))
    assert nested.for_format("post") is None
    assert nested.for_format("get") is None
    assert isinstance(nested.for_format("json"), SingleObjectDocumentDecoder)

    several = resolve_binding(descriptor(two_objects))
    assert several.for_format("post") is None
    assert isinstance(several.for_format(None), InlineDocumentDecoder)

    assert flat.for_format("xml") is None


# ── Inline form ──────────────────────────────────────────────────────


class TestInlineParamDecoder:
    def test_decode(self):
        decoder = InlineParamDecoder(descriptor(inline))
        args = decoder.decode(MemoryRequest(query={"a": "5", "b": "x", "~format": "get"}))
        assert args == {"a": 5, "b": "x"}

    def test_keys_are_case_insensitive(self):
        decoder = InlineParamDecoder(descriptor(inline))
        assert decoder.decode(MemoryRequest(form={"A": "1", "B": "y"})) == {"a": 1, "b": "y"}

    def test_missing_keys_are_absent(self):
        decoder = InlineParamDecoder(descriptor(inline))
        assert decoder.decode(MemoryRequest(query={"b": "x"})) == {"b": "x"}

    def test_conversion_failure_names_key(self):
        decoder = InlineParamDecoder(descriptor(inline))
        with pytest.raises(ArgumentConversionError) as exc_info:
            decoder.decode(MemoryRequest(query={"a": "notanumber", "b": "x"}))
        assert exc_info.value.key == "a"
        assert "Parameter 'a'" in str(exc_info.value)

    def test_stream_mode_reads_query_only(self):
        decoder = InlineParamDecoder(descriptor(with_stream))
        request = MemoryRequest(
            query={"head": "<"}, form={"tail": ">"}, body=b"payload"
        )
        args = decoder.decode(request)
        assert args["head"] == "<"
        assert "tail" not in args
        assert args["body"].read() == b"payload"

    def test_files(self):
        decoder = InlineParamDecoder(descriptor(with_files))
        upload = UploadedFile("a.txt", "text/plain", b"a")
        args = decoder.decode(MemoryRequest(query={"name": "n"}, files={"f": upload}))
        assert args["name"] == "n"
        assert args["files"]["f"] is upload

    def test_collection_value(self):
        def total(values: list[int]) -> int:
            return sum(values)

        decoder = InlineParamDecoder(descriptor(total))
        assert decoder.decode(MemoryRequest(query={"values": "1,2,3"})) == {"values": [1, 2, 3]}


# ── Single object form ───────────────────────────────────────────────


class TestSingleObjectFormDecoder:
    def test_decode(self):
        decoder = SingleObjectFormDecoder(descriptor(plain))
        args = decoder.decode(MemoryRequest(form={"page": "3", "words": "a,b", "other": "x"}))
        assert args == {"q": Query(page=3, words=["a", "b"])}

    def test_fresh_instance_per_request(self):
        decoder = SingleObjectFormDecoder(descriptor(plain))
        first = decoder.decode(MemoryRequest(form={"page": "3"}))["q"]
        second = decoder.decode(MemoryRequest())["q"]
        assert first is not second
        assert second == Query()

    def test_required_fields_start_as_none(self):
        def by_id(r: Required) -> int:
            return 0

        decoder = SingleObjectFormDecoder(descriptor(by_id))
        instance = decoder.decode(MemoryRequest(query={"name": "x"}))["r"]
        assert instance.id is None
        assert instance.name == "x"

    def test_conversion_failure(self):
        decoder = SingleObjectFormDecoder(descriptor(plain))
        with pytest.raises(ArgumentConversionError) as exc_info:
            decoder.decode(MemoryRequest(form={"page": "first"}))
        assert exc_info.value.key == "page"

    def test_stream_member(self):
        def store(u: Upload) -> int:
            return 0

        decoder = SingleObjectFormDecoder(descriptor(store))
        request = MemoryRequest(query={"title": "t"}, form={"content": "ignored"}, body=b"data")
        instance = decoder.decode(request)["u"]
        assert instance.title == "t"
        assert instance.content.read() == b"data"

    def test_property_wins_by_default(self):
        def shadow(s: Shadowed) -> str:
            return s.label

        decoder = SingleObjectFormDecoder(descriptor(shadow))
        assert sorted(decoder.member_names) == ["label", "label_upper"]
        instance = decoder.decode(MemoryRequest(query={"label_upper": "ABC"}))["s"]
        assert instance.label == "abc"
        assert instance.set_by == "property"


# ── Documents ────────────────────────────────────────────────────────


class TestDocumentDecoders:
    def test_inline_document(self):
        decoder = resolve_binding(descriptor(inline)).for_format("json")
        args = decoder.decode(MemoryRequest(body=json_body({"A": 5, "b": "x", "extra": 1})))
        assert args == {"a": 5, "b": "x"}

    def test_inline_document_empty_body(self):
        decoder = resolve_binding(descriptor(inline)).for_format("json")
        assert decoder.decode(MemoryRequest()) == {}

    def test_inline_document_skips_stream(self):
        decoder = resolve_binding(descriptor(with_stream)).for_format("json")
        args = decoder.decode(MemoryRequest(body=json_body({"head": "h", "body": "x"})))
        assert args == {"head": "h"}

    def test_nested_object(self):
        decoder = resolve_binding(descriptor(complex_arg)).for_format(None)
        body = json_body({"query": {"page": 2, "words": ["w"]}, "scores": {"a": 1}})
        args = decoder.decode(MemoryRequest(body=body))
        assert args == {"e": Envelope(query=Query(page=2, words=["w"]), scores={"a": 1})}

    def test_single_object_null(self):
        decoder = resolve_binding(descriptor(complex_arg)).for_format("json")
        assert decoder.decode(MemoryRequest(body=b"null")) == {}

    def test_malformed(self):
        decoder = resolve_binding(descriptor(inline)).for_format("json")
        with pytest.raises(DocumentFormatError):
            decoder.decode(MemoryRequest(body=b"{not json"))

    def test_wrong_shape(self):
        decoder = resolve_binding(descriptor(inline)).for_format("json")
        with pytest.raises(DocumentContractError):
            decoder.decode(MemoryRequest(body=b"[1, 2]"))

    def test_wrong_value_type(self):
        decoder = resolve_binding(descriptor(complex_arg)).for_format("json")
        with pytest.raises(DocumentContractError, match="page"):
            decoder.decode(MemoryRequest(body=json_body({"query": {"page": "two"}})))
