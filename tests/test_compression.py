"""Tests for content-coding selection and the compressing writer."""

import gzip
import io
import zlib

import pytest
from slimapi.compression import (
    CompressionMethod,
    CompressionWriter,
    compress,
    parse_accept_encoding,
    select_encoding,
)


def test_parse_accept_encoding():
    assert parse_accept_encoding("gzip, deflate;q=0.5, br;q=0") == {
        "gzip": 1.0,
        "deflate": 0.5,
        "br": 0.0,
    }
    assert parse_accept_encoding(None) == {}
    assert parse_accept_encoding("gzip;q=bad") == {"gzip": 0.0}


@pytest.mark.parametrize(
    "policy,header,expected",
    [
        (CompressionMethod.AUTO, "gzip, deflate", "gzip"),
        (CompressionMethod.AUTO, "deflate", "deflate"),
        (CompressionMethod.AUTO, "gzip;q=0, deflate", "deflate"),
        (CompressionMethod.AUTO, "*", "gzip"),
        (CompressionMethod.AUTO, "br", None),
        (CompressionMethod.AUTO, "", None),
        (CompressionMethod.GZIP, "", "gzip"),
        (CompressionMethod.DEFLATE, "gzip", "deflate"),
        (CompressionMethod.NONE, "gzip, deflate", None),
    ],
)
def test_select_encoding(policy, header, expected):
    assert select_encoding(policy, header) == expected


class TestCompressionWriter:
    def test_gzip(self):
        sink = io.BytesIO()
        with CompressionWriter(sink, "gzip") as writer:
            writer.write(b"hello ")
            writer.flush()
            writer.write(b"world")
        assert gzip.decompress(sink.getvalue()) == b"hello world"

    def test_deflate(self):
        sink = io.BytesIO()
        with CompressionWriter(sink, "deflate") as writer:
            writer.write(b"payload" * 100)
        assert zlib.decompress(sink.getvalue()) == b"payload" * 100

    def test_close_is_idempotent(self):
        sink = io.BytesIO()
        writer = CompressionWriter(sink, "gzip")
        writer.write(b"x")
        writer.close()
        size = len(sink.getvalue())
        writer.close()
        assert writer.closed
        assert len(sink.getvalue()) == size
        assert not sink.closed

    def test_write_after_close(self):
        writer = CompressionWriter(io.BytesIO(), "gzip")
        writer.close()
        with pytest.raises(ValueError):
            writer.write(b"x")

    def test_unknown_encoding(self):
        with pytest.raises(ValueError, match="br"):
            CompressionWriter(io.BytesIO(), "br")


def test_compress():
    assert compress(b"data", None) == b"data"
    assert gzip.decompress(compress(b"data", "gzip")) == b"data"
