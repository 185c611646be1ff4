"""Response compression.

``select_encoding`` decides, per response, which content coding to apply;
``CompressionWriter`` applies it to a binary sink.
"""

from __future__ import annotations

import enum
import io
import logging
import zlib
from typing import BinaryIO

log = logging.getLogger(__name__)

GZIP = "gzip"
DEFLATE = "deflate"


class CompressionMethod(enum.Enum):
    """Per-method output compression policy."""

    NONE = "none"
    GZIP = "gzip"
    DEFLATE = "deflate"
    AUTO = "auto"


def parse_accept_encoding(header: str | None) -> dict[str, float]:
    """Parse an ``Accept-Encoding`` header into ``{coding: qvalue}``."""
    codings: dict[str, float] = {}
    if not header:
        return codings
    for part in header.split(","):
        coding, _, params = part.strip().partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        codings[coding] = q
    return codings


def _accepts(codings: dict[str, float], coding: str) -> bool:
    if coding in codings:
        return codings[coding] > 0
    return codings.get("*", 0) > 0


def select_encoding(policy: CompressionMethod, accept_encoding: str | None) -> str | None:
    """Return ``"gzip"``, ``"deflate"`` or ``None`` for uncompressed output.

    ``AUTO`` prefers gzip, then deflate, then nothing; the forced policies
    ignore what the client declared.
    """
    if policy is CompressionMethod.GZIP:
        return GZIP
    if policy is CompressionMethod.DEFLATE:
        return DEFLATE
    if policy is CompressionMethod.AUTO:
        codings = parse_accept_encoding(accept_encoding)
        if _accepts(codings, GZIP):
            return GZIP
        if _accepts(codings, DEFLATE):
            return DEFLATE
    return None


class CompressionWriter:
    """Write-only adapter compressing into an underlying binary stream.

    ``flush`` only flushes the underlying stream: flushing the compressor
    mid-payload can drop the trailing bytes of the last block.  The
    compressed stream is finalized once, on ``close``, and the underlying
    stream is left open for its owner.
    """

    def __init__(
        self,
        underlying: BinaryIO,
        encoding: str,
        level: int = zlib.Z_DEFAULT_COMPRESSION,
    ) -> None:
        if encoding == GZIP:
            wbits = 16 + zlib.MAX_WBITS
        elif encoding == DEFLATE:
            wbits = zlib.MAX_WBITS
        else:
            raise ValueError(f"unsupported content coding: {encoding!r}")
        self.encoding = encoding
        self._underlying = underlying
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, wbits)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to a closed CompressionWriter")
        chunk = self._compressor.compress(data)
        if chunk:
            self._underlying.write(chunk)
        return len(data)

    def flush(self) -> None:
        self._underlying.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._underlying.write(self._compressor.flush(zlib.Z_FINISH))
        self._underlying.flush()

    def __enter__(self) -> "CompressionWriter":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def compress(payload: bytes, encoding: str | None) -> bytes:
    """Compress a whole payload; ``None`` returns it unchanged."""
    if encoding is None:
        return payload
    buffer = io.BytesIO()
    with CompressionWriter(buffer, encoding) as writer:
        writer.write(payload)
    log.debug("compressed %d → %d bytes (%s)", len(payload), buffer.tell(), encoding)
    return buffer.getvalue()
