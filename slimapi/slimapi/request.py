"""Boundary contracts between the engine and its transport.

The engine never touches a web framework directly; a host adapts its own
request and response objects to these protocols.
"""

from __future__ import annotations

import io
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Protocol, runtime_checkable

from shared.envelope import META_FORMAT


@dataclass(slots=True, frozen=True)
class UploadedFile:
    """One file posted with a multipart request."""

    filename: str
    content_type: str
    data: bytes


class FileCollection(Mapping[str, UploadedFile]):
    """The files posted with a request, keyed by form field name."""

    def __init__(self, files: Mapping[str, UploadedFile] | None = None) -> None:
        self._files = dict(files or {})

    def __getitem__(self, key: str) -> UploadedFile:
        return self._files[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"FileCollection({sorted(self._files)!r})"


@runtime_checkable
class RequestSource(Protocol):
    """What the engine reads from an inbound request."""

    def param_keys(self) -> Iterable[str]:
        """Keys of the query string and posted form, in order."""
        ...

    def param_value(self, key: str) -> str | None: ...

    def query_keys(self) -> Iterable[str]: ...

    def query_value(self, key: str) -> str | None: ...

    def body(self) -> BinaryIO:
        """The raw request body, positioned at its start."""
        ...

    def files(self) -> FileCollection: ...

    def declared_format(self) -> str | None: ...

    def accept_encodings(self) -> str:
        """The raw ``Accept-Encoding`` header value, empty if absent."""
        ...

    def description(self) -> str:
        """A one-line description used in log records."""
        ...


class ResponseSink(Protocol):
    """Where the engine writes the single response of a call."""

    def write(self, status_code: int, body: bytes, headers: Mapping[str, str]) -> None: ...


@dataclass(slots=True)
class BufferedResponse:
    """A ``ResponseSink`` that keeps what was written.

    Raises ``RuntimeError`` on a second write so that "exactly one
    response" stays an enforced property.
    """

    status_code: int | None = None
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def write(self, status_code: int, body: bytes, headers: Mapping[str, str]) -> None:
        if self.status_code is not None:
            raise RuntimeError("response already written")
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers)

    @property
    def written(self) -> bool:
        return self.status_code is not None


class MemoryRequest:
    """A ``RequestSource`` over plain Python values.

    Used by hosts that already parsed the request themselves (and by the
    test suite).  Keys keep their insertion order; a form value shadows a
    query value of the same name.
    """

    def __init__(
        self,
        query: Mapping[str, str] | None = None,
        form: Mapping[str, str] | None = None,
        body: bytes = b"",
        files: Mapping[str, UploadedFile] | None = None,
        headers: Mapping[str, str] | None = None,
        description: str = "memory-request",
    ) -> None:
        self._query = dict(query or {})
        self._form = dict(form or {})
        self._body = io.BytesIO(body)
        self._files = FileCollection(files)
        self._headers = {k.lower(): v for k, v in (headers or {}).items()}
        self._description = description

    def param_keys(self) -> list[str]:
        return list(dict.fromkeys([*self._query, *self._form]))

    def param_value(self, key: str) -> str | None:
        if key in self._form:
            return self._form[key]
        return self._query.get(key)

    def query_keys(self) -> list[str]:
        return list(self._query)

    def query_value(self, key: str) -> str | None:
        return self._query.get(key)

    def body(self) -> BinaryIO:
        self._body.seek(0)
        return self._body

    def files(self) -> FileCollection:
        return self._files

    def declared_format(self) -> str | None:
        return self.param_value(META_FORMAT)

    def accept_encodings(self) -> str:
        return self._headers.get("accept-encoding", "")

    def description(self) -> str:
        return self._description
