"""Starlette adapters for the engine's request/response boundary."""

from __future__ import annotations

import io
import logging
from typing import BinaryIO, Mapping

from shared.envelope import META_FORMAT
from slimapi.request import FileCollection, UploadedFile
from starlette.datastructures import UploadFile
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger(__name__)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class StarletteRequestSource:
    """A fully read Starlette request, exposed as a ``RequestSource``.

    Build it with ``await StarletteRequestSource.load(request)``; the
    engine reads the request synchronously and never awaits the transport.
    """

    def __init__(
        self,
        request: Request,
        body: bytes,
        form: list[tuple[str, str]],
        files: FileCollection,
    ) -> None:
        self._request = request
        self._query = request.query_params
        self._form = dict(form)
        self._form_keys = [k for k, _ in form]
        self._body = io.BytesIO(body)
        self._files = files

    @classmethod
    async def load(cls, request: Request) -> "StarletteRequestSource":
        body = await request.body()
        form: list[tuple[str, str]] = []
        files: dict[str, UploadedFile] = {}

        content_type = request.headers.get("content-type", "")
        if content_type.startswith(_FORM_TYPES):
            async with request.form() as data:
                for key, value in data.multi_items():
                    if isinstance(value, UploadFile):
                        files[key] = UploadedFile(
                            filename=value.filename or "",
                            content_type=value.content_type or "",
                            data=await value.read(),
                        )
                    else:
                        form.append((key, value))

        return cls(request, body, form, FileCollection(files))

    # -- RequestSource -------------------------------------------------
    def param_keys(self) -> list[str]:
        return list(dict.fromkeys([*self._query.keys(), *self._form_keys]))

    def param_value(self, key: str) -> str | None:
        if key in self._form:
            return self._form[key]
        return self._query.get(key)

    def query_keys(self) -> list[str]:
        return list(dict.fromkeys(self._query.keys()))

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
        return self._request.headers.get("accept-encoding", "")

    def description(self) -> str:
        client = self._request.client
        host = client.host if client else "-"
        return f"{host:<15} {self._request.method} {self._request.url}"


class StarletteResponseSink:
    """A ``ResponseSink`` producing one Starlette ``Response``."""

    def __init__(self) -> None:
        self.response: Response | None = None

    def write(self, status_code: int, body: bytes, headers: Mapping[str, str]) -> None:
        if self.response is not None:
            raise RuntimeError("response already written")
        self.response = Response(content=body, status_code=status_code, headers=dict(headers))
