"""Slim API client — thin consumer of the ``{code, message, data}`` envelope.

* ``call(method, params)``                 → JSON document body
* ``call(method, params, fmt="post")``     → urlencoded form
* ``call(method, params, fmt="get")``      → query string

Uses ``httpx.AsyncClient`` with connection pooling.
**Never** imports from ``app/``.

Run directly for a quick demo::

    python -m client.client
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from shared.envelope import (
    FORMAT_GET,
    FORMAT_JSON,
    FORMAT_POST,
    META_FORMAT,
    ApiResponse,
)

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

log = logging.getLogger(__name__)


class ApiCallError(Exception):
    """Raised when the server answers with a non-zero code."""

    def __init__(self, response: ApiResponse) -> None:
        self.response = response
        super().__init__(f"[{response.code}] {response.message}")

    @property
    def code(self) -> int:
        return self.response.code


def form_value(value: Any) -> str:
    """Render one parameter value the way form decoders read it back."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return ",".join(f"{k}:{form_value(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(form_value(v) for v in value)
    if value is None:
        return ""
    return str(value)


class SlimApiClient:
    """Thin async client for a Slim API host.

    Parameters
    ----------
    base_url : str
        Server origin, e.g. ``http://127.0.0.1:8100``.
    timeout : float
        Default request timeout in seconds.
    max_retries : int
        Max connection-level retries.
    path : str
        Route of the API, each method is posted to ``{path}/{method}``.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8100",
        timeout: float = 30.0,
        max_retries: int = 3,
        path: str = "/api",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.path = path.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
        )

    # -- Lifecycle -----------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SlimApiClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Internal retry helper -----------------------------------------

    def _get_retrier(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

    def _build(self, method: str, params: dict[str, Any], fmt: str) -> httpx.Request:
        url = f"{self.path}/{method}"
        if fmt == FORMAT_JSON:
            return self._client.build_request(
                "POST", url, params={META_FORMAT: FORMAT_JSON}, json=params,
            )
        fields = {key: form_value(value) for key, value in params.items()}
        if fmt == FORMAT_POST:
            return self._client.build_request(
                "POST", url, params={META_FORMAT: FORMAT_POST}, data=fields,
            )
        if fmt == FORMAT_GET:
            return self._client.build_request(
                "GET", url, params={META_FORMAT: FORMAT_GET, **fields},
            )
        raise ValueError(f"unknown format: {fmt!r}")

    # -- Calls ---------------------------------------------------------

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        fmt: str = FORMAT_JSON,
    ) -> ApiResponse:
        """Call *method* and return the raw envelope, whatever its code."""
        request = self._build(method, params or {}, fmt)

        log.debug("api → %s (%s)", method, fmt)

        async for attempt in self._get_retrier():
            with attempt:
                resp = await self._client.send(request)

        # 400 and 500 still carry an envelope
        if resp.status_code not in (200, 400, 500):
            resp.raise_for_status()
        return ApiResponse.from_dict(resp.json())

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        fmt: str = FORMAT_JSON,
    ) -> Any:
        """Call *method* and return its ``data``.

        Raises ``ApiCallError`` if the server answers with a non-zero code.
        """
        response = await self.send(method, params, fmt)
        if not response.ok:
            raise ApiCallError(response)
        return response.data


# ── Demo entrypoint ──────────────────────────────────────────────────


async def _demo() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    async with SlimApiClient() as client:
        print("── add ──")
        result = await client.call("add", {"a": 17, "b": 25})
        print(f"  result: {result}")

        print("── sum (form) ──")
        result = await client.call("sum", {"values": [1, 2, 3.5]}, fmt=FORMAT_POST)
        print(f"  result: {result}")

        print("── withdraw ──")
        try:
            await client.call("withdraw", {"amount": 500})
        except ApiCallError as exc:
            print(f"  refused: {exc}")

        print("── done ──")


if __name__ == "__main__":
    import anyio

    anyio.run(_demo)
