"""Slim API host — Starlette ASGI server.

``/api`` takes the method name from the ``~method`` parameter,
``/api/{method}`` from the path.  Both answer GET and POST; the request
format comes from ``~format`` (``json``, ``post`` or ``get``).

Run directly::

    python -m app.server
"""

from __future__ import annotations

import argparse
import logging
from typing import Callable

from shared.envelope import META_CALLBACK, META_METHOD
from slimapi import ApiSetup, Dispatcher, LazyRegistry, LogSetup, build_registry
from slimapi.dispatch import ErrorTranslator, translate_api_error
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from app.config import Settings
from app.handlers import make_setup
from app.transport import StarletteRequestSource, StarletteResponseSink

log = logging.getLogger(__name__)


class SlimApiEndpoint:
    """Serves one API surface.

    The registry is built from *setup* on the first request, once, even
    when the first requests arrive concurrently.
    """

    def __init__(
        self,
        setup: Callable[[ApiSetup], None],
        *,
        namespace: str = "",
        error_translator: ErrorTranslator | None = translate_api_error,
        log_setup: LogSetup | None = None,
    ) -> None:
        self.registry = LazyRegistry(lambda: build_registry(setup, namespace))
        self.dispatcher = Dispatcher(
            self.registry,
            error_translator=error_translator,
            log_setup=log_setup,
        )

    async def handle(self, request: Request) -> Response:
        """Handle one API request."""
        source = await StarletteRequestSource.load(request)
        method_name = request.path_params.get("method") or source.param_value(META_METHOD)

        sink = StarletteResponseSink()
        await self.dispatcher.handle(
            method_name,
            source.declared_format(),
            source,
            sink,
            callback=source.param_value(META_CALLBACK),
        )
        return sink.response


# ── App factory ──────────────────────────────────────────────────────


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"ok": True})


def create_app(settings: Settings | None = None) -> Starlette:
    settings = settings or Settings()
    endpoint = SlimApiEndpoint(
        make_setup(settings),
        namespace="example",
        log_setup=LogSetup(log_success=settings.log_success),
    )
    app = Starlette(
        debug=False,
        routes=[
            Route("/api", endpoint.handle, methods=["GET", "POST"]),
            Route("/api/{method}", endpoint.handle, methods=["GET", "POST"]),
            Route("/health", health, methods=["GET"]),
        ],
    )
    app.state.endpoint = endpoint
    return app


app = create_app()


# ── Runnable entrypoint ──────────────────────────────────────────────


def main() -> None:
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Slim API example server")
    parser.add_argument("--host", type=str, default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port")
    parser.add_argument("--log-level", type=str, default=settings.log_level, help="Log level")
    args = parser.parse_args()

    import uvicorn
    from slimapi.logsetup import configure

    configure(args.log_level)
    uvicorn.run(
        create_app(settings),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
