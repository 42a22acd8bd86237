"""Relay Server - Core Application

Architecture:
    RelayServer
        /api/health                  - Health check
        /api/auth/...                - Login, logout, current user
        /api/users                   - User sync
        /api/direct-conversations    - Direct conversations
        /api/channels/{id}/messages  - Message sync
        /api/messages                - Send
        /api/docs                    - OpenAPI docs

Shared services (store, session registry, reconciler) come from
`mattermost_relay.server.services`, which must be initialized before
the first request.

Error translation:
    RelayError subclasses   -> their status_code, {"message": ...}
    Request body validation -> 400, {"message": ..., "errors": [...]}
    Anything else           -> 500, logged once with traceback by the
                               request middleware
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mattermost_relay import __version__, conventions
from mattermost_relay.errors import RelayError

from .routes import router as relay_router

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("mattermost_relay.server.access")


async def _relay_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RelayError)
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def _format_location(loc: tuple[Any, ...] | list[Any]) -> str:
    return ".".join(str(part) for part in loc if part != "body")


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    errors = [
        {"field": _format_location(e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = (
        f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    )
    return JSONResponse(status_code=400, content={"message": message, "errors": errors})


def _unhandled_error_response(request: Request) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


class RelayServer:
    """The relay server.

    Usage:
        init_services(config=cfg)
        server = RelayServer()
        app = server.app  # hand to uvicorn
    """

    def __init__(
        self,
        title: str = "Mattermost Relay",
        version: str = __version__,
        dev_mode: bool = False,
    ) -> None:
        self._dev_mode = dev_mode
        self._app = FastAPI(
            title=title,
            version=version,
            docs_url=f"{conventions.API_PREFIX}/docs",
            openapi_url=f"{conventions.API_PREFIX}/openapi.json",
        )
        self._core_router = APIRouter(prefix=conventions.API_PREFIX, tags=["core"])
        self._setup_core_routes()
        self._setup_error_handlers()
        self._setup_request_logging()
        self._app.include_router(self._core_router)
        self._app.include_router(
            relay_router, prefix=conventions.API_PREFIX, tags=["relay"]
        )

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application instance."""
        return self._app

    @property
    def dev_mode(self) -> bool:
        return self._dev_mode

    def _setup_core_routes(self) -> None:
        @self._core_router.get("/health")
        async def health() -> dict[str, Any]:
            """Health check endpoint."""
            from mattermost_relay.server.services import get_services

            body: dict[str, Any] = {
                "status": "ok",
                "version": self._app.version,
                "sessions": 0,
                "mattermostServer": None,
            }
            try:
                services = get_services()
            except RuntimeError:
                return body

            body["sessions"] = len(services.registry)
            record = services.store.get_active_server_config()
            if record is not None:
                body["mattermostServer"] = {
                    "serverUrl": record.server_url,
                    "apiVersion": record.api_version,
                }
            return body

    def _setup_error_handlers(self) -> None:
        self._app.add_exception_handler(RelayError, _relay_error_handler)
        self._app.add_exception_handler(
            RequestValidationError, _validation_error_handler
        )

    def _setup_request_logging(self) -> None:
        @self._app.middleware("http")
        async def log_requests(request: Request, call_next: Any) -> Any:
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception:
                # Unexpected errors stop here and never reach ServerErrorMiddleware.
                response = _unhandled_error_response(request)
            path = request.url.path
            if path.startswith(conventions.API_PREFIX):
                access_logger.info(
                    "%s %s %d in %dms",
                    request.method,
                    path,
                    response.status_code,
                    (time.perf_counter() - start) * 1000,
                )
            return response


def create_server(dev_mode: bool = False, **kwargs: Any) -> RelayServer:
    """Factory function to create the server.

    Usage:
        server = create_server()

        import uvicorn
        uvicorn.run(server.app, host="127.0.0.1", port=5000)
    """
    return RelayServer(dev_mode=dev_mode, **kwargs)
