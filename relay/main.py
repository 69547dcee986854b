"""Prompt relay: FastAPI app exposing one prompt endpoint.

POST <endpoint_path> relays a prompt to the configured provider and answers
either with one JSON body (buffered mode) or a text stream of ``data:``
frames (streaming mode). Also exposes /health and /config.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from relay.config import RelayConfig, get_config
from relay.errors import MethodNotAllowed, RelayError, ValidationError
from relay.providers import build_provider
from relay.providers.base import Provider
from relay.runtime import Relay
from relay.schemas import BufferedResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
ALLOWED_METHODS = "POST, OPTIONS"


def _error_response(error: RelayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_body())


class CORSHeadersMiddleware:
    """Stamp CORS headers on every HTTP response.

    Plain ASGI: ``receive`` reaches the endpoint untouched, so
    ``request.is_disconnected()`` sees the client's ``http.disconnect``.
    """

    def __init__(self, app: ASGIApp, allow_origin: str = "*") -> None:
        self.app = app
        self.allow_origin = allow_origin

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["Access-Control-Allow-Origin"] = self.allow_origin
                headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
                headers["Access-Control-Allow-Headers"] = "Content-Type"
            await send(message)

        await self.app(scope, receive, send_with_cors)


@asynccontextmanager
async def lifespan(app: FastAPI):
    relay: Relay = app.state.relay
    logger.info(
        f"Prompt relay started (provider={relay.provider.name}, "
        f"model={relay.params.model}, mode={relay.config.mode}, "
        f"path={relay.config.endpoint_path}, "
        f"credential={'set' if relay.provider.api_key else 'missing'})"
    )
    yield
    logger.info("Prompt relay shutting down")


def create_app(
    config: RelayConfig | None = None,
    provider: Provider | None = None,
) -> FastAPI:
    """Build the app. Config and provider are injectable for tests."""
    config = config or get_config()
    provider = provider or build_provider(config)
    relay = Relay(config, provider)

    app = FastAPI(title="Prompt Relay", version="0.1.0", lifespan=lifespan)
    app.state.relay = relay

    app.add_middleware(CORSHeadersMiddleware, allow_origin=config.allowed_origin)

    @app.exception_handler(StarletteHTTPException)
    async def method_not_allowed(request: Request, exc: StarletteHTTPException) -> Response:
        """Any method other than POST/OPTIONS gets the relay's own 405 body."""
        if exc.status_code != 405:
            return await http_exception_handler(request, exc)
        response = _error_response(MethodNotAllowed())
        if request.url.path == config.endpoint_path:
            response.headers["Allow"] = ALLOWED_METHODS
        elif exc.headers:
            response.headers.update(exc.headers)
        return response

    # -----------------------------------------------------------------------
    # Relay endpoint
    # -----------------------------------------------------------------------

    @app.options(config.endpoint_path)
    async def preflight() -> Response:
        return Response(status_code=200)

    @app.post(config.endpoint_path)
    async def relay_prompt(request: Request) -> Response:
        """Relay one prompt upstream.

        Validation and credential errors are returned as JSON before anything
        is committed. In streaming mode every later failure arrives as an
        error frame inside the 200 response.
        """
        try:
            payload = await request.json()
        except ValueError:
            return _error_response(ValidationError("Request body must be valid JSON"))

        try:
            prompt = relay.prepare(payload)
            relay.check_credentials()
        except RelayError as e:
            logger.warning(f"Rejected request: {e.message}")
            return _error_response(e)

        logger.info(f"Received request: prompt_length={len(prompt)}, mode={config.mode}")

        if config.streaming:
            return StreamingResponse(
                relay.frames(prompt, request.is_disconnected),
                media_type=STREAM_MEDIA_TYPE,
                headers=STREAM_HEADERS,
            )

        try:
            text = await relay.complete(prompt)
        except RelayError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Relay failed: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to generate feedback.", "details": str(e)},
            )
        return JSONResponse(content=BufferedResponse(text=text).model_dump())

    # -----------------------------------------------------------------------
    # Operational endpoints
    # -----------------------------------------------------------------------

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {
            "status": "healthy",
            "provider": provider.name,
            "mode": config.mode,
        }

    @app.get("/config")
    async def get_current_config():
        """Return current config as JSON. The credential is never included."""
        return config.model_dump()

    return app


app = create_app()
