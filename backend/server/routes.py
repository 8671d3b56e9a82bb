"""
Route registration for the relay.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire one RelaySession to each client WebSocket
- Pull dependencies from app.state
"""

from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, WebSocket

from config import AppConfig
from observability.logger import log_event
from relay.proxy import RelaySession
from spec import RELAY_PATH


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket(RELAY_PATH)
    async def relay_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        config: AppConfig = app.state.config
        relay = RelaySession(
            ws,
            upstream_url=config.relay_upstream_url,
            session_id=f"relay_{uuid4().hex[:12]}",
            default_api_key=config.openai_api_key,
        )

        try:
            await relay.run()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await relay.close()
