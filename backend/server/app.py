"""
FastAPI app factory for the relay.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Apply logging configuration
- Register routes
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability import logger

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the relay application.

    The factory pattern allows:
    - Testing with different configurations
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs, level=config.log_level)

    app = FastAPI(title="Voice Relay")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
