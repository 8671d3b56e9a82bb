"""
Relay server entry point.

    python backend/server/main.py        (with backend/ on PYTHONPATH)
    voice-relay                          (installed console script)
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host="0.0.0.0",
        port=config.relay_port,
        log_level=config.log_level.lower(),
        reload=config.env == "dev",  # Dev mode only
    )


if __name__ == "__main__":
    main()
