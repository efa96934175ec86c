"""
main.py: server launcher for the venue booking engine.

    python main.py

Environment:
    HOST, PORT        bind address (default 127.0.0.1:8000)
    RELOAD=1          restart on source changes while developing
    ADMIN_TOKEN       staff token exchanged at POST /login
    DATABASE_PATH     SQLite file holding units, bookings and rules

Application wiring lives in app.py; this file only starts uvicorn.
"""

from __future__ import annotations

import os

import uvicorn

from booking_engine.utils.config import get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))
RELOAD = os.getenv("RELOAD", "0") == "1"


def main() -> None:
    settings = get_settings()
    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN is empty; staff endpoints are open")
    logger.info(
        "Starting %s | url=http://%s:%s | docs=http://%s:%s/docs | database=%s",
        settings.app_name,
        HOST,
        PORT,
        HOST,
        PORT,
        settings.database_path,
    )

    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=RELOAD,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
