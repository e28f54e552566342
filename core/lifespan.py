"""
Define application startup and shutdown procedures
"""

import asyncio
import re
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from fastapi import FastAPI
from core.config import get_settings
from core.db import create_db_and_tables
from core.logger import logger
from api.auth.services import session_store, sweep_sessions_periodically
from api.mirror.services import sync_on_startup


def _log_setting(key: str, value):
    """Log a setting, masking sensitive values like passwords and secrets"""
    if ("PASSWORD" in key or "SECRET" in key or "CREDENTIALS" in key) and value is not None:
        logger.info("  %s: %s", key, "*****")
    elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
        # Mask password in database URI if present
        masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
        logger.info("  %s: %s", key, masked_value)
    else:
        logger.info("  %s: %s", key, value)


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    # Print configuration settings (mask sensitive info)
    logger.info("Configuration Settings:")
    settings = get_settings()

    # Log computed fields first (they don't appear in vars())
    computed_fields = {
        "SQLALCHEMY_DATABASE_URI": settings.SQLALCHEMY_DATABASE_URI,
        "FTP_PASSWORD": settings.FTP_PASSWORD,
        "SESSION_SECRET_KEY": settings.SESSION_SECRET_KEY,
    }

    for key, value in computed_fields.items():
        _log_setting(key, value)

    # Log remaining settings
    for key, value in vars(settings).items():
        _log_setting(key, value)

    try:
        logger.info("Initializing database...")
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        # Re-raise the exception to fail application startup
        raise RuntimeError(f"Cannot start application: database initialization failed - {str(e)}") from e

    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

    # Never fails startup; an unreachable mirror only logs a warning
    sync_on_startup(settings)

    sweeper = asyncio.create_task(
        sweep_sessions_periodically(session_store, settings.SESSION_SWEEP_SECONDS)
    )

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
