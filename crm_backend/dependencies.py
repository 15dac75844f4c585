"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from crm_backend.config import Settings
from crm_backend.db import SqlStore
from crm_backend.storage import StorageFacade

logger = logging.getLogger(__name__)


def build_storage(settings: Settings) -> StorageFacade:
    """
    Construct the process-wide storage facade from settings.

    Without a DATABASE_URL (or with in-memory backends forced) the facade
    runs on the in-memory store alone.
    """
    if settings.use_in_memory_backends or not settings.database_url:
        return StorageFacade()
    try:
        persistent = SqlStore(settings.database_url)
    except (ValueError, ImportError, SQLAlchemyError):
        # A malformed URL or missing driver leaves us in memory-only mode.
        logger.exception("Could not configure persistent store")
        return StorageFacade()
    return StorageFacade(persistent=persistent)


def get_storage(request: Request) -> StorageFacade:
    return request.app.state.storage
