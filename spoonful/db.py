"""
Document store selection.

If the DATABASE_URL environment variable is set, recipes and user records are
persisted through the SQLAlchemy-backed store. Otherwise the process falls
back to the in-memory store, which loses data on restart.
"""

import logging
import os
from typing import Optional

from spoonful.stores.base import DocumentStore, StoreError
from spoonful.stores.memory_store import MemoryDocumentStore

logger = logging.getLogger(__name__)


def db_is_enabled() -> bool:
    """
    Check if database persistence is enabled.

    Returns:
        True if DATABASE_URL is set, False otherwise
    """
    return bool(os.getenv("DATABASE_URL"))


def create_store(database_url: Optional[str] = None) -> DocumentStore:
    """
    Build the document store for this process.

    Args:
        database_url: SQLAlchemy URL (optional, reads DATABASE_URL if not provided)

    Returns:
        SqlDocumentStore when a URL is available and usable, otherwise
        MemoryDocumentStore
    """
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        logger.debug("DATABASE_URL not set, using in-memory document store")
        return MemoryDocumentStore()

    from spoonful.stores.sql_store import SqlDocumentStore

    try:
        return SqlDocumentStore(url)
    except StoreError as e:
        # Keep the service usable; data will not survive a restart
        logger.warning("Database initialization failed, using in-memory store: %s", e)
        return MemoryDocumentStore()
