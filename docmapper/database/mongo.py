from __future__ import annotations

"""
MongoDB connection helpers.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

logger = logging.getLogger(__name__)

_client: MongoClient | None = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        # Import settings lazily to ensure env vars are loaded
        from docmapper.config import settings

        logger.info(f"Initializing MongoClient for database '{settings.MONGODB_DB_NAME}'")
        _client = MongoClient(settings.MONGODB_URI)
    return _client


def get_database(name: Optional[str] = None) -> Database:
    """Return ``name`` or, by default, the configured database."""
    from docmapper.config import settings

    client = get_client()
    return client[name or settings.MONGODB_DB_NAME]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


@contextmanager
def get_transaction() -> Generator[ClientSession, None, None]:
    """
    Transaction helper for operations spanning several repositories.

    Usage:
        with get_transaction() as session:
            pages.collection.insert_one(doc, session=session)
            users.collection.update_one(q, u, session=session)

    Note:
        Requires MongoDB Replica Set. Will fail on standalone MongoDB.

    Raises:
        pymongo.errors.PyMongoError: If transaction fails
    """
    client = get_client()
    with client.start_session() as session:
        with session.start_transaction():
            yield session
