from urllib.parse import urlparse

from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import create_async_engine

from document_framework.storages.base import UNDEFINED, RecordStore, Store
from document_framework.storages.memory import MemoryStore
from document_framework.storages.sqlalchemy import SqlAlchemyStore

__all__ = ["UNDEFINED", "MemoryStore", "RecordStore", "SqlAlchemyStore", "Store", "connect"]


def connect(url: str) -> Store:
    """Creates a store from a URL.

    ``memory://`` gives a :class:`MemoryStore`, any SQLAlchemy URL with an asyncio driver
    (``sqlite+aiosqlite://``, ``sqlite+aiosqlite:///movies.db``, ``postgresql+asyncpg://...``)
    a :class:`SqlAlchemyStore`.
    """

    if urlparse(url).scheme == "memory":
        return MemoryStore()

    try:
        engine = create_async_engine(url)
    except (ArgumentError, InvalidRequestError) as e:
        raise ValueError(f"Unknown storage URL: {url}") from e
    return SqlAlchemyStore(engine)
