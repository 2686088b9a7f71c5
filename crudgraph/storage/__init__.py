"""
Document storage for crudgraph.

Two stores are bundled: an in-memory store and a SQLAlchemy-backed store.
`create_store` picks one from the configured database URL.
"""
from typing import Dict, Optional

from sqlalchemy.engine import Engine

from crudgraph.config import CrudGraphSettings
from crudgraph.storage.base import DocumentStore
from crudgraph.storage.memory import InMemoryDocumentStore
from crudgraph.storage.populate import DocumentPopulator
from crudgraph.storage.sql import SqlDocumentStore, get_engine, get_session_factory

_engines: Dict[str, Engine] = {}


def create_store(collection: str, settings: Optional[CrudGraphSettings] = None) -> DocumentStore:
    """Store for `collection` on the backend named by `settings.database_url`."""
    settings = settings or CrudGraphSettings()
    if settings.uses_memory_store:
        return InMemoryDocumentStore(collection)

    engine = _engines.get(settings.database_url)
    if engine is None:
        engine = get_engine(settings.database_url, echo=settings.sql_echo)
        _engines[settings.database_url] = engine
    return SqlDocumentStore(get_session_factory(engine), collection)


__all__ = [
    "DocumentPopulator",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "create_store",
    "get_engine",
    "get_session_factory",
]
