"""
SQL-backed document store.

Documents of every collection live in one `documents` table as JSON bodies,
keyed by (collection, document_id). Restrictions on `_id` (equality, `$eq`,
`$in`) and unconditional counts are answered in SQL; conditions, sorting and
projection are then evaluated in process with the same matcher the in-memory
store uses, so both stores answer a query identically.

SQLAlchemy sessions are synchronous; every public coroutine runs its session
work in a worker thread with `asyncio.to_thread`.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, mapped_column, sessionmaker

from crudgraph.errors import DuplicateKeyError, StoreError
from crudgraph.identifiers import ID_FIELD, parse_identifier
from crudgraph.storage.base import Conditions, Document
from crudgraph.storage.codec import decode_document, encode_document
from crudgraph.storage.matching import distinct_values, matches, query_documents

Base = declarative_base()


class DocumentRow(Base):
    """One stored document."""
    __tablename__ = "documents"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection = mapped_column(String(100), nullable=False, index=True)
    document_id = mapped_column(String(36), nullable=False, index=True)
    body = mapped_column(JSON, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("collection", "document_id", name="uix_collection_document"),
    )


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for `database_url` and make sure the documents table exists."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, echo=echo, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _identifier_candidates(value: Any) -> Optional[List[Any]]:
    if isinstance(value, dict):
        if "$eq" in value:
            return [value["$eq"]]
        if isinstance(value.get("$in"), list):
            return list(value["$in"])
        return None
    if isinstance(value, list):
        return None
    return [value]


def identifier_keys(conditions: Optional[Conditions]) -> Optional[Set[str]]:
    """
    Document ids a condition tree restricts `_id` to, or None when it does not.

    Equality, `$eq` and `$in` on `_id` are considered, at the top level and
    inside `$and` clauses; several restrictions intersect.
    """
    restriction: Optional[Set[str]] = None
    clauses: List[Any] = [conditions or {}]
    while clauses:
        clause = clauses.pop()
        if not isinstance(clause, dict):
            continue
        if ID_FIELD in clause:
            candidates = _identifier_candidates(clause[ID_FIELD])
            if candidates is not None:
                keys = {str(parsed) for parsed in map(parse_identifier, candidates) if parsed is not None}
                restriction = keys if restriction is None else restriction & keys
        nested = clause.get("$and")
        if isinstance(nested, list):
            clauses.extend(nested)
    return restriction


def is_unconditional(conditions: Optional[Conditions]) -> bool:
    """True for trees that match every document, such as {} or {"$and": [{}]}."""
    for key, value in (conditions or {}).items():
        if key != "$and" or not isinstance(value, list):
            return False
        if not all(isinstance(clause, dict) and is_unconditional(clause) for clause in value):
            return False
    return True


class SqlDocumentStore:
    """
    Document store for one collection on top of a SQLAlchemy session factory.

    The factory is called once per operation and used as a context manager,
    so any `sessionmaker` works.
    """
    def __init__(self, session_factory: Callable[[], Session], collection: str) -> None:
        self._logger = logging.getLogger("SqlDocumentStore")
        self._session_factory = session_factory
        self.collection = collection

    @staticmethod
    def _key(identifier: Any) -> Optional[str]:
        parsed = parse_identifier(identifier)
        return str(parsed) if parsed is not None else None

    def _load(self, conditions: Optional[Conditions] = None) -> List[Document]:
        """Candidate documents for `conditions`; `_id` restrictions are pushed into SQL."""
        statement = select(DocumentRow.body).where(DocumentRow.collection == self.collection)
        keys = identifier_keys(conditions)
        if keys is not None:
            if not keys:
                return []
            if len(keys) == 1:
                statement = statement.where(DocumentRow.document_id == next(iter(keys)))
            else:
                statement = statement.where(DocumentRow.document_id.in_(sorted(keys)))

        with self._session_factory() as session:
            rows = session.execute(statement.order_by(DocumentRow.id)).scalars().all()
        return [decode_document(body) for body in rows]

    def _get_row(self, session: Session, key: str) -> Optional[DocumentRow]:
        return session.execute(
            select(DocumentRow).where(
                DocumentRow.collection == self.collection,
                DocumentRow.document_id == key,
            )
        ).scalar_one_or_none()

    # Read operations

    async def find(
        self,
        conditions: Conditions,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[Document]:
        def _find() -> List[Document]:
            return query_documents(self._load(conditions), conditions, skip, limit, sort, projection)

        found = await asyncio.to_thread(_find)
        self._logger.debug(f"[{self.collection}] find matched {len(found)} document(s)")
        return found

    async def count_documents(self, conditions: Conditions) -> int:
        def _count() -> int:
            if is_unconditional(conditions):
                return self._count_rows()
            return sum(1 for document in self._load(conditions) if matches(document, conditions))

        return await asyncio.to_thread(_count)

    async def distinct(self, field: str, conditions: Conditions) -> List[Any]:
        def _distinct() -> List[Any]:
            return distinct_values(
                (document for document in self._load(conditions) if matches(document, conditions)),
                field,
            )

        return await asyncio.to_thread(_distinct)

    # Write operations

    async def insert(self, document: Document) -> Document:
        key = self._key(document.get(ID_FIELD))
        if key is None:
            self._logger.error(f"[{self.collection}] insert without a valid {ID_FIELD}")
            raise StoreError(f"Documents need a valid {ID_FIELD} to be inserted")

        def _insert() -> Document:
            with self._session_factory() as session:
                session.add(DocumentRow(
                    collection=self.collection,
                    document_id=key,
                    body=encode_document(document),
                ))
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise DuplicateKeyError(self.collection, key) from e
            return decode_document(encode_document(document))

        stored = await asyncio.to_thread(_insert)
        self._logger.info(f"[{self.collection}] inserted {key}")
        return stored

    async def update_by_id(self, identifier: Any, document: Document) -> Optional[Document]:
        key = self._key(identifier)
        if key is None:
            return None

        def _update() -> Optional[Document]:
            with self._session_factory() as session:
                row = self._get_row(session, key)
                if row is None:
                    return None
                body = encode_document({**document, ID_FIELD: parse_identifier(key)})
                row.body = body
                row.updated_at = datetime.now(timezone.utc)
                session.commit()
                return decode_document(body)

        updated = await asyncio.to_thread(_update)
        if updated is not None:
            self._logger.info(f"[{self.collection}] updated {key}")
        return updated

    async def remove_by_id(self, identifier: Any) -> Optional[Document]:
        key = self._key(identifier)
        if key is None:
            return None

        def _remove() -> Optional[Document]:
            with self._session_factory() as session:
                row = self._get_row(session, key)
                if row is None:
                    return None
                removed = decode_document(row.body)
                session.delete(row)
                session.commit()
                return removed

        removed = await asyncio.to_thread(_remove)
        if removed is not None:
            self._logger.info(f"[{self.collection}] removed {key}")
        return removed

    def _count_rows(self) -> int:
        with self._session_factory() as session:
            return session.execute(
                select(func.count(DocumentRow.id)).where(DocumentRow.collection == self.collection)
            ).scalar_one()

    def get_status(self) -> Dict[str, Any]:
        return {
            "storage": "sql",
            "collection": self.collection,
            "document_count": self._count_rows(),
        }
