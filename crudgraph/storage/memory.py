"""In-memory document store, one instance per collection."""
import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional

from crudgraph.errors import DuplicateKeyError, StoreError
from crudgraph.identifiers import ID_FIELD, parse_identifier
from crudgraph.storage.base import Conditions, Document
from crudgraph.storage.matching import distinct_values, matches, query_documents


class InMemoryDocumentStore:
    """
    Default store keeping documents in a dict keyed by identifier.

    Documents are deep-copied on the way in and on the way out, so callers
    never share state with the stored version.
    """
    def __init__(self, collection: str) -> None:
        self._logger = logging.getLogger("InMemoryDocumentStore")
        self.collection = collection
        self._documents: Dict[str, Document] = {}

    @staticmethod
    def _key(identifier: Any) -> Optional[str]:
        parsed = parse_identifier(identifier)
        return str(parsed) if parsed is not None else None

    async def find(
        self,
        conditions: Conditions,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[Document]:
        found = query_documents(self._documents.values(), conditions, skip, limit, sort, projection)
        self._logger.debug(f"[{self.collection}] find matched {len(found)} document(s)")
        return found

    async def count_documents(self, conditions: Conditions) -> int:
        return sum(1 for document in self._documents.values() if matches(document, conditions))

    async def distinct(self, field: str, conditions: Conditions) -> List[Any]:
        return distinct_values(
            (document for document in self._documents.values() if matches(document, conditions)),
            field,
        )

    async def insert(self, document: Document) -> Document:
        key = self._key(document.get(ID_FIELD))
        if key is None:
            self._logger.error(f"[{self.collection}] insert without a valid {ID_FIELD}")
            raise StoreError(f"Documents need a valid {ID_FIELD} to be inserted")
        if key in self._documents:
            raise DuplicateKeyError(self.collection, key)
        self._documents[key] = deepcopy(document)
        self._logger.info(f"[{self.collection}] inserted {key}")
        return deepcopy(document)

    async def update_by_id(self, identifier: Any, document: Document) -> Optional[Document]:
        key = self._key(identifier)
        if key is None or key not in self._documents:
            return None
        stored = deepcopy(document)
        stored[ID_FIELD] = self._documents[key][ID_FIELD]
        self._documents[key] = stored
        self._logger.info(f"[{self.collection}] updated {key}")
        return deepcopy(stored)

    async def remove_by_id(self, identifier: Any) -> Optional[Document]:
        key = self._key(identifier)
        if key is None:
            return None
        removed = self._documents.pop(key, None)
        if removed is not None:
            self._logger.info(f"[{self.collection}] removed {key}")
        return removed

    def clear(self) -> None:
        self._documents.clear()

    def get_status(self) -> Dict[str, Any]:
        return {
            "storage": "memory",
            "collection": self.collection,
            "document_count": len(self._documents),
        }
