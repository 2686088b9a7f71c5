"""
Document store protocol.

The core only talks to storage through this interface. Implementations are
free to evaluate conditions natively; the bundled ones evaluate them in
process with `crudgraph.storage.matching`.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

Document = Dict[str, Any]
Conditions = Dict[str, Any]


@runtime_checkable
class DocumentStore(Protocol):
    """Generic asynchronous interface over one collection of documents."""
    collection: str

    async def find(
        self,
        conditions: Conditions,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[Document]: ...
    async def count_documents(self, conditions: Conditions) -> int: ...
    async def distinct(self, field: str, conditions: Conditions) -> List[Any]: ...
    async def insert(self, document: Document) -> Document: ...
    async def update_by_id(self, identifier: Any, document: Document) -> Optional[Document]: ...
    async def remove_by_id(self, identifier: Any) -> Optional[Document]: ...
    def get_status(self) -> Dict[str, Any]: ...
