"""
Exception taxonomy for crudgraph.

Coercion failures are deliberately absent: a value that cannot be cast to its
declared type is passed through unchanged by the condition caster.
"""
from typing import Any, Optional


class CrudGraphError(Exception):
    """Base class for every error raised by crudgraph."""


class NotFoundError(CrudGraphError):
    """Raised when a write targets an entity that does not exist."""

    def __init__(self, type_name: str, identifier: Any = None, message: Optional[str] = None) -> None:
        self.type_name = type_name
        self.identifier = identifier
        super().__init__(message or f"No {type_name} found with the given id: {identifier}")


class ForbiddenError(CrudGraphError):
    """Raised by authorizers and guards to reject a request outright."""

    def __init__(self, message: str = "The session does not meet the requirements for this request") -> None:
        super().__init__(message)


class StoreError(CrudGraphError):
    """Failure reported by a document store."""


class DuplicateKeyError(StoreError):
    """A document with the same identifier already exists in the collection."""

    def __init__(self, collection: str, identifier: Any) -> None:
        self.collection = collection
        self.identifier = identifier
        super().__init__(f"Document {identifier} already exists in collection '{collection}'")
