"""Identifier helpers. Entities are keyed by UUIDs stored under `_id`."""
from typing import Any, Optional
from uuid import UUID, uuid4

ID_FIELD = "_id"
ALT_ID_FIELD = "id"
VERSION_FIELD = "__v"


def new_identifier() -> UUID:
    return uuid4()


def parse_identifier(value: Any) -> Optional[UUID]:
    """Return the UUID for `value`, or None when it is not a valid identifier."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def is_identifier(value: Any) -> bool:
    return parse_identifier(value) is not None


def document_identifier(document: Any) -> Any:
    """Pick the identifier out of a document, preferring `_id` over `id`."""
    if not isinstance(document, dict):
        return None
    return document.get(ID_FIELD) or document.get(ALT_ID_FIELD)
