"""
JSON codec for documents.

JSON columns cannot tell a UUID or a datetime from a string, so both are
wrapped in single-key tagged objects on the way in, in the spirit of Mongo's
extended JSON:

    UUID("...")        <->  {"$uuid": "..."}
    datetime(...)      <->  {"$date": "2024-01-01T00:00:00+00:00"}
"""
from datetime import date, datetime
from typing import Any
from uuid import UUID

UUID_TAG = "$uuid"
DATE_TAG = "$date"


def encode_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return {UUID_TAG: str(value)}
    if isinstance(value, datetime):
        return {DATE_TAG: value.isoformat()}
    if isinstance(value, date):
        return {DATE_TAG: datetime(value.year, value.month, value.day).isoformat()}
    if isinstance(value, dict):
        return {key: encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and UUID_TAG in value:
            return UUID(value[UUID_TAG])
        if len(value) == 1 and DATE_TAG in value:
            return datetime.fromisoformat(value[DATE_TAG])
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


def encode_document(document: dict) -> dict:
    return encode_value(document)


def decode_document(data: dict) -> dict:
    return decode_value(data)
