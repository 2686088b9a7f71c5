"""
Condition caster.

Coerces the untyped values of a condition tree into the types declared by the
target entity's schema before the tree reaches the store. Coercion is best
effort: a value that cannot be converted is passed through unchanged.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from crudgraph.identifiers import ID_FIELD
from crudgraph.query.conditions import Conditions, is_operator
from crudgraph.registry import EntityRegistry
from crudgraph.schema.descriptor import EmbeddedField, FieldKind, FieldSpec, RelationField, ScalarField

# Operators whose operand is not a value of the field's type
NON_VALUE_OPERATORS = {"$exists", "$regex", "$options", "$size", "$type"}

TRUTHY_LITERALS = (True, 1, "true", "1")


def cast_value(value: Any, kind: FieldKind) -> Any:
    """
    Cast a single value to `kind`.

    Supported kinds: string, number, date, boolean, identifier. Mixed values
    and values that fail to convert are returned unchanged.
    """
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value

    try:
        if kind == FieldKind.STRING:
            return value if isinstance(value, str) else str(value)
        if kind == FieldKind.NUMBER:
            return _to_number(value)
        if kind == FieldKind.DATE:
            return _to_date(value)
        if kind == FieldKind.BOOLEAN:
            return value in TRUTHY_LITERALS
        if kind == FieldKind.IDENTIFIER:
            return value if isinstance(value, UUID) else UUID(str(value))
    except (TypeError, ValueError, OverflowError, OSError):
        return value
    return value


def _to_number(value: Any) -> Any:
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class ConditionCaster:
    """Casts condition trees and documents for one entity type."""
    _logger = logging.getLogger("ConditionCaster")

    def __init__(self, registry: EntityRegistry, type_name: str) -> None:
        self.registry = registry
        self.type_name = type_name

    def cast(self, conditions: Optional[Conditions]) -> Conditions:
        """Return a copy of `conditions` with every typed leaf value coerced."""
        if not isinstance(conditions, dict):
            return conditions  # type: ignore[return-value]

        result: Conditions = {}
        for key, value in conditions.items():
            if is_operator(key):
                result[key] = self._cast_operand(value)
                continue

            kind = self.registry.field_type(self.type_name, key)
            if kind is None:
                result[key] = value
            elif isinstance(value, dict):
                result[key] = self._cast_operator_map(value, kind)
            elif isinstance(value, list):
                result[key] = [cast_value(item, kind) for item in value]
            else:
                result[key] = cast_value(value, kind)
        return result

    def _cast_operand(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self.cast(item) if isinstance(item, dict) else item for item in value]
        if isinstance(value, dict):
            return self.cast(value)
        return value

    def _cast_operator_map(self, value: Dict[str, Any], kind: FieldKind) -> Dict[str, Any]:
        """Cast {"$in": [...], "$gte": ...} style maps operand by operand."""
        result: Dict[str, Any] = {}
        for sub_key, sub_value in value.items():
            if not is_operator(sub_key) or sub_key in NON_VALUE_OPERATORS:
                result[sub_key] = sub_value
            elif sub_key == "$not" and isinstance(sub_value, dict):
                result[sub_key] = self._cast_operator_map(sub_value, kind)
            elif isinstance(sub_value, list):
                result[sub_key] = [cast_value(item, kind) for item in sub_value]
            else:
                result[sub_key] = cast_value(sub_value, kind)
        return result

    def coerce_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce the fields of a document about to be saved to their declared types."""
        descriptor = self.registry.descriptor(self.type_name)
        if descriptor is None:
            self._logger.warning(f"No descriptor registered for '{self.type_name}', document left as is")
            return dict(document)
        return _coerce_fields(document, descriptor.fields)


def _coerce_fields(document: Dict[str, Any], fields: Dict[str, FieldSpec]) -> Dict[str, Any]:
    coerced: Dict[str, Any] = {}
    for key, value in document.items():
        spec = fields.get(key)
        if key == ID_FIELD:
            coerced[key] = cast_value(value, FieldKind.IDENTIFIER)
        elif spec is None or value is None:
            coerced[key] = value
        elif isinstance(spec, ScalarField):
            coerced[key] = _coerce_leaf(value, spec.type)
        elif isinstance(spec, RelationField):
            coerced[key] = value if spec.is_virtual else _coerce_reference(value)
        elif isinstance(spec, EmbeddedField):
            if isinstance(value, list):
                coerced[key] = [
                    _coerce_fields(item, spec.fields) if isinstance(item, dict) else item
                    for item in value
                ]
            elif isinstance(value, dict):
                coerced[key] = _coerce_fields(value, spec.fields)
            else:
                coerced[key] = value
    return coerced


def _coerce_leaf(value: Any, kind: FieldKind) -> Any:
    if isinstance(value, list):
        return [cast_value(item, kind) for item in value]
    return cast_value(value, kind)


def _coerce_reference(value: Any) -> Any:
    """References may arrive as identifiers or as already populated documents."""
    def one(item: Any) -> Any:
        if isinstance(item, dict) and ID_FIELD in item:
            return cast_value(item[ID_FIELD], FieldKind.IDENTIFIER)
        return cast_value(item, FieldKind.IDENTIFIER)

    if isinstance(value, list):
        return [one(item) for item in value]
    return one(value)
