"""
Entity registry.

Maps entity type names to the handle (usually a CrudService) that owns the
type's descriptor, store and authorizer. One registry is built at startup and
passed by reference to every service; relation planning uses it to hop from
one entity type to another by name.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from crudgraph.context import CallerContext, Conditions
from crudgraph.identifiers import ID_FIELD
from crudgraph.schema.descriptor import (
    EmbeddedField, EntityDescriptor, FieldKind, FieldSpec, RelationField, ScalarField
)


@runtime_checkable
class EntityHandle(Protocol):
    """What the registry hands out for a type name."""
    descriptor: EntityDescriptor
    store: Any

    async def authorize(self, context: Optional[CallerContext]) -> List[Conditions]: ...
    def cast(self, conditions: Conditions) -> Conditions: ...


class EntityRegistry:
    """
    Registry of entity handles keyed by type name.

    Writes are expected during startup only. Registering a type name twice
    replaces the earlier handle; the overwrite is logged as a warning.
    """
    _logger = logging.getLogger("EntityRegistry")

    def __init__(self) -> None:
        self._handles: Dict[str, EntityHandle] = {}

    def register(self, type_name: str, handle: EntityHandle) -> None:
        if type_name in self._handles and self._handles[type_name] is not handle:
            self._logger.warning(f"Entity type '{type_name}' already registered, replacing previous handle")
        self._handles[type_name] = handle
        self._logger.info(f"Registered entity type '{type_name}'")

    def resolve(self, type_name: str) -> Optional[EntityHandle]:
        return self._handles.get(type_name)

    def has(self, type_name: str) -> bool:
        return type_name in self._handles

    def descriptor(self, type_name: str) -> Optional[EntityDescriptor]:
        handle = self._handles.get(type_name)
        return handle.descriptor if handle is not None else None

    def type_names(self) -> List[str]:
        return list(self._handles.keys())

    def clear(self) -> None:
        self._handles.clear()
        self._logger.info("Registry cleared")

    def field_type(self, type_name: str, path: str) -> Optional[FieldKind]:
        """
        Declared type of the field at dot-path `path` on `type_name`.

        Relation segments in the middle of the path continue against the
        target entity's descriptor; embedded sub-documents are descended.
        A trailing `_id` is always an identifier, and a trailing relation is
        an identifier because references hold identifiers.
        """
        segments = path.split(".")
        if segments[-1] == ID_FIELD:
            return FieldKind.IDENTIFIER

        descriptor = self.descriptor(type_name)
        if descriptor is None:
            return None
        fields: Dict[str, FieldSpec] = descriptor.fields

        for index, segment in enumerate(segments):
            spec = fields.get(segment)
            if spec is None:
                return None
            is_last = index == len(segments) - 1

            if isinstance(spec, ScalarField):
                return spec.type if is_last else None
            if isinstance(spec, EmbeddedField):
                if is_last:
                    return None
                fields = spec.fields
                continue
            if isinstance(spec, RelationField):
                if is_last:
                    return FieldKind.IDENTIFIER
                target = self.descriptor(spec.target)
                if target is None:
                    self._logger.debug(f"Relation target '{spec.target}' is not registered")
                    return None
                fields = target.fields
        return None

    def get_registry_status(self) -> Dict[str, Any]:
        return {
            "entity_types": self.type_names(),
            "relations": {
                name: handle.descriptor.relations for name, handle in self._handles.items()
            },
        }
