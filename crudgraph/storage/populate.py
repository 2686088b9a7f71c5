"""
Relation population.

Resolves a FetchNode tree against stored documents: every node replaces the
reference(s) held by a document with the referenced documents, fetched from
the target entity's store with the node's projection and authorization
filter, then recurses into the node's children on the fetched documents.

References that point at nothing, or at documents the caller may not see,
resolve to None for single relations and are dropped from many relations.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from crudgraph.identifiers import ID_FIELD
from crudgraph.query.conditions import Conditions
from crudgraph.query.planner import FetchNode
from crudgraph.registry import EntityRegistry
from crudgraph.schema.descriptor import EmbeddedField, FieldSpec, RelationField
from crudgraph.storage.base import Document


def selection_projection(select: Optional[str]) -> Optional[Dict[str, int]]:
    if not select:
        return None
    projection = {field: 1 for field in select.split(" ") if field}
    projection[ID_FIELD] = 1
    return projection


class DocumentPopulator:
    """Attaches FetchNode trees to documents."""
    _logger = logging.getLogger("DocumentPopulator")

    def __init__(self, registry: EntityRegistry) -> None:
        self.registry = registry

    async def populate(self, document: Optional[Document], nodes: List[FetchNode], type_name: str) -> Optional[Document]:
        """Return a copy of `document` with every node in `nodes` resolved."""
        if document is None or not nodes:
            return document
        descriptor = self.registry.descriptor(type_name)
        if descriptor is None:
            self._logger.warning(f"Cannot populate unregistered entity type '{type_name}'")
            return document
        return await self._populate_fields(dict(document), nodes, descriptor.fields, type_name)

    async def populate_many(self, documents: List[Document], nodes: List[FetchNode], type_name: str) -> List[Document]:
        """Populate documents independently; the result keeps the input order."""
        if not nodes:
            return documents
        return list(await asyncio.gather(
            *(self.populate(document, nodes, type_name) for document in documents)
        ))

    async def _populate_fields(
        self,
        document: Document,
        nodes: List[FetchNode],
        fields: Dict[str, FieldSpec],
        type_name: str,
    ) -> Document:
        resolved = await asyncio.gather(
            *(self._resolve_node(document, node, fields, type_name) for node in nodes)
        )
        for node, (apply, value) in zip(nodes, resolved):
            if apply:
                document[node.path] = value
        return document

    async def _resolve_node(
        self,
        document: Document,
        node: FetchNode,
        fields: Dict[str, FieldSpec],
        type_name: str,
    ) -> Tuple[bool, Any]:
        spec = fields.get(node.path)

        if isinstance(spec, EmbeddedField):
            value = document.get(node.path)
            if isinstance(value, list):
                return True, [
                    await self._populate_fields(dict(item), node.populate, spec.fields, type_name)
                    if isinstance(item, dict) else item
                    for item in value
                ]
            if isinstance(value, dict):
                return True, await self._populate_fields(dict(value), node.populate, spec.fields, type_name)
            return False, None

        if not isinstance(spec, RelationField):
            self._logger.debug(f"'{node.path}' is not a relation of {type_name}, skipped")
            return False, None

        target = self.registry.resolve(spec.target)
        if target is None or node.target is None:
            self._logger.warning(f"Relation {type_name}.{node.path} target '{spec.target}' unresolved, left as is")
            return False, None

        if spec.is_virtual:
            return True, await self._resolve_virtual(document, node, spec, target)
        return await self._resolve_stored(document, node, spec, target)

    async def _fetch(self, node: FetchNode, target: Any, conditions: Conditions) -> List[Document]:
        cast_conditions = target.cast({"$and": [conditions, node.match]})
        found = await target.store.find(cast_conditions, projection=selection_projection(node.select))
        if node.populate:
            found = await self.populate_many(found, node.populate, node.target)
        return found

    async def _resolve_stored(
        self,
        document: Document,
        node: FetchNode,
        spec: RelationField,
        target: Any,
    ) -> Tuple[bool, Any]:
        if node.path not in document or document[node.path] is None:
            return False, None

        raw = document[node.path]
        references = raw if isinstance(raw, list) else [raw]
        identifiers = [
            ref.get(ID_FIELD) if isinstance(ref, dict) else ref
            for ref in references
        ]
        identifiers = [identifier for identifier in identifiers if identifier is not None]
        if not identifiers:
            return True, [] if isinstance(raw, list) else None

        found = await self._fetch(node, target, {ID_FIELD: {"$in": identifiers}})
        by_id = {str(item.get(ID_FIELD)): item for item in found}
        ordered = [by_id[str(identifier)] for identifier in identifiers if str(identifier) in by_id]
        self._logger.debug(f"Resolved {len(ordered)}/{len(identifiers)} reference(s) for '{node.path}'")

        if spec.many or isinstance(raw, list):
            return True, ordered
        return True, ordered[0] if ordered else None

    async def _resolve_virtual(
        self,
        document: Document,
        node: FetchNode,
        spec: RelationField,
        target: Any,
    ) -> Any:
        local_value = document.get(spec.local_field or ID_FIELD)
        if local_value is None:
            return [] if spec.many else None
        local_values = local_value if isinstance(local_value, list) else [local_value]

        found = await self._fetch(node, target, {spec.foreign_field: {"$in": local_values}})
        if spec.many:
            return found
        return found[0] if found else None
