"""
Relation-path planner.

Turns flat dot-paths ("customer.address", "items") and dot-path field
selectors ("customer.name") into a deduplicated tree of FetchNodes. Each node
carries:

- the relation name it resolves (`path`)
- the fields to project for that relation (`select`)
- the authorization filter of the entity the relation points to (`match`)
- the nested nodes to resolve on the fetched documents (`populate`)

Paths sharing a prefix are merged into the same branch: planning
["customer", "customer.address", "customer.orders"] yields a single
"customer" node with two children.

The authorization filter of a node is obtained by walking the relation chain
from the root entity, switching to the target entity every time a relation
boundary is crossed, and asking that entity's authorizer for its conditions.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from crudgraph.context import CallerContext
from crudgraph.query.conditions import Conditions, and_all
from crudgraph.registry import EntityHandle, EntityRegistry
from crudgraph.schema.descriptor import EmbeddedField, FieldSpec, RelationField


class FetchNode(BaseModel):
    """One relation to resolve, with its own projection and authorization filter."""
    path: str
    select: Optional[str] = None
    match: Conditions = Field(default_factory=lambda: and_all([]))
    target: Optional[str] = Field(default=None, description="Entity type the relation resolves to")
    populate: List["FetchNode"] = Field(default_factory=list)

    def child(self, path: str) -> Optional["FetchNode"]:
        return next((node for node in self.populate if node.path == path), None)

    def selected_fields(self) -> List[str]:
        return self.select.split(" ") if self.select else []

    def walk(self, prefix: str = "") -> List[str]:
        """Every accumulated path in this subtree, depth first."""
        here = f"{prefix}.{self.path}" if prefix else self.path
        paths = [here]
        for node in self.populate:
            paths.extend(node.walk(here))
        return paths


FetchNode.model_rebuild()


def select_for_position(selectors: List[str], position: List[str]) -> Optional[str]:
    """
    Field selection for the node at `position`.

    A selector "a.b.field" belongs to the node at "a.b" and to no other node;
    selectors without a dot belong to the root entity.
    """
    journey = ".".join(position)
    selection: List[str] = []
    for selector in selectors:
        prefix, _, field = selector.rpartition(".")
        if prefix and field and prefix == journey and field not in selection:
            selection.append(field)
    return " ".join(selection) or None


class RelationPlanner:
    """Builds FetchNode trees for the entity type registered as `root_type`."""
    _logger = logging.getLogger("RelationPlanner")

    def __init__(self, registry: EntityRegistry, root_type: str) -> None:
        self.registry = registry
        self.root_type = root_type

    async def plan(
        self,
        paths: Optional[List[str]],
        field_selectors: Optional[List[str]] = None,
        context: Optional[CallerContext] = None,
    ) -> List[FetchNode]:
        """
        Build the fetch tree for `paths`.

        Without explicit paths every relation declared by the root entity is
        planned.
        """
        selectors = list(field_selectors or [])
        if not paths:
            descriptor = self.registry.descriptor(self.root_type)
            paths = descriptor.relation_names() if descriptor is not None else []
            self._logger.debug(f"No paths given for {self.root_type}, defaulting to {paths}")

        layer: List[FetchNode] = []
        for path in paths:
            await self._insert(layer, path.split("."), selectors, context, [])

        for node in layer:
            self._widen_selection(node, [])
        self._logger.info(
            f"Planned {len(layer)} root relation(s) for {self.root_type}: "
            f"{[p for node in layer for p in node.walk()]}"
        )
        return layer

    async def _insert(
        self,
        layer: List[FetchNode],
        segments: List[str],
        selectors: List[str],
        context: Optional[CallerContext],
        journey: List[str],
    ) -> None:
        if not segments or not segments[0]:
            return

        current, rest = segments[0], segments[1:]
        position = [*journey, current]

        node = next((existing for existing in layer if existing.path == current), None)
        if node is None:
            owner, target = self._resolve_owner(position)
            node = FetchNode(
                path=current,
                select=select_for_position(selectors, position),
                match=and_all(await self._authorization(owner, position, context)),
                target=target,
            )
            layer.append(node)
            self._logger.debug(f"Created fetch node {'.'.join(position)} -> {target}")
        else:
            self._logger.debug(f"Merging into existing fetch node {'.'.join(position)}")

        await self._insert(node.populate, rest, selectors, context, position)

    async def _authorization(
        self,
        owner: Optional[EntityHandle],
        position: List[str],
        context: Optional[CallerContext],
    ) -> List[Conditions]:
        # no context means no caller to authorize
        if context is None or owner is None:
            return []
        conditions = await owner.authorize(context)
        self._logger.debug(f"Authorization for {'.'.join(position)}: {len(conditions)} condition(s)")
        return conditions

    def _resolve_owner(self, position: List[str]) -> Tuple[Optional[EntityHandle], Optional[str]]:
        """
        Find the entity that owns the relation at `position`.

        Starts at the root entity and switches entity each time a segment
        names a relation; embedded sub-documents are descended in place.
        """
        handle = self.registry.resolve(self.root_type)
        type_name: Optional[str] = self.root_type
        if handle is None:
            self._logger.warning(f"Root entity type '{self.root_type}' is not registered")
            return None, None
        fields: Dict[str, FieldSpec] = handle.descriptor.fields

        for segment in position:
            spec = fields.get(segment)
            if isinstance(spec, RelationField):
                target = self.registry.resolve(spec.target)
                if target is None:
                    self._logger.warning(
                        f"Relation '{'.'.join(position)}' targets unregistered entity type "
                        f"'{spec.target}', branch will not be populated"
                    )
                    return None, None
                handle, type_name = target, spec.target
                fields = target.descriptor.fields
            elif isinstance(spec, EmbeddedField):
                fields = spec.fields

        return handle, type_name

    def _widen_selection(self, node: FetchNode, journey: List[str]) -> None:
        """Keep the fields children are resolved through when a node projects."""
        position = [*journey, node.path]
        if node.select and node.populate and node.target:
            descriptor = self.registry.descriptor(node.target)
            selected = node.selected_fields()
            for child in node.populate:
                spec = descriptor.relation(child.path) if descriptor is not None else None
                needed = spec.local_field if spec is not None and spec.is_virtual else child.path
                if needed and needed not in selected:
                    selected.append(needed)
            node.select = " ".join(selected)
        for child in node.populate:
            self._widen_selection(child, position)


def required_root_fields(nodes: List[FetchNode], registry: EntityRegistry, root_type: str) -> List[str]:
    """Root fields that must survive projection for `nodes` to be resolvable."""
    descriptor = registry.descriptor(root_type)
    fields: List[str] = []
    for node in nodes:
        spec: Any = descriptor.relation(node.path) if descriptor is not None else None
        if spec is not None and spec.is_virtual:
            if spec.local_field:
                fields.append(spec.local_field)
        else:
            fields.append(node.path)
    return fields
