"""
CRUD service.

The facade an HTTP controller talks to. One CrudService exists per entity
type; constructing it registers the type in the shared EntityRegistry so that
other entities can resolve relations to it by name.

Lifecycle hooks are override points for business rules:

```python
class OrderService(CrudService):
    async def on_create_request(self, document, context=None):
        document["owner"] = context.user.id
        return document

    async def on_delete_request(self, document, context=None):
        if document["status"] == "shipped":
            raise ForbiddenError("Shipped orders cannot be deleted")
```

Per-entity read scoping is supplied as an Authorizer at construction time:

```python
class OwnOrdersOnly:
    def authorize(self, context):
        return [{"owner": context.user.id}] if context else []

orders = OrderService(registry, ORDER, store, authorizer=OwnOrdersOnly())
```
"""
import asyncio
import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional

from crudgraph.config import CrudGraphSettings
from crudgraph.context import AllowAll, Authorizer, CallerContext, run_authorizer
from crudgraph.errors import NotFoundError
from crudgraph.identifiers import ALT_ID_FIELD, ID_FIELD, VERSION_FIELD, document_identifier, is_identifier, new_identifier
from crudgraph.query.caster import ConditionCaster
from crudgraph.query.conditions import Conditions
from crudgraph.query.executor import FindRequest, QueryExecutor
from crudgraph.registry import EntityRegistry
from crudgraph.schema.descriptor import EntityDescriptor, FieldKind
from crudgraph.storage.base import Document, DocumentStore


def merge_partial(existing: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge an incoming partial entity over an existing one.

    Absent or None-valued fields in `partial` never overwrite existing values.
    Nested dicts are merged field by field with the same rule; any other value,
    lists included, replaces the existing one.
    """
    merged = deepcopy(existing)
    for key, value in partial.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_partial(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


class CrudService:
    """Create/read/update/delete surface for one entity type."""
    _logger = logging.getLogger("CrudService")

    def __init__(
        self,
        registry: EntityRegistry,
        descriptor: EntityDescriptor,
        store: DocumentStore,
        authorizer: Optional[Authorizer] = None,
        settings: Optional[CrudGraphSettings] = None,
    ) -> None:
        self.registry = registry
        self.descriptor = descriptor
        self.store = store
        self.authorizer: Authorizer = authorizer or AllowAll()
        self.settings = settings or CrudGraphSettings()
        self.caster = ConditionCaster(registry, descriptor.type_name)
        registry.register(descriptor.type_name, self)
        self.executor = QueryExecutor(registry, self, self.settings)

    @property
    def type_name(self) -> str:
        return self.descriptor.type_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.type_name})"

    ##############################
    # Registry capabilities
    ##############################

    async def authorize(self, context: Optional[CallerContext]) -> List[Conditions]:
        return await run_authorizer(self.authorizer, context)

    def cast(self, conditions: Conditions) -> Conditions:
        return self.caster.cast(conditions)

    def field_type(self, path: str) -> Optional[FieldKind]:
        return self.registry.field_type(self.type_name, path)

    def relation_names(self) -> List[str]:
        """Every relation the entity declares; the default population set."""
        return self.descriptor.relation_names()

    ##############################
    # Writes
    ##############################

    async def create(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Document:
        """Save a new entity. Any client-supplied identifier is discarded."""
        model = dict(document)
        model.pop(ID_FIELD, None)
        model.pop(ALT_ID_FIELD, None)

        model = await self.on_create_request(model, context)
        model = await self.pre_save(model, context)
        model = self.caster.coerce_document(model)
        model[ID_FIELD] = new_identifier()

        created = await self.store.insert(model)
        self._logger.info(f"Created {self.type_name}({created[ID_FIELD]})")
        return created

    async def create_or_patch(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Document:
        """
        Patch the entity when its identifier exists, create it otherwise.

        Only the chosen branch runs its request hook: `on_update_request` when
        patching, `on_create_request` when creating.
        """
        identifier = document_identifier(document)
        if identifier and await self.get(identifier) is not None:
            return await self.patch(document, context)
        return await self.create(document, context)

    async def patch(self, partial: Dict[str, Any], context: Optional[CallerContext] = None) -> Document:
        """Merge `partial` over the stored entity; None and absent fields keep their value."""
        identifier = document_identifier(partial)
        existing = await self.get(identifier) if identifier else None
        if existing is None:
            self._logger.error(f"Patch failed: no {self.type_name} with id {identifier}")
            raise NotFoundError(self.type_name, identifier)

        model = dict(partial)
        model = await self.on_update_request(model, context)
        model.pop(VERSION_FIELD, None)
        model.pop(ALT_ID_FIELD, None)
        model.pop(ID_FIELD, None)

        merged = merge_partial(existing, model)
        merged.pop(VERSION_FIELD, None)
        merged = await self.pre_save(merged, context)
        merged = self.caster.coerce_document(merged)

        saved = await self.store.update_by_id(existing[ID_FIELD], merged)
        if saved is None:
            raise NotFoundError(self.type_name, identifier)
        self._logger.info(f"Patched {self.type_name}({saved[ID_FIELD]})")
        return saved

    async def put(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Document:
        """Replace the stored entity wholesale."""
        identifier = document_identifier(document)
        if not is_identifier(identifier):
            self._logger.error(f"Put failed: invalid {self.type_name} id {identifier}")
            raise NotFoundError(self.type_name, identifier)

        model = dict(document)
        model = await self.on_update_request(model, context)
        model.pop(VERSION_FIELD, None)
        model.pop(ALT_ID_FIELD, None)
        model[ID_FIELD] = identifier
        model = await self.pre_save(model, context)
        model = self.caster.coerce_document(model)

        saved = await self.store.update_by_id(model[ID_FIELD], model)
        if saved is None:
            self._logger.error(f"Put failed: no {self.type_name} with id {identifier}")
            raise NotFoundError(self.type_name, identifier)
        self._logger.info(f"Replaced {self.type_name}({saved[ID_FIELD]})")
        return saved

    async def delete(self, identifier: Any, context: Optional[CallerContext] = None) -> Optional[Document]:
        """Remove an entity. Invalid or unknown identifiers yield None."""
        if not is_identifier(identifier):
            return None
        document = await self.get(identifier)
        if document is None:
            return None

        await self.on_delete_request(document, context)
        removed = await self.store.remove_by_id(document[ID_FIELD])
        if removed is not None:
            self._logger.info(f"Deleted {self.type_name}({removed[ID_FIELD]})")
        return removed

    async def find_and_delete(self, conditions: Conditions, context: Optional[CallerContext] = None) -> List[Optional[Document]]:
        found = await self.find(conditions)
        return list(await asyncio.gather(
            *(self.delete(document[ID_FIELD], context) for document in found)
        ))

    ##############################
    # Reads
    ##############################

    async def get(self, identifier: Any, request: Optional[FindRequest] = None) -> Optional[Document]:
        """The entity with `identifier`, or None when the identifier is invalid or unknown."""
        if not is_identifier(identifier):
            return None
        return await self.find_one({ID_FIELD: identifier}, request)

    async def get_many(self, identifiers: List[Any], request: Optional[FindRequest] = None) -> List[Document]:
        valid = [identifier for identifier in identifiers if is_identifier(identifier)]
        return await self.find({ID_FIELD: {"$in": valid}}, request)

    async def find(self, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> List[Document]:
        return await self.executor.find(conditions, request)

    async def find_one(self, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> Optional[Document]:
        return await self.executor.find_one(conditions, request)

    async def count_documents(
        self,
        conditions: Optional[Conditions] = None,
        filters: Optional[Conditions] = None,
        context: Optional[CallerContext] = None,
    ) -> int:
        return await self.executor.count_documents(conditions, filters, context)

    async def distinct(self, field: str, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> List[Any]:
        return await self.executor.distinct(field, conditions, request)

    async def populate(
        self,
        document: Optional[Document],
        paths: Optional[List[str]] = None,
        picks: Optional[List[str]] = None,
        context: Optional[CallerContext] = None,
    ) -> Optional[Document]:
        """Attach relations to an already fetched document; no paths means every relation."""
        if document is None:
            return None
        nodes = await self.executor.planner.plan(paths or [], picks or [], context)
        return await self.executor.populator.populate(document, nodes, self.type_name)

    async def populate_list(
        self,
        documents: List[Document],
        paths: Optional[List[str]] = None,
        picks: Optional[List[str]] = None,
        context: Optional[CallerContext] = None,
    ) -> List[Optional[Document]]:
        return list(await asyncio.gather(
            *(self.populate(document, paths, picks, context) for document in documents)
        ))

    ##############################
    # Lifecycle hooks
    ##############################

    async def pre_save(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Dict[str, Any]:
        """Called right before any create, patch or put is written. Override to use it."""
        return document

    async def on_create_request(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Dict[str, Any]:
        """
        Called when a create request has been initiated.

        The returned document is the one created, which allows altering it
        based on the rights of the caller, or raising ForbiddenError if the
        request may not be completed.
        """
        return document

    async def on_update_request(self, document: Dict[str, Any], context: Optional[CallerContext] = None) -> Dict[str, Any]:
        """
        Called when a patch or put request has been initiated, with the
        incoming version of the entity. The returned document is the one
        written.
        """
        return document

    async def on_delete_request(self, document: Document, context: Optional[CallerContext] = None) -> None:
        """Called with the stored entity before it is deleted. Raise to refuse."""
