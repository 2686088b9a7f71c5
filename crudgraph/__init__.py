"""
crudgraph: a schema-driven data-access layer.

Entity services expose create/read/update/delete over a document store, cast
untyped query conditions into the declared field types, and populate
relation graphs with per-entity authorization applied at every hop.
"""
from crudgraph.config import CrudGraphSettings, configure_logging
from crudgraph.context import AllowAll, Authorizer, CallerContext, HeaderSink, ResponseHeaders
from crudgraph.errors import CrudGraphError, DuplicateKeyError, ForbiddenError, NotFoundError, StoreError
from crudgraph.identifiers import ID_FIELD, is_identifier, new_identifier
from crudgraph.query.executor import FindRequest, QueryExecutor, QueryOptions
from crudgraph.registry import EntityHandle, EntityRegistry
from crudgraph.schema import EntityDescriptor, FieldKind, embedded, relation, scalar
from crudgraph.service import CrudService, merge_partial
from crudgraph.storage import InMemoryDocumentStore, SqlDocumentStore, create_store

__all__ = [
    "AllowAll",
    "Authorizer",
    "CallerContext",
    "CrudGraphError",
    "CrudGraphSettings",
    "CrudService",
    "DuplicateKeyError",
    "EntityDescriptor",
    "EntityHandle",
    "EntityRegistry",
    "FieldKind",
    "FindRequest",
    "ForbiddenError",
    "HeaderSink",
    "ID_FIELD",
    "InMemoryDocumentStore",
    "NotFoundError",
    "QueryExecutor",
    "QueryOptions",
    "ResponseHeaders",
    "SqlDocumentStore",
    "StoreError",
    "configure_logging",
    "create_store",
    "embedded",
    "is_identifier",
    "merge_partial",
    "new_identifier",
    "relation",
    "scalar",
]
