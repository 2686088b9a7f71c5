"""
Common fixtures for crudgraph tests.

Four entity types are wired into one registry:

    Order --customer--> Customer --address--> Address
      |                    ^
      +--items--> Item     +--orders (virtual, Order.customer)
      +--shipping (embedded) --address--> Address

Customers are scoped by tenant (`context.user`), addresses in Atlantis are
hidden from every caller that presents a context.
"""
import pytest

from crudgraph import (
    CrudService, EntityDescriptor, EntityRegistry, FieldKind, ForbiddenError, InMemoryDocumentStore,
    embedded, relation, scalar,
)

# ========================================================================
# Descriptors
# ========================================================================

ADDRESS = EntityDescriptor(
    type_name="Address",
    fields={
        "street": scalar(FieldKind.STRING),
        "city": scalar(FieldKind.STRING),
    },
)

CUSTOMER = EntityDescriptor(
    type_name="Customer",
    fields={
        "name": scalar(FieldKind.STRING),
        "age": scalar(FieldKind.NUMBER),
        "vip": scalar(FieldKind.BOOLEAN),
        "tenant": scalar(FieldKind.STRING),
        "address": relation("Address"),
        "orders": relation("Order", many=True, local_field="_id", foreign_field="customer"),
    },
)

ITEM = EntityDescriptor(
    type_name="Item",
    fields={
        "name": scalar(FieldKind.STRING),
        "price": scalar(FieldKind.NUMBER),
        "tags": scalar(FieldKind.STRING, many=True),
    },
)

ORDER = EntityDescriptor(
    type_name="Order",
    fields={
        "number": scalar(FieldKind.STRING),
        "total": scalar(FieldKind.NUMBER),
        "placed": scalar(FieldKind.DATE),
        "customer": relation("Customer"),
        "items": relation("Item", many=True),
        "shipping": embedded({
            "address": relation("Address"),
            "notes": scalar(FieldKind.STRING),
        }),
    },
)


# ========================================================================
# Authorizers
# ========================================================================

class TenantScoped:
    """Callers only see customers of their own tenant."""

    def authorize(self, context):
        if context is None or context.user is None:
            return []
        return [{"tenant": context.user}]


class NoAtlantis:
    """Async authorizer hiding one city from every caller with a context."""

    async def authorize(self, context):
        if context is None:
            return []
        return [{"city": {"$ne": "Atlantis"}}]


# ========================================================================
# Fixtures
# ========================================================================

@pytest.fixture
def registry():
    """Provide a fresh registry instance."""
    reg = EntityRegistry()
    yield reg
    reg.clear()


@pytest.fixture
def services(registry):
    """One in-memory CrudService per entity type, all registered."""
    return {
        "Address": CrudService(registry, ADDRESS, InMemoryDocumentStore("addresses"), authorizer=NoAtlantis()),
        "Customer": CrudService(registry, CUSTOMER, InMemoryDocumentStore("customers"), authorizer=TenantScoped()),
        "Item": CrudService(registry, ITEM, InMemoryDocumentStore("items")),
        "Order": CrudService(registry, ORDER, InMemoryDocumentStore("orders")),
    }


@pytest.fixture
def seed(services):
    """Coroutine function filling the stores; returns the created documents by name."""
    async def _seed():
        springfield = await services["Address"].create({"street": "1 Main St", "city": "Springfield"})
        atlantis = await services["Address"].create({"street": "Deep Trench", "city": "Atlantis"})

        alice = await services["Customer"].create({
            "name": "Alice", "age": "34", "vip": "true", "tenant": "acme", "address": springfield["_id"],
        })
        bob = await services["Customer"].create({
            "name": "Bob", "age": 51, "vip": False, "tenant": "globex", "address": atlantis["_id"],
        })

        pen = await services["Item"].create({"name": "Pen", "price": 2, "tags": ["office"]})
        book = await services["Item"].create({"name": "Book", "price": "15", "tags": ["paper", "gift"]})

        a1 = await services["Order"].create({
            "number": "A-1",
            "total": 17,
            "placed": "2024-01-05T10:00:00Z",
            "customer": alice["_id"],
            "items": [book["_id"], pen["_id"]],
            "shipping": {"address": springfield["_id"], "notes": "leave at door"},
        })
        a2 = await services["Order"].create({
            "number": "A-2",
            "total": "2",
            "placed": "2024-02-01T09:30:00Z",
            "customer": str(alice["_id"]),
            "items": [pen["_id"]],
        })
        b1 = await services["Order"].create({
            "number": "B-1",
            "total": 45,
            "placed": "2024-03-01T12:00:00Z",
            "customer": bob["_id"],
            "items": [book["_id"]],
        })
        return {
            "springfield": springfield, "atlantis": atlantis,
            "alice": alice, "bob": bob,
            "pen": pen, "book": book,
            "a1": a1, "a2": a2, "b1": b1,
        }

    return _seed


class RefusesCallers:
    """Rejects every request that presents a caller context."""

    def authorize(self, context):
        if context is not None:
            raise ForbiddenError("Customers are not readable by this caller")
        return []
