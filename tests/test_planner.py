"""
Tests for relation-path planning: merging, field selection and the
authorization filter attached to every node.
"""
import pytest

from crudgraph import CallerContext, CrudService, EntityDescriptor, FieldKind, InMemoryDocumentStore, relation, scalar
from crudgraph.query.planner import RelationPlanner, select_for_position


def test_select_for_position():
    selectors = ["number", "customer.name", "customer.address.city", "customer.name"]
    assert select_for_position(selectors, ["customer"]) == "name"
    assert select_for_position(selectors, ["customer", "address"]) == "city"
    assert select_for_position(selectors, ["items"]) is None


class TestPlanShape:
    @pytest.mark.asyncio
    async def test_shared_prefixes_merge(self, services):
        planner = services["Order"].executor.planner
        nodes = await planner.plan(["customer", "customer.address", "customer.orders", "items"])

        assert [node.path for node in nodes] == ["customer", "items"]
        customer = nodes[0]
        assert [child.path for child in customer.populate] == ["address", "orders"]
        assert customer.target == "Customer"
        assert customer.child("address").target == "Address"
        assert customer.child("orders").target == "Order"

    @pytest.mark.asyncio
    async def test_repeated_paths_create_no_duplicates(self, services):
        planner = services["Order"].executor.planner
        nodes = await planner.plan(["customer.address", "customer.address", "customer"])
        assert len(nodes) == 1
        assert len(nodes[0].populate) == 1
        assert nodes[0].walk() == ["customer", "customer.address"]

    @pytest.mark.asyncio
    async def test_no_paths_means_every_relation(self, services):
        nodes = await services["Order"].executor.planner.plan([])
        assert [node.path for node in nodes] == ["customer", "items"]
        assert all(node.populate == [] for node in nodes)

    @pytest.mark.asyncio
    async def test_embedded_segments_are_descended(self, services):
        nodes = await services["Order"].executor.planner.plan(["shipping.address"])
        shipping = nodes[0]
        assert shipping.path == "shipping"
        assert shipping.child("address").target == "Address"

    @pytest.mark.asyncio
    async def test_unregistered_target(self, registry):
        orphan = EntityDescriptor(
            type_name="Orphan",
            fields={"name": scalar(FieldKind.STRING), "ghost": relation("Ghost")},
        )
        CrudService(registry, orphan, InMemoryDocumentStore("orphans"))
        nodes = await RelationPlanner(registry, "Orphan").plan(["ghost.thing"], context=CallerContext(user="acme"))
        assert nodes[0].target is None
        assert nodes[0].match == {"$and": [{}]}


class TestPlanSelection:
    @pytest.mark.asyncio
    async def test_selectors_land_on_their_node(self, services):
        nodes = await services["Order"].executor.planner.plan(
            ["customer.address", "items"],
            ["number", "customer.name", "customer.address.city", "items.price"],
        )
        customer, items = nodes
        assert customer.select == "name address"
        assert customer.child("address").select == "city"
        assert items.select == "price"

    @pytest.mark.asyncio
    async def test_virtual_children_keep_local_field(self, services):
        nodes = await services["Customer"].executor.planner.plan(["address", "orders.items"], ["orders.number"])
        orders = nodes[1]
        assert orders.select == "number items"

    @pytest.mark.asyncio
    async def test_unselected_nodes_fetch_everything(self, services):
        nodes = await services["Order"].executor.planner.plan(["customer.address"], ["number"])
        assert nodes[0].select is None
        assert nodes[0].child("address").select is None


class TestPlanAuthorization:
    @pytest.mark.asyncio
    async def test_without_context_nodes_match_everything(self, services):
        nodes = await services["Order"].executor.planner.plan(["customer.address"])
        assert nodes[0].match == {"$and": [{}]}
        assert nodes[0].child("address").match == {"$and": [{}]}

    @pytest.mark.asyncio
    async def test_each_node_uses_its_target_authorizer(self, services):
        context = CallerContext(user="acme")
        nodes = await services["Order"].executor.planner.plan(["customer.address", "items"], context=context)
        customer, items = nodes
        assert customer.match == {"$and": [{}, {"tenant": "acme"}]}
        assert customer.child("address").match == {"$and": [{}, {"city": {"$ne": "Atlantis"}}]}
        assert items.match == {"$and": [{}]}
