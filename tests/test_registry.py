"""
Tests for the entity registry and declared field types.
"""
import logging

import pytest

from crudgraph import CrudService, EntityDescriptor, EntityRegistry, FieldKind, InMemoryDocumentStore, relation, scalar
from tests.conftest import ADDRESS


class TestRegistration:
    def test_services_register_themselves(self, registry, services):
        assert set(registry.type_names()) == {"Address", "Customer", "Item", "Order"}
        assert registry.resolve("Order") is services["Order"]
        assert registry.has("Customer")
        assert registry.resolve("Ghost") is None
        assert registry.descriptor("Ghost") is None

    def test_duplicate_registration_replaces_and_warns(self, registry, services, caplog):
        with caplog.at_level(logging.WARNING, logger="EntityRegistry"):
            replacement = CrudService(registry, ADDRESS, InMemoryDocumentStore("addresses_v2"))
        assert registry.resolve("Address") is replacement
        assert "already registered" in caplog.text

    def test_registering_same_handle_twice_is_silent(self, registry, services, caplog):
        with caplog.at_level(logging.WARNING, logger="EntityRegistry"):
            registry.register("Item", services["Item"])
        assert "already registered" not in caplog.text

    def test_registry_status(self, registry, services):
        status = registry.get_registry_status()
        assert status["relations"]["Order"] == {"customer": "Customer", "items": "Item"}
        assert status["relations"]["Customer"] == {"address": "Address", "orders": "Order"}

    def test_clear(self, registry, services):
        registry.clear()
        assert registry.type_names() == []


class TestFieldType:
    @pytest.mark.parametrize("path,expected", [
        ("total", FieldKind.NUMBER),
        ("placed", FieldKind.DATE),
        ("customer", FieldKind.IDENTIFIER),
        ("items", FieldKind.IDENTIFIER),
        ("_id", FieldKind.IDENTIFIER),
        ("customer._id", FieldKind.IDENTIFIER),
        ("customer.name", FieldKind.STRING),
        ("customer.vip", FieldKind.BOOLEAN),
        ("customer.address.city", FieldKind.STRING),
        ("shipping.notes", FieldKind.STRING),
        ("shipping.address", FieldKind.IDENTIFIER),
        ("shipping.address.street", FieldKind.STRING),
    ])
    def test_declared_types(self, registry, services, path, expected):
        assert registry.field_type("Order", path) == expected

    @pytest.mark.parametrize("path", ["unknown", "customer.unknown", "total.value", "shipping"])
    def test_undeclared_paths(self, registry, services, path):
        assert registry.field_type("Order", path) is None

    def test_relation_to_unregistered_type(self, registry):
        orphan = EntityDescriptor(
            type_name="Orphan",
            fields={"name": scalar(FieldKind.STRING), "ghost": relation("Ghost")},
        )
        CrudService(registry, orphan, InMemoryDocumentStore("orphans"))
        assert registry.field_type("Orphan", "ghost") == FieldKind.IDENTIFIER
        assert registry.field_type("Orphan", "ghost.name") is None

    def test_unknown_type(self):
        assert EntityRegistry().field_type("Nobody", "name") is None
