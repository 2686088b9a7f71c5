"""
Entity schema descriptors.

This module provides the typed field declarations used by the registry, the
condition caster and the relation planner.
"""
from .descriptor import (
    EmbeddedField,
    EntityDescriptor,
    FieldKind,
    FieldSpec,
    RelationField,
    ScalarField,
    embedded,
    relation,
    scalar,
)

__all__ = [
    "EmbeddedField",
    "EntityDescriptor",
    "FieldKind",
    "FieldSpec",
    "RelationField",
    "ScalarField",
    "embedded",
    "relation",
    "scalar",
]
