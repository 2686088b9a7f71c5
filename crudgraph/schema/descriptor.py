"""
Schema descriptors for entity types.

Each entity type declares its fields explicitly. A field is one of three
variants, discriminated by `kind`:

- ScalarField:   a primitive value of a given FieldKind (or a list of them)
- RelationField: a reference to another entity type, either stored on the
                 document as identifier(s) or virtual (matched through a
                 foreign field on the target)
- EmbeddedField: a nested sub-document with its own field specs

Example:
```python
order = EntityDescriptor(
    type_name="Order",
    fields={
        "number": scalar(FieldKind.STRING),
        "total": scalar(FieldKind.NUMBER),
        "customer": relation("Customer"),
        "items": relation("Item", many=True),
    },
)
order.relations  # {"customer": "Customer", "items": "Item"}
```
"""
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FieldKind(str, Enum):
    """Declared primitive types a condition value can be coerced into."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    IDENTIFIER = "identifier"
    MIXED = "mixed"


class ScalarField(BaseModel):
    kind: Literal["scalar"] = "scalar"
    type: FieldKind
    many: bool = False

    model_config = ConfigDict(frozen=True)


class RelationField(BaseModel):
    """
    Reference to another entity type.

    Stored relations keep the target identifier (or a list of identifiers when
    `many`) on the document under the relation name. Virtual relations keep
    nothing: they match `target.foreign_field` against `local_field` of the
    owning document.
    """
    kind: Literal["relation"] = "relation"
    target: str
    many: bool = False
    local_field: Optional[str] = None
    foreign_field: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_virtual(self) -> bool:
        return self.foreign_field is not None


class EmbeddedField(BaseModel):
    kind: Literal["embedded"] = "embedded"
    fields: Dict[str, "FieldSpec"] = Field(default_factory=dict)
    many: bool = False

    model_config = ConfigDict(frozen=True)


FieldSpec = Annotated[
    Union[ScalarField, RelationField, EmbeddedField],
    Field(discriminator="kind"),
]

EmbeddedField.model_rebuild()


class EntityDescriptor(BaseModel):
    """Field map of one entity type. Immutable once built."""
    type_name: str
    fields: Dict[str, FieldSpec] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def relations(self) -> Dict[str, str]:
        """Relation name -> target type name, in declaration order."""
        return {
            name: spec.target
            for name, spec in self.fields.items()
            if isinstance(spec, RelationField)
        }

    def relation(self, name: str) -> Optional[RelationField]:
        spec = self.fields.get(name)
        return spec if isinstance(spec, RelationField) else None

    def relation_names(self) -> List[str]:
        return list(self.relations.keys())


def scalar(kind: FieldKind, many: bool = False) -> ScalarField:
    return ScalarField(type=kind, many=many)


def relation(
    target: str,
    many: bool = False,
    local_field: Optional[str] = None,
    foreign_field: Optional[str] = None,
) -> RelationField:
    return RelationField(target=target, many=many, local_field=local_field, foreign_field=foreign_field)


def embedded(fields: Dict[str, FieldSpec], many: bool = False) -> EmbeddedField:
    return EmbeddedField(fields=fields, many=many)
