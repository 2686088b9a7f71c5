"""
Helpers for Mongo-style condition trees.

A condition tree is a dict whose keys are either field paths ("customer.name")
or operators prefixed with `$` ("$and", "$in", ...).
"""
from copy import deepcopy
from typing import Any, Dict, Iterable, List, Optional

Conditions = Dict[str, Any]

OPERATOR_PREFIX = "$"
LOGICAL_LIST_OPERATORS = ("$and", "$or", "$nor")


def is_operator(key: str) -> bool:
    return key.startswith(OPERATOR_PREFIX)


def always_true() -> Conditions:
    """The empty condition; matches every document."""
    return {}


def and_all(conditions: Optional[Iterable[Conditions]]) -> Conditions:
    """
    Combine a list of conditions with AND.

    The always-true placeholder leads the list so that an empty input still
    yields a valid, non-filtering `$and`.
    """
    return {"$and": [always_true(), *(conditions or [])]}


def merge_conditions(*trees: Optional[Conditions]) -> Conditions:
    """
    Merge condition trees into one that requires all of them.

    `$and` lists are concatenated. When two trees both carry `$or` or `$nor`
    the later one is moved into `$and` so neither disjunction is lost. Nested
    field dicts merge recursively; for everything else the later value wins.
    """
    merged: Conditions = {}
    for tree in trees:
        if not tree:
            continue
        for key, value in tree.items():
            value = deepcopy(value)
            if key not in merged:
                merged[key] = value
            elif key == "$and":
                merged[key] = [*merged[key], *value]
            elif key in ("$or", "$nor"):
                merged.setdefault("$and", []).append({key: value})
            elif isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = merge_conditions(merged[key], value)
            else:
                merged[key] = value
    return merged


def parse_sort(fields: Optional[List[str]]) -> Dict[str, int]:
    """["-created", "name"] -> {"created": -1, "name": 1}"""
    sort: Dict[str, int] = {}
    for field in fields or []:
        descending = field.startswith("-")
        clean_field = field[1:] if descending else field
        if clean_field:
            sort[clean_field] = -1 if descending else 1
    return sort


def root_projection(selectors: Optional[List[str]]) -> Dict[str, int]:
    """Selectors without a dot apply to the root entity."""
    return {field: 1 for field in selectors or [] if field and "." not in field}
