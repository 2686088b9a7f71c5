"""
Query planning: condition helpers, the condition caster and the relation
planner. The executor lives in `crudgraph.query.executor` and is imported
from there, since it depends on the storage layer.
"""
from .caster import ConditionCaster, cast_value
from .conditions import always_true, and_all, is_operator, merge_conditions, parse_sort, root_projection
from .planner import FetchNode, RelationPlanner, select_for_position

__all__ = [
    "ConditionCaster",
    "FetchNode",
    "RelationPlanner",
    "always_true",
    "and_all",
    "cast_value",
    "is_operator",
    "merge_conditions",
    "parse_sort",
    "root_projection",
    "select_for_position",
]
