"""
In-process evaluation of Mongo-style queries over plain documents.

Supported:
- logical operators: $and, $or, $nor
- comparison operators: $eq, $ne, $gt, $gte, $lt, $lte, $in, $nin
- element/array operators: $exists, $size, $all, $elemMatch
- $regex (with $options), $not
- dot-paths through nested documents and arrays

Array fields follow Mongo semantics: a condition on an array matches when the
whole array or any of its elements satisfies it.
"""
import re
from copy import deepcopy
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from crudgraph.identifiers import ID_FIELD

Document = Dict[str, Any]
Conditions = Dict[str, Any]

_MISSING = object()


class QueryError(ValueError):
    """Unsupported or malformed operator in a condition tree."""


##############################
# 1) Path resolution
##############################

def resolve_path(document: Any, path: str) -> List[Any]:
    """
    All values reachable at `path`. Arrays met along the way fan out.
    Returns [_MISSING] when nothing is found.
    """
    values: List[Any] = [document]
    for segment in path.split("."):
        next_values: List[Any] = []
        for value in values:
            if isinstance(value, dict):
                next_values.append(value.get(segment, _MISSING))
            elif isinstance(value, list):
                if segment.isdigit() and int(segment) < len(value):
                    next_values.append(value[int(segment)])
                else:
                    for item in value:
                        if isinstance(item, dict):
                            next_values.append(item.get(segment, _MISSING))
            else:
                next_values.append(_MISSING)
        values = next_values
    return values or [_MISSING]


def _candidates(values: List[Any]) -> List[Any]:
    """Expand array values so that operators see both the array and its items."""
    expanded: List[Any] = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


##############################
# 2) Comparison helpers
##############################

def _type_rank(value: Any) -> int:
    # BSON-like ordering: null, numbers, strings, objects, arrays, ids, booleans, dates
    if value is None or value is _MISSING:
        return 0
    if isinstance(value, bool):
        return 7
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, dict):
        return 3
    if isinstance(value, list):
        return 4
    if isinstance(value, UUID):
        return 6
    if isinstance(value, datetime):
        return 8
    return 9


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.replace(tzinfo=None) - value.utcoffset()  # type: ignore[operator]
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (dict, list)):
        return repr(value)
    return value


def compare_values(left: Any, right: Any) -> int:
    left_rank, right_rank = _type_rank(left), _type_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1
    if left_rank == 0:
        return 0
    a, b = _normalize(left), _normalize(right)
    try:
        return (a > b) - (a < b)
    except TypeError:
        return 0


def _equals(left: Any, right: Any) -> bool:
    if left is _MISSING:
        return right is None
    if isinstance(left, datetime) and isinstance(right, datetime):
        return _normalize(left) == _normalize(right)
    return left == right


##############################
# 3) Matching
##############################

def matches(document: Document, conditions: Optional[Conditions]) -> bool:
    """Whether `document` satisfies every clause of `conditions`."""
    for key, value in (conditions or {}).items():
        if key == "$and":
            if not all(matches(document, clause) for clause in value):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in value):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in value):
                return False
        elif key.startswith("$"):
            raise QueryError(f"Unsupported top-level operator: {key}")
        elif not _match_field(resolve_path(document, key), value):
            return False
    return True


def _is_operator_map(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def _match_field(values: List[Any], condition: Any) -> bool:
    if _is_operator_map(condition):
        options = condition.get("$options", "")
        return all(
            _apply_operator(values, operator, operand, options)
            for operator, operand in condition.items()
            if operator != "$options"
        )
    return any(_equals(candidate, condition) for candidate in _candidates(values))


def _apply_operator(values: List[Any], operator: str, operand: Any, options: str) -> bool:
    candidates = _candidates(values)
    present = [c for c in candidates if c is not _MISSING]

    if operator == "$eq":
        return any(_equals(c, operand) for c in candidates)
    if operator == "$ne":
        return not any(_equals(c, operand) for c in candidates)
    if operator == "$in":
        return any(_equals(c, item) for c in candidates for item in operand)
    if operator == "$nin":
        return not any(_equals(c, item) for c in candidates for item in operand)
    if operator in ("$gt", "$gte", "$lt", "$lte"):
        return any(_compare_operator(operator, c, operand) for c in present)
    if operator == "$exists":
        return bool(present) == bool(operand)
    if operator == "$size":
        return any(isinstance(v, list) and len(v) == operand for v in values)
    if operator == "$all":
        return any(
            isinstance(v, list) and all(any(_equals(i, o) for i in v) for o in operand)
            for v in values
        )
    if operator == "$elemMatch":
        return any(
            isinstance(v, list) and any(
                matches(item, operand) if isinstance(item, dict) and not _is_operator_map(operand)
                else _match_field([item], operand)
                for item in v
            )
            for v in values
        )
    if operator == "$regex":
        flags = (re.IGNORECASE if "i" in options else 0) | (re.MULTILINE if "m" in options else 0)
        pattern = re.compile(operand, flags) if isinstance(operand, str) else operand
        return any(isinstance(c, str) and pattern.search(c) is not None for c in present)
    if operator == "$not":
        return not _match_field(values, operand)
    raise QueryError(f"Unsupported operator: {operator}")


def _compare_operator(operator: str, value: Any, operand: Any) -> bool:
    # Mongo only compares values of the same type bracket
    if _type_rank(value) != _type_rank(operand):
        return False
    result = compare_values(value, operand)
    return {
        "$gt": result > 0,
        "$gte": result >= 0,
        "$lt": result < 0,
        "$lte": result <= 0,
    }[operator]


##############################
# 4) Sort, projection, query
##############################

def _sort_value(document: Document, field: str) -> Any:
    values = [v for v in resolve_path(document, field) if v is not _MISSING]
    return values[0] if values else None


def sort_documents(documents: List[Document], sort: Optional[Dict[str, int]]) -> List[Document]:
    if not sort:
        return list(documents)
    keys: List[Tuple[str, int]] = list(sort.items())

    def compare(a: Document, b: Document) -> int:
        for field, direction in keys:
            result = compare_values(_sort_value(a, field), _sort_value(b, field))
            if result:
                return result if direction >= 0 else -result
        return 0

    return sorted(documents, key=cmp_to_key(compare))


def project_document(document: Document, projection: Optional[Dict[str, int]]) -> Document:
    """Apply an inclusion ({field: 1}) or exclusion ({field: 0}) projection."""
    if not projection:
        return deepcopy(document)

    included = [field for field, flag in projection.items() if flag]
    if not included:
        result = deepcopy(document)
        for field in projection:
            _remove_path(result, field)
        return result

    result: Document = {}
    if ID_FIELD in document and projection.get(ID_FIELD, 1):
        result[ID_FIELD] = deepcopy(document[ID_FIELD])
    for field in included:
        _copy_path(document, result, field.split("."))
    return result


def _copy_path(source: Any, target: Document, segments: List[str]) -> None:
    if not isinstance(source, dict) or segments[0] not in source:
        return
    head, rest = segments[0], segments[1:]
    value = source[head]
    if not rest:
        target[head] = deepcopy(value)
    elif isinstance(value, dict):
        _copy_path(value, target.setdefault(head, {}), rest)


def _remove_path(document: Any, field: str) -> None:
    *parents, last = field.split(".")
    for segment in parents:
        if not isinstance(document, dict):
            return
        document = document.get(segment)
    if isinstance(document, dict):
        document.pop(last, None)


def query_documents(
    documents: Iterable[Document],
    conditions: Optional[Conditions] = None,
    skip: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[Dict[str, int]] = None,
    projection: Optional[Dict[str, int]] = None,
) -> List[Document]:
    """Filter, sort, paginate and project `documents` the way a find() would."""
    found = [document for document in documents if matches(document, conditions)]
    found = sort_documents(found, sort)
    start = skip or 0
    end = start + limit if limit else None
    return [project_document(document, projection) for document in found[start:end]]


def distinct_values(documents: Iterable[Document], field: str) -> List[Any]:
    seen: List[Any] = []
    for document in documents:
        for value in _candidates(resolve_path(document, field)):
            if value is _MISSING or isinstance(value, list):
                continue
            if not any(_equals(value, existing) for existing in seen):
                seen.append(value)
    return seen
