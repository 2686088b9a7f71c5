"""
Tests for the in-process query evaluator shared by both stores.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from crudgraph.storage.matching import QueryError, distinct_values, matches, project_document, query_documents

FIRST = uuid4()

DOCUMENTS = [
    {"_id": FIRST, "name": "Alice", "age": 34, "tags": ["a", "b"], "address": {"city": "Springfield"},
     "lines": [{"sku": "pen", "qty": 2}, {"sku": "book", "qty": 1}],
     "placed": datetime(2024, 1, 5, tzinfo=timezone.utc)},
    {"_id": uuid4(), "name": "Bob", "age": 51, "tags": ["b"], "address": {"city": "Shelbyville"},
     "lines": [{"sku": "book", "qty": 3}], "placed": datetime(2024, 3, 1, tzinfo=timezone.utc)},
    {"_id": uuid4(), "name": "carol", "age": None, "tags": []},
]


def names(conditions, **kwargs):
    return [document["name"] for document in query_documents(DOCUMENTS, conditions, **kwargs)]


class TestMatches:
    @pytest.mark.parametrize("conditions,expected", [
        ({}, ["Alice", "Bob", "carol"]),
        ({"$and": [{}]}, ["Alice", "Bob", "carol"]),
        ({"name": "Alice"}, ["Alice"]),
        ({"_id": FIRST}, ["Alice"]),
        ({"age": {"$gt": 40}}, ["Bob"]),
        ({"age": {"$gte": 34, "$lt": 51}}, ["Alice"]),
        ({"age": None}, ["carol"]),
        ({"age": {"$ne": 34}}, ["Bob", "carol"]),
        ({"name": {"$in": ["Bob", "carol"]}}, ["Bob", "carol"]),
        ({"name": {"$nin": ["Bob"]}}, ["Alice", "carol"]),
        ({"address.city": "Shelbyville"}, ["Bob"]),
        ({"address": {"$exists": False}}, ["carol"]),
        ({"tags": "a"}, ["Alice"]),
        ({"tags": {"$size": 0}}, ["carol"]),
        ({"tags": {"$all": ["a", "b"]}}, ["Alice"]),
        ({"lines.sku": "book"}, ["Alice", "Bob"]),
        ({"lines": {"$elemMatch": {"sku": "book", "qty": {"$gt": 2}}}}, ["Bob"]),
        ({"name": {"$regex": "^c"}}, ["carol"]),
        ({"name": {"$regex": "^A|^C", "$options": "i"}}, ["Alice", "carol"]),
        ({"age": {"$not": {"$gt": 40}}}, ["Alice", "carol"]),
        ({"$or": [{"name": "Alice"}, {"age": 51}]}, ["Alice", "Bob"]),
        ({"$nor": [{"name": "Alice"}, {"age": 51}]}, ["carol"]),
        ({"placed": {"$gte": datetime(2024, 2, 1, tzinfo=timezone.utc)}}, ["Bob"]),
    ])
    def test_conditions(self, conditions, expected):
        assert names(conditions) == expected

    def test_timezones_compare_by_instant(self):
        shifted = datetime(2024, 1, 5, 2, tzinfo=timezone(timedelta(hours=2)))
        assert matches(DOCUMENTS[0], {"placed": shifted})

    def test_mismatched_types_never_compare(self):
        assert names({"age": {"$gt": "1"}}) == []

    def test_unknown_operator(self):
        with pytest.raises(QueryError):
            matches(DOCUMENTS[0], {"age": {"$near": 1}})


class TestQueryDocuments:
    def test_sort_skip_limit(self):
        assert names({}, sort={"age": -1}) == ["Bob", "Alice", "carol"]
        assert names({}, sort={"name": 1}, skip=1, limit=1) == ["Bob"]

    def test_projection_keeps_id(self):
        projected = project_document(DOCUMENTS[0], {"name": 1, "address.city": 1})
        assert projected == {"_id": FIRST, "name": "Alice", "address": {"city": "Springfield"}}

    def test_exclusion_projection(self):
        projected = project_document(DOCUMENTS[1], {"lines": 0, "placed": 0})
        assert set(projected) == {"_id", "name", "age", "tags", "address"}

    def test_results_are_copies(self):
        found = query_documents(DOCUMENTS, {"name": "Alice"})
        found[0]["tags"].append("mutated")
        assert DOCUMENTS[0]["tags"] == ["a", "b"]

    def test_distinct_flattens_arrays(self):
        assert distinct_values(DOCUMENTS, "tags") == ["a", "b"]
        assert distinct_values(DOCUMENTS, "lines.sku") == ["pen", "book"]
