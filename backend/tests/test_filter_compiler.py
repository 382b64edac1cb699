"""
DocVault Backend - Filter Compiler Tests
=========================================

What we test:
    ✅ Rejection of malformed filters, sorts and projections (ValidationError)
    ✅ Operator semantics against a real SQLite store
    ✅ Projection include/exclude rules
"""

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql, sqlite

from docvault.exceptions import ValidationError
from docvault.services.document_service import DocumentGateway, document_filters
from docvault.services.filter_compiler import Projection


def _sql(expr) -> str:
    return str(expr.compile(dialect=sqlite.dialect()))


class TestCompileShape:
    def test_active_only_clause_is_is_null(self):
        sql = _sql(document_filters.compile({"deleted_at": {"$exists": False}}))
        assert "documents.deleted_at IS NULL" in sql

    def test_postgres_checks_json_type_before_cast(self):
        sql = str(
            document_filters.compile({"code": {"$gt": 5}}).compile(dialect=postgresql.dialect())
        )
        assert "CASE WHEN" in sql
        assert "jsonb_typeof(to_jsonb(" in sql
        assert "= 'number'" in sql
        assert sql.index("jsonb_typeof") < sql.index("CAST")

    def test_sqlite_checks_json_type(self):
        sql = _sql(document_filters.compile({"address.city": "Oslo"}))
        assert "json_type(documents.data, ?) IN ('text')" in sql

    def test_empty_filter_is_true(self):
        assert _sql(document_filters.compile({})) in ("1", "true")

    @pytest.mark.parametrize(
        "bad_filter",
        [
            {"age": {"$regex": "x"}},
            {"$where": "1"},
            {"$or": {"a": 1}},
            {"$and": []},
            {"tags": ["a", "b"]},
            {"address": {"city": "Oslo"}},
            {"age": {"$in": 5}},
            {"age": {"$gt": None}},
            {"age": {"$gt": 1, "plain": 2}},
            {"_id": "not-a-uuid"},
            {"created_at": {"$gt": "yesterday"}},
            {"a..b": 1},
        ],
    )
    def test_malformed_filters_raise(self, bad_filter):
        with pytest.raises(ValidationError):
            document_filters.compile(bad_filter)

    def test_non_object_filter_raises(self):
        with pytest.raises(ValidationError):
            document_filters.compile(["not", "an", "object"])

    def test_bad_sort_direction_raises(self):
        with pytest.raises(ValidationError):
            document_filters.order_by({"name": 2})

    def test_sort_accepts_words(self):
        assert len(document_filters.order_by({"name": "desc", "created_at": "asc"})) == 2


class TestProjection:
    doc = {"_id": "1", "name": "Widget", "price": 3, "created_by": "alice"}

    def test_inclusion_keeps_id(self):
        assert Projection({"name": 1}).apply(self.doc) == {"_id": "1", "name": "Widget"}

    def test_inclusion_without_id(self):
        assert Projection({"name": 1, "_id": 0}).apply(self.doc) == {"name": "Widget"}

    def test_exclusion(self):
        assert Projection({"price": 0}).apply(self.doc) == {
            "_id": "1",
            "name": "Widget",
            "created_by": "alice",
        }

    def test_empty_projection_is_identity(self):
        assert Projection(None).apply(self.doc) == self.doc
        assert Projection({}).apply(self.doc) == self.doc

    def test_mixing_raises(self):
        with pytest.raises(ValidationError):
            Projection({"name": 1, "price": 0})


@pytest_asyncio.fixture
async def seeded(session):
    gateway = DocumentGateway(session)
    for doc in [
        {"name": "Widget", "price": 10, "tags": ["a"], "active": True, "address": {"city": "Oslo"}},
        {"name": "Gadget", "price": 25, "active": False, "address": {"city": "Bergen"}},
        {"name": "Doohickey", "price": 40},
    ]:
        await gateway.insert_document("items", doc)
    return gateway


async def _names(gateway, predicate, **kwargs):
    docs = await gateway.find_documents("items", predicate, **kwargs)
    return sorted(d["name"] for d in docs)


class TestOperatorsAgainstStore:
    @pytest.mark.asyncio
    async def test_implicit_equality(self, seeded):
        assert await _names(seeded, {"name": "Gadget"}) == ["Gadget"]

    @pytest.mark.asyncio
    async def test_range(self, seeded):
        assert await _names(seeded, {"price": {"$gte": 25}}) == ["Doohickey", "Gadget"]
        assert await _names(seeded, {"price": {"$gt": 10, "$lt": 40}}) == ["Gadget"]

    @pytest.mark.asyncio
    async def test_ne_matches_missing(self, seeded):
        assert await _names(seeded, {"active": {"$ne": True}}) == ["Doohickey", "Gadget"]

    @pytest.mark.asyncio
    async def test_exists(self, seeded):
        assert await _names(seeded, {"active": {"$exists": True}}) == ["Gadget", "Widget"]
        assert await _names(seeded, {"active": {"$exists": False}}) == ["Doohickey"]
        assert await _names(seeded, {"active": None}) == ["Doohickey"]

    @pytest.mark.asyncio
    async def test_in_and_nin(self, seeded):
        assert await _names(seeded, {"name": {"$in": ["Widget", "Gadget"]}}) == ["Gadget", "Widget"]
        assert await _names(seeded, {"name": {"$nin": ["Widget"]}}) == ["Doohickey", "Gadget"]
        assert await _names(seeded, {"name": {"$in": []}}) == []

    @pytest.mark.asyncio
    async def test_logical(self, seeded):
        assert await _names(seeded, {"$or": [{"name": "Widget"}, {"price": 40}]}) == [
            "Doohickey",
            "Widget",
        ]
        assert await _names(seeded, {"$nor": [{"name": "Widget"}, {"price": 40}]}) == ["Gadget"]
        assert await _names(
            seeded, {"$and": [{"price": {"$gt": 5}}, {"price": {"$lt": 30}}]}
        ) == ["Gadget", "Widget"]

    @pytest.mark.asyncio
    async def test_nested_field(self, seeded):
        assert await _names(seeded, {"address.city": "Bergen"}) == ["Gadget"]

    @pytest.mark.asyncio
    async def test_metadata_field(self, seeded):
        assert await _names(seeded, {"created_by": "system"}) == ["Doohickey", "Gadget", "Widget"]

    @pytest.mark.asyncio
    async def test_sort_skip_limit(self, seeded):
        docs = await seeded.find_documents("items", {}, sort={"price": -1}, limit=2, skip=0)
        assert [d["name"] for d in docs] == ["Doohickey", "Gadget"]
        docs = await seeded.find_documents("items", {}, sort={"price": -1}, skip=2)
        assert [d["name"] for d in docs] == ["Widget"]

    @pytest.mark.asyncio
    async def test_mixed_types_only_match_same_type(self, session):
        gateway = DocumentGateway(session)
        for name, code in [("int", 42), ("text", "A1"), ("numeric-text", "42"), ("flag", True)]:
            await gateway.insert_document("codes", {"name": name, "code": code})

        async def names(predicate):
            docs = await gateway.find_documents("codes", predicate)
            return sorted(d["name"] for d in docs)

        assert await names({"code": 42}) == ["int"]
        assert await names({"code": "42"}) == ["numeric-text"]
        assert await names({"code": True}) == ["flag"]
        assert await names({"code": {"$gt": 5}}) == ["int"]
        assert await names({"code": {"$in": [42, "A1"]}}) == ["int", "text"]
        assert await names({"code": {"$ne": 42}}) == ["flag", "numeric-text", "text"]

    @pytest.mark.asyncio
    async def test_projection_applied(self, seeded):
        docs = await seeded.find_documents("items", {"name": "Widget"}, projection={"price": 1})
        assert set(docs[0]) == {"_id", "price"}
