"""
DocVault Backend - Metadata Policy Unit Tests
==============================================

What we test:
    ✅ Creation/update/deletion stamps use the username or "system"
    ✅ Timestamps are timezone-aware UTC
    ✅ with_active_only adds the deleted_at clause last and never mutates input
    ✅ Reserved caller fields never survive a merge
"""

from datetime import timezone

from docvault.identity import Identity
from docvault.services.metadata_policy import (
    ACTIVE_ONLY_CLAUSE,
    RESERVED_FIELDS,
    creation_metadata,
    deletion_metadata,
    merge_with_policy,
    strip_reserved,
    update_metadata,
    with_active_only,
)


class TestStamps:
    def test_creation_metadata_uses_username(self):
        meta = creation_metadata(Identity(username="alice", email="a@example.com"))
        assert meta["created_by"] == "alice"
        assert meta["created_at"].tzinfo == timezone.utc
        assert set(meta) == {"created_at", "created_by"}

    def test_absent_identity_is_system(self):
        assert creation_metadata(None)["created_by"] == "system"
        assert update_metadata(None)["updated_by"] == "system"
        assert deletion_metadata(None)["deleted_by"] == "system"

    def test_identity_without_username_is_system(self):
        assert update_metadata(Identity(email="x@example.com"))["updated_by"] == "system"

    def test_deletion_metadata_keys(self):
        meta = deletion_metadata(Identity(username="bob"))
        assert set(meta) == {"deleted_at", "deleted_by"}
        assert meta["deleted_by"] == "bob"


class TestActiveOnly:
    def test_empty_predicate_matches_all_active(self):
        assert with_active_only(None) == {"deleted_at": ACTIVE_ONLY_CLAUSE}
        assert with_active_only({}) == {"deleted_at": ACTIVE_ONLY_CLAUSE}

    def test_preserves_caller_constraints(self):
        combined = with_active_only({"status": "open", "age": {"$gt": 3}})
        assert combined["status"] == "open"
        assert combined["age"] == {"$gt": 3}
        assert combined["deleted_at"] == {"$exists": False}

    def test_overrides_caller_deleted_at(self):
        combined = with_active_only({"deleted_at": {"$exists": True}})
        assert combined == {"deleted_at": {"$exists": False}}

    def test_does_not_mutate_input(self):
        predicate = {"name": "Widget"}
        with_active_only(predicate)
        assert predicate == {"name": "Widget"}


class TestMerge:
    def test_policy_wins_over_caller(self):
        policy = creation_metadata(Identity(username="alice"))
        merged = merge_with_policy({"name": "Widget", "created_by": "mallory"}, policy)
        assert merged["created_by"] == "alice"
        assert merged["name"] == "Widget"

    def test_reserved_names_not_set_by_policy_are_dropped(self):
        merged = merge_with_policy(
            {"name": "Widget", "_id": "x", "deleted_at": "2020-01-01", "deleted_by": "eve"},
            update_metadata(None),
        )
        assert "deleted_at" not in merged
        assert "deleted_by" not in merged
        assert "_id" not in merged
        assert merged["updated_by"] == "system"

    def test_strip_reserved(self):
        fields = {name: 1 for name in RESERVED_FIELDS}
        fields["keep"] = 2
        assert strip_reserved(fields) == {"keep": 2}
