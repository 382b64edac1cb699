"""
DocVault Backend - Audit Recorder Unit Tests
=============================================

What we test:
    ✅ AuditTrail captures method, path + query string, body, status, bytes
    ✅ A trail completes at most once
    ✅ AuditRecorder persists in the background and drain() waits for it
    ✅ Write failures are swallowed and mark the trail record_failed
    ✅ AuditLogService filters and sorts stored records
"""

from unittest.mock import patch

import pytest

from docvault.exceptions import ValidationError
from docvault.identity import Identity
from docvault.services.audit_service import (
    AuditEntry,
    AuditLogService,
    AuditRecorder,
    AuditState,
    AuditTrail,
)


def _scope(method="POST", path="/api/collections/items/documents", query=b"", headers=None):
    return {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query,
        "headers": headers
        or [(b"content-type", b"application/json"), (b"user-agent", b"pytest")],
        "client": ("10.0.0.7", 5000),
    }


def _completed_trail(identity=None, **scope_kwargs) -> tuple:
    trail = AuditTrail(_scope(**scope_kwargs))
    trail.capture_body(b'{"name": ')
    trail.capture_body(b'"Widget"}')
    trail.response_started(201)
    trail.body_sent(40)
    entry = trail.complete(identity, params={"name": "items"}, request_id="abc123")
    return trail, entry


class TestAuditTrail:
    def test_entry_fields(self):
        _, entry = _completed_trail(
            Identity(username="alice", email="alice@example.com"),
            query=b"dry=1&tag=a&tag=b",
        )
        assert entry.username == "alice"
        assert entry.email == "alice@example.com"
        assert entry.method == "POST"
        assert entry.path == "/api/collections/items/documents?dry=1&tag=a&tag=b"
        assert entry.query == {"dry": "1", "tag": ["a", "b"]}
        assert entry.params == {"name": "items"}
        assert entry.body == {"name": "Widget"}
        assert entry.status_code == 201
        assert entry.response_bytes == 40
        assert entry.duration >= 0
        assert entry.ip == "10.0.0.7"
        assert entry.user_agent == "pytest"
        assert entry.request_id == "abc123"

    def test_anonymous_identity(self):
        _, entry = _completed_trail(None)
        assert entry.username == "anonymous"
        assert entry.email is None

    def test_non_json_body_not_recorded(self):
        trail = AuditTrail(_scope(headers=[(b"content-type", b"text/plain")]))
        trail.capture_body(b"hello")
        trail.response_started(200)
        assert trail.complete(None).body is None

    def test_completes_once(self):
        trail, _ = _completed_trail()
        assert trail.state is AuditState.RESPONSE_SENT
        with pytest.raises(RuntimeError):
            trail.complete(None)

    def test_missing_status_defaults_to_500(self):
        trail = AuditTrail(_scope())
        assert trail.complete(None).status_code == 500


class TestAuditRecorder:
    @pytest.mark.asyncio
    async def test_schedule_and_drain(self, database, audit_records):
        recorder = AuditRecorder(database)
        trail, entry = _completed_trail(Identity(username="alice"))

        recorder.schedule(entry, trail)
        await recorder.drain()

        records = await audit_records()
        assert len(records) == 1
        assert records[0].username == "alice"
        assert records[0].status_code == 201
        assert trail.state is AuditState.RECORDED
        assert recorder.pending == 0

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, database, audit_records, caplog):
        recorder = AuditRecorder(database)
        trail, entry = _completed_trail(Identity(username="alice"))

        with patch.object(AuditEntry, "to_record", side_effect=RuntimeError("disk full")):
            task = recorder.schedule(entry, trail)
            await recorder.drain()

        assert task.result() is False
        assert trail.state is AuditState.RECORD_FAILED
        assert await audit_records() == []
        assert "abc123" in caplog.text


class TestAuditLogService:
    @pytest.mark.asyncio
    async def test_find_filters_and_sorts(self, database, session):
        recorder = AuditRecorder(database)
        for username, status in [("alice", 200), ("bob", 404), ("alice", 201)]:
            trail = AuditTrail(_scope(method="GET", path="/api/collections"))
            trail.response_started(status)
            recorder.schedule(trail.complete(Identity(username=username)))
        await recorder.drain()

        service = AuditLogService(session)
        alice = await service.find({"username": "alice"}, sort={"status_code": 1})
        assert [r["status_code"] for r in alice] == [200, 201]

        errors = await service.find({"status_code": {"$gte": 400}})
        assert [r["username"] for r in errors] == ["bob"]

        projected = await service.find({}, projection={"username": 1, "_id": 0}, limit=1)
        assert len(projected) == 1
        assert set(projected[0]) == {"username"}

    @pytest.mark.asyncio
    async def test_json_path_into_body(self, database, session):
        recorder = AuditRecorder(database)
        _, entry = _completed_trail(Identity(username="alice"))
        recorder.schedule(entry)
        await recorder.drain()

        found = await AuditLogService(session).find({"body.name": "Widget"})
        assert len(found) == 1

    @pytest.mark.asyncio
    async def test_rejects_non_object_filter(self, session):
        with pytest.raises(ValidationError):
            await AuditLogService(session).find(["x"])
