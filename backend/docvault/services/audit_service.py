"""
DocVault Backend - Audit Recorder & Audit Log
==============================================

What:  Builds one audit entry per completed request and persists it in the
       background; queries the stored trail for POST /actions/find.
Why:   Every authenticated exchange must leave a record, but recording must
       never slow down or break the response the caller receives.
How:   AuditMiddleware drives an AuditTrail through the request. When the
       response has been handed to the server, the trail produces an
       AuditEntry and AuditRecorder.schedule() writes it on its own session
       in an asyncio task.

AuditTrail states:
    started ──(final body sent / escaped exception)──▶ response_sent
    response_sent ──(write committed)──▶ recorded
    response_sent ──(write failed)────▶ record_failed

    `recorded` and `record_failed` are terminal. A trail completes at most
    once, so a request yields at most one record.

Failure policy:
    Write failures are logged at ERROR with the request id and swallowed.
    The caller already has its response and never learns about them.
"""

import asyncio
import enum
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import Headers, QueryParams

from docvault.config import Settings, settings
from docvault.database import Database
from docvault.exceptions import ValidationError
from docvault.identity import Identity, audit_actor
from docvault.models.audit import AuditRecord
from docvault.services.document_service import clamp_limit, store_errors, validate_skip
from docvault.services.filter_compiler import FilterCompiler, Projection

logger = logging.getLogger(__name__)


class AuditState(str, enum.Enum):
    STARTED = "started"
    RESPONSE_SENT = "response_sent"
    RECORDED = "recorded"
    RECORD_FAILED = "record_failed"


@dataclass(frozen=True)
class AuditEntry:
    """Immutable snapshot of one exchange, ready to persist."""

    username: str
    email: Optional[str]
    method: str
    path: str
    params: Dict[str, Any]
    query: Dict[str, Any]
    body: Any
    status_code: int
    duration: float
    response_bytes: int
    timestamp: datetime
    ip: Optional[str]
    user_agent: Optional[str]
    request_id: Optional[str]

    def to_record(self) -> AuditRecord:
        return AuditRecord(**asdict(self))


def _query_dict(query_string: bytes) -> Dict[str, Any]:
    """Repeated keys become lists; single keys stay scalar."""
    params = QueryParams(query_string)
    result: Dict[str, Any] = {}
    for key in params.keys():
        values = params.getlist(key)
        result[key] = values[0] if len(values) == 1 else values
    return result


class AuditTrail:
    """
    Progress of one audited request.

    Created by AuditMiddleware when the request enters; fed with the request
    body as the application reads it and with the response messages as they
    leave.
    """

    def __init__(self, scope: Mapping[str, Any]):
        self.state = AuditState.STARTED
        self._start = time.perf_counter()
        self.timestamp = datetime.now(timezone.utc)

        headers = Headers(scope=scope)
        self.method: str = scope.get("method", "")
        self.path: str = scope.get("path", "")
        query_string: bytes = scope.get("query_string", b"")
        if query_string:
            self.path = f"{self.path}?{query_string.decode('latin-1')}"
        self.query = _query_dict(query_string)
        self.content_type = headers.get("content-type", "")
        self.user_agent = headers.get("user-agent")
        client = scope.get("client")
        self.ip: Optional[str] = client[0] if client else None

        self._body = bytearray()
        self.status_code: Optional[int] = None
        self.response_bytes = 0

    # ── Observation ───────────────────────────────────────────────────────

    def capture_body(self, chunk: bytes) -> None:
        self._body.extend(chunk)

    def response_started(self, status_code: int) -> None:
        self.status_code = status_code

    def body_sent(self, size: int) -> None:
        self.response_bytes += size

    @property
    def body(self) -> Any:
        """Parsed JSON request body, or None when absent or not JSON."""
        if not self._body or "json" not in self.content_type:
            return None
        try:
            return json.loads(self._body)
        except ValueError:
            return None

    # ── Transitions ───────────────────────────────────────────────────────

    def complete(
        self,
        identity: Optional[Identity],
        params: Optional[Mapping[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> AuditEntry:
        """started → response_sent. Raises RuntimeError on a second call."""
        if self.state is not AuditState.STARTED:
            raise RuntimeError(f"Audit trail already {self.state.value}")
        self.state = AuditState.RESPONSE_SENT

        duration_ms = max((time.perf_counter() - self._start) * 1000, 0.0)
        return AuditEntry(
            username=audit_actor(identity),
            email=identity.email if identity is not None else None,
            method=self.method,
            path=self.path,
            params=dict(params or {}),
            query=self.query,
            body=self.body,
            status_code=self.status_code if self.status_code is not None else 500,
            duration=round(duration_ms, 3),
            response_bytes=self.response_bytes,
            timestamp=self.timestamp,
            ip=self.ip,
            user_agent=self.user_agent,
            request_id=request_id,
        )

    def finish(self, recorded: bool) -> None:
        """response_sent → recorded | record_failed."""
        if self.state is not AuditState.RESPONSE_SENT:
            raise RuntimeError(f"Audit trail is {self.state.value}, not response_sent")
        self.state = AuditState.RECORDED if recorded else AuditState.RECORD_FAILED


class AuditRecorder:
    """
    Persists audit entries after the response, one background task each.

    The recorder owns the set of in-flight writes; drain() waits for them
    (application shutdown, and tests before they assert on the table).
    """

    def __init__(self, database: Database):
        self.database = database
        self._pending: Set["asyncio.Task[bool]"] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, entry: AuditEntry, trail: Optional[AuditTrail] = None) -> "asyncio.Task[bool]":
        task = asyncio.create_task(self._record(entry, trail))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _record(self, entry: AuditEntry, trail: Optional[AuditTrail]) -> bool:
        recorded = await self.persist(entry)
        if trail is not None:
            trail.finish(recorded)
        return recorded

    async def persist(self, entry: AuditEntry) -> bool:
        """Write one entry; returns False instead of raising on any failure."""
        try:
            async with self.database.session() as session:
                session.add(entry.to_record())
                await session.commit()
        except Exception:
            logger.error(
                "[%s] Failed to record audit entry for %s %s (status %d)",
                entry.request_id or "-",
                entry.method,
                entry.path,
                entry.status_code,
                exc_info=True,
            )
            return False
        return True

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# ── Audit log query ───────────────────────────────────────────────────────

audit_filters = FilterCompiler(
    columns={
        "_id": AuditRecord.id,
        "username": AuditRecord.username,
        "email": AuditRecord.email,
        "method": AuditRecord.method,
        "path": AuditRecord.path,
        "status_code": AuditRecord.status_code,
        "duration": AuditRecord.duration,
        "response_bytes": AuditRecord.response_bytes,
        "timestamp": AuditRecord.timestamp,
        "ip": AuditRecord.ip,
        "user_agent": AuditRecord.user_agent,
        "request_id": AuditRecord.request_id,
    },
    json_columns={
        "params": AuditRecord.params,
        "query": AuditRecord.query,
        "body": AuditRecord.body,
    },
)

DEFAULT_AUDIT_SORT = {"timestamp": -1}


class AuditLogService:
    """Read access to the audit trail. Records are never modified."""

    def __init__(self, session: AsyncSession, config: Settings = settings):
        self.session = session
        self.config = config

    async def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        """Newest first unless `sort` says otherwise."""
        if filter is not None and not isinstance(filter, Mapping):
            raise ValidationError("filter must be an object", field="filter")
        condition = audit_filters.compile(filter)
        fields = Projection(projection)
        order = audit_filters.order_by(sort or DEFAULT_AUDIT_SORT)
        limit = clamp_limit(limit, self.config.actions_default_limit, self.config.actions_max_limit)
        skip = validate_skip(skip)

        with store_errors("find_actions"):
            result = await self.session.execute(
                select(AuditRecord).where(condition).order_by(*order).offset(skip).limit(limit)
            )
            records = result.scalars().all()

        return [fields.apply(record.to_dict()) for record in records]
