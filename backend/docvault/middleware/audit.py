"""
DocVault Backend - Audit Middleware
====================================

What:  Records every audited request once its response has been sent.
Why:   The record must reflect the status the caller actually received, and
       writing it must not delay that response.
How:   Pure ASGI wrapper. `receive` is wrapped to tee the request body as the
       application reads it; `send` is wrapped to observe the status line and
       count body bytes. Messages pass through unmodified. After the final
       body message has been handed on, the entry is scheduled on the
       AuditRecorder.

Which requests:
    - Paths under AUDITED_PATH_PREFIXES (default /api and /actions)
    - Only when require_identity attached an identity to request.state,
      unless AUDIT_UNAUTHENTICATED_REQUESTS is on

Exceptions escaping the application before any response started are
recorded with status 500 (what ServerErrorMiddleware sends), then re-raised.
ServerErrorMiddleware sits outside every user middleware and writes its 500
straight to the server, so this one record is scheduled when the exception
passes through here, before that response is sent rather than after it.
"""

import logging
from typing import Any, Dict, Optional

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from docvault.config import Settings, settings
from docvault.services.audit_service import AuditRecorder, AuditState, AuditTrail

logger = logging.getLogger(__name__)


class AuditMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        recorder: Optional[AuditRecorder] = None,
        config: Settings = settings,
    ):
        self.app = app
        self.recorder = recorder
        self.config = config
        self.prefixes = tuple(config.audited_prefixes_list)

    def is_audited(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.is_audited(scope.get("path", "")):
            await self.app(scope, receive, send)
            return

        # Shared with request.state of every downstream Request object
        state: Dict[str, Any] = scope.setdefault("state", {})
        trail = AuditTrail(scope)

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                trail.capture_body(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                trail.response_started(message["status"])
            elif message["type"] == "http.response.body":
                trail.body_sent(len(message.get("body", b"")))

            await send(message)

            if message["type"] == "http.response.body" and not message.get("more_body", False):
                self._complete(scope, state, trail)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception:
            if trail.state is AuditState.STARTED and trail.status_code is None:
                trail.response_started(500)
                self._complete(scope, state, trail)
            raise

    def _complete(self, scope: Scope, state: Dict[str, Any], trail: AuditTrail) -> None:
        identity = state.get("identity")
        if identity is None and not self.config.audit_unauthenticated_requests:
            return

        recorder = self.recorder or getattr(scope["app"].state, "audit_recorder", None)
        if recorder is None:
            logger.warning("No audit recorder configured; %s %s not recorded", trail.method, trail.path)
            return

        entry = trail.complete(
            identity,
            params=scope.get("path_params"),
            request_id=state.get("request_id"),
        )
        recorder.schedule(entry, trail)
