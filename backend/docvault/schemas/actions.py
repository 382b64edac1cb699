"""Schemas of the audit log query (POST /actions/find)."""

from typing import Any, Dict, List

from pydantic import BaseModel


class ActionListResponse(BaseModel):
    ok: bool = True
    count: int
    actions: List[Dict[str, Any]]
