"""Schemas of POST /auth/login."""

from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    # Optional so a missing field is a 400 from the service, not a 422
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)


class LoginUser(BaseModel):
    username: str
    email: Optional[str] = None


class LoginResponse(BaseModel):
    ok: bool = True
    token: str = Field(description="Bearer token for the Authorization header")
    user: LoginUser
