"""
auth.py — Pydantic schemas for the operator session endpoints.

  LoginRequest   — body of POST /api/auth
  AuthResponse   — body of every POST / DELETE /api/auth reply
  SessionCheck   — body of GET /api/auth/check
"""

from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    password: str


class AuthResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class SessionCheck(BaseModel):
    authenticated: bool
