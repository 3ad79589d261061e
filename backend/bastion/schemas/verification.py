"""Pydantic schemas for the verification endpoints."""
from __future__ import annotations

from pydantic import BaseModel, Field


class VerificationResponse(BaseModel):
    result: str
    message: str
    code: int | None = None
    reissued: bool = False


class DiscordSubmitRequest(BaseModel):
    discord_id: int = Field(..., ge=0)
    code: int


class DiscordSubmitResponse(BaseModel):
    result: str
    message: str
    account_id: str | None = None


class NoticeResponse(BaseModel):
    message: str | None = None
