"""Pydantic schemas for moderation punishments."""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, IPvAnyAddress, model_validator

from bastion.schemas.account import utcnow


class PunishmentType(str, Enum):
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"


class PunishmentTarget(BaseModel):
    address: IPvAnyAddress | None = None
    uuid: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _require_one(self) -> PunishmentTarget:
        if self.address is None and self.uuid is None:
            raise ValueError("A punishment target needs an address or a uuid")
        return self


class Pardon(BaseModel):
    timestamp: datetime
    reason: str


class PunishmentRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    target: PunishmentTarget
    reason: str
    type: PunishmentType
    duration: timedelta | None = None  # None means permanent
    created_at: datetime = Field(default_factory=utcnow)
    pardon: Pardon | None = None

    @property
    def expires_at(self) -> datetime | None:
        if self.duration is None:
            return None
        return self.created_at + self.duration

    def is_active(self, now: datetime) -> bool:
        if self.pardon is not None:
            return False
        expires_at = self.expires_at
        return expires_at is None or expires_at > now


class PunishmentCreate(BaseModel):
    author: str | None = Field(default=None, max_length=128)
    target: PunishmentTarget
    reason: str = Field(..., min_length=1, max_length=512)
    type: PunishmentType
    duration_seconds: int | None = Field(default=None, ge=1)
    extra: dict[str, str] = Field(default_factory=dict)


class PardonRequest(BaseModel):
    author: str | None = Field(default=None, max_length=128)
    reason: str = Field(..., min_length=1, max_length=512)


class PunishmentRead(BaseModel):
    id: str
    target: PunishmentTarget
    reason: str
    type: PunishmentType
    duration_seconds: int | None
    created_at: datetime
    expires_at: datetime | None
    pardon: Pardon | None

    @classmethod
    def from_record(cls, punishment: PunishmentRecord) -> PunishmentRead:
        return cls(
            id=punishment.id,
            target=punishment.target,
            reason=punishment.reason,
            type=punishment.type,
            duration_seconds=int(punishment.duration.total_seconds()) if punishment.duration else None,
            created_at=punishment.created_at,
            expires_at=punishment.expires_at,
            pardon=punishment.pardon,
        )
