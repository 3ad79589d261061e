"""Pydantic schemas for accounts, identities, and account requests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress

from bastion.core.security import HashRecord, hash_legacy_username


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_account_id() -> str:
    return uuid4().hex


class Identity(BaseModel):
    """The caller triple behind an in-game connection attempt."""

    model_config = ConfigDict(frozen=True)

    uuid: str = Field(..., min_length=1, max_length=64)  # device id
    usid: str = Field(..., min_length=8, max_length=64)  # per-server session secret
    address: IPvAnyAddress


class Role(str, Enum):
    VERIFIED = "verified"
    MODERATOR = "moderator"
    ADMINISTRATOR = "administrator"


class AccountRecord(BaseModel):
    id: str = Field(default_factory=new_account_id)
    username: str
    password: HashRecord
    sessions: dict[str, datetime] = Field(default_factory=dict)  # session token -> expiration
    discord_id: int | None = None
    verified: bool = False
    roles: set[Role] = Field(default_factory=set)
    playtime: timedelta = timedelta(0)
    games: int = 0
    achievements: set[str] = Field(default_factory=set)
    migrated_from: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def prune_sessions(self, now: datetime) -> None:
        """Drop every session whose expiration is not strictly in the future."""

        self.sessions = {token: expires for token, expires in self.sessions.items() if expires > now}

    def mark_verified(self, discord_id: int | None = None) -> None:
        self.verified = True
        self.roles.add(Role.VERIFIED)
        if discord_id is not None:
            self.discord_id = discord_id


class LegacyAccountRecord(BaseModel):
    id: str  # hashed old username
    password: HashRecord
    verified: bool = False
    playtime: timedelta = timedelta(0)
    games: int = 0
    achievements: list[str] = Field(default_factory=list)


class LegacyPasswordExport(BaseModel):
    hmac: Literal["sha1", "sha256", "sha512"] = "sha256"
    iterations: int = Field(..., ge=1)
    salt: str  # base64
    digest: str  # base64


class LegacyAccountExport(BaseModel):
    """One entry of the JSON export produced by the previous system."""

    username: str = Field(..., min_length=1)
    password: LegacyPasswordExport
    verified: bool = False
    playtime_seconds: int = Field(default=0, ge=0)
    games: int = Field(default=0, ge=0)
    achievements: list[str] = Field(default_factory=list)

    def to_record(self) -> LegacyAccountRecord:
        return LegacyAccountRecord(
            id=hash_legacy_username(self.username.strip().lower()),
            password=HashRecord(
                algorithm=f"pbkdf2-{self.password.hmac}",
                params={"iterations": self.password.iterations},
                salt=self.password.salt,
                digest=self.password.digest,
            ),
            verified=self.verified,
            playtime=timedelta(seconds=self.playtime_seconds),
            games=self.games,
            achievements=self.achievements,
        )


class RegisterRequest(BaseModel):
    username: str = Field(..., max_length=128)
    password: str = Field(..., max_length=1024)
    identity: Identity


class LoginRequest(RegisterRequest):
    pass


class IdentityRequest(BaseModel):
    identity: Identity


class LogoutRequest(IdentityRequest):
    all: bool = False


class MigrateRequest(BaseModel):
    old_username: str = Field(..., max_length=128)
    new_username: str = Field(..., max_length=128)
    password: str = Field(..., max_length=1024)
    identity: Identity


class PasswordChangeRequest(BaseModel):
    old_password: str = Field(..., max_length=1024)
    new_password: str = Field(..., max_length=1024)
    identity: Identity


class StatsUpdateRequest(IdentityRequest):
    """Gameplay stat increments reported by a game server for the player behind ``identity``."""

    playtime_seconds: int = Field(default=0, ge=0)
    games: int = Field(default=0, ge=0)
    achievements: list[str] = Field(default_factory=list)


class OperationResponse(BaseModel):
    result: str
    message: str
    missing: list[str] = Field(default_factory=list)


class AccountRead(BaseModel):
    id: str
    username: str
    discord_id: int | None
    verified: bool
    roles: list[Role]
    playtime_seconds: int
    games: int
    achievements: list[str]
    created_at: datetime

    @classmethod
    def from_record(cls, account: AccountRecord) -> AccountRead:
        return cls(
            id=account.id,
            username=account.username,
            discord_id=account.discord_id,
            verified=account.verified,
            roles=sorted(account.roles, key=lambda role: role.value),
            playtime_seconds=int(account.playtime.total_seconds()),
            games=account.games,
            achievements=sorted(account.achievements),
            created_at=account.created_at,
        )
