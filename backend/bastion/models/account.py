"""Database models for accounts, their sessions, and pre-migration accounts."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bastion.db.base import Base


class Account(Base):
    """Durable player account with its password record and accumulated stats."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    password: Mapped[dict] = mapped_column(JSON, nullable=False)  # HashRecord
    discord_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    roles: Mapped[list[str]] = mapped_column(JSON, default=list)
    playtime_seconds: Mapped[int] = mapped_column(Integer, default=0)
    games: Mapped[int] = mapped_column(Integer, default=0)
    achievements: Mapped[list[str]] = mapped_column(JSON, default=list)
    migrated_from: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    sessions: Mapped[list[AccountSession]] = relationship(
        "AccountSession", back_populates="account", cascade="all, delete-orphan", lazy="selectin"
    )


class AccountSession(Base):
    """One active login of an account, keyed by the derived session token."""

    __tablename__ = "account_sessions"

    account_id: Mapped[str] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    token: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    account: Mapped[Account] = relationship("Account", back_populates="sessions")


class LegacyAccount(Base):
    """Read-only account imported from the previous system, deleted once migrated."""

    __tablename__ = "legacy_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # base64 sha256 of the old username
    password: Mapped[dict] = mapped_column(JSON, nullable=False)  # pbkdf2 HashRecord
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    playtime_seconds: Mapped[int] = mapped_column(Integer, default=0)
    games: Mapped[int] = mapped_column(Integer, default=0)
    achievements: Mapped[list[str]] = mapped_column(JSON, default=list)
