"""Database model for moderation punishments."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from bastion.db.base import Base


class Punishment(Base):
    """Kick, mute, or ban issued against an address or a device uuid."""

    __tablename__ = "punishments"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    target_address: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    target_uuid: Mapped[str | None] = mapped_column(String(64), default=None, index=True)
    reason: Mapped[str] = mapped_column(String(512), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, default=None)  # None means permanent
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    pardoned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    pardon_reason: Mapped[str | None] = mapped_column(String(512), default=None)
