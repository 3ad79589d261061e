"""Messages exchanged between processes over the messenger."""
from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field


class Message(BaseModel):
    """Base class for everything that travels through a messenger."""

    topic: ClassVar[str]


class VerificationMessage(Message):
    """A verification request (game server to bot) or its answer (bot to game server)."""

    topic: ClassVar[str] = "verification"

    account_id: str
    player_uuid: str
    code: int = Field(..., ge=1000, le=9999)
    response: bool = False
    discord_id: int | None = None


class PunishmentMessageType(str, Enum):
    CREATE = "create"
    PARDON = "pardon"


class PunishmentMessage(Message):
    topic: ClassVar[str] = "punishment"

    author: str | None = None
    type: PunishmentMessageType
    punishment_id: str
    extra: dict[str, str] = Field(default_factory=dict)


MESSAGE_TYPES: dict[str, type[Message]] = {
    VerificationMessage.topic: VerificationMessage,
    PunishmentMessage.topic: PunishmentMessage,
}


class MessageEnvelope(BaseModel):
    """Signed envelope posted to ``/api/messages`` by a peer."""

    token: str = Field(..., min_length=1)
