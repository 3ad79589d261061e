"""Moderation punishments and their change notifications."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from bastion.schemas.account import utcnow
from bastion.schemas.messages import PunishmentMessage, PunishmentMessageType
from bastion.schemas.punishment import Pardon, PunishmentRecord, PunishmentTarget, PunishmentType
from bastion.services.messenger import Messenger
from bastion.services.store import PunishmentStore

logger = logging.getLogger(__name__)


class PunishmentManager:
    def __init__(
        self,
        store: PunishmentStore,
        messenger: Messenger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._clock = clock

    async def punish(
        self,
        author: str | None,
        target: PunishmentTarget,
        reason: str,
        type: PunishmentType,
        duration: timedelta | None = None,
        extra: dict[str, str] | None = None,
    ) -> PunishmentRecord:
        punishment = PunishmentRecord(
            target=target,
            reason=reason,
            type=type,
            duration=duration,
            created_at=self._clock(),
        )
        await self._store.save(punishment)
        logger.info("Punishment %s (%s) created by %s", punishment.id, type.value, author or "console")
        await self._messenger.publish(
            PunishmentMessage(
                author=author,
                type=PunishmentMessageType.CREATE,
                punishment_id=punishment.id,
                extra=extra or {},
            ),
            local=True,
        )
        return punishment

    async def pardon(self, author: str | None, punishment_id: str, reason: str) -> PunishmentRecord | None:
        """Pardon once. Unknown ids return None, already pardoned records come back untouched."""

        punishment = await self._store.find_by_id(punishment_id)
        if punishment is None or punishment.pardon is not None:
            return punishment
        punishment.pardon = Pardon(timestamp=self._clock(), reason=reason)
        await self._store.save(punishment)
        logger.info("Punishment %s pardoned by %s", punishment.id, author or "console")
        await self._messenger.publish(
            PunishmentMessage(author=author, type=PunishmentMessageType.PARDON, punishment_id=punishment.id),
            local=True,
        )
        return punishment

    async def find_by_id(self, punishment_id: str) -> PunishmentRecord | None:
        return await self._store.find_by_id(punishment_id)

    async def find_all_by_address(self, address: str) -> list[PunishmentRecord]:
        return await self._store.find_all_by_address(address)

    async def find_all_by_uuid(self, uuid: str) -> list[PunishmentRecord]:
        return await self._store.find_all_by_uuid(uuid)
