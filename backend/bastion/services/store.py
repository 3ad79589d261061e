"""Persistence contracts for accounts and punishments, with SQLAlchemy adapters."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bastion.core.security import HashRecord, SessionTokenDeriver, hash_legacy_username
from bastion.db.session import session_scope
from bastion.models.account import Account, AccountSession, LegacyAccount
from bastion.models.punishment import Punishment
from bastion.schemas.account import AccountRecord, Identity, LegacyAccountRecord, Role, utcnow
from bastion.schemas.punishment import Pardon, PunishmentRecord, PunishmentTarget, PunishmentType

logger = logging.getLogger(__name__)


class StoreUnavailable(RuntimeError):
    """Raised when the backing store cannot be reached. Callers should ask to try later."""


class DuplicateAccountError(RuntimeError):
    """Raised when a save would break the username or Discord id uniqueness."""


class AccountStore(Protocol):
    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        ...

    async def find_by_username(self, username: str) -> AccountRecord | None:
        """Look up by the already normalized username."""

        ...

    async def find_by_discord_id(self, discord_id: int) -> AccountRecord | None:
        ...

    async def find_by_identity(self, identity: Identity) -> AccountRecord | None:
        """Return the account holding a non-expired session for this identity."""

        ...

    async def find_by_session_token(self, token: str) -> AccountRecord | None:
        ...

    async def save(self, account: AccountRecord) -> None:
        """Insert or fully replace the account, sessions included.

        A session token belongs to one account: saving takes its tokens away
        from any other account holding them.
        """

        ...

    async def find_legacy_by_username(self, username: str) -> LegacyAccountRecord | None:
        """Look up a legacy account by its normalized plaintext username."""

        ...

    async def save_legacy(self, legacy: LegacyAccountRecord) -> None:
        ...

    async def delete_legacy_by_id(self, legacy_id: str) -> None:
        ...

    async def prune_expired_sessions(self, now: datetime) -> int:
        ...


class PunishmentStore(Protocol):
    async def find_by_id(self, punishment_id: str) -> PunishmentRecord | None:
        ...

    async def find_all_by_address(self, address: str) -> list[PunishmentRecord]:
        ...

    async def find_all_by_uuid(self, uuid: str) -> list[PunishmentRecord]:
        ...

    async def save(self, punishment: PunishmentRecord) -> None:
        ...


def _aware(value: datetime) -> datetime:
    # SQLite hands datetimes back without their timezone.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except IntegrityError as exc:
            raise DuplicateAccountError(str(exc.orig)) from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Database unreachable: %s", exc)
            raise StoreUnavailable("The database is unavailable") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                logger.error("Database connection lost: %s", exc)
                raise StoreUnavailable("The database is unavailable") from exc
            raise


class SqlAccountStore(_SqlStore):
    """SQLAlchemy-backed implementation of `AccountStore`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: SessionTokenDeriver,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session_factory)
        self._tokens = tokens
        self._clock = clock

    @staticmethod
    def _to_record(row: Account) -> AccountRecord:
        return AccountRecord(
            id=row.id,
            username=row.username,
            password=HashRecord.model_validate(row.password),
            sessions={session.token: _aware(session.expires_at) for session in row.sessions},
            discord_id=row.discord_id,
            verified=row.verified,
            roles={Role(role) for role in row.roles or []},
            playtime=timedelta(seconds=row.playtime_seconds or 0),
            games=row.games or 0,
            achievements=set(row.achievements or []),
            migrated_from=row.migrated_from,
            created_at=_aware(row.created_at),
        )

    async def _find_one(self, *criteria) -> AccountRecord | None:
        async with self._session() as session:
            result = await session.execute(select(Account).where(*criteria).limit(1))
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        return await self._find_one(Account.id == account_id)

    async def find_by_username(self, username: str) -> AccountRecord | None:
        return await self._find_one(Account.username == username)

    async def find_by_discord_id(self, discord_id: int) -> AccountRecord | None:
        return await self._find_one(Account.discord_id == discord_id)

    async def find_by_identity(self, identity: Identity) -> AccountRecord | None:
        token = await asyncio.to_thread(self._tokens.derive, identity.uuid, identity.usid)
        return await self.find_by_session_token(token)

    async def find_by_session_token(self, token: str) -> AccountRecord | None:
        now = self._clock()
        async with self._session() as session:
            result = await session.execute(
                select(Account)
                .join(AccountSession)
                .where(AccountSession.token == token, AccountSession.expires_at > now)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def save(self, account: AccountRecord) -> None:
        async with self._session() as session:
            if account.sessions:
                await session.execute(
                    delete(AccountSession).where(
                        AccountSession.token.in_(list(account.sessions)),
                        AccountSession.account_id != account.id,
                    )
                )
            row = await session.get(Account, account.id)
            if row is None:
                row = Account(id=account.id, created_at=account.created_at)
                session.add(row)
            row.username = account.username
            row.password = account.password.model_dump()
            row.discord_id = account.discord_id
            row.verified = account.verified
            row.roles = sorted(role.value for role in account.roles)
            row.playtime_seconds = int(account.playtime.total_seconds())
            row.games = account.games
            row.achievements = sorted(account.achievements)
            row.migrated_from = account.migrated_from

            existing = {session_row.token: session_row for session_row in row.sessions}
            for token, session_row in existing.items():
                if token not in account.sessions:
                    row.sessions.remove(session_row)
            for token, expires_at in account.sessions.items():
                if token in existing:
                    existing[token].expires_at = expires_at
                else:
                    row.sessions.append(AccountSession(token=token, expires_at=expires_at))

    async def find_legacy_by_username(self, username: str) -> LegacyAccountRecord | None:
        async with self._session() as session:
            row = await session.get(LegacyAccount, hash_legacy_username(username))
            if row is None:
                return None
            return LegacyAccountRecord(
                id=row.id,
                password=HashRecord.model_validate(row.password),
                verified=row.verified,
                playtime=timedelta(seconds=row.playtime_seconds or 0),
                games=row.games or 0,
                achievements=list(row.achievements or []),
            )

    async def save_legacy(self, legacy: LegacyAccountRecord) -> None:
        async with self._session() as session:
            await session.merge(
                LegacyAccount(
                    id=legacy.id,
                    password=legacy.password.model_dump(),
                    verified=legacy.verified,
                    playtime_seconds=int(legacy.playtime.total_seconds()),
                    games=legacy.games,
                    achievements=list(legacy.achievements),
                )
            )

    async def delete_legacy_by_id(self, legacy_id: str) -> None:
        async with self._session() as session:
            await session.execute(delete(LegacyAccount).where(LegacyAccount.id == legacy_id))

    async def prune_expired_sessions(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(delete(AccountSession).where(AccountSession.expires_at <= now))
            return result.rowcount or 0


class SqlPunishmentStore(_SqlStore):
    """SQLAlchemy-backed implementation of `PunishmentStore`."""

    @staticmethod
    def _to_record(row: Punishment) -> PunishmentRecord:
        pardon = None
        if row.pardoned_at is not None:
            pardon = Pardon(timestamp=_aware(row.pardoned_at), reason=row.pardon_reason or "")
        return PunishmentRecord(
            id=row.id,
            target=PunishmentTarget(address=row.target_address, uuid=row.target_uuid),
            reason=row.reason,
            type=PunishmentType(row.type),
            duration=timedelta(seconds=row.duration_seconds) if row.duration_seconds is not None else None,
            created_at=_aware(row.created_at),
            pardon=pardon,
        )

    async def find_by_id(self, punishment_id: str) -> PunishmentRecord | None:
        async with self._session() as session:
            row = await session.get(Punishment, punishment_id)
            return self._to_record(row) if row else None

    async def _find_all(self, *criteria) -> list[PunishmentRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(Punishment).where(or_(*criteria)).order_by(Punishment.created_at)
            )
            return [self._to_record(row) for row in result.scalars().all()]

    async def find_all_by_address(self, address: str) -> list[PunishmentRecord]:
        return await self._find_all(Punishment.target_address == address)

    async def find_all_by_uuid(self, uuid: str) -> list[PunishmentRecord]:
        return await self._find_all(Punishment.target_uuid == uuid)

    async def save(self, punishment: PunishmentRecord) -> None:
        async with self._session() as session:
            await session.merge(
                Punishment(
                    id=punishment.id,
                    target_address=str(punishment.target.address) if punishment.target.address else None,
                    target_uuid=punishment.target.uuid,
                    reason=punishment.reason,
                    type=punishment.type.value,
                    duration_seconds=int(punishment.duration.total_seconds()) if punishment.duration else None,
                    created_at=punishment.created_at,
                    pardoned_at=punishment.pardon.timestamp if punishment.pardon else None,
                    pardon_reason=punishment.pardon.reason if punishment.pardon else None,
                )
            )
