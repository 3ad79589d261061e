"""Account registration, login, sessions, migration, and password changes."""
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from ipaddress import IPv4Address, IPv6Address
from typing import Any, Awaitable, Callable, Union

from bastion.core.security import Argon2Params, HashRecord, PasswordHasher, SessionTokenDeriver
from bastion.schemas.account import AccountRecord, Identity, utcnow
from bastion.services.rate_limiter import RateLimiter
from bastion.services.requirements import LegacyUsername, RequirementValidator
from bastion.services.results import (
    AccountOperationResult,
    AlreadyRegistered,
    InvalidPassword,
    InvalidUsername,
    NotLogged,
    NotRegistered,
    RateLimit,
    Success,
    WrongPassword,
)
from bastion.services.store import AccountStore, DuplicateAccountError

logger = logging.getLogger(__name__)

RateLimitKey = tuple[str, Union[IPv4Address, IPv6Address]]

AccountUpdater = Callable[[AccountRecord], Union[None, Awaitable[None]]]

SESSION_DURATION = timedelta(days=7)


def normalize_username(username: str) -> str:
    return username.strip().lower()


class AccountManager:
    """Turn in-game connections into durable accounts.

    Every public operation returns one `AccountOperationResult`; only
    infrastructure failures such as `StoreUnavailable` are raised.
    """

    def __init__(
        self,
        store: AccountStore,
        tokens: SessionTokenDeriver,
        password_params: Argon2Params,
        validator: RequirementValidator | None = None,
        limiter: RateLimiter[RateLimitKey] | None = None,
        session_duration: timedelta = SESSION_DURATION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._password_params = password_params
        self._validator = validator or RequirementValidator()
        self._limiter = limiter or RateLimiter(5, timedelta(minutes=5))
        self._session_duration = session_duration
        self._clock = clock

    @property
    def limiter(self) -> RateLimiter[RateLimitKey]:
        return self._limiter

    async def find_by_identity(self, identity: Identity) -> AccountRecord | None:
        account, _ = await self._resolve(identity)
        return account

    async def find_by_id(self, account_id: str) -> AccountRecord | None:
        return await self._store.find_by_id(account_id)

    async def find_by_username(self, username: str) -> AccountRecord | None:
        return await self._store.find_by_username(normalize_username(username))

    async def find_by_discord_id(self, discord_id: int) -> AccountRecord | None:
        return await self._store.find_by_discord_id(discord_id)

    async def update_by_id(self, account_id: str, updater: AccountUpdater) -> bool:
        """Apply ``updater`` to the account and save it. False when there is no such account."""

        account = await self._store.find_by_id(account_id)
        return await self._apply(account, updater)

    async def update_by_identity(self, identity: Identity, updater: AccountUpdater) -> bool:
        account, _ = await self._resolve(identity)
        return await self._apply(account, updater)

    async def register(self, username: str, password: str, identity: Identity) -> AccountOperationResult:
        if self._is_rate_limited("register", identity):
            return RateLimit()

        normalized = normalize_username(username)

        if await self._store.find_by_username(normalized) is not None:
            return AlreadyRegistered()

        if await self._store.find_legacy_by_username(normalized) is not None:
            return InvalidUsername([LegacyUsername(normalized)])

        missing_password = self._validator.missing_password_requirements(password)
        if missing_password:
            return InvalidPassword(missing_password)

        missing_username = self._validator.missing_username_requirements(normalized)
        if missing_username:
            return InvalidUsername(missing_username)

        account = AccountRecord(
            username=normalized,
            password=await self._hash(password),
            created_at=self._clock(),
        )
        try:
            await self._store.save(account)
        except DuplicateAccountError:
            logger.info("Lost registration race for username %s", normalized)
            return AlreadyRegistered()

        logger.info("Registered account %s (%s)", account.id, normalized)
        return Success()

    async def login(self, username: str, password: str, identity: Identity) -> AccountOperationResult:
        if self._is_rate_limited("login", identity):
            return RateLimit()

        account = await self._store.find_by_username(normalize_username(username))
        if account is None:
            return NotRegistered()

        if not await self._verify(password, account.password):
            return WrongPassword()

        now = self._clock()
        account.prune_sessions(now)
        account.sessions[await self._token(identity)] = now + self._session_duration
        await self._store.save(account)

        logger.info("Account %s logged in", account.id)
        return Success()

    async def logout(self, identity: Identity, all: bool = False) -> None:
        account, token = await self._resolve(identity)
        if account is None:
            return
        if all:
            account.sessions.clear()
        else:
            account.sessions.pop(token, None)
        await self._store.save(account)
        logger.info("Account %s logged out (all sessions: %s)", account.id, all)

    async def refresh(self, identity: Identity) -> None:
        account, token = await self._resolve(identity)
        if account is None:
            return
        now = self._clock()
        account.prune_sessions(now)
        account.sessions[token] = now + self._session_duration
        await self._store.save(account)

    async def migrate(
        self,
        old_username: str,
        new_username: str,
        password: str,
        identity: Identity,
    ) -> AccountOperationResult:
        if self._is_rate_limited("migrate", identity):
            return RateLimit()

        old_normalized = normalize_username(old_username)
        legacy = await self._store.find_legacy_by_username(old_normalized)
        if legacy is None:
            return NotRegistered()

        if not await self._verify(password, legacy.password):
            return WrongPassword()

        normalized = normalize_username(new_username)
        existing = await self._store.find_by_username(normalized)
        if existing is not None:
            if existing.migrated_from == legacy.id:
                # An earlier attempt created the account but never removed the legacy record.
                await self._store.delete_legacy_by_id(legacy.id)
                logger.warning("Completed interrupted migration of legacy account into %s", existing.id)
                return Success()
            return AlreadyRegistered()

        if normalized != old_normalized and await self._store.find_legacy_by_username(normalized) is not None:
            return InvalidUsername([LegacyUsername(normalized)])

        missing = self._validator.missing_username_requirements(normalized)
        if missing:
            return InvalidUsername(missing)

        account = AccountRecord(
            username=normalized,
            password=await self._hash(password),
            playtime=legacy.playtime,
            games=legacy.games,
            achievements={achievement.lower() for achievement in legacy.achievements},
            migrated_from=legacy.id,
            created_at=self._clock(),
        )
        if legacy.verified:
            account.mark_verified()
        try:
            await self._store.save(account)
        except DuplicateAccountError:
            return AlreadyRegistered()

        # Not atomic with the save above; a retry finishes the job through migrated_from.
        await self._store.delete_legacy_by_id(legacy.id)

        logger.info("Migrated legacy account into %s (%s)", account.id, normalized)
        return Success()

    async def change_password(
        self,
        old_password: str,
        new_password: str,
        identity: Identity,
    ) -> AccountOperationResult:
        if self._is_rate_limited("change_password", identity):
            return RateLimit()

        account, _ = await self._resolve(identity)
        if account is None:
            return NotLogged()

        if not await self._verify(old_password, account.password):
            return WrongPassword()

        missing = self._validator.missing_password_requirements(new_password)
        if missing:
            return InvalidPassword(missing)

        account.password = await self._hash(new_password)
        await self._store.save(account)

        logger.info("Account %s changed its password", account.id)
        return Success()

    async def _resolve(self, identity: Identity) -> tuple[AccountRecord | None, str]:
        token = await self._token(identity)
        return await self._store.find_by_session_token(token), token

    async def _apply(self, account: AccountRecord | None, updater: AccountUpdater) -> bool:
        if account is None:
            return False
        outcome: Any = updater(account)
        if inspect.isawaitable(outcome):
            await outcome
        await self._store.save(account)
        return True

    async def _token(self, identity: Identity) -> str:
        return await asyncio.to_thread(self._tokens.derive, identity.uuid, identity.usid)

    async def _hash(self, password: str) -> HashRecord:
        return await asyncio.to_thread(PasswordHasher.hash, password, self._password_params)

    async def _verify(self, password: str, record: HashRecord) -> bool:
        return await asyncio.to_thread(PasswordHasher.verify, password, record)

    def _is_rate_limited(self, operation: str, identity: Identity) -> bool:
        return not self._limiter.check_and_increment((operation, identity.address))
