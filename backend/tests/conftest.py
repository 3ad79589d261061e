from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bastion.core.security import Argon2Params, SessionTokenDeriver, hash_legacy_username
from bastion.db.session import create_engine, create_schema, create_session_factory
from bastion.schemas.account import AccountRecord, Identity, LegacyAccountRecord
from bastion.services.accounts import AccountManager
from bastion.services.messenger import LocalMessenger
from bastion.services.rate_limiter import RateLimiter
from bastion.services.store import DuplicateAccountError

# Smallest parameters argon2 accepts, hashing stays fast in tests.
CHEAP_ARGON2 = Argon2Params(memory=8, iterations=1, parallelism=1, length=16, salt_length=8)


class FakeClock:
    """Wall clock returning a fixed, manually advanced UTC time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class InMemoryAccountStore:
    """Dictionary backed account store with the same uniqueness rules as the SQL one."""

    def __init__(self, tokens: SessionTokenDeriver, clock: FakeClock) -> None:
        self._tokens = tokens
        self._clock = clock
        self.accounts: dict[str, AccountRecord] = {}
        self.legacy: dict[str, LegacyAccountRecord] = {}
        self.saves = 0

    async def find_by_id(self, account_id):
        account = self.accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def find_by_username(self, username):
        return self._first(lambda account: account.username == username)

    async def find_by_discord_id(self, discord_id):
        return self._first(lambda account: account.discord_id == discord_id)

    async def find_by_identity(self, identity):
        return await self.find_by_session_token(self._tokens.derive(identity.uuid, identity.usid))

    async def find_by_session_token(self, token):
        now = self._clock()
        return self._first(lambda account: account.sessions.get(token, now) > now)

    async def save(self, account):
        for other in self.accounts.values():
            if other.id == account.id:
                continue
            if other.username == account.username:
                raise DuplicateAccountError("username")
            if account.discord_id is not None and other.discord_id == account.discord_id:
                raise DuplicateAccountError("discord_id")
        for other in self.accounts.values():
            if other.id != account.id:
                for token in account.sessions:
                    other.sessions.pop(token, None)
        self.accounts[account.id] = account.model_copy(deep=True)
        self.saves += 1

    async def find_legacy_by_username(self, username):
        legacy = self.legacy.get(hash_legacy_username(username))
        return legacy.model_copy(deep=True) if legacy else None

    async def save_legacy(self, legacy):
        self.legacy[legacy.id] = legacy.model_copy(deep=True)

    async def delete_legacy_by_id(self, legacy_id):
        self.legacy.pop(legacy_id, None)

    async def prune_expired_sessions(self, now):
        removed = 0
        for account in self.accounts.values():
            before = len(account.sessions)
            account.prune_sessions(now)
            removed += before - len(account.sessions)
        return removed

    def _first(self, predicate):
        for account in self.accounts.values():
            if predicate(account):
                return account.model_copy(deep=True)
        return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def tokens() -> SessionTokenDeriver:
    return SessionTokenDeriver(CHEAP_ARGON2)


@pytest.fixture
def store(tokens, clock) -> InMemoryAccountStore:
    return InMemoryAccountStore(tokens, clock)


@pytest.fixture
def manager(store, tokens, clock) -> AccountManager:
    return AccountManager(store, tokens, CHEAP_ARGON2, limiter=RateLimiter(1000, timedelta(minutes=5)), clock=clock)


@pytest.fixture
def messenger() -> LocalMessenger:
    return LocalMessenger()


@pytest.fixture
def identity() -> Identity:
    return Identity(uuid="device-one", usid="session-secret-one", address="10.0.0.1")


@pytest.fixture
def other_identity() -> Identity:
    return Identity(uuid="device-two", usid="session-secret-two", address="10.0.0.2")


@pytest.fixture
async def session_factory():
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()
