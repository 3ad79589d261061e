"""Wire the account, verification and moderation services from settings."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from bastion.core.config import Settings
from bastion.core.security import MessageSigner, SessionTokenDeriver
from bastion.db.session import create_engine, create_session_factory
from bastion.services.accounts import AccountManager
from bastion.services.cache import ExpiringCache
from bastion.services.discord_link import DiscordVerifier
from bastion.services.messenger import LocalMessenger, WebhookMessenger
from bastion.services.punishments import PunishmentManager
from bastion.services.rate_limiter import RateLimiter
from bastion.services.requirements import RequirementValidator
from bastion.services.store import SqlAccountStore, SqlPunishmentStore
from bastion.services.verification import VerificationCoordinator, VerifiedNotices

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    settings: Settings
    engine: AsyncEngine
    account_store: SqlAccountStore
    punishment_store: SqlPunishmentStore
    messenger: LocalMessenger
    accounts: AccountManager
    verification: VerificationCoordinator
    notices: VerifiedNotices
    discord: DiscordVerifier
    punishments: PunishmentManager

    def start(self) -> None:
        """Subscribe the message handlers. Call once per process."""

        self.verification.start()
        self.discord.start()

    async def close(self) -> None:
        await self.engine.dispose()


def build_messenger(settings: Settings) -> LocalMessenger:
    if settings.messenger_peers or settings.messenger_accept_inbound:
        logger.info("Publishing messages to %d peer(s)", len(settings.messenger_peers))
        return WebhookMessenger(
            settings.messenger_peers,
            MessageSigner(settings.secret_key),
            timeout=settings.messenger_timeout_seconds,
        )
    return LocalMessenger()


def build_services(settings: Settings, messenger: LocalMessenger | None = None) -> Services:
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    tokens = SessionTokenDeriver(settings.session_token_hash)
    messenger = messenger if messenger is not None else build_messenger(settings)
    verification_ttl = timedelta(seconds=settings.verification_ttl_seconds)

    account_store = SqlAccountStore(session_factory, tokens)
    punishment_store = SqlPunishmentStore(session_factory)
    accounts = AccountManager(
        account_store,
        tokens,
        settings.password_hash,
        validator=RequirementValidator.with_names(settings.reserved_usernames, settings.blacklisted_words),
        limiter=RateLimiter(settings.rate_limit_attempts, timedelta(seconds=settings.rate_limit_window_seconds)),
        session_duration=timedelta(days=settings.session_duration_days),
    )
    verification = VerificationCoordinator(accounts, messenger, pending=ExpiringCache(verification_ttl))
    notices = VerifiedNotices(ExpiringCache(verification_ttl))
    verification.add_listener(notices.on_verified)
    return Services(
        settings=settings,
        engine=engine,
        account_store=account_store,
        punishment_store=punishment_store,
        messenger=messenger,
        accounts=accounts,
        verification=verification,
        notices=notices,
        discord=DiscordVerifier(accounts, messenger, requests=ExpiringCache(verification_ttl)),
        punishments=PunishmentManager(punishment_store, messenger),
    )
