"""Link in-game accounts to Discord users through short numeric codes.

The game server and the bot never call each other. The game server publishes
a `VerificationMessage` carrying a pending code; the bot answers with the
same message flagged as a response once a Discord user submits that code.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Union

from bastion.schemas.account import AccountRecord, Identity
from bastion.schemas.messages import VerificationMessage
from bastion.services.accounts import AccountManager
from bastion.services.cache import ExpiringCache
from bastion.services.messenger import Messenger
from bastion.services.store import DuplicateAccountError

logger = logging.getLogger(__name__)

VERIFICATION_TTL = timedelta(minutes=10)

VerifiedListener = Callable[[AccountRecord, VerificationMessage], Awaitable[None]]


def generate_code() -> int:
    """Uniformly random code in 1000..9999."""

    return 1000 + secrets.randbelow(9000)


@dataclass(frozen=True)
class VerificationPending:
    code: int
    reissued: bool = False  # True when an earlier, still valid code is shown again


@dataclass(frozen=True)
class AlreadyVerified:
    pass


@dataclass(frozen=True)
class NotLogged:
    pass


VerificationResult = Union[VerificationPending, AlreadyVerified, NotLogged]


class VerificationCoordinator:
    """Issue codes on the game server side and accept the bot's responses."""

    def __init__(
        self,
        accounts: AccountManager,
        messenger: Messenger,
        pending: ExpiringCache[str, int] | None = None,
        code_factory: Callable[[], int] = generate_code,
    ) -> None:
        self._accounts = accounts
        self._messenger = messenger
        self._pending = pending if pending is not None else ExpiringCache(VERIFICATION_TTL)
        self._code_factory = code_factory
        self._listeners: list[VerifiedListener] = []

    @property
    def pending(self) -> ExpiringCache[str, int]:
        return self._pending

    def start(self) -> None:
        self._messenger.subscribe(VerificationMessage, self.on_message)

    def add_listener(self, listener: VerifiedListener) -> None:
        self._listeners.append(listener)

    async def request(self, identity: Identity) -> VerificationResult:
        account = await self._accounts.find_by_identity(identity)
        if account is None:
            return NotLogged()
        if account.verified:
            return AlreadyVerified()

        code, created = self._pending.setdefault(account.id, self._code_factory())
        if not created:
            return VerificationPending(code, reissued=True)

        try:
            await self._messenger.publish(
                VerificationMessage(account_id=account.id, player_uuid=identity.uuid, code=code),
                local=True,
            )
        except Exception:
            # Without a delivered request the bot can never accept this code.
            self._pending.invalidate(account.id)
            raise

        logger.info("Issued verification code for account %s", account.id)
        return VerificationPending(code)

    async def on_message(self, message: VerificationMessage) -> None:
        if not message.response:
            return
        if not self._pending.pop_if(message.account_id, message.code):
            logger.debug("Ignored stale or mismatched verification response for %s", message.account_id)
            return

        verified: list[AccountRecord] = []

        def mark(account: AccountRecord) -> None:
            account.mark_verified(message.discord_id)
            verified.append(account)

        try:
            found = await self._accounts.update_by_id(message.account_id, mark)
        except DuplicateAccountError:
            logger.warning("Discord user %s is already linked to another account", message.discord_id)
            return
        if not found:
            logger.warning("Verified account %s no longer exists", message.account_id)
            return

        logger.info("Account %s verified", message.account_id)
        for listener in list(self._listeners):
            try:
                await listener(verified[0], message)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Verification listener failed: %s", exc)


VERIFIED_NOTICE = "You have been verified!"


class VerifiedNotices:
    """Hold the "verified" notice for a player until their game server collects it.

    Registered as a coordinator listener. Notices are keyed by the player's
    device id and expire like the codes do.
    """

    def __init__(self, notices: ExpiringCache[str, str] | None = None) -> None:
        self._notices = notices if notices is not None else ExpiringCache(VERIFICATION_TTL)

    @property
    def notices(self) -> ExpiringCache[str, str]:
        return self._notices

    async def on_verified(self, account: AccountRecord, message: VerificationMessage) -> None:
        self._notices.put(message.player_uuid, VERIFIED_NOTICE)

    def collect(self, player_uuid: str) -> str | None:
        notice = self._notices.get(player_uuid)
        if notice is None or not self._notices.pop_if(player_uuid, notice):
            return None
        return notice


def describe_verification(result: VerificationResult) -> str:
    """Player-facing text for a verification request."""

    if isinstance(result, NotLogged):
        return "You are not logged in!"
    if isinstance(result, AlreadyVerified):
        return "Your account is already verified."
    if result.reissued:
        return (
            "You already have a pending verification.\n"
            f"Run the verify command in the Discord bot channel with the code {result.code}."
        )
    return (
        "To go forward with the verification process, you need to verify yourself with Discord.\n"
        f"Run the verify command in the Discord bot channel with the code {result.code}.\n"
        "The code will expire in 10 minutes."
    )
