"""Bot side of the verification handshake."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from bastion.schemas.messages import VerificationMessage
from bastion.services.accounts import AccountManager
from bastion.services.cache import ExpiringCache
from bastion.services.messenger import Messenger
from bastion.services.verification import VERIFICATION_TTL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    account_id: str


@dataclass(frozen=True)
class InvalidCode:
    pass


@dataclass(frozen=True)
class AlreadyLinked:
    pass


DiscordVerificationResult = Union[Accepted, InvalidCode, AlreadyLinked]


class DiscordVerifier:
    """Remember requests published by game servers and answer them when a code is submitted.

    Requests are keyed by code, so if two players hold the same code at the
    same time only the most recent request can be answered.
    """

    def __init__(
        self,
        accounts: AccountManager,
        messenger: Messenger,
        requests: ExpiringCache[int, VerificationMessage] | None = None,
    ) -> None:
        self._accounts = accounts
        self._messenger = messenger
        self._requests = requests if requests is not None else ExpiringCache(VERIFICATION_TTL)

    @property
    def requests(self) -> ExpiringCache[int, VerificationMessage]:
        return self._requests

    def start(self) -> None:
        self._messenger.subscribe(VerificationMessage, self.on_message)

    async def on_message(self, message: VerificationMessage) -> None:
        if message.response:
            return
        self._requests.put(message.code, message)

    async def submit(self, discord_id: int, code: int) -> DiscordVerificationResult:
        linked = await self._accounts.find_by_discord_id(discord_id)
        if linked is not None and linked.verified:
            return AlreadyLinked()

        request = self._requests.get(code)
        if request is None or not self._requests.pop_if(code, request):
            return InvalidCode()

        await self._messenger.publish(
            request.model_copy(update={"response": True, "discord_id": discord_id}),
            local=True,
        )
        logger.info("Discord user %s answered verification for account %s", discord_id, request.account_id)
        return Accepted(request.account_id)


def describe_discord_result(result: DiscordVerificationResult) -> str:
    if isinstance(result, Accepted):
        return "Your Discord account is now linked, you can go back in game."
    if isinstance(result, AlreadyLinked):
        return "Your Discord account is already linked to a verified account."
    return "This code is invalid or has expired, request a new one in game."
