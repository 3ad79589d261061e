"""Publish/subscribe messengers connecting the game servers and the bot."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

import httpx
from pydantic import ValidationError

from bastion.core.security import MessageSigner
from bastion.schemas.messages import MESSAGE_TYPES, Message

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Message)

Handler = Callable[[M], Awaitable[None]]


class ChannelUnavailable(RuntimeError):
    """Raised when a message could not be handed to a peer."""


class Messenger(Protocol):
    async def publish(self, message: Message, local: bool = False) -> None:
        ...

    def subscribe(self, message_type: type[M], handler: Handler[M]) -> None:
        ...


class LocalMessenger:
    """In-process bus. Every publication reaches every subscriber of its type."""

    def __init__(self) -> None:
        self._handlers: dict[type[Message], list[Handler]] = defaultdict(list)

    def subscribe(self, message_type: type[M], handler: Handler[M]) -> None:
        self._handlers[message_type].append(handler)
        logger.debug("Subscribed %s to %s messages", getattr(handler, "__qualname__", handler), message_type.topic)

    async def publish(self, message: Message, local: bool = False) -> None:
        await self.dispatch(message)

    async def dispatch(self, message: Message) -> None:
        for handler in list(self._handlers.get(type(message), ())):
            try:
                await handler(message)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Handler for %s message failed: %s", message.topic, exc)


class WebhookMessenger(LocalMessenger):
    """Deliver publications to peer processes as signed HTTP posts.

    Peers receive the envelope on ``/api/messages`` and feed it to
    ``receive``. Same-process subscribers only see a publication when it is
    made with ``local=True``, and only once every peer has accepted it.
    """

    def __init__(
        self,
        peers: Sequence[str],
        signer: MessageSigner,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._peers = list(peers)
        self._signer = signer
        self._timeout = timeout
        self._transport = transport

    async def publish(self, message: Message, local: bool = False) -> None:
        await self._post(message)
        if local:
            await self.dispatch(message)

    async def _post(self, message: Message) -> None:
        if not self._peers:
            return
        token = self._signer.dumps({"topic": message.topic, "payload": message.model_dump(mode="json")})
        failures = []
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for peer in self._peers:
                try:
                    response = await client.post(peer, json={"token": token})
                except httpx.HTTPError as exc:
                    failures.append(f"{peer}: {exc}")
                    continue
                if response.status_code >= 400:
                    failures.append(f"{peer}: HTTP {response.status_code}")
        if failures:
            logger.error("Failed to deliver %s message to %s", message.topic, ", ".join(failures))
            raise ChannelUnavailable(f"Could not reach {len(failures)} peer(s)")

    def decode(self, token: str) -> Message:
        """Verify and parse an inbound envelope, raising ``ValueError`` when invalid."""

        data = self._signer.loads(token)
        message_type = MESSAGE_TYPES.get(data.get("topic", ""))
        if message_type is None:
            raise ValueError(f"Unknown message topic {data.get('topic')!r}")
        try:
            return message_type.model_validate(data.get("payload", {}))
        except ValidationError as exc:
            raise ValueError(f"Invalid {message_type.topic} payload") from exc

    async def receive(self, token: str) -> Message:
        message = self.decode(token)
        await self.dispatch(message)
        return message
