from __future__ import annotations

import json

import httpx
import pytest

from bastion.core.security import MessageSigner
from bastion.schemas.messages import PunishmentMessage, PunishmentMessageType, VerificationMessage
from bastion.services.messenger import ChannelUnavailable, LocalMessenger, WebhookMessenger

REQUEST = VerificationMessage(account_id="abc", player_uuid="device-one", code=1234)


async def test_local_messenger_delivers_by_type():
    messenger = LocalMessenger()
    verifications, punishments = [], []

    async def on_verification(message):
        verifications.append(message)

    async def on_punishment(message):
        punishments.append(message)

    messenger.subscribe(VerificationMessage, on_verification)
    messenger.subscribe(PunishmentMessage, on_punishment)
    await messenger.publish(REQUEST)

    assert verifications == [REQUEST]
    assert punishments == []


async def test_failing_handler_does_not_stop_delivery():
    messenger = LocalMessenger()
    received = []

    async def broken(message):
        raise RuntimeError("boom")

    async def working(message):
        received.append(message)

    messenger.subscribe(VerificationMessage, broken)
    messenger.subscribe(VerificationMessage, working)
    await messenger.publish(REQUEST)

    assert received == [REQUEST]


async def test_webhook_messenger_posts_signed_envelopes():
    posted = []

    def handler(request: httpx.Request) -> httpx.Response:
        posted.append((str(request.url), json.loads(request.content)))
        return httpx.Response(202)

    signer = MessageSigner("secret")
    messenger = WebhookMessenger(
        ["http://peer-a/api/messages", "http://peer-b/api/messages"],
        signer,
        transport=httpx.MockTransport(handler),
    )
    local = []

    async def on_verification(message):
        local.append(message)

    messenger.subscribe(VerificationMessage, on_verification)

    await messenger.publish(REQUEST)
    assert local == []
    await messenger.publish(REQUEST, local=True)
    assert local == [REQUEST]

    assert [url for url, _ in posted] == ["http://peer-a/api/messages", "http://peer-b/api/messages"] * 2
    assert signer.loads(posted[0][1]["token"]) == {"topic": "verification", "payload": REQUEST.model_dump(mode="json")}


async def test_webhook_messenger_reports_unreachable_peers():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down":
            raise httpx.ConnectError("refused", request=request)
        if request.url.host == "broken":
            return httpx.Response(500)
        return httpx.Response(202)

    messenger = WebhookMessenger(
        ["http://up/api/messages", "http://down/api/messages", "http://broken/api/messages"],
        MessageSigner("secret"),
        transport=httpx.MockTransport(handler),
    )
    local = []

    async def on_verification(message):
        local.append(message)

    messenger.subscribe(VerificationMessage, on_verification)

    with pytest.raises(ChannelUnavailable):
        await messenger.publish(REQUEST)
    with pytest.raises(ChannelUnavailable):
        await messenger.publish(REQUEST, local=True)
    assert local == []


async def test_receive_verifies_and_dispatches():
    signer = MessageSigner("secret")
    sender = WebhookMessenger([], signer)
    receiver = WebhookMessenger([], signer)
    received = []

    async def on_punishment(message):
        received.append(message)

    receiver.subscribe(PunishmentMessage, on_punishment)
    message = PunishmentMessage(author="mod", type=PunishmentMessageType.PARDON, punishment_id="p1")
    token = signer.dumps({"topic": message.topic, "payload": message.model_dump(mode="json")})

    assert await receiver.receive(token) == message
    assert received == [message]
    assert sender.decode(token) == message


@pytest.mark.parametrize(
    "data",
    [
        {"topic": "unknown", "payload": {}},
        {"topic": "verification", "payload": {"account_id": "abc"}},
        {"topic": "verification", "payload": {"account_id": "abc", "player_uuid": "x", "code": 12}},
    ],
)
def test_decode_rejects_invalid_envelopes(data):
    signer = MessageSigner("secret")

    with pytest.raises(ValueError):
        WebhookMessenger([], signer).decode(signer.dumps(data))


def test_decode_rejects_foreign_signatures():
    token = MessageSigner("other").dumps({"topic": "verification", "payload": REQUEST.model_dump(mode="json")})

    with pytest.raises(ValueError):
        WebhookMessenger([], MessageSigner("secret")).decode(token)
