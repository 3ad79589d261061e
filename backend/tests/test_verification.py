from __future__ import annotations

from datetime import timedelta
from itertools import count

import httpx
import pytest

from bastion.core.security import MessageSigner
from bastion.schemas.account import Role
from bastion.schemas.messages import VerificationMessage
from bastion.services.cache import ExpiringCache
from bastion.services.discord_link import Accepted, AlreadyLinked, DiscordVerifier, InvalidCode
from bastion.services.messenger import ChannelUnavailable, LocalMessenger, WebhookMessenger
from bastion.services.verification import (
    VERIFIED_NOTICE,
    AlreadyVerified,
    NotLogged,
    VerificationCoordinator,
    VerificationPending,
    VerifiedNotices,
    describe_verification,
    generate_code,
)

PASSWORD = "Str0ng!Pass"


class RecordingMessenger(LocalMessenger):
    def __init__(self) -> None:
        super().__init__()
        self.published = []

    async def publish(self, message, local=False):
        self.published.append((message, local))
        await super().publish(message, local)


@pytest.fixture
def recording() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def pending(monotonic) -> ExpiringCache:
    return ExpiringCache(timedelta(minutes=10), clock=monotonic)


@pytest.fixture
def coordinator(manager, recording, pending) -> VerificationCoordinator:
    codes = count(1234)
    coordinator = VerificationCoordinator(manager, recording, pending=pending, code_factory=lambda: next(codes))
    coordinator.start()
    return coordinator


@pytest.fixture
async def account(manager, identity):
    await manager.register("alice", PASSWORD, identity)
    await manager.login("alice", PASSWORD, identity)
    return await manager.find_by_identity(identity)


def response_for(message: VerificationMessage, code: int | None = None, discord_id: int = 42) -> VerificationMessage:
    return message.model_copy(update={"response": True, "code": code or message.code, "discord_id": discord_id})


def test_generated_codes_have_four_digits():
    assert all(1000 <= generate_code() <= 9999 for _ in range(500))


async def test_request_requires_login(coordinator, identity, recording):
    assert await coordinator.request(identity) == NotLogged()
    assert recording.published == []


async def test_request_publishes_pending_code(coordinator, account, identity, recording):
    result = await coordinator.request(identity)

    assert result == VerificationPending(1234)
    message, local = recording.published[0]
    assert local is True
    assert message == VerificationMessage(account_id=account.id, player_uuid=identity.uuid, code=1234)
    assert "1234" in describe_verification(result)


async def test_repeated_request_shows_same_code(coordinator, account, identity, recording):
    first = await coordinator.request(identity)
    second = await coordinator.request(identity)

    assert second == VerificationPending(first.code, reissued=True)
    assert len(recording.published) == 1


async def test_new_code_after_expiry(coordinator, account, identity, monotonic):
    await coordinator.request(identity)
    monotonic.advance(600)

    assert await coordinator.request(identity) == VerificationPending(1235)


async def test_matching_response_verifies_once(coordinator, manager, account, identity, recording):
    verified = []

    async def listener(record, message):
        verified.append((record.id, message.player_uuid))

    coordinator.add_listener(listener)
    await coordinator.request(identity)
    request = recording.published[0][0]

    await coordinator.on_message(response_for(request))
    await coordinator.on_message(response_for(request))

    updated = await manager.find_by_id(account.id)
    assert updated.verified
    assert updated.discord_id == 42
    assert Role.VERIFIED in updated.roles
    assert verified == [(account.id, identity.uuid)]
    assert await coordinator.request(identity) == AlreadyVerified()


async def test_wrong_or_late_codes_are_ignored(coordinator, manager, account, identity, recording, monotonic):
    await coordinator.request(identity)
    request = recording.published[0][0]

    await coordinator.on_message(response_for(request, code=9999))
    assert not (await manager.find_by_id(account.id)).verified

    monotonic.advance(600)
    await coordinator.on_message(response_for(request))
    assert not (await manager.find_by_id(account.id)).verified


async def test_requests_are_not_treated_as_responses(coordinator, manager, account, identity, recording):
    await coordinator.request(identity)
    request = recording.published[0][0]

    await coordinator.on_message(request)

    assert not (await manager.find_by_id(account.id)).verified
    assert coordinator.pending.get(account.id) == request.code


async def test_failed_publish_forgets_code(manager, account, identity, pending):
    class Down(LocalMessenger):
        async def publish(self, message, local=False):
            raise ChannelUnavailable("down")

    coordinator = VerificationCoordinator(manager, Down(), pending=pending)

    with pytest.raises(ChannelUnavailable):
        await coordinator.request(identity)
    assert coordinator.pending.get(account.id) is None


async def test_unreachable_peer_leaves_no_code_on_either_side(manager, account, identity, pending, monotonic):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    messenger = WebhookMessenger(
        ["http://peer/api/messages"], MessageSigner("secret"), transport=httpx.MockTransport(refuse)
    )
    coordinator = VerificationCoordinator(manager, messenger, pending=pending, code_factory=lambda: 4321)
    verifier = DiscordVerifier(manager, messenger, requests=ExpiringCache(timedelta(minutes=10), clock=monotonic))
    coordinator.start()
    verifier.start()

    with pytest.raises(ChannelUnavailable):
        await coordinator.request(identity)

    assert coordinator.pending.get(account.id) is None
    assert verifier.requests.get(4321) is None
    assert await verifier.submit(77, 4321) == InvalidCode()


async def test_listener_failure_does_not_undo_verification(coordinator, manager, account, identity, recording):
    async def broken(record, message):
        raise RuntimeError("player left")

    coordinator.add_listener(broken)
    await coordinator.request(identity)

    await coordinator.on_message(response_for(recording.published[0][0]))

    assert (await manager.find_by_id(account.id)).verified


async def test_verified_player_gets_one_notice(coordinator, manager, account, identity, recording, monotonic):
    notices = VerifiedNotices(ExpiringCache(timedelta(minutes=10), clock=monotonic))
    coordinator.add_listener(notices.on_verified)
    await coordinator.request(identity)

    assert notices.collect(identity.uuid) is None
    await coordinator.on_message(response_for(recording.published[0][0]))

    assert notices.collect(identity.uuid) == VERIFIED_NOTICE
    assert notices.collect(identity.uuid) is None


async def test_round_trip_through_discord_verifier(coordinator, manager, account, identity, recording, monotonic):
    verifier = DiscordVerifier(manager, recording, requests=ExpiringCache(timedelta(minutes=10), clock=monotonic))
    verifier.start()

    pending = await coordinator.request(identity)

    assert await verifier.submit(77, 9999) == InvalidCode()
    assert await verifier.submit(77, pending.code) == Accepted(account.id)
    assert await verifier.submit(78, pending.code) == InvalidCode()

    updated = await manager.find_by_id(account.id)
    assert updated.verified
    assert updated.discord_id == 77
    assert await verifier.submit(77, 1000) == AlreadyLinked()


async def test_discord_verifier_drops_expired_requests(manager, account, identity, recording, monotonic):
    verifier = DiscordVerifier(manager, recording, requests=ExpiringCache(timedelta(minutes=10), clock=monotonic))
    await verifier.on_message(VerificationMessage(account_id=account.id, player_uuid=identity.uuid, code=4321))

    monotonic.advance(600)

    assert await verifier.submit(77, 4321) == InvalidCode()
    assert recording.published == []


async def test_discord_id_already_used_by_another_account(
    coordinator, manager, account, identity, other_identity, recording
):
    await manager.register("bob", PASSWORD, other_identity)
    bob = await manager.find_by_username("bob")
    await manager.update_by_id(bob.id, lambda record: setattr(record, "discord_id", 42))

    await coordinator.request(identity)
    await coordinator.on_message(response_for(recording.published[0][0], discord_id=42))

    assert not (await manager.find_by_id(account.id)).verified
