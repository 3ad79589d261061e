"""Discord verification endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from bastion.core.dependencies import get_discord_verifier, get_verification, get_verified_notices, require_api_key
from bastion.schemas.account import IdentityRequest
from bastion.schemas.verification import (
    DiscordSubmitRequest,
    DiscordSubmitResponse,
    NoticeResponse,
    VerificationResponse,
)
from bastion.services.discord_link import Accepted, AlreadyLinked, DiscordVerifier, describe_discord_result
from bastion.services.verification import (
    AlreadyVerified,
    NotLogged,
    VerificationCoordinator,
    VerifiedNotices,
    describe_verification,
)

router = APIRouter(prefix="/verification", tags=["verification"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=VerificationResponse)
async def request_verification(
    payload: IdentityRequest,
    response: Response,
    coordinator: VerificationCoordinator = Depends(get_verification),
) -> VerificationResponse:
    result = await coordinator.request(payload.identity)
    message = describe_verification(result)
    if isinstance(result, NotLogged):
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return VerificationResponse(result="not_logged", message=message)
    if isinstance(result, AlreadyVerified):
        response.status_code = status.HTTP_409_CONFLICT
        return VerificationResponse(result="already_verified", message=message)
    return VerificationResponse(result="pending", message=message, code=result.code, reissued=result.reissued)


@router.post("/discord", response_model=DiscordSubmitResponse)
async def submit_discord_code(
    payload: DiscordSubmitRequest,
    response: Response,
    verifier: DiscordVerifier = Depends(get_discord_verifier),
) -> DiscordSubmitResponse:
    """Answer a pending request on behalf of a bot running in another process."""

    result = await verifier.submit(payload.discord_id, payload.code)
    message = describe_discord_result(result)
    if isinstance(result, Accepted):
        return DiscordSubmitResponse(result="accepted", message=message, account_id=result.account_id)
    if isinstance(result, AlreadyLinked):
        response.status_code = status.HTTP_409_CONFLICT
        return DiscordSubmitResponse(result="already_linked", message=message)
    response.status_code = status.HTTP_404_NOT_FOUND
    return DiscordSubmitResponse(result="invalid_code", message=message)


@router.post("/notices", response_model=NoticeResponse)
async def collect_notice(
    payload: IdentityRequest,
    notices: VerifiedNotices = Depends(get_verified_notices),
) -> NoticeResponse:
    """Hand over a pending "verified" notice for the player, at most once."""

    return NoticeResponse(message=notices.collect(payload.identity.uuid))
