"""Account endpoints used by the game servers."""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Response, status

from bastion.core.dependencies import get_account_manager, require_api_key
from bastion.schemas.account import (
    AccountRead,
    IdentityRequest,
    LoginRequest,
    LogoutRequest,
    MigrateRequest,
    OperationResponse,
    PasswordChangeRequest,
    RegisterRequest,
    StatsUpdateRequest,
)
from bastion.services.accounts import AccountManager
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
    describe_result,
    result_name,
)

router = APIRouter(prefix="/accounts", tags=["accounts"], dependencies=[Depends(require_api_key)])

RESULT_STATUS = {
    Success: status.HTTP_200_OK,
    AlreadyRegistered: status.HTTP_409_CONFLICT,
    NotRegistered: status.HTTP_404_NOT_FOUND,
    NotLogged: status.HTTP_401_UNAUTHORIZED,
    WrongPassword: status.HTTP_401_UNAUTHORIZED,
    InvalidPassword: 422,
    InvalidUsername: 422,
    RateLimit: status.HTTP_429_TOO_MANY_REQUESTS,
}


def _to_response(result: AccountOperationResult, response: Response) -> OperationResponse:
    response.status_code = RESULT_STATUS[type(result)]
    return OperationResponse(
        result=result_name(result),
        message=describe_result(result),
        missing=[str(requirement) for requirement in getattr(result, "missing", [])],
    )


@router.post("/register", response_model=OperationResponse)
async def register(
    payload: RegisterRequest,
    response: Response,
    manager: AccountManager = Depends(get_account_manager),
) -> OperationResponse:
    result = await manager.register(payload.username, payload.password, payload.identity)
    return _to_response(result, response)


@router.post("/login", response_model=OperationResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    manager: AccountManager = Depends(get_account_manager),
) -> OperationResponse:
    result = await manager.login(payload.username, payload.password, payload.identity)
    return _to_response(result, response)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(payload: LogoutRequest, manager: AccountManager = Depends(get_account_manager)) -> Response:
    await manager.logout(payload.identity, all=payload.all)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh(payload: IdentityRequest, manager: AccountManager = Depends(get_account_manager)) -> Response:
    await manager.refresh(payload.identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/migrate", response_model=OperationResponse)
async def migrate(
    payload: MigrateRequest,
    response: Response,
    manager: AccountManager = Depends(get_account_manager),
) -> OperationResponse:
    result = await manager.migrate(payload.old_username, payload.new_username, payload.password, payload.identity)
    return _to_response(result, response)


@router.post("/password", response_model=OperationResponse)
async def change_password(
    payload: PasswordChangeRequest,
    response: Response,
    manager: AccountManager = Depends(get_account_manager),
) -> OperationResponse:
    result = await manager.change_password(payload.old_password, payload.new_password, payload.identity)
    return _to_response(result, response)


@router.post("/session", response_model=AccountRead)
async def get_session_account(
    payload: IdentityRequest,
    manager: AccountManager = Depends(get_account_manager),
) -> AccountRead:
    account = await manager.find_by_identity(payload.identity)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active session")
    return AccountRead.from_record(account)


@router.post("/stats", response_model=AccountRead)
async def add_stats(
    payload: StatsUpdateRequest,
    manager: AccountManager = Depends(get_account_manager),
) -> AccountRead:
    updated: list = []

    def apply(account):
        account.playtime += timedelta(seconds=payload.playtime_seconds)
        account.games += payload.games
        account.achievements.update(achievement.lower() for achievement in payload.achievements)
        updated.append(account)

    if not await manager.update_by_identity(payload.identity, apply):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active session")
    return AccountRead.from_record(updated[0])


@router.get("/discord/{discord_id}", response_model=AccountRead)
async def get_account_by_discord_id(
    discord_id: int,
    manager: AccountManager = Depends(get_account_manager),
) -> AccountRead:
    account = await manager.find_by_discord_id(discord_id)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return AccountRead.from_record(account)


@router.get("/{account_id}", response_model=AccountRead)
async def get_account(account_id: str, manager: AccountManager = Depends(get_account_manager)) -> AccountRead:
    account = await manager.find_by_id(account_id)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return AccountRead.from_record(account)
