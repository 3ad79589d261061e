"""Reusable dependencies for FastAPI routes."""
from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, Request, status

from bastion.core.container import Services
from bastion.services.accounts import AccountManager
from bastion.services.discord_link import DiscordVerifier
from bastion.services.punishments import PunishmentManager
from bastion.services.verification import VerificationCoordinator, VerifiedNotices


def get_services(request: Request) -> Services:
    return request.app.state.services


async def require_api_key(
    x_api_key: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> None:
    expected = services.settings.api_key
    if not x_api_key or not hmac.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def get_account_manager(services: Services = Depends(get_services)) -> AccountManager:
    return services.accounts


def get_verification(services: Services = Depends(get_services)) -> VerificationCoordinator:
    return services.verification


def get_verified_notices(services: Services = Depends(get_services)) -> VerifiedNotices:
    return services.notices


def get_discord_verifier(services: Services = Depends(get_services)) -> DiscordVerifier:
    return services.discord


def get_punishment_manager(services: Services = Depends(get_services)) -> PunishmentManager:
    return services.punishments
