"""API router aggregator."""
from fastapi import APIRouter

from bastion.api.routes import accounts, messages, punishments, verification

api_router = APIRouter(prefix="/api")
api_router.include_router(accounts.router)
api_router.include_router(verification.router)
api_router.include_router(punishments.router)
api_router.include_router(messages.router)

__all__ = ["api_router"]
