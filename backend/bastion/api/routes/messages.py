"""Inbound endpoint for messages published by peer processes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from bastion.core.container import Services
from bastion.core.dependencies import get_services
from bastion.schemas.messages import MessageEnvelope
from bastion.services.messenger import WebhookMessenger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def receive_message(payload: MessageEnvelope, services: Services = Depends(get_services)) -> dict[str, str]:
    messenger = services.messenger
    if not isinstance(messenger, WebhookMessenger):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Messaging peers are not configured")

    try:
        message = await messenger.receive(payload.token)
    except ValueError as exc:
        logger.warning("Rejected inbound message: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return {"topic": message.topic}
