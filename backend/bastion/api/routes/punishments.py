"""Moderation endpoints."""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status

from bastion.core.dependencies import get_punishment_manager, require_api_key
from bastion.schemas.punishment import PardonRequest, PunishmentCreate, PunishmentRead
from bastion.services.punishments import PunishmentManager

router = APIRouter(prefix="/punishments", tags=["punishments"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=PunishmentRead, status_code=status.HTTP_201_CREATED)
async def create_punishment(
    payload: PunishmentCreate,
    manager: PunishmentManager = Depends(get_punishment_manager),
) -> PunishmentRead:
    duration = timedelta(seconds=payload.duration_seconds) if payload.duration_seconds else None
    punishment = await manager.punish(
        payload.author,
        payload.target,
        payload.reason,
        payload.type,
        duration=duration,
        extra=payload.extra,
    )
    return PunishmentRead.from_record(punishment)


@router.get("", response_model=list[PunishmentRead])
async def list_punishments(
    address: str | None = Query(default=None),
    uuid: str | None = Query(default=None),
    manager: PunishmentManager = Depends(get_punishment_manager),
) -> list[PunishmentRead]:
    if address is None and uuid is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provide an address or a uuid")

    found = {}
    if address is not None:
        found.update((p.id, p) for p in await manager.find_all_by_address(address))
    if uuid is not None:
        found.update((p.id, p) for p in await manager.find_all_by_uuid(uuid))
    return [PunishmentRead.from_record(p) for p in sorted(found.values(), key=lambda p: p.created_at)]


@router.get("/{punishment_id}", response_model=PunishmentRead)
async def get_punishment(
    punishment_id: str,
    manager: PunishmentManager = Depends(get_punishment_manager),
) -> PunishmentRead:
    punishment = await manager.find_by_id(punishment_id)
    if not punishment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Punishment not found")
    return PunishmentRead.from_record(punishment)


@router.post("/{punishment_id}/pardon", response_model=PunishmentRead)
async def pardon_punishment(
    punishment_id: str,
    payload: PardonRequest,
    manager: PunishmentManager = Depends(get_punishment_manager),
) -> PunishmentRead:
    punishment = await manager.pardon(payload.author, punishment_id, payload.reason)
    if not punishment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Punishment not found")
    return PunishmentRead.from_record(punishment)
