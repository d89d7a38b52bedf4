# app/api/pickups.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_pickup_service
from app.core.enums import UserRole
from app.core.security import get_current_account, require_role
from app.models.account import Account
from app.schemas.pickup import CreatePickupBody, VerifyPickupBody
from app.services.pickup_service import PickupService
from app.utils.mongo import to_public

router = APIRouter(prefix="/pickups", tags=["Pickups"])


# =========================
# Create (citizen)
# =========================
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_pickup(
    body: CreatePickupBody,
    account: Account = Depends(get_current_account),
    service: PickupService = Depends(get_pickup_service),
):
    location = body.location.model_dump() if body.location else None
    doc = await service.create_request(
        account,
        waste_type=body.waste_type,
        pickup_time=body.pickup_time,
        overflow=body.overflow,
        location=location,
    )
    return to_public(doc)


# =========================
# List (scoped by role)
# =========================
@router.get("")
async def list_pickups(
    status: Optional[str] = Query(default=None),
    account: Account = Depends(get_current_account),
    service: PickupService = Depends(get_pickup_service),
):
    docs = await service.list_requests(account, status)
    return [to_public(d) for d in docs]


# =========================
# Verify (collector)
# =========================
@router.patch("/{pickup_id}/verify")
async def verify_pickup(
    pickup_id: str,
    body: VerifyPickupBody,
    account: Account = Depends(require_role(UserRole.collector)),
    service: PickupService = Depends(get_pickup_service),
):
    doc = await service.record_verification(
        pickup_id,
        verified=body.verified,
        verification_status=body.verification_status,
        actor=account,
    )
    return {"pickup": to_public(doc)}


# =========================
# Complete (collector)
# =========================
@router.patch("/{pickup_id}/complete")
async def complete_pickup(
    pickup_id: str,
    account: Account = Depends(require_role(UserRole.collector)),
    service: PickupService = Depends(get_pickup_service),
):
    doc, incentive = await service.complete_request(pickup_id, account.id, actor=account)
    return {
        "pickup": to_public(doc),
        "incentive": to_public(incentive),
    }


# =========================
# Cancel (owning citizen)
# =========================
@router.patch("/{pickup_id}/cancel")
async def cancel_pickup(
    pickup_id: str,
    account: Account = Depends(get_current_account),
    service: PickupService = Depends(get_pickup_service),
):
    doc = await service.cancel_request(pickup_id, account.id, actor=account)
    return {
        "message": "Pickup cancelled successfully",
        "pickup": to_public(doc),
    }
