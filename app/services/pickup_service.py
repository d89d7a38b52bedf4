from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from bson import ObjectId

from app.core.enums import PickupStatus, UserRole, VerificationStatus, WasteType
from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models.account import Account
from app.models.common import parse_oid
from app.repositories.pickup_repository import PickupRepository
from app.repositories.user_repository import UserRepository
from app.services.audit_service import AuditService, actor_of
from app.services.incentive_service import IncentiveLedger
from app.services.workflow import can_transition
from app.utils.geo import has_coordinates

logger = logging.getLogger(__name__)

FALSE_ALARM_REASON = "False Priority Alarm"

# Visibility is decided here and nowhere else. Every role has an entry;
# None means the principal sees nothing (a collector with no ward).
VISIBILITY_BY_ROLE: Dict[UserRole, Callable[[Account], Optional[Dict[str, Any]]]] = {
    UserRole.citizen: lambda account: {"user_id": account.id},
    UserRole.collector: lambda account: (
        {"ward_number": account.ward_number} if account.ward_number else None
    ),
    UserRole.admin: lambda account: {},
}


def _dt(v) -> Optional[datetime]:
    if isinstance(v, str):
        try:
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(v, datetime):
        return None
    # stored as naive UTC, like every other timestamp in the collection
    if v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


def _resolve_location(requested: Optional[dict], account: Account) -> Optional[dict]:
    if has_coordinates(requested):
        return {"lat": float(requested["lat"]), "lng": float(requested["lng"])}
    if account.location is not None:
        registered = account.location.model_dump()
        if has_coordinates(registered):
            return registered
    return None


class PickupService:
    """
    Lifecycle of a single pickup request: create, list, verify, complete,
    cancel.

    Every mutation after creation is a conditional write on the state that
    was just read; when another writer got there first the document is
    re-read and the decision is made again, up to `retry_limit` times.
    """

    def __init__(
        self,
        pickups: PickupRepository,
        users: UserRepository,
        ledger: IncentiveLedger,
        audit: AuditService,
        retry_limit: int = 5,
    ):
        self.pickups = pickups
        self.users = users
        self.ledger = ledger
        self.audit = audit
        self.retry_limit = retry_limit

    async def _get_or_404(self, pickup_id) -> Dict[str, Any]:
        oid = parse_oid(pickup_id)
        doc = await self.pickups.find_by_id(oid) if oid is not None else None
        if not doc:
            raise NotFoundError("Pickup request not found")
        return doc

    # -------------------------
    # Create
    # -------------------------
    async def create_request(
        self,
        principal: Account,
        waste_type: Optional[str],
        pickup_time,
        overflow: bool = False,
        location: Optional[dict] = None,
    ) -> Dict[str, Any]:
        if not waste_type or not pickup_time:
            raise ValidationError("waste_type and pickup_time are required")

        try:
            waste_type = WasteType(waste_type).value
        except ValueError:
            allowed = ", ".join(w.value for w in WasteType)
            raise ValidationError(f"waste_type must be one of: {allowed}") from None

        when = _dt(pickup_time)
        if when is None:
            raise ValidationError("pickup_time must be an ISO-8601 timestamp")

        if principal.role != UserRole.citizen:
            raise AuthorizationError("Only citizens can create pickup requests")

        now = datetime.utcnow()
        doc = {
            "user_id": principal.id,
            "house_number": principal.house_number,
            "ward_number": principal.ward_number,
            "area": principal.area,
            "waste_type": waste_type,
            "pickup_time": when,
            "overflow": bool(overflow),
            "location": _resolve_location(location, principal),
            "status": PickupStatus.pending.value,
            "assigned_to": None,
            "completed_by": None,
            "segregation_verified": False,
            "verification_status": VerificationStatus.pending.value,
            "false_alarm_penalized": False,
            "credit_pending": False,
            "penalty_pending": False,
            "created_at": now,
            "updated_at": now,
        }
        doc = await self.pickups.insert(doc)
        logger.info("pickup %s created in ward %s", doc["_id"], doc["ward_number"])

        await self.audit.log_event({
            "type": "pickup.create",
            "actor": actor_of(principal),
            "entity": {"type": "pickup", "id": str(doc["_id"])},
            "message": f"Pickup requested ({waste_type})",
            "meta": {"ward_number": doc["ward_number"], "overflow": doc["overflow"]},
        })
        return doc

    # -------------------------
    # List
    # -------------------------
    async def list_requests(self, principal: Account, status: Optional[str] = None):
        filters = VISIBILITY_BY_ROLE[principal.role](principal)
        if filters is None:
            return []

        if status:
            # an unknown status simply matches nothing
            if status not in {s.value for s in PickupStatus}:
                return []
            filters["status"] = status

        docs = await self.pickups.list(filters)
        owners = await self.users.get_by_ids(d.get("user_id") for d in docs)
        for d in docs:
            d["owner"] = owners.get(str(d.get("user_id")))
        return docs

    # -------------------------
    # Verify
    # -------------------------
    async def record_verification(
        self,
        pickup_id,
        verified: Optional[bool] = None,
        verification_status: Optional[str] = None,
        actor: Optional[Account] = None,
    ) -> Dict[str, Any]:
        if verified is None and verification_status is None:
            raise ValidationError("verified or verification_status is required")

        if verification_status is not None:
            try:
                verification_status = VerificationStatus(verification_status).value
            except ValueError:
                raise ValidationError(f"Unknown verification_status: {verification_status}") from None

        for _ in range(self.retry_limit):
            doc = await self._get_or_404(pickup_id)
            status = doc["status"]

            if status in (PickupStatus.cancelled.value, PickupStatus.missed.value):
                raise ConflictError(f"Cannot verify a {status} pickup")
            if verified is not None and status == PickupStatus.completed.value:
                raise ConflictError("Segregation is settled once a pickup is completed")

            previous = doc.get("verification_status")
            penalized = doc.get("false_alarm_penalized")
            changes: Dict[str, Any] = {}
            if verified is not None:
                changes["segregation_verified"] = bool(verified)
            if verification_status is not None:
                changes["verification_status"] = verification_status

            # one penalty per request, however often the verdict toggles
            false_alarm = (
                verification_status == VerificationStatus.false_alarm.value
                and bool(doc.get("overflow"))
                and not penalized
            )
            if false_alarm:
                changes["false_alarm_penalized"] = True
                changes["penalty_pending"] = True

            updated = await self.pickups.update_if(
                doc["_id"],
                {"status": status, "verification_status": previous, "false_alarm_penalized": penalized},
                {"$set": changes},
            )
            if updated is None:
                logger.debug("pickup %s changed during verification, re-reading", doc["_id"])
                continue

            await self.audit.log_event({
                "type": "pickup.verify",
                "actor": actor_of(actor),
                "entity": {"type": "pickup", "id": str(doc["_id"])},
                "message": "Pickup verification recorded",
                "meta": {**changes, "penalized": false_alarm},
            })
            updated, _ = await self._settle_ledger(updated)
            return updated

        raise ConflictError("Pickup was modified concurrently, try again")

    # -------------------------
    # Complete
    # -------------------------
    async def complete_request(
        self, pickup_id, collector_id: ObjectId, actor: Optional[Account] = None
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        for _ in range(self.retry_limit):
            doc = await self._get_or_404(pickup_id)
            status = doc["status"]

            if status == PickupStatus.completed.value:
                # completing twice never credits twice, but finishes a credit
                # an earlier attempt left outstanding
                return await self._settle_ledger(doc)
            if not can_transition(status, PickupStatus.completed.value):
                raise ConflictError(f"Cannot complete a {status} pickup")

            # decided on the verdict as it stands now; the write below is
            # guarded on that same verdict
            verdict = doc.get("verification_status")
            if verdict == VerificationStatus.false_alarm.value:
                segregation_verified = False
            elif not doc.get("segregation_verified"):
                segregation_verified = True
            else:
                segregation_verified = doc["segregation_verified"]

            now = datetime.utcnow()
            changes = {
                "status": PickupStatus.completed.value,
                "completed_by": collector_id,
                "completed_at": now,
                "segregation_verified": segregation_verified,
                "credit_pending": segregation_verified,
            }
            if not doc.get("assigned_to"):
                changes["assigned_to"] = collector_id

            updated = await self.pickups.update_if(
                doc["_id"],
                {"status": status, "verification_status": verdict},
                {"$set": changes},
            )
            if updated is None:
                logger.debug("pickup %s changed during completion, re-reading", doc["_id"])
                continue

            logger.info("pickup %s completed by %s", doc["_id"], collector_id)
            await self.audit.log_event({
                "type": "pickup.complete",
                "actor": actor_of(actor),
                "entity": {"type": "pickup", "id": str(doc["_id"])},
                "message": "Pickup completed",
                "meta": {"segregation_verified": segregation_verified},
            })
            return await self._settle_ledger(updated)

        raise ConflictError("Pickup was modified concurrently, try again")

    async def _settle_ledger(
        self, doc: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        """
        Apply the balance changes a state write marked as outstanding, then
        clear the markers. A failure leaves the marker set for the next call;
        the ledger's per-pickup keys keep a replay from counting twice.
        """
        incentive = None
        if doc.get("penalty_pending"):
            await self.ledger.penalize(
                doc["user_id"], FALSE_ALARM_REASON, op_key=f"penalty:{doc['_id']}"
            )
            doc = await self._clear_marker(doc, "penalty_pending")
        if doc.get("credit_pending"):
            incentive = await self.ledger.accrue(
                doc["user_id"], doc["waste_type"], op_key=f"accrue:{doc['_id']}"
            )
            doc = await self._clear_marker(doc, "credit_pending")
        return doc, incentive

    async def _clear_marker(self, doc: Dict[str, Any], marker: str) -> Dict[str, Any]:
        cleared = await self.pickups.update_if(doc["_id"], {marker: True}, {"$set": {marker: False}})
        return cleared or await self.pickups.find_by_id(doc["_id"])

    # -------------------------
    # Cancel
    # -------------------------
    async def cancel_request(
        self, pickup_id, citizen_id: ObjectId, actor: Optional[Account] = None
    ) -> Dict[str, Any]:
        for _ in range(self.retry_limit):
            doc = await self._get_or_404(pickup_id)

            if doc.get("user_id") != citizen_id:
                raise AuthorizationError("Unauthorized")

            status = doc["status"]
            if status == PickupStatus.completed.value:
                raise ConflictError("Cannot cancel completed pickup")
            if not can_transition(status, PickupStatus.cancelled.value):
                raise ConflictError(f"Cannot cancel a {status} pickup")

            # no collector notification for cancelled assigned work
            updated = await self.pickups.update_if(
                doc["_id"],
                {"status": status},
                {
                    "$set": {
                        "status": PickupStatus.cancelled.value,
                        "assigned_to": None,
                        "cancelled_at": datetime.utcnow(),
                    }
                },
            )
            if updated is None:
                continue

            logger.info("pickup %s cancelled from %s", doc["_id"], status)
            await self.audit.log_event({
                "type": "pickup.cancel",
                "actor": actor_of(actor),
                "entity": {"type": "pickup", "id": str(doc["_id"])},
                "message": "Pickup cancelled",
                "meta": {"from": status},
            })
            return updated

        raise ConflictError("Pickup was modified concurrently, try again")
