from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from app.core.enums import PickupStatus, UserRole
from app.core.errors import AuthorizationError
from app.models.account import Account
from app.repositories.pickup_repository import PickupRepository
from app.services.audit_service import AuditService, actor_of
from app.utils.geo import distance_km, has_coordinates

logger = logging.getLogger(__name__)

ROUTE_EXPLANATION = (
    "Overflow reports are visited first, then the remaining stops. Each queue is "
    "ordered greedily by stepping to the nearest unvisited stop, and the standard "
    "queue continues from where the priority queue ended."
)
PRIORITY_EXPLANATION = "Priority Stop: Reported Overflow. Please verify upon arrival."
STANDARD_EXPLANATION = "Optimized Stop: Shortest path from previous location."


def nearest_neighbor_tour(
    stops: Sequence[Dict[str, Any]], start: Dict[str, Any]
) -> Tuple[List[Tuple[Dict[str, Any], Optional[float]]], Dict[str, Any]]:
    """
    Greedy tour over `stops` from `start`.

    Returns the visiting order, each stop paired with its leg distance (None
    when either end has no coordinates), and the position the tour ended on.
    A stop without coordinates does not move the current position. When no
    remaining stop has a finite distance the first remaining one is taken.
    """
    remaining = list(stops)
    current = start
    ordered: List[Tuple[Dict[str, Any], Optional[float]]] = []

    while remaining:
        nearest_idx = None
        min_dist = math.inf
        for idx, stop in enumerate(remaining):
            dist = distance_km(current, stop.get("location"))
            if dist < min_dist:
                min_dist = dist
                nearest_idx = idx

        if nearest_idx is None:
            nearest_idx = 0

        stop = remaining.pop(nearest_idx)
        ordered.append((stop, None if math.isinf(min_dist) else min_dist))

        if has_coordinates(stop.get("location")):
            current = stop["location"]

    return ordered, current


def _format_stop(sequence: int, stop: Dict[str, Any], leg_km: Optional[float]) -> Dict[str, Any]:
    overflow = bool(stop.get("overflow"))
    return {
        "sequence": sequence,
        "pickup_id": stop["_id"],
        "user_id": stop.get("user_id"),
        "house_number": stop.get("house_number"),
        "ward_number": stop.get("ward_number"),
        "area": stop.get("area") or "Unknown",
        "waste_type": stop.get("waste_type"),
        "pickup_time": stop.get("pickup_time"),
        "overflow": overflow,
        "status": stop.get("status"),
        "assigned_to": stop.get("assigned_to"),
        "segregation_verified": bool(stop.get("segregation_verified")),
        "verification_status": stop.get("verification_status"),
        "location": stop.get("location"),
        "distance_from_previous_km": round(leg_km, 3) if leg_km is not None else None,
        "explanation": PRIORITY_EXPLANATION if overflow else STANDARD_EXPLANATION,
    }


class RouteService:
    def __init__(self, pickups: PickupRepository, audit: AuditService, depot: Dict[str, float]):
        self.pickups = pickups
        self.audit = audit
        self.depot = depot

    async def generate_shift_route(self, principal: Account) -> Dict[str, Any]:
        if principal.role != UserRole.collector:
            raise AuthorizationError("Only collectors can generate routes")

        route = await self.build_route(principal.ward_number, principal.id, actor=principal)
        legs = [s["distance_from_previous_km"] for s in route if s["distance_from_previous_km"] is not None]
        priority = sum(1 for s in route if s["overflow"])

        return {
            "meta": {
                "ward_number": principal.ward_number,
                "depot": self.depot,
                "explanation": ROUTE_EXPLANATION,
                "priority_stops": priority,
                "standard_stops": len(route) - priority,
                "total_distance_km": round(sum(legs), 3),
            },
            "route": route,
        }

    async def claim(
        self, ward_number: str, collector_id: ObjectId
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Claim every pending request in the ward for `collector_id` and return
        everything this collector now holds there, with the number of new claims.

        The claim is one conditional bulk write; the held set comes from a
        fresh read afterwards, so requests another collector won in between
        are simply absent.
        """
        if not ward_number:
            logger.warning("collector %s has no ward; nothing to claim", collector_id)
            return [], 0

        candidates = await self.pickups.find_route_candidates(ward_number, collector_id)
        pending_ids = [
            p["_id"] for p in candidates if p.get("status") == PickupStatus.pending.value
        ]
        if not pending_ids:
            return candidates, 0

        claimed = await self.pickups.claim_pending(pending_ids, collector_id)
        if claimed < len(pending_ids):
            logger.debug(
                "collector %s lost %s of %s claims in ward %s",
                collector_id, len(pending_ids) - claimed, len(pending_ids), ward_number,
            )
        if claimed:
            logger.info("collector %s claimed %s pickups in ward %s", collector_id, claimed, ward_number)

        return await self.pickups.find_assigned(ward_number, collector_id), claimed

    async def build_route(
        self, ward_number: str, collector_id: ObjectId, actor: Optional[Account] = None
    ) -> List[Dict[str, Any]]:
        held, claimed = await self.claim(ward_number, collector_id)
        if not held:
            return []

        if claimed:
            await self.audit.log_event({
                "type": "route.claim",
                "actor": actor_of(actor),
                "entity": {"type": "ward", "id": ward_number},
                "message": f"{claimed} pickups assigned to collector",
                "meta": {"collector_id": str(collector_id), "claimed": claimed},
            })

        priority = [p for p in held if p.get("overflow")]
        standard = [p for p in held if not p.get("overflow")]

        priority_order, end = nearest_neighbor_tour(priority, self.depot)
        standard_order, _ = nearest_neighbor_tour(standard, end)

        return [
            _format_stop(seq, stop, leg)
            for seq, (stop, leg) in enumerate(priority_order + standard_order, start=1)
        ]
