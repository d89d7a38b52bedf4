from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from bson import ObjectId

from app.repositories.incentive_repository import IncentiveRepository
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

POINTS_TABLE = {
    "wet": 5,
    "dry": 8,
    "e-waste": 15,
}
DEFAULT_POINTS = 5
FALSE_ALARM_PENALTY = 50


def points_for(waste_type: str) -> int:
    return POINTS_TABLE.get(waste_type, DEFAULT_POINTS)


class IncentiveLedger:
    """
    Per-citizen point balances.

    Balances only move through `IncentiveRepository.increment`, a single
    atomic $inc upsert, so concurrent completions and penalties for the same
    citizen never lose an update.
    """

    def __init__(self, repo: IncentiveRepository, audit: AuditService):
        self.repo = repo
        self.audit = audit

    async def accrue(
        self, user_id: ObjectId, waste_type: str, op_key: Optional[str] = None
    ) -> Dict[str, Any]:
        amount = points_for(waste_type)
        balance, applied = await self.repo.increment(user_id, amount, op_key)
        if not applied:
            logger.info("credit %s for %s already applied", op_key, user_id)
            return balance
        logger.info("credited %s points to %s for %s", amount, user_id, waste_type)

        await self.audit.log_event({
            "type": "incentive.accrue",
            "actor": {"role": "system", "id": None},
            "entity": {"type": "incentive", "id": str(user_id)},
            "message": f"+{amount} points for {waste_type} pickup",
            "meta": {"amount": amount, "waste_type": waste_type, "points": balance["points"]},
        })
        return balance

    async def penalize(
        self, user_id: ObjectId, reason: str, op_key: Optional[str] = None
    ) -> Dict[str, Any]:
        balance, applied = await self.repo.increment(user_id, -FALSE_ALARM_PENALTY, op_key)
        if not applied:
            logger.info("penalty %s for %s already applied", op_key, user_id)
            return balance
        logger.info("penalized %s by %s points: %s", user_id, FALSE_ALARM_PENALTY, reason)

        await self.audit.log_event({
            "type": "incentive.penalty",
            "actor": {"role": "system", "id": None},
            "entity": {"type": "incentive", "id": str(user_id)},
            "message": f"-{FALSE_ALARM_PENALTY} points: {reason}",
            "meta": {"amount": -FALSE_ALARM_PENALTY, "reason": reason, "points": balance["points"]},
        })
        return balance

    async def get_balance(self, user_id: ObjectId) -> Dict[str, Any]:
        doc = await self.repo.get(user_id)
        return {"user_id": str(user_id), "points": int(doc["points"]) if doc else 0}
