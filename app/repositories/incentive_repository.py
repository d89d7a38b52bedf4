from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError


# the applied-key list stays internal to the ledger
BALANCE_PROJECTION = {"applied": False}


class IncentiveRepository:
    def __init__(self, col):
        self.col = col

    async def get(self, user_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self.col.find_one({"user_id": user_id}, BALANCE_PROJECTION)

    async def increment(
        self, user_id: ObjectId, amount: int, op_key: Optional[str] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Atomic $inc keyed by user_id, creating the balance on first use:
        incentives: { user_id: ObjectId(...), points: 13, applied: ["accrue:<pickup>"] }

        With `op_key` the increment is applied at most once: the key is pushed
        in the same write and a balance that already lists it is not matched.
        Returns (balance, applied).
        """
        now = datetime.utcnow()
        query: Dict[str, Any] = {"user_id": user_id}
        update: Dict[str, Any] = {
            "$inc": {"points": amount},
            "$set": {"updated_at": now},
            "$setOnInsert": {"created_at": now},
        }
        if op_key is not None:
            query["applied"] = {"$ne": op_key}
            update["$push"] = {"applied": op_key}

        try:
            doc = await self.col.find_one_and_update(
                query,
                update,
                projection=BALANCE_PROJECTION,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # the row exists: either a first-time upsert raced us, or it
            # already carries op_key and the upsert tried to insert a twin
            doc = await self.col.find_one_and_update(
                query,
                update,
                projection=BALANCE_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )

        if doc is None:
            return await self.get(user_id), False
        return doc, True
