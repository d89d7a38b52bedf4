from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument

from app.core.enums import PickupStatus

ROUTE_ORDER = [("pickup_time", ASCENDING), ("_id", ASCENDING)]


class PickupRepository:
    def __init__(self, col):
        self.col = col

    async def insert(self, document: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.col.insert_one(document)
        document["_id"] = result.inserted_id
        return document

    async def find_by_id(self, pickup_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self.col.find_one({"_id": pickup_id})

    async def list(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        cursor = self.col.find(filters).sort(ROUTE_ORDER)
        return await cursor.to_list(length=None)

    async def update_if(
        self,
        pickup_id: ObjectId,
        expected: Dict[str, Any],
        update: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Compare-and-swap: apply `update` only while every field in `expected`
        still holds. Returns the updated document, or None when it did not match.
        """
        update.setdefault("$set", {})["updated_at"] = datetime.utcnow()
        return await self.col.find_one_and_update(
            {"_id": pickup_id, **expected},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def find_route_candidates(
        self, ward_number: str, collector_id: ObjectId
    ) -> List[Dict[str, Any]]:
        return await self.list(
            {
                "ward_number": ward_number,
                "$or": [
                    {"status": PickupStatus.pending.value},
                    {"status": PickupStatus.assigned.value, "assigned_to": collector_id},
                ],
            }
        )

    async def claim_pending(self, pickup_ids: List[ObjectId], collector_id: ObjectId) -> int:
        """
        Single conditional bulk write. Rows another collector claimed since
        they were read no longer match `status: pending` and are left alone.
        """
        if not pickup_ids:
            return 0
        now = datetime.utcnow()
        result = await self.col.update_many(
            {"_id": {"$in": pickup_ids}, "status": PickupStatus.pending.value},
            {
                "$set": {
                    "status": PickupStatus.assigned.value,
                    "assigned_to": collector_id,
                    "assigned_at": now,
                    "updated_at": now,
                }
            },
        )
        return result.modified_count

    async def find_assigned(
        self, ward_number: str, collector_id: ObjectId
    ) -> List[Dict[str, Any]]:
        return await self.list(
            {
                "ward_number": ward_number,
                "status": PickupStatus.assigned.value,
                "assigned_to": collector_id,
            }
        )
