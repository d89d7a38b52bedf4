from typing import Dict, Iterable, Optional

from bson import ObjectId

from app.mapper.users_mapper import to_account, to_owner_summary
from app.models.account import Account


class UserRepository:
    def __init__(self, col):
        self.col = col

    async def get_account(self, user_id: ObjectId) -> Optional[Account]:
        doc = await self.col.find_one({"_id": user_id})
        return to_account(doc) if doc else None

    async def get_by_ids(self, ids: Iterable[ObjectId]) -> Dict[str, dict]:
        ids = list({x for x in ids if x is not None})
        if not ids:
            return {}

        cursor = self.col.find(
            {"_id": {"$in": ids}},
            {"name": 1, "full_name": 1, "email": 1, "house_number": 1},
        )

        users = {}
        async for u in cursor:
            users[str(u["_id"])] = to_owner_summary(u)

        return users
