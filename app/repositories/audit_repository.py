from app.utils.mongo import to_public


class AuditRepository:
    def __init__(self, collection):
        self.collection = collection

    async def list(self, limit: int = 200):
        out = []
        async for doc in self.collection.find().sort("time", -1).limit(limit):
            out.append(to_public(doc))
        return out

    async def create(self, data: dict):
        await self.collection.insert_one(data)
