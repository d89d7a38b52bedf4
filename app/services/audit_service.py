from datetime import datetime

from app.repositories.audit_repository import AuditRepository


class AuditService:
    def __init__(self, repo: AuditRepository):
        self.repo = repo

    async def list_logs(self, limit: int = 200):
        return await self.repo.list(limit)

    async def log_event(self, event: dict):
        event.setdefault("time", datetime.utcnow())
        await self.repo.create(event)


def actor_of(account) -> dict:
    if account is None:
        return {"role": "system", "id": None}
    return {"role": account.role.value, "id": str(account.id)}
