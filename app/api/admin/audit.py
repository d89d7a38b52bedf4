from fastapi import APIRouter, Depends, Query

from app.api.deps import get_audit_service
from app.core.enums import UserRole
from app.core.security import require_role
from app.services.audit_service import AuditService

router = APIRouter(prefix="/admin/audit", tags=["Admin - Audit"])


@router.get("", dependencies=[Depends(require_role(UserRole.admin))])
async def list_audit_logs(
    limit: int = Query(200, ge=1, le=1000),
    service: AuditService = Depends(get_audit_service),
):
    return await service.list_logs(limit)
