from fastapi import Depends

from app.core.config import get_settings
from app.db.mongo import AUDIT_LOGS, INCENTIVES, PICKUP_REQUESTS, USERS
from app.db.session import get_db
from app.repositories.audit_repository import AuditRepository
from app.repositories.incentive_repository import IncentiveRepository
from app.repositories.pickup_repository import PickupRepository
from app.repositories.user_repository import UserRepository
from app.services.audit_service import AuditService
from app.services.incentive_service import IncentiveLedger
from app.services.pickup_service import PickupService
from app.services.route_service import RouteService


def get_audit_service(db=Depends(get_db)) -> AuditService:
    return AuditService(AuditRepository(db[AUDIT_LOGS]))


def get_ledger(
    db=Depends(get_db), audit: AuditService = Depends(get_audit_service)
) -> IncentiveLedger:
    return IncentiveLedger(IncentiveRepository(db[INCENTIVES]), audit)


def get_pickup_service(
    db=Depends(get_db),
    ledger: IncentiveLedger = Depends(get_ledger),
    audit: AuditService = Depends(get_audit_service),
) -> PickupService:
    return PickupService(
        PickupRepository(db[PICKUP_REQUESTS]),
        UserRepository(db[USERS]),
        ledger,
        audit,
        retry_limit=get_settings().claim_retry_limit,
    )


def get_route_service(
    db=Depends(get_db), audit: AuditService = Depends(get_audit_service)
) -> RouteService:
    return RouteService(PickupRepository(db[PICKUP_REQUESTS]), audit, get_settings().depot)
