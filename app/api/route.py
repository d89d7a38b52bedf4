from fastapi import APIRouter, Depends

from app.api.deps import get_route_service
from app.core.security import get_current_account
from app.models.account import Account
from app.services.route_service import RouteService
from app.utils.mongo import serialize_mongo

router = APIRouter(prefix="/route", tags=["Route"])


@router.get("")
async def generate_route(
    account: Account = Depends(get_current_account),
    service: RouteService = Depends(get_route_service),
):
    # role is checked inside the service, before any pickup is read
    result = await service.generate_shift_route(account)
    return serialize_mongo(result)
