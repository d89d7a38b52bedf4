from fastapi import APIRouter, Depends

from app.api.deps import get_ledger
from app.core.errors import NotFoundError
from app.core.security import get_current_account
from app.models.account import Account
from app.models.common import parse_oid
from app.services.incentive_service import IncentiveLedger

router = APIRouter(prefix="/incentives", tags=["Incentives"])


@router.get("/me")
async def my_balance(
    account: Account = Depends(get_current_account),
    ledger: IncentiveLedger = Depends(get_ledger),
):
    return await ledger.get_balance(account.id)


@router.get("/{user_id}")
async def balance_for_user(
    user_id: str,
    account: Account = Depends(get_current_account),
    ledger: IncentiveLedger = Depends(get_ledger),
):
    user_oid = parse_oid(user_id)
    if user_oid is None:
        raise NotFoundError("Invalid user id")
    return await ledger.get_balance(user_oid)
