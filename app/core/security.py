# app/core/security.py
from fastapi import Depends, Header, HTTPException, status

from app.core.enums import UserRole
from app.core.errors import AuthorizationError
from app.db.mongo import USERS
from app.db.session import get_db
from app.models.account import Account
from app.models.common import parse_oid
from app.repositories.user_repository import UserRepository


async def get_current_account(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db=Depends(get_db),
) -> Account:
    """
    Resolve the principal the upstream auth layer put on the request.

    Tokens are verified before requests reach this service; all we get is
    the user id, and role/ward/house always come from the users collection.
    """
    user_oid = parse_oid(x_user_id)
    if user_oid is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing/invalid X-User-Id")

    account = await UserRepository(db[USERS]).get_account(user_oid)
    if account is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unknown user")

    return account


def require_role(*roles: UserRole):
    async def guard(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in roles:
            allowed = "/".join(r.value for r in roles)
            raise AuthorizationError(f"Only {allowed} accounts can perform this action")
        return account

    return guard
