# deps/admin.py
from fastapi import Depends, HTTPException, status

from deps.auth import get_current_user, CurrentUser
from deps.payouts import get_store
from app.payouts.repository import PayoutStore


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    store: PayoutStore = Depends(get_store),
) -> CurrentUser:
    role = store.get_user_role(user.user_id)
    if (role or "").lower() != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return user


def require_vendor_owner(
    vendor_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: PayoutStore = Depends(get_store),
) -> CurrentUser:
    owner_id = store.get_vendor_owner(vendor_id)
    if owner_id is None:
        raise HTTPException(status_code=404, detail="VENDOR_NOT_FOUND")
    if owner_id != user.user_id:
        raise HTTPException(status_code=403, detail="VENDOR_NOT_OWNED")
    return user
