"""
Fragfolio Backend — Request Identity Dependencies
===================================================

What:  FastAPI dependencies that resolve the calling user.
Why:   Authentication is owned by the upstream gateway; this service only
       trusts the integer user id it forwards in X-User-ID.
Who:   Route handlers via Depends().

    get_user_id   → Optional[int]  (anonymous calls allowed)
    require_user  → int            (401 when missing)
    require_admin → int            (403 unless listed in ADMIN_USER_IDS)
"""

from typing import Optional

from fastapi import Depends, Header

from fragfolio.config import settings
from fragfolio.exceptions import AuthenticationError, ForbiddenError


async def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[int]:
    """A malformed header is treated as anonymous rather than rejected."""
    if x_user_id is None or not x_user_id.strip().isdigit():
        return None
    return int(x_user_id.strip())


async def require_user(user_id: Optional[int] = Depends(get_user_id)) -> int:
    if user_id is None:
        raise AuthenticationError()
    return user_id


async def require_admin(user_id: int = Depends(require_user)) -> int:
    if user_id not in settings.admin_user_id_set:
        raise ForbiddenError("Administrator access required")
    return user_id
