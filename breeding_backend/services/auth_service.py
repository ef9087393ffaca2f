"""
Request identity for the breeding API.

Resolves who is calling; which animals they may touch is decided by the
cattle/ownership context, not here.
"""

from typing import Optional
from fastapi import HTTPException
from .firebase_auth import verify_bearer_id_token
from ..config import ADMIN_SECRET


def resolve_requester(request, x_user_key: Optional[str]) -> str:
    """
    Firebase uid from the bearer token, else the X-User-Key header.
    Raises 401 when neither is present.
    """
    decoded = verify_bearer_id_token(request.headers.get('Authorization'))
    user_id = decoded.get('uid') if decoded else None
    if not user_id:
        if not x_user_key:
            raise HTTPException(status_code=401, detail="Unauthorized")
        user_id = x_user_key
    return user_id


def require_admin(x_admin_secret: Optional[str]) -> None:
    if not ADMIN_SECRET or x_admin_secret != ADMIN_SECRET:
        raise HTTPException(status_code=403, detail="Forbidden")
