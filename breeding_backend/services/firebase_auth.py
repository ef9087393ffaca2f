import json
import logging
import os
from typing import Optional
from fastapi import HTTPException
from ..config import FIREBASE_CREDENTIALS, GOOGLE_APPLICATION_CREDENTIALS

logger = logging.getLogger(__name__)

_firebase_ready = False
_auth = None


def _init_firebase_if_needed():
    global _firebase_ready, _auth
    if _firebase_ready:
        return
    try:
        import firebase_admin
        from firebase_admin import auth as fb_auth, credentials

        if not firebase_admin._apps:
            if FIREBASE_CREDENTIALS:
                # Service account JSON from the environment (production)
                cred = credentials.Certificate(json.loads(FIREBASE_CREDENTIALS))
                firebase_admin.initialize_app(cred)
            elif GOOGLE_APPLICATION_CREDENTIALS and os.path.exists(GOOGLE_APPLICATION_CREDENTIALS):
                cred = credentials.Certificate(GOOGLE_APPLICATION_CREDENTIALS)
                firebase_admin.initialize_app(cred)
            else:
                firebase_admin.initialize_app()

        _auth = fb_auth
        _firebase_ready = True
    except Exception as e:
        logger.warning(f"Firebase initialization error: {e}")
        _firebase_ready = False
        _auth = None


def verify_bearer_id_token(authorization_header: Optional[str]) -> Optional[dict]:
    """Verify Firebase ID token from Authorization: Bearer <token>.
    Returns decoded token dict on success, or None if not present or not verifiable.
    Raises HTTPException on explicit invalid token.
    """
    if not authorization_header:
        return None
    parts = authorization_header.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = parts[1]
    _init_firebase_if_needed()
    if not _auth:
        # Firebase not configured; treat as missing
        return None
    try:
        return _auth.verify_id_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid ID token")
