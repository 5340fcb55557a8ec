"""Identity boundary: trusted user id supplied by the upstream gateway."""

import base64
import hashlib
import hmac

from fastapi import HTTPException, Request, status

from core.config import settings
from services.validation import USER_ID_PATTERN


def _b64u_encode(data: bytes) -> str:
    """Base64-URL encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def sign_user_id(uid: str) -> str:
    """
    Sign a user id the way the identity gateway does.

    Args:
        uid: Authenticated user id

    Returns:
        Base64-URL encoded HMAC-SHA256 signature
    """
    mac = hmac.new(settings.identity_secret.encode(), uid.encode(), hashlib.sha256).digest()
    return _b64u_encode(mac)


def verify_user_signature(uid: str, signature: str) -> bool:
    """Check the gateway signature for a user id."""
    if not settings.identity_secret:
        return False
    return hmac.compare_digest(sign_user_id(uid), signature or "")


async def current_uid(request: Request) -> str:
    """
    Resolve the caller identity for a request.

    Expects headers:
    - X-User-Id: opaque authenticated user id
    - X-User-Signature: HMAC-SHA256 of the user id (omitted only when
      identity_trust_header is enabled)

    Returns:
        The caller's user id

    Raises:
        HTTPException: If the identity headers are missing or invalid
    """
    uid = request.headers.get("X-User-Id")
    signature = request.headers.get("X-User-Signature")

    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")

    if not USER_ID_PATTERN.match(uid):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-Id format")

    if settings.identity_trust_header and not signature:
        return uid

    if not verify_user_signature(uid, signature or ""):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    return uid
