from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from healcore.core.config import settings

logger = logging.getLogger(__name__)
bearer = HTTPBearer(auto_error=False)

DEV_USER_ID = "123e4567-e89b-12d3-a456-426614174000"


def verify_token(token: str) -> Dict[str, Any]:
    """
    Decode a bearer JWT issued by the identity provider and return the caller.
    """
    try:
        if settings.JWT_SECRET:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=["HS256"],
                options={"verify_aud": False},
            )
        else:
            logger.warning("No JWT secret configured, using unverified token decode")
            payload = jwt.decode(token, key="", options={"verify_signature": False})
    except ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token has expired") from exc
    except JWTError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token missing user ID")
    try:
        uuid.UUID(user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Token subject is not a user ID") from exc

    return {"user_id": user_id, "role": payload.get("role", "authenticated"), "email": payload.get("email")}


async def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Dict[str, Any]:
    """
    Resolve the calling user. In dev, a missing token maps to a fixed test user.
    """
    if not creds or creds.scheme.lower() != "bearer":
        if settings.APP_ENV == "dev":
            logger.info("No credentials in dev mode, using test user")
            return {"user_id": DEV_USER_ID, "role": "authenticated"}
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    return verify_token(creds.credentials)
