import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import jwt, JWTError

from patent_explorer.config import settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None

def _decode(token: str) -> CurrentUser:
    secret = settings.secret(settings.supabase_jwt_secret)
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; cannot verify tokens")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication is not configured")

    try:
        # Supabase access tokens carry aud="authenticated"; audience is not pinned here
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options={"verify_aud": False})
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid or expired token: {str(e)}")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token missing subject")
    return CurrentUser(id=user_id, email=payload.get("email"))

async def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """
    Resolve the caller from the Authorization header.

    Development mode always returns the local development user. In production
    a missing header means an anonymous caller (None); a present but invalid
    bearer token is rejected.

    Raises:
        HTTPException 401: If the token is malformed, invalid or expired
    """
    if settings.is_development:
        return CurrentUser(id=settings.dev_user_id, email=settings.dev_user_email)

    auth_header = request.headers.get("authorization", "")
    if not auth_header:
        return None
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must start with 'Bearer'"
        )

    token = auth_header.removeprefix("Bearer ").strip()
    return _decode(token)

async def get_current_user(user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user
