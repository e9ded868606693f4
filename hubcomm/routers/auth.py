"""
Identity: verifies the JWT issued by the auth service and exposes the
current user to the other routers.

Tokens are read from the ``access_token`` cookie, an ``Authorization: Bearer``
header, or (websockets) a ``token`` query parameter. Claims:
    sub       → user id
    name      → display name
    elevated  → may create and invalidate broadcasts

Endpoints:
    GET  /auth/me      → the authenticated user
    GET  /auth/logout  → clear JWT cookie
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from pydantic import BaseModel

from hubcomm.config import settings

router = APIRouter(prefix="/auth", tags=["auth"])

COOKIE_KEY = "access_token"


class CurrentUser(BaseModel):
    id: str
    display_name: str
    is_elevated: bool = False


# ═══════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════

def create_access_token(data: dict) -> str:
    """Create a signed JWT with an expiry claim."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for(user: CurrentUser) -> str:
    return create_access_token({"sub": user.id, "name": user.display_name, "elevated": user.is_elevated})


def set_auth_cookie(response, user: CurrentUser):
    """Attach the JWT cookie to a response."""
    response.set_cookie(
        key=COOKIE_KEY,
        value=token_for(user),
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
    )
    return response


def decode_token(token: Optional[str]) -> Optional[CurrentUser]:
    """Return the user a token belongs to, or None when it is missing or invalid."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return CurrentUser(
        id=str(user_id),
        display_name=payload.get("name") or "Unknown",
        is_elevated=bool(payload.get("elevated", False)),
    )


async def get_current_user(request: Request) -> Optional[CurrentUser]:
    """
    Extract the JWT from the cookie or bearer header and return the user.
    Returns None when no valid token is present.
    """
    token = request.cookies.get(COOKIE_KEY)
    header = request.headers.get("Authorization", "")
    if not token and header.lower().startswith("bearer "):
        token = header[7:].strip()
    return decode_token(token)


async def require_user(current_user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if not current_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return current_user


async def require_elevated(current_user: CurrentUser = Depends(require_user)) -> CurrentUser:
    """Broadcast management is for hub admins; the channels themselves do not check roles."""
    if not current_user.is_elevated:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only hub admins can manage broadcasts.")
    return current_user


# ═══════════════════════════════════════════════════════════════
#  Routes
# ═══════════════════════════════════════════════════════════════

@router.get("/me", response_model=CurrentUser)
async def read_me(current_user: CurrentUser = Depends(require_user)):
    """Return the authenticated user."""
    return current_user


@router.get("/logout")
async def logout():
    """Clear the auth cookie."""
    response = JSONResponse({"ok": True})
    response.delete_cookie(key=COOKIE_KEY)
    return response
