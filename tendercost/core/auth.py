# tendercost/core/auth.py
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from tendercost.core.config import get_settings
from tendercost.database import get_session
from tendercost.models.user import User
from tendercost.repositories.user_repo import UserRepository
from tendercost.schemas.user import ADMIN_ACCESS_LEVEL, Principal, default_profile_row

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so require_auth can answer with a 401 of our own.
bearer_scheme = HTTPBearer(auto_error=False)

repo = UserRepository()


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """
    Build a Principal from verified JWT claims.

    Anonymous Supabase sessions carry `is_anonymous: true` and no email.

    Raises:
        HTTPException(401): if the token has no subject.
    """
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub",
        )
    return Principal(
        id=str(sub),
        email=payload.get("email"),
        is_anonymous=bool(payload.get("is_anonymous", False)),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT.

    Flow:
      1. If no Authorization header => return None.
      2. Decode JWT => build the Principal.
      3. Find the profile in public.users, creating it if absent
         (same defaults as the client session).
      4. Record the email of an upgraded anonymous user.

    Returns:
        User instance if authenticated, else None.

    Raises:
        HTTPException(401): if token is malformed or missing required claims.
    """
    if credentials is None:
        return None

    principal = principal_from_claims(decode_access_token(credentials.credentials))

    user = repo.create_if_absent(
        session,
        User(**default_profile_row(principal, settings.ANONYMOUS_FULL_NAME)),
    )

    if principal.email and not user.email:
        user.email = principal.email
        user.is_anonymous = principal.is_anonymous
        user = repo.update(session, user)

    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_admin(
    user: User = Depends(require_auth),
    session: Session = Depends(get_session),
) -> User:
    """
    Enforce admin access.

    Route is accessible only if:
      - user.access_level == "Admin", or
      - an admin_users row flags the user as admin

    Raises:
        HTTPException(403): otherwise.
    """
    if user.access_level != ADMIN_ACCESS_LEVEL and not repo.is_admin(session, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
