"""
Rental Claims Core - Authentication

Accounts authenticate with a bearer JWT carrying the account id, email and
marketplace role (HOST, GUEST or ADMIN). Claim and negotiation routes resolve
the caller through `get_current_user`; review, resolution and manual hold
lifts additionally go through `require_admin`.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .clock import utcnow
from .database import get_db
from .models.db_models import AccountDB, AccountRole

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "rentclaims-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))

bearer_scheme = HTTPBearer()


class TokenError(Exception):
    """Token could not be decoded, or has expired."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def create_access_token(account_id: str, email: str, role: str = AccountRole.GUEST.value) -> str:
    """Signed token for an account; `role` is the AccountRole value."""
    issued_at = utcnow().replace(tzinfo=timezone.utc)
    claims = {
        "sub": account_id,
        "email": email,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def read_token(token: str) -> Dict[str, Any]:
    """
    Decode a token and check it against the core clock.

    Raises TokenError on a bad signature, a missing subject or expiry.
    python-jose checks `exp` against wall time; it is checked again here
    against `utcnow()` so a single clock governs claims and sessions.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise TokenError("Token has expired")
    except JWTError:
        raise TokenError("Could not validate credentials")

    if not payload.get("sub"):
        raise TokenError("Could not validate credentials")

    exp = payload.get("exp")
    if exp is None or datetime.fromtimestamp(exp, timezone.utc).replace(tzinfo=None) < utcnow():
        raise TokenError("Token has expired")
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AccountDB:
    """Resolve the calling account from its bearer token."""
    try:
        payload = read_token(credentials.credentials)
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    account = db.query(AccountDB).filter(AccountDB.id == payload["sub"]).first()
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account no longer exists",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


async def require_admin(current_user: AccountDB = Depends(get_current_user)) -> AccountDB:
    if current_user.role != AccountRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Claims admin access required",
        )
    return current_user
