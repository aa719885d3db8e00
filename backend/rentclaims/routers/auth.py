"""
Rental Claims Core - Authentication Router

Hosts and guests register themselves; admin accounts only come from
scripts/seed_admin.py.
"""
from uuid import uuid4
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import AccountDB, AccountRole
from ..auth import hash_password, verify_password, create_access_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


class RegisterRequest(BaseModel):
    email: EmailStr
    username: str
    password: str
    role: AccountRole = AccountRole.GUEST
    display_name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v == AccountRole.ADMIN:
            raise ValueError('Cannot self-register as admin')
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_id: str
    role: str


class AccountResponse(BaseModel):
    id: str
    email: str
    username: str
    role: str
    display_name: Optional[str] = None

    @classmethod
    def from_account(cls, account: AccountDB) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            username=account.username,
            role=account.role.value,
            display_name=account.display_name,
        )


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Create a HOST or GUEST account."""
    clash = db.query(AccountDB).filter(
        (AccountDB.email == request.email) | (AccountDB.username == request.username)
    ).first()
    if clash is not None:
        detail = "Email already registered" if clash.email == request.email else "Username already taken"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    account = AccountDB(
        id=str(uuid4()),
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
        role=request.role,
        display_name=request.display_name,
    )
    db.add(account)
    db.commit()

    logger.info(f"Registered {account.role.value} account {account.id}")
    return AccountResponse.from_account(account)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    account = db.query(AccountDB).filter(AccountDB.email == request.email).first()

    if account is None or not verify_password(request.password, account.password_hash):
        logger.warning(f"Failed login for {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenResponse(
        access_token=create_access_token(account.id, account.email, account.role.value),
        account_id=account.id,
        role=account.role.value,
    )


@router.get("/me", response_model=AccountResponse)
async def get_me(current_user: AccountDB = Depends(get_current_user)):
    return AccountResponse.from_account(current_user)
