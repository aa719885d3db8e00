#!/usr/bin/env python3
"""
Claims Admin Seed Script

Creates the admin account that reviews and resolves claims, or promotes an
existing host/guest account with the same email.

Usage:
    python -m scripts.seed_admin <email> <username> <password>

Example:
    python -m scripts.seed_admin claims@rentals.example claimsadmin securepassword123
"""
import argparse
import logging
import os
import sys
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rentclaims.auth import hash_password
from rentclaims.database import init_db, session_scope
from rentclaims.models.db_models import AccountDB, AccountRole
from rentclaims.routers.auth import MIN_PASSWORD_LENGTH

logger = logging.getLogger("rentclaims.seed_admin")


def seed_admin(email: str, username: str, password: str) -> str:
    """
    Return what happened: "created", "promoted" or "unchanged".

    Raises ValueError when the username belongs to a different account.
    """
    with session_scope() as db:
        by_email = db.query(AccountDB).filter(AccountDB.email == email).first()
        by_username = db.query(AccountDB).filter(AccountDB.username == username).first()

        if by_username is not None and by_username is not by_email:
            raise ValueError(f"Username '{username}' belongs to another account")

        if by_email is not None:
            if by_email.role == AccountRole.ADMIN:
                return "unchanged"
            logger.info(f"Promoting {by_email.role.value} account {by_email.id} to admin")
            by_email.role = AccountRole.ADMIN
            return "promoted"

        db.add(AccountDB(
            id=str(uuid4()),
            email=email,
            username=username,
            password_hash=hash_password(password),
            role=AccountRole.ADMIN,
            display_name="Claims Admin",
        ))
        return "created"


def main():
    parser = argparse.ArgumentParser(description="Create or promote a claims admin account")
    parser.add_argument("email")
    parser.add_argument("username")
    parser.add_argument("password")
    args = parser.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

    if len(args.password) < MIN_PASSWORD_LENGTH:
        parser.error(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if "@" not in args.email:
        parser.error("invalid email format")

    init_db()
    try:
        result = seed_admin(args.email, args.username, args.password)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Admin account {args.email}: {result}")


if __name__ == "__main__":
    main()
