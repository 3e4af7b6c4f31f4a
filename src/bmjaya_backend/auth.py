"""
Login and bearer-token handling.

Admins (``users`` table) and employees with credentials share one login
endpoint. A successful login yields a signed, long-lived JWT; every other
endpoint verifies it statelessly with the configured secret.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header
from pydantic import ValidationError as PydanticValidationError
from werkzeug.security import check_password_hash, generate_password_hash

from .configuration import AuthSettings, Settings, get_settings
from .database import Database
from .errors import AuthenticationError, InvalidTokenError
from .models import AccountType, CurrentUser, LoginResponse, UserInfo

logger = logging.getLogger(__name__)

DEFAULT_EMPLOYEE_ROLE = "karyawan"
ADMIN_ROLE = "admin"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def issue_token(user: CurrentUser, settings: AuthSettings) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "type": user.type.value,
        "iat": now,
        "exp": now + timedelta(days=settings.token_ttl_days),
    }
    if user.nama:
        claims["nama"] = user.nama
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, settings: AuthSettings) -> CurrentUser:
    """
    Verify signature and expiry and return the identity in the token.

    Raises:
        InvalidTokenError: bad signature, expired, malformed or incomplete claims
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return CurrentUser.model_validate(payload)
    except (jwt.PyJWTError, PydanticValidationError) as exc:
        logger.info(f"Rejected bearer token: {exc}")
        raise InvalidTokenError("Invalid token") from exc


def authenticate(database: Database, username: str, password: str, settings: AuthSettings) -> LoginResponse:
    """
    Check credentials against admins first, then employees.

    An existing admin username never falls through to the employee table.

    Raises:
        AuthenticationError: unknown user or wrong password
    """
    if not username or not password:
        raise AuthenticationError("Invalid credentials")

    admin = database.get_admin(username)
    if admin is not None:
        if not verify_password(password, admin["password"]):
            raise AuthenticationError("Invalid credentials")
        identity = CurrentUser(
            id=admin["id"], username=admin["username"], role=ADMIN_ROLE, type=AccountType.ADMIN
        )
        logger.info(f"Admin {username!r} logged in")
        return LoginResponse(
            token=issue_token(identity, settings),
            user=UserInfo(id=identity.id, username=identity.username, role=ADMIN_ROLE),
        )

    with database.connection() as conn:
        employee = conn.execute(
            "SELECT id, nama, username, password, role, email, no_telpon FROM employees WHERE username = ?",
            (username,),
        ).fetchone()

    if employee is None or not verify_password(password, employee["password"]):
        raise AuthenticationError("Invalid credentials")

    role = employee["role"] or DEFAULT_EMPLOYEE_ROLE
    identity = CurrentUser(
        id=employee["id"],
        username=employee["username"],
        nama=employee["nama"],
        role=role,
        type=AccountType.EMPLOYEE,
    )
    logger.info(f"Employee {username!r} logged in")
    return LoginResponse(
        token=issue_token(identity, settings),
        user=UserInfo(
            id=employee["id"],
            username=employee["username"],
            nama=employee["nama"],
            email=employee["email"],
            no_telpon=employee["no_telpon"],
            role=role,
        ),
    )


def require_user(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """FastAPI dependency: 401 without a bearer token, 403 for a bad one."""
    parts = (authorization or "").split()
    token = parts[1] if len(parts) > 1 else None
    if not token:
        raise AuthenticationError("Access token required")
    return decode_token(token, settings.auth)
