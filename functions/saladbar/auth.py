"""
Auth context: password hashing, bearer tokens and principal resolution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from saladbar.db import RecordStore, utc_now
from saladbar.errors import BadRequest, Unauthorized
from shared.types import UserRole

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class Principal:
    """The authenticated user, resolved from the bearer token."""

    id: str
    email: str
    role: UserRole
    points: int = 0
    salad_streak: int = 0
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_record(cls, record: dict) -> "Principal":
        return cls(
            id=record["id"],
            email=record["email"],
            role=UserRole(record.get("role") or UserRole.CUSTOMER.value),
            points=int(record.get("points") or 0),
            salad_streak=int(record.get("salad_streak") or 0),
            name=record.get("name"),
        )


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def public_user(record: dict) -> dict:
    """User record without the password hash."""
    return {key: value for key, value in record.items() if key != "password"}


def create_access_token(
    user_id: str, role: str, *, secret: str, ttl_minutes: int
) -> str:
    now = utc_now()
    payload = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALG)


def decode_token(token: str, *, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALG])
    except JWTError as exc:
        raise Unauthorized("Invalid token") from exc


def resolve_principal(store: RecordStore, token: str, *, secret: str) -> Principal:
    payload = decode_token(token, secret=secret)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token")
    record = store.get_record("users", user_id)
    if record is None:
        raise Unauthorized("Unknown user")
    return Principal.from_record(record)


def register_user(
    store: RecordStore,
    *,
    email: str,
    password: str,
    name: Optional[str] = None,
    address: Optional[str] = None,
) -> dict:
    email = email.strip().lower()
    if store.find_records("users", {"email": email}, limit=1):
        raise BadRequest("Email is already registered")
    record = store.create_record(
        "users",
        {
            "email": email,
            "password": hash_password(password),
            "name": name,
            "address": address,
            "role": UserRole.CUSTOMER.value,
        },
    )
    logger.info("Registered user %s", record["id"])
    return record


def authenticate(store: RecordStore, *, email: str, password: str) -> dict:
    matches = store.find_records("users", {"email": email.strip().lower()}, limit=1)
    if not matches or not verify_password(password, matches[0]["password"]):
        raise Unauthorized("Invalid email or password")
    return matches[0]
