"""Authentication: password hashing, bearer tokens and the current-user dependency."""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Header
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, serialize
from errors import AuthError, ValidationError
from schemas import User
from timeutils import utcnow

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}:{digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        salt, stored = password_hash.split(":", 1)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), stored)


def issue_token(user_id: str) -> str:
    now = utcnow()
    payload = {
        "user_id": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> str:
    """Return the user id bound to `token` or raise AuthError."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        raise AuthError("Invalid or expired token")
    user_id = payload.get("user_id")
    if not user_id:
        raise AuthError("Invalid or expired token")
    return user_id


def current_user_id(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise AuthError("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid token format")
    try:
        return verify_token(token.strip())
    except AuthError:
        logger.info("Rejected bearer token")
        raise


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize(doc)
    user.pop("password_hash", None)
    return user


def register_user(db: Database, email: str, password: str, name: str) -> Dict[str, Any]:
    email = email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered")
    user = User(email=email, name=name, password_hash=hash_password(password))
    try:
        user_id = create_document(db, "user", user.model_dump())
    except DuplicateKeyError:
        raise ValidationError("Email already registered")
    logger.info(f"Registered user {user_id}")
    return public_user(db["user"].find_one({"email": email}))


def authenticate(db: Database, email: str, password: str) -> Dict[str, Any]:
    doc = db["user"].find_one({"email": email.strip().lower()})
    if not doc or not verify_password(password, doc.get("password_hash", "")):
        logger.info("Failed login attempt")
        raise AuthError("Invalid email or password")
    return public_user(doc)
