"""Device scan tokens and the ingestion webhook secret.

Accounts are provisioned by an operator (scripts/issue_device_token.py). A
device keeps the signed token it was given and sends it as a bearer token
with every scan; the token names the user and nothing else.
"""

import secrets
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.user import User

SCAN_TOKEN_SCOPE = "scans"


def issue_device_token(user: User, settings: Settings | None = None) -> str:
    """Sign a token that lets a device submit scans for user."""
    settings = settings or get_settings()
    claims = {
        "sub": str(user.id),
        "scope": SCAN_TOKEN_SCOPE,
        "exp": datetime.now(UTC) + timedelta(minutes=settings.jwt_expiration_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def read_device_token(token: str, settings: Settings | None = None) -> int | None:
    """Return the user id a valid scan token was issued for, else None."""
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if claims.get("scope") != SCAN_TOKEN_SCOPE:
        return None
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def get_or_create_user(db: Session, email: str, name: str | None = None) -> User:
    """Find the account for email, creating it the first time."""
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=name)
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


def verify_webhook_secret(provided: str | None, expected: str | None) -> bool:
    """Compare the shared webhook secret in constant time."""
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())
