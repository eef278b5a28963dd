"""FastAPI dependencies for authentication, database and ingestion."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.database import get_db
from src.models.user import User
from src.services.auth import read_device_token, verify_webhook_secret
from src.services.browser import BrowserManager
from src.services.dispatcher import IngestionDispatcher
from src.services.receipt_parsers.registry import ParserRegistry, get_parser_registry

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    """Resolve the device's bearer token to the user it was issued for."""
    user_id = read_device_token(credentials.credentials, settings)
    user = db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired device token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_webhook_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject ingestion calls that do not carry the shared secret."""
    if not settings.webhook_secret:
        logger.error("WEBHOOK_SECRET is not set, rejecting ingestion call")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    if not verify_webhook_secret(x_webhook_secret, settings.webhook_secret):
        logger.warning("Unauthorized webhook attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_browser_manager(request: Request) -> BrowserManager | None:
    """Get the app-wide browser, if the lifespan created one."""
    return getattr(request.app.state, "browser_manager", None)


def get_ingestion_dispatcher(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    registry: Annotated[ParserRegistry, Depends(get_parser_registry)],
    browser: Annotated[BrowserManager | None, Depends(get_browser_manager)],
) -> IngestionDispatcher:
    """Get ingestion dispatcher with dependencies."""
    return IngestionDispatcher(db, registry=registry, settings=settings, browser=browser)
