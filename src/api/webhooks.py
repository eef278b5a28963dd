"""Ingestion entry point for scanned URL insert events."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.api.dependencies import get_ingestion_dispatcher, require_webhook_secret
from src.services.dispatcher import IngestionDispatcher
from src.services.errors import NetworkTimeoutError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

RETRY_AFTER_SECONDS = 60


@router.post("/scanned-urls", dependencies=[Depends(require_webhook_secret)])
async def handle_scanned_url_event(
    request: Request,
    dispatcher: Annotated[IngestionDispatcher, Depends(get_ingestion_dispatcher)],
) -> JSONResponse:
    """Process a scanned_urls INSERT event.

    The caller expects:
    - 200 for every outcome it should not redeliver, including ignored,
      duplicate and failed events
    - 503 with Retry-After when the receipt site timed out
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON payload: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

    try:
        ack = await dispatcher.handle(payload)
    except NetworkTimeoutError as e:
        return JSONResponse(
            status_code=503,
            content={"error": str(e), "retryable": True},
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    return JSONResponse(status_code=200, content=ack.as_dict())
