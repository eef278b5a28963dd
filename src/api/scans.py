"""Scan submission API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api.dependencies import get_current_user
from src.config import Settings, get_settings
from src.database import get_db
from src.models.scanned_url import ScannedURL
from src.models.user import User
from src.schemas.scan import ScanResponse, ScanSubmit, ScanSubmitResponse
from src.services.job_ledger import JobLedger
from src.tasks.ingestion import dispatch_scanned_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/scans", tags=["scans"])


def get_user_scan(db: Session, scan_id: int, user: User) -> ScannedURL:
    """Get a scanned URL owned by the user or raise 404."""
    scan = (
        db.query(ScannedURL)
        .filter(ScannedURL.id == scan_id, ScannedURL.user_id == user.id)
        .first()
    )
    if not scan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan not found")
    return scan


def find_scan(db: Session, url: str, user: User) -> ScannedURL | None:
    return (
        db.query(ScannedURL)
        .filter(ScannedURL.user_id == user.id, ScannedURL.url == url)
        .first()
    )


def attach_late_snapshot(
    db: Session, scan: ScannedURL, html_snapshot: str, settings: Settings
) -> bool:
    """Store a snapshot from a re-scan on a scan that was submitted without one.

    Returns True when the scan's failed job was reopened and needs another
    delivery.
    """
    if scan.html_snapshot:
        return False
    if scan.job is None:
        # Delivery still queued; it reads the snapshot from the row
        scan.html_snapshot = html_snapshot
        db.commit()
        return False
    scan.html_snapshot = html_snapshot
    return JobLedger(db, settings).reopen_for_snapshot(scan.job)


def _already_submitted(scan: ScannedURL, response: Response) -> ScanSubmitResponse:
    response.status_code = status.HTTP_200_OK
    return ScanSubmitResponse(
        scan=ScanResponse.model_validate(scan),
        created=False,
        message="Scan already submitted",
    )


@router.post("", response_model=ScanSubmitResponse, status_code=status.HTTP_201_CREATED)
def submit_scan(
    scan_data: ScanSubmit,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Submit a scanned receipt URL for processing.

    Submitting the same URL again returns the existing scan instead of
    creating a second one. If that scan failed because the site needs a page
    rendered on the device, a re-scan carrying the snapshot queues it again.
    """
    html_snapshot = scan_data.html_snapshot or None
    if html_snapshot and len(html_snapshot.encode()) > settings.max_html_snapshot_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"HTML snapshot exceeds {settings.max_html_snapshot_bytes} bytes",
        )

    existing = find_scan(db, scan_data.url, current_user)
    if existing:
        if html_snapshot and attach_late_snapshot(db, existing, html_snapshot, settings):
            logger.info(f"User {current_user.id} re-scanned {existing.id} with a snapshot")
            dispatch_scanned_url.delay(existing.id)
            response.status_code = status.HTTP_202_ACCEPTED
            return ScanSubmitResponse(
                scan=ScanResponse.model_validate(existing),
                created=False,
                message="Snapshot received, scan queued for processing again",
            )
        return _already_submitted(existing, response)

    scan = ScannedURL(url=scan_data.url, user_id=current_user.id, html_snapshot=html_snapshot)
    db.add(scan)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent submission of the same URL won the insert
        db.rollback()
        existing = find_scan(db, scan_data.url, current_user)
        if existing is None:
            raise
        return _already_submitted(existing, response)
    db.refresh(scan)
    logger.info(f"User {current_user.id} submitted scan {scan.id}: {scan.url}")

    dispatch_scanned_url.delay(scan.id)

    return ScanSubmitResponse(
        scan=ScanResponse.model_validate(scan),
        created=True,
        message="Scan queued for processing",
    )


@router.get("", response_model=list[ScanResponse])
def list_scans(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = 50,
):
    """Get the user's scans, newest first."""
    limit = max(1, min(limit, 200))
    return (
        db.query(ScannedURL)
        .filter(ScannedURL.user_id == current_user.id)
        .order_by(ScannedURL.created_at.desc(), ScannedURL.id.desc())
        .limit(limit)
        .all()
    )


@router.get("/{scan_id}", response_model=ScanResponse)
def get_scan(
    scan_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Get a scan with its processing status."""
    return get_user_scan(db, scan_id, current_user)
