"""Receipt API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload

from src.api.dependencies import get_current_user
from src.database import get_db
from src.models.receipt import Receipt
from src.models.user import User
from src.schemas.receipt import ReceiptResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/receipts", tags=["receipts"])


def get_user_receipt(db: Session, receipt_id: int, user: User) -> Receipt:
    """Get a receipt owned by the user or raise 404."""
    receipt = (
        db.query(Receipt)
        .filter(Receipt.id == receipt_id, Receipt.user_id == user.id)
        .first()
    )
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt


@router.get("", response_model=list[ReceiptResponse])
def list_receipts(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Get the user's receipts with items, newest receipt date first."""
    return (
        db.query(Receipt)
        .options(selectinload(Receipt.items))
        .filter(Receipt.user_id == current_user.id)
        .order_by(
            Receipt.receipt_date.is_(None),
            Receipt.receipt_date.desc(),
            Receipt.id.desc(),
        )
        .all()
    )


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Get a single receipt with its items."""
    return get_user_receipt(db, receipt_id, current_user)


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_receipt(
    receipt_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Delete a receipt and its items."""
    receipt = get_user_receipt(db, receipt_id, current_user)
    db.delete(receipt)
    db.commit()
    logger.info(f"User {current_user.id} deleted receipt {receipt_id}")
