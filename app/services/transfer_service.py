"""Transfer records and their status lifecycle.

Every status change is a compare-and-set: the UPDATE only matches while the
row still holds the expected status, so a rate-refresh tick, a duplicate
confirmation and a settlement step can never overwrite each other's outcome.
"""

import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Transfer
from app.models.types import ensure_utc, utcnow
from app.services.fx_service import Quote
from app.services.result import Result
from app.services.state_machine import (
    ACTIVE_STATUSES,
    IN_FLIGHT_STATUSES,
    InvalidTransitionError,
    TransferStatus,
    transition,
)

logger = get_logger("transfer_service")

TRANSFER_CODE_ATTEMPTS = 20
STATUS_HISTORY_LIMIT = 5


def _as_uuid(value) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def generate_transfer_code(db: Session, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    code = f"TX{rng.randint(1000, 9999)}"
    for _ in range(TRANSFER_CODE_ATTEMPTS):
        if db.query(Transfer.id).filter(Transfer.transfer_code == code).first() is None:
            return code
        code = f"TX{rng.randint(1000, 9999)}"
    # Four digits exhausted for practical purposes; widen instead of failing.
    return f"TX{rng.randint(10000, 99999)}"


def get_transfer(db: Session, transfer_id) -> Optional[Transfer]:
    transfer_uuid = _as_uuid(transfer_id)
    if transfer_uuid is None:
        return None
    return db.query(Transfer).filter(Transfer.id == transfer_uuid).first()


def find_by_code(db: Session, user_id: UUID, code: str) -> Optional[Transfer]:
    return (
        db.query(Transfer)
        .filter(Transfer.user_id == user_id, Transfer.transfer_code == code.strip().upper())
        .first()
    )


def list_recent_transfers(db: Session, user_id: UUID, limit: int = STATUS_HISTORY_LIMIT) -> list[Transfer]:
    return (
        db.query(Transfer)
        .filter(Transfer.user_id == user_id)
        .order_by(Transfer.created_at.desc())
        .limit(limit)
        .all()
    )


def list_user_transfers(db: Session, user_id: UUID) -> list[Transfer]:
    return db.query(Transfer).filter(Transfer.user_id == user_id).all()


def is_quote_expired(transfer: Transfer, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return now > ensure_utc(transfer.quote_expires_at)


def find_active_duplicate(
    db: Session,
    user_id: UUID,
    recipient_id: UUID,
    amount_usd: Decimal,
    now: Optional[datetime] = None,
) -> Optional[Transfer]:
    """An open transfer for the same user, recipient and amount.

    Quotes past their expiry no longer count as open.
    """
    now = now or utcnow()
    candidates = (
        db.query(Transfer)
        .filter(
            Transfer.user_id == user_id,
            Transfer.recipient_id == recipient_id,
            Transfer.amount_usd == amount_usd,
            Transfer.status.in_([status.value for status in ACTIVE_STATUSES]),
        )
        .order_by(Transfer.created_at.desc())
        .all()
    )
    for transfer in candidates:
        if transfer.status == TransferStatus.QUOTE.value and is_quote_expired(transfer, now):
            continue
        return transfer
    return None


def create_quote_transfer(
    db: Session,
    user_id: UUID,
    recipient_id: UUID,
    quote: Quote,
    ttl_seconds: int,
) -> Transfer:
    now = utcnow()
    transfer = Transfer(
        transfer_code=generate_transfer_code(db),
        user_id=user_id,
        recipient_id=recipient_id,
        amount_usd=quote.amount_usd,
        fee_usd=quote.fee_usd,
        fx_rate=quote.fx_rate,
        amount_inr=quote.amount_inr,
        status=TransferStatus.QUOTE.value,
        quote_created_at=now,
        quote_expires_at=now + timedelta(seconds=ttl_seconds),
        created_at=now,
        updated_at=now,
    )
    db.add(transfer)
    db.flush()
    logger.info(
        "Quote created",
        extra={
            "context": {
                "transfer_id": str(transfer.id),
                "code": transfer.transfer_code,
                "amount_usd": str(quote.amount_usd),
                "fx_rate": str(quote.fx_rate),
            }
        },
    )
    return transfer


def advance_status(
    db: Session,
    transfer_id,
    expected: TransferStatus,
    target: TransferStatus,
    **fields,
) -> bool:
    """Move ``expected -> target`` atomically; False if the row had moved on."""
    try:
        target = transition(expected, target)
    except InvalidTransitionError as exc:
        logger.error(
            "Refusing invalid transfer transition",
            extra={"context": {"transfer_id": str(transfer_id), "error": str(exc)}},
        )
        return False

    values = {Transfer.status: target.value, Transfer.updated_at: utcnow()}
    for name, value in fields.items():
        values[getattr(Transfer, name)] = value

    updated = (
        db.query(Transfer)
        .filter(Transfer.id == _as_uuid(transfer_id), Transfer.status == expected.value)
        .update(values, synchronize_session=False)
    )
    db.flush()
    if updated:
        _refresh_if_loaded(db, transfer_id)
        logger.info(
            "Transfer status changed",
            extra={"context": {"transfer_id": str(transfer_id), "from": expected.value, "to": target.value}},
        )
    return bool(updated)


def cancel_quote(db: Session, transfer_id) -> bool:
    return advance_status(db, transfer_id, TransferStatus.QUOTE, TransferStatus.CANCELLED)


def mark_failed(db: Session, transfer_id) -> bool:
    transfer = get_transfer(db, transfer_id)
    if transfer is None:
        return False
    current = TransferStatus(transfer.status)
    if current not in IN_FLIGHT_STATUSES:
        return False
    return advance_status(db, transfer_id, current, TransferStatus.FAILED)


def apply_refreshed_rate(db: Session, transfer_id, quote: Quote) -> bool:
    """Store a new rate and destination amount while the transfer is still a quote."""
    updated = (
        db.query(Transfer)
        .filter(Transfer.id == _as_uuid(transfer_id), Transfer.status == TransferStatus.QUOTE.value)
        .update(
            {
                Transfer.fx_rate: quote.fx_rate,
                Transfer.amount_inr: quote.amount_inr,
                Transfer.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.flush()
    if updated:
        _refresh_if_loaded(db, transfer_id)
    return bool(updated)


def confirm_for_settlement(
    db: Session,
    transfer_id,
    bank_account_id,
    now: Optional[datetime] = None,
) -> Result[Transfer]:
    """Hand a quoted transfer to settlement exactly once.

    Anything other than an unexpired ``quote`` is refused; a second
    confirmation of the same transfer reports ``already_processed``.
    """
    now = now or utcnow()
    transfer = get_transfer(db, transfer_id)
    if transfer is None:
        return Result.failure("Transfer not found.", "not_found")
    if transfer.status != TransferStatus.QUOTE.value:
        return Result.failure(
            f"This transfer ({transfer.transfer_code}) has already been processed.",
            "already_processed",
        )
    if is_quote_expired(transfer, now):
        cancel_quote(db, transfer.id)
        return Result.failure("Quote expired. The rate has changed.", "expired")
    account_uuid = _as_uuid(bank_account_id)
    if account_uuid is None:
        return Result.failure("No bank account selected.", "no_funding_account")

    moved = advance_status(
        db,
        transfer.id,
        TransferStatus.QUOTE,
        TransferStatus.PROCESSING_WITHDRAWAL,
        bank_account_id=account_uuid,
        withdrawal_initiated_at=now,
    )
    if not moved:
        return Result.failure(
            f"This transfer ({transfer.transfer_code}) has already been processed.",
            "already_processed",
        )
    return Result.success(transfer)


def _refresh_if_loaded(db: Session, transfer_id) -> None:
    transfer = db.get(Transfer, _as_uuid(transfer_id))
    if transfer is not None:
        db.refresh(transfer)
