from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Recipient
from app.models.types import utcnow
from app.schemas.session import RecipientDraft
from app.services.errors import StaleStateError, ValidationError


def list_recipients(db: Session, user_id: UUID) -> list[Recipient]:
    return (
        db.query(Recipient)
        .filter(Recipient.user_id == user_id, Recipient.is_active.is_(True))
        .order_by(Recipient.created_at.asc())
        .all()
    )


def find_by_nickname(db: Session, user_id: UUID, nickname: str) -> Optional[Recipient]:
    return (
        db.query(Recipient)
        .filter(
            Recipient.user_id == user_id,
            Recipient.is_active.is_(True),
            func.lower(Recipient.nickname) == nickname.strip().lower(),
        )
        .first()
    )


def get_recipient(db: Session, user_id: UUID, recipient_id) -> Optional[Recipient]:
    if recipient_id is None:
        return None
    try:
        recipient_uuid = recipient_id if isinstance(recipient_id, UUID) else UUID(str(recipient_id))
    except ValueError:
        return None
    return (
        db.query(Recipient)
        .filter(Recipient.id == recipient_uuid, Recipient.user_id == user_id)
        .first()
    )


def create_recipient(db: Session, user_id: UUID, draft: RecipientDraft) -> Recipient:
    if find_by_nickname(db, user_id, draft.nickname) is not None:
        raise ValidationError(f"You already have a recipient named {draft.nickname}.")

    if draft.payment_method == "upi":
        if not draft.upi_id:
            raise StaleStateError("Recipient details are incomplete.")
        method_fields = {"upi_id": draft.upi_id}
    elif draft.payment_method == "bank":
        if not (draft.account_number and draft.ifsc_code and draft.bank_name):
            raise StaleStateError("Recipient details are incomplete.")
        method_fields = {
            "account_number": draft.account_number,
            "ifsc_code": draft.ifsc_code,
            "bank_name": draft.bank_name,
        }
    else:
        raise StaleStateError("Recipient details are incomplete.")

    now = utcnow()
    recipient = Recipient(
        user_id=user_id,
        nickname=draft.nickname,
        payment_method=draft.payment_method,
        account_holder_name=draft.verification_name,
        verified=True,
        verification_name=draft.verification_name,
        is_active=True,
        created_at=now,
        updated_at=now,
        **method_fields,
    )
    db.add(recipient)
    db.flush()
    return recipient
