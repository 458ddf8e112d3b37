from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import BankAccount
from app.models.types import utcnow
from app.schemas.session import LinkedAccount
from app.services.errors import BankAccountError

logger = get_logger("bank_account_service")

MAX_ACTIVE_ACCOUNTS = 5


def list_active_accounts(db: Session, user_id: UUID) -> list[BankAccount]:
    """Active accounts, default first then oldest first (the numbering users see)."""
    return (
        db.query(BankAccount)
        .filter(BankAccount.user_id == user_id, BankAccount.is_active.is_(True))
        .order_by(BankAccount.is_default.desc(), BankAccount.created_at.asc())
        .all()
    )


def count_active_accounts(db: Session, user_id: UUID) -> int:
    return (
        db.query(BankAccount)
        .filter(BankAccount.user_id == user_id, BankAccount.is_active.is_(True))
        .count()
    )


def get_account(db: Session, user_id: UUID, account_id) -> Optional[BankAccount]:
    if account_id is None:
        return None
    if not isinstance(account_id, UUID):
        try:
            account_id = UUID(str(account_id))
        except ValueError:
            return None
    return (
        db.query(BankAccount)
        .filter(
            BankAccount.id == account_id,
            BankAccount.user_id == user_id,
            BankAccount.is_active.is_(True),
        )
        .first()
    )


def get_default_account(db: Session, user_id: UUID) -> Optional[BankAccount]:
    accounts = list_active_accounts(db, user_id)
    return accounts[0] if accounts else None


def add_bank_account(db: Session, user_id: UUID, linked: LinkedAccount, make_default: bool = False) -> BankAccount:
    active_count = count_active_accounts(db, user_id)
    if active_count >= MAX_ACTIVE_ACCOUNTS:
        raise BankAccountError(
            f"Maximum {MAX_ACTIVE_ACCOUNTS} bank accounts allowed.",
            "account_limit",
            limit=MAX_ACTIVE_ACCOUNTS,
        )

    if active_count == 0:
        make_default = True
    elif make_default:
        _clear_defaults(db, user_id)

    now = utcnow()
    account = BankAccount(
        user_id=user_id,
        link_access_token=linked.access_token,
        link_account_id=linked.account_id,
        account_number=linked.account_number,
        routing_number=linked.routing_number,
        bank_name=linked.bank_name,
        account_holder_name=linked.account_holder,
        account_type=linked.account_type,
        verified=True,
        is_active=True,
        is_default=make_default,
        created_at=now,
        updated_at=now,
    )
    db.add(account)
    db.flush()
    logger.info(
        "Bank account linked",
        extra={"context": {"user_id": str(user_id), "account_id": str(account.id), "default": make_default}},
    )
    return account


def set_default_account(db: Session, user_id: UUID, account_id) -> BankAccount:
    account = get_account(db, user_id, account_id)
    if account is None:
        raise BankAccountError("Bank account not found.", "not_found")
    if account.is_default:
        raise BankAccountError("This is already your default account.", "already_default")
    _clear_defaults(db, user_id)
    account.is_default = True
    account.updated_at = utcnow()
    db.flush()
    return account


def deactivate_account(db: Session, user_id: UUID, account_id) -> BankAccount:
    """Soft-delete an account. The last active account cannot be removed."""
    account = get_account(db, user_id, account_id)
    if account is None:
        raise BankAccountError("Bank account not found.", "not_found")
    if count_active_accounts(db, user_id) < 2:
        raise BankAccountError(
            "Cannot remove your only bank account.\n\nAdd another account first with ADD BANK.",
            "last_account",
        )

    was_default = account.is_default
    account.is_active = False
    account.is_default = False
    account.updated_at = utcnow()
    db.flush()

    if was_default:
        successor = get_default_account(db, user_id)
        if successor is not None:
            successor.is_default = True
            successor.updated_at = utcnow()
            db.flush()
    return account


def _clear_defaults(db: Session, user_id: UUID) -> None:
    db.query(BankAccount).filter(
        BankAccount.user_id == user_id,
        BankAccount.is_default.is_(True),
    ).update({BankAccount.is_default: False}, synchronize_session="fetch")
