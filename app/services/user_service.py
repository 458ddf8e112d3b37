from typing import Optional

from sqlalchemy.orm import Session

from app.models import BankAccount, User
from app.models.types import utcnow
from app.schemas.session import LinkedAccount
from app.services.bank_account_service import add_bank_account
from app.services.validation import parse_dob


def get_user_by_phone(db: Session, phone_number: str) -> Optional[User]:
    return db.query(User).filter(User.phone_number == phone_number).first()


def create_user_with_account(
    db: Session,
    phone_number: str,
    full_name: str,
    email: str,
    dob: str,
    address: str,
    linked: LinkedAccount,
) -> tuple[User, BankAccount]:
    """Create the user and their first (default) funding account together.

    Both rows are flushed in the caller's transaction; nothing is committed
    here so a failure on either leaves neither behind.
    """
    now = utcnow()
    user = User(
        phone_number=phone_number,
        full_name=full_name,
        email=email,
        date_of_birth=parse_dob(dob),
        address=address,
        kyc_status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.flush()
    account = add_bank_account(db, user.id, linked, make_default=True)
    return user, account
