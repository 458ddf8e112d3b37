from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Fields that only make sense while one flow is in progress. Every cancel or
# reset path clears exactly this set.
TRANSACTION_FIELDS = (
    "recipient_draft",
    "transfer_id",
    "selected_recipient_id",
    "selected_bank_account_id",
    "linked_account",
    "bank_key",
    "adding_bank",
    "awaiting_remove_confirm",
    "bank_to_remove",
    "rate_job_id",
    "quote_started_at",
)


def cleared_transaction_fields() -> dict[str, None]:
    """Patch that removes every transaction-scoped field when merged."""
    return {field: None for field in TRANSACTION_FIELDS}


class LinkedAccount(BaseModel):
    access_token: str
    account_id: str
    account_number: str
    routing_number: str
    bank_name: str
    account_type: str = "checking"
    account_holder: str


class RecipientDraft(BaseModel):
    nickname: str
    payment_method: Optional[Literal["upi", "bank"]] = None
    upi_id: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None
    verification_name: Optional[str] = None


class SessionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # onboarding profile in progress
    name: Optional[str] = None
    email: Optional[str] = None
    dob: Optional[str] = None
    address: Optional[str] = None

    # account linking
    bank_key: Optional[str] = None
    linked_account: Optional[LinkedAccount] = None
    adding_bank: Optional[bool] = None
    awaiting_remove_confirm: Optional[bool] = None
    bank_to_remove: Optional[str] = None

    # recipient and quote
    recipient_draft: Optional[RecipientDraft] = None
    selected_recipient_id: Optional[str] = None
    selected_bank_account_id: Optional[str] = None
    transfer_id: Optional[str] = None
    rate_job_id: Optional[str] = None
    quote_started_at: Optional[datetime] = None

    # settlement lock
    transfer_processing: Optional[bool] = None
    active_transfer_id: Optional[str] = None
    settlement_job_id: Optional[str] = None

    def merge(self, patch: dict[str, Any]) -> "SessionData":
        """Overlay a handler patch; a None value removes the field."""
        merged = self.model_dump(exclude_none=True)
        for key, value in patch.items():
            if value is None:
                merged.pop(key, None)
            elif isinstance(value, BaseModel):
                merged[key] = value.model_dump(exclude_none=True)
            else:
                merged[key] = value
        return SessionData.model_validate(merged)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SessionSnapshot(BaseModel):
    state: str
    data: SessionData = Field(default_factory=SessionData)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
