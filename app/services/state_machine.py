from enum import Enum


class TransferStatus(str, Enum):
    QUOTE = "quote"
    PROCESSING_WITHDRAWAL = "processing_withdrawal"
    PROCESSING_PAYOUT = "processing_payout"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


VALID_TRANSITIONS = {
    TransferStatus.QUOTE: [TransferStatus.PROCESSING_WITHDRAWAL, TransferStatus.CANCELLED],
    TransferStatus.PROCESSING_WITHDRAWAL: [TransferStatus.PROCESSING_PAYOUT, TransferStatus.FAILED],
    TransferStatus.PROCESSING_PAYOUT: [TransferStatus.COMPLETED, TransferStatus.FAILED],
    TransferStatus.COMPLETED: [],
    TransferStatus.CANCELLED: [],
    TransferStatus.FAILED: [],
}

# Statuses that block a second quote for the same user, recipient and amount.
ACTIVE_STATUSES = (
    TransferStatus.QUOTE,
    TransferStatus.PROCESSING_WITHDRAWAL,
    TransferStatus.PROCESSING_PAYOUT,
)

IN_FLIGHT_STATUSES = (
    TransferStatus.PROCESSING_WITHDRAWAL,
    TransferStatus.PROCESSING_PAYOUT,
)


class InvalidTransitionError(Exception):
    def __init__(self, from_status: TransferStatus, to_status: TransferStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: TransferStatus, to_status: TransferStatus) -> bool:
    """Check if transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: TransferStatus, to_status: TransferStatus) -> TransferStatus:
    """Perform a status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


class DialogState(str, Enum):
    """Conversation states; every member must have a handler in the dispatch table."""

    INITIAL = "initial"
    ASKING_NAME = "asking_name"
    ASKING_EMAIL = "asking_email"
    ASKING_DOB = "asking_dob"
    ASKING_ADDRESS = "asking_address"
    INITIATING_BANK_LINK = "initiating_bank_link"
    SELECTING_BANK = "selecting_bank"
    CONFIRMING_LINKED_ACCOUNT = "confirming_linked_account"
    ASKING_RECIPIENT_NAME = "asking_recipient_name"
    ASKING_PAYMENT_METHOD = "asking_payment_method"
    ASKING_UPI_ID = "asking_upi_id"
    ASKING_ACCOUNT_NUMBER = "asking_account_number"
    ASKING_IFSC = "asking_ifsc"
    ASKING_BANK_NAME = "asking_bank_name"
    CONFIRMING_RECIPIENT = "confirming_recipient"
    ASKING_AMOUNT = "asking_amount"
    SHOWING_QUOTE = "showing_quote"
    BANK_ACCOUNT_SELECTION = "bank_account_selection"
    CONFIRMING_TRANSFER = "confirming_transfer"
    IDLE = "idle"
