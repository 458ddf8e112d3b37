"""User-facing copy shared by the dialog handlers and background jobs."""

from decimal import Decimal

from app.models import BankAccount, Recipient, Transfer

SEPARATOR = "━" * 20

IDLE_MENU = "\n".join(
    [
        SEPARATOR,
        "All Commands",
        SEPARATOR,
        "NEW - Start new transfer",
        "STATUS - View recent transfers",
        "HELP - View all commands",
        "RATE - Check exchange rate",
        "FEES - View fee structure",
        "BANKS - Manage bank accounts",
        "RECIPIENTS - View recipients",
        "PROFILE - View your profile",
        SEPARATOR,
    ]
)

CANCEL_HINT = "Or type CANCEL to abort."
MSG_ACTION_CANCELLED = "Action cancelled."
MSG_TRANSFER_CANCELLED = "Transfer cancelled."
MSG_GENERIC_ERROR = "Something went wrong. Please try again in a moment."
MSG_TEMPORARY_ISSUE = "Temporary issue. Your data is safe. Try again."
MSG_NO_ACCOUNT = "No account found. Type Hi to get started."
MSG_TRANSFER_IN_PROGRESS = "Transfer in progress. Please wait for completion.\nYou will receive status updates automatically."
MSG_NOT_AVAILABLE = (
    "This action is not available right now.\n\n"
    "You can:\n"
    "• Complete the current step\n"
    "• Type CANCEL to abort and return to menu"
)
MSG_RATE_UNAVAILABLE = "Unable to fetch live exchange rate.\n\nPlease try again in a few moments."
MSG_QUOTE_EXPIRED = "Quote expired. The rate has changed.\n\nReply NEW to get a fresh quote."
MSG_QUOTE_EXPIRED_BACKGROUND = "Quote expired. The exchange rate has changed.\n\nReply NEW to get a fresh quote."
MSG_QUOTE_RATE_LOST = (
    "Live exchange rates are unavailable right now, so this quote was cancelled.\n\n"
    "Reply NEW to try again in a few moments."
)
MSG_SESSION_EXPIRED = "Session expired."
MSG_ASK_RECIPIENT = "Who do you want to send money to?\n\nEnter a nickname (existing or new):\n(Example: Mom, Dad, Raj)"
MSG_ASK_AMOUNT_LIMITS = "Min: $10 | Max: $10,000"


def with_menu(text: str) -> str:
    return f"{text}\n\n{IDLE_MENU}"


def money(value) -> str:
    return f"{Decimal(value):.2f}"


def rate(value) -> str:
    return f"{Decimal(value):.4f}"


def recipient_destination(recipient: Recipient) -> str:
    if recipient.payment_method == "upi":
        return recipient.upi_id or ""
    return f"****{(recipient.account_number or '')[-4:]}"


def account_line(account: BankAccount) -> str:
    return f"{account.bank_name} (****{account.last4})"


def numbered_accounts(accounts: list[BankAccount]) -> str:
    lines = []
    for index, account in enumerate(accounts, start=1):
        default_mark = " ⭐" if account.is_default else ""
        lines.append(f"{index}. {account_line(account)}{default_mark}")
    return "\n".join(lines)


def quote_message(transfer: Transfer, recipient: Recipient, fee_label: str) -> str:
    return "\n".join(
        [
            "✓ Quote Ready!",
            "",
            SEPARATOR,
            f"Transfer Quote ({transfer.transfer_code})",
            SEPARATOR,
            f"You send: ${money(transfer.amount_usd)} USD",
            f"Fee: ${money(transfer.fee_usd)} ({fee_label})",
            f"Rate: 1 USD = ₹{rate(transfer.fx_rate)} (live)",
            SEPARATOR,
            f"{recipient.nickname} receives: ₹{money(transfer.amount_inr)}",
            f"via {recipient.payment_method.upper()}: {recipient_destination(recipient)}",
            SEPARATOR,
            "",
            "⏱️ Rate updates every 30 seconds",
            "⏰ Quote valid for 5 minutes",
            "",
            "Reply CONFIRM to continue or CANCEL to abort.",
        ]
    )


def rate_update_message(transfer: Transfer, recipient_name: str) -> str:
    return "\n".join(
        [
            "Rate Update",
            "",
            SEPARATOR,
            transfer.transfer_code,
            SEPARATOR,
            f"Rate: 1 USD = ₹{rate(transfer.fx_rate)}",
            f"{recipient_name} receives: ₹{money(transfer.amount_inr)}",
            SEPARATOR,
            "",
            "Reply CONFIRM to continue or CANCEL to abort.",
        ]
    )


def transfer_summary(transfer: Transfer, recipient: Recipient, account: BankAccount) -> str:
    return "\n".join(
        [
            "Confirm transfer details:",
            "",
            SEPARATOR,
            f"Transfer {transfer.transfer_code}",
            SEPARATOR,
            f"From: {account_line(account)}",
            f"To: {recipient.nickname} ({recipient_destination(recipient)})",
            SEPARATOR,
            f"Amount: ${money(transfer.amount_usd)} USD",
            f"Fee: ${money(transfer.fee_usd)}",
            f"Rate: 1 USD = ₹{rate(transfer.fx_rate)}",
            SEPARATOR,
            f"They receive: ₹{money(transfer.amount_inr)}",
            SEPARATOR,
            "",
            f"⚠️ ${money(transfer.amount_usd)} will be withdrawn from your bank.",
            "",
            "Reply PAY to send or CANCEL to abort.",
        ]
    )


def transfer_detail(transfer: Transfer, recipient: Recipient) -> str:
    lines = [
        f"Transfer {transfer.transfer_code}",
        SEPARATOR,
        f"To: {recipient.nickname} ({recipient_destination(recipient)})",
        f"Amount: ${money(transfer.amount_usd)} USD",
        f"Fee: ${money(transfer.fee_usd)}",
        f"Rate: 1 USD = ₹{rate(transfer.fx_rate)}",
        f"They receive: ₹{money(transfer.amount_inr)}",
        f"Status: {transfer.status.replace('_', ' ')}",
        f"Created: {transfer.created_at:%b %d, %Y %H:%M} UTC",
    ]
    if transfer.payout_completed_at:
        lines.append(f"Completed: {transfer.payout_completed_at:%b %d, %Y %H:%M} UTC")
    lines.append(SEPARATOR)
    return "\n".join(lines)
