"""Global commands available from the idle state."""

import re
from decimal import Decimal

from app.handlers.base import HandlerContext, HandlerResult, require_user
from app.handlers.onboarding import start_onboarding
from app.handlers.recipient import ask_amount
from app.models import Recipient
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.bank_account_service import (
    MAX_ACTIVE_ACCOUNTS,
    count_active_accounts,
    deactivate_account,
    list_active_accounts,
    set_default_account,
)
from app.services.bot_messages import SEPARATOR, money
from app.services.errors import BankAccountError, StaleStateError
from app.services.fx_service import calculate_quote
from app.services.recipient_service import find_by_nickname, list_recipients
from app.services.state_machine import DialogState, TransferStatus
from app.services.transfer_service import find_by_code, list_recent_transfers, list_user_transfers
from app.services.transport_service import UiTemplate

TRANSFER_CODE_PATTERN = re.compile(r"^TX\d{4,5}$")
RATE_EXAMPLES_USD = (100, 500, 1000, 2000)
RATE_SOURCE_LABELS = {"live": "Live rate", "cached": "Cached rate", "fallback": "Fallback rate"}
STATUS_ICONS = {
    TransferStatus.COMPLETED.value: "✓",
    TransferStatus.CANCELLED.value: "✗",
    TransferStatus.FAILED.value: "❌",
}

FEES_MESSAGE = "\n".join(
    [
        "Fee Structure",
        SEPARATOR,
        "Our fee: 0.1% or $2.00",
        "(whichever is lower)",
        SEPARATOR,
        "",
        "Examples:",
        "• $100 → $0.10 fee (0.1%)",
        "• $500 → $0.50 fee (0.1%)",
        "• $1,000 → $1.00 fee (0.1%)",
        "• $2,000+ → $2.00 fee (max)",
        "",
        "No hidden charges.",
        "No receiving fees in India.",
        "What you see is what you pay.",
    ]
)


def _idle(response: str, data=None, template=None) -> HandlerResult:
    return HandlerResult(next_state=DialogState.IDLE, response=response, data=data or {}, template=template)


async def handle_help(ctx: HandlerContext) -> HandlerResult:
    return _idle(
        f"SurgePay Help Menu\n\n{bot_messages.IDLE_MENU}\n\nReply with any command to begin.",
        template=UiTemplate.IDLE_MENU.value,
    )


async def handle_status(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    transfers = list_recent_transfers(ctx.db, user.id)
    if not transfers:
        return _idle("No transfers yet.\n\nReply NEW to start your first transfer.")

    lines = ["Recent Transfers", SEPARATOR]
    for transfer in transfers:
        recipient = ctx.db.get(Recipient, transfer.recipient_id)
        icon = STATUS_ICONS.get(transfer.status, "⏳")
        lines.extend(
            [
                "",
                f"{transfer.transfer_code} {icon}",
                f"{recipient.nickname if recipient else 'Recipient'}: "
                f"${money(transfer.amount_usd)} → ₹{money(transfer.amount_inr)}",
                f"Status: {transfer.status.replace('_', ' ')}",
                f"Date: {transfer.created_at:%b %d}",
                SEPARATOR,
            ]
        )
    lines.extend(["", "Type a transfer code for details."])
    return _idle("\n".join(lines))


async def handle_rate(ctx: HandlerContext) -> HandlerResult:
    snapshot = await ctx.services.rates.get_rate()
    examples = []
    for amount in RATE_EXAMPLES_USD:
        quote = calculate_quote(Decimal(amount), snapshot.rate)
        examples.append(f"${amount} → ₹{money(quote.amount_inr)} (fee: ${money(quote.fee_usd)})")
    text = "\n".join(
        [
            "Current Exchange Rate",
            SEPARATOR,
            f"1 USD = ₹{bot_messages.rate(snapshot.rate)} INR",
            SEPARATOR,
            RATE_SOURCE_LABELS.get(snapshot.source, snapshot.source),
            "",
            "Examples (after fee):",
            *examples,
            "",
            "Quotes use the live rate at the time you send.",
        ]
    )
    return _idle(text, template=UiTemplate.IDLE_MENU.value)


async def handle_fees(ctx: HandlerContext) -> HandlerResult:
    return _idle(FEES_MESSAGE, template=UiTemplate.IDLE_MENU.value)


async def handle_banks(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    accounts = list_active_accounts(ctx.db, user.id)
    if not accounts:
        return HandlerResult(
            next_state=DialogState.INITIATING_BANK_LINK,
            response="No bank accounts linked.\n\nReply LINK BANK to connect one.",
            data={"adding_bank": True},
            template=UiTemplate.LINK_BANK.value,
        )

    lines = ["Linked Bank Accounts", SEPARATOR]
    for index, account in enumerate(accounts, start=1):
        default_mark = " ⭐ Default" if account.is_default else ""
        lines.extend(
            [
                "",
                f"{index}. {account.bank_name}",
                f"   Account: ****{account.last4}{default_mark}",
                f"   Status: {'✓ Verified' if account.verified else 'Pending'}",
                SEPARATOR,
            ]
        )
    lines.extend(
        [
            "",
            "Commands:",
            "• ADD BANK - Link new account",
            "• DEFAULT [#] - Set default account",
            "• REMOVE [#] - Remove account",
        ]
    )
    return _idle("\n".join(lines))


async def handle_add_bank(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    if count_active_accounts(ctx.db, user.id) >= MAX_ACTIVE_ACCOUNTS:
        return _idle(
            f"You've reached the maximum of {MAX_ACTIVE_ACCOUNTS} bank accounts.\n\n"
            "To add a new one, please remove an existing account first.\n\n"
            "Type BANKS to view and manage your accounts."
        )
    return HandlerResult(
        next_state=DialogState.INITIATING_BANK_LINK,
        response=(
            "Adding a new bank account.\n\n"
            "We connect to your bank securely.\n"
            "Your credentials are never stored by SurgePay.\n\n"
            "Reply CONNECT to proceed."
        ),
        data={"adding_bank": True},
        template=UiTemplate.LINK_BANK.value,
    )


async def handle_recipients(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    recipients = list_recipients(ctx.db, user.id)
    if not recipients:
        return HandlerResult(
            next_state=DialogState.ASKING_RECIPIENT_NAME,
            response="No recipients saved.\n\nEnter a nickname to add your first recipient:\n(Example: Mom, Dad, Raj)",
            data=cleared_transaction_fields(),
        )

    lines = ["Saved Recipients", SEPARATOR]
    for index, recipient in enumerate(recipients, start=1):
        lines.extend(
            [
                "",
                f"{index}. {recipient.nickname}",
                f"   {recipient.payment_label}",
                f"   {'✓ Verified' if recipient.verified else 'Pending'}",
                SEPARATOR,
            ]
        )
    lines.extend(["", "Reply with a nickname to send money."])
    return _idle("\n".join(lines), template=UiTemplate.ADD_RECIPIENT.value)


async def handle_profile(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    bank_count = count_active_accounts(ctx.db, user.id)
    recipient_count = len(list_recipients(ctx.db, user.id))
    completed = sum(
        1 for transfer in list_user_transfers(ctx.db, user.id) if transfer.status == TransferStatus.COMPLETED.value
    )
    text = "\n".join(
        [
            "Your Profile",
            SEPARATOR,
            user.full_name,
            SEPARATOR,
            f"Email: {user.email}",
            f"Phone: {user.phone_number}",
            f"Address: {user.address}",
            SEPARATOR,
            "Account Stats",
            SEPARATOR,
            f"Linked Banks: {bank_count}",
            f"Saved Recipients: {recipient_count}",
            f"Completed Transfers: {completed}",
            SEPARATOR,
            f"KYC Status: {'✓ Verified' if user.kyc_status == 'verified' else 'Basic'}",
            f"Member Since: {user.created_at:%B %Y}",
            SEPARATOR,
        ]
    )
    return _idle(text, template=UiTemplate.IDLE_MENU.value)


async def handle_new(ctx: HandlerContext) -> HandlerResult:
    if ctx.user is None:
        return start_onboarding()
    return HandlerResult(
        next_state=DialogState.ASKING_RECIPIENT_NAME,
        response=f"Starting new transfer.\n\n{bot_messages.MSG_ASK_RECIPIENT}",
        data=cleared_transaction_fields(),
    )


async def handle_set_default(ctx: HandlerContext, number: int) -> HandlerResult:
    user = require_user(ctx)
    accounts = list_active_accounts(ctx.db, user.id)
    if not 1 <= number <= len(accounts):
        return _idle(
            f"Invalid selection. You have {len(accounts)} linked account(s).\n\nType BANKS to see your accounts."
        )

    account = accounts[number - 1]
    try:
        set_default_account(ctx.db, user.id, account.id)
    except BankAccountError as exc:
        if exc.code == "already_default":
            return _idle(f"{account.bank_name} is already your default account.")
        return _idle(exc.message)
    return _idle(
        f"✓ Default Updated\n\n{bot_messages.account_line(account)} is now your default account.\n\n"
        "Future transfers will use this account unless you choose another."
    )


async def handle_remove_bank(ctx: HandlerContext, number: int) -> HandlerResult:
    user = require_user(ctx)
    accounts = list_active_accounts(ctx.db, user.id)
    if not 1 <= number <= len(accounts):
        return _idle(
            f"Invalid selection. You have {len(accounts)} linked account(s).\n\nType BANKS to see your accounts."
        )
    if len(accounts) == 1:
        return _idle(
            "Cannot remove your only bank account.\n\n"
            "Add another account first, then you can remove this one.\n\n"
            "Type ADD BANK to link a new account."
        )

    account = accounts[number - 1]
    return _idle(
        f"Remove {bot_messages.account_line(account)}?\n\n"
        "⚠️ This cannot be undone.\n\n"
        "Reply CONFIRM REMOVE to proceed.\n"
        "Reply CANCEL to keep the account.",
        data={"bank_to_remove": str(account.id), "awaiting_remove_confirm": True},
    )


async def handle_confirm_remove(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    data = ctx.session_data
    clear_pending = {"bank_to_remove": None, "awaiting_remove_confirm": None}
    nothing_pending = "No pending removal. Type BANKS to manage your accounts."

    if not data.awaiting_remove_confirm or not data.bank_to_remove:
        return _idle(nothing_pending, data=clear_pending)

    try:
        account = deactivate_account(ctx.db, user.id, data.bank_to_remove)
    except BankAccountError as exc:
        if exc.code == "not_found":
            return _idle(nothing_pending, data=clear_pending)
        return _idle(exc.message, data=clear_pending)

    remaining = count_active_accounts(ctx.db, user.id)
    return _idle(
        f"✓ Account Removed\n\n{bot_messages.account_line(account)} has been removed.\n\n"
        f"You now have {remaining} linked account(s).",
        data=clear_pending,
    )


async def handle_idle(ctx: HandlerContext) -> HandlerResult:
    """Fallback for idle input that is not a global command."""
    if ctx.user is None:
        return start_onboarding()

    text = ctx.message.strip()
    if TRANSFER_CODE_PATTERN.match(text.upper()):
        transfer = find_by_code(ctx.db, ctx.user.id, text)
        if transfer is not None:
            recipient = ctx.db.get(Recipient, transfer.recipient_id)
            if recipient is None:
                raise StaleStateError("Recipient not found.")
            return _idle(bot_messages.transfer_detail(transfer, recipient))

    if text:
        recipient = find_by_nickname(ctx.db, ctx.user.id, text)
        if recipient is not None:
            result = ask_amount(
                recipient,
                f"Sending to {recipient.nickname} ({bot_messages.recipient_destination(recipient)}).",
            )
            result.data = {**cleared_transaction_fields(), **result.data}
            return result

    return await handle_help(ctx)
