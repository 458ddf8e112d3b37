from app.handlers.base import HandlerContext, HandlerResult, require_user
from app.handlers.cancel import handle_cancel
from app.models import Transfer
from app.models.types import utcnow
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.bank_account_service import get_account, get_default_account, list_active_accounts
from app.services.errors import StaleStateError, ValidationError
from app.services.fx_service import calculate_quote
from app.services.rate_refresh_service import start_rate_refresh
from app.services.recipient_service import get_recipient
from app.services.settlement_service import start_settlement_notifier
from app.services.state_machine import DialogState, TransferStatus
from app.services.transfer_service import (
    cancel_quote,
    confirm_for_settlement,
    create_quote_transfer,
    find_active_duplicate,
    get_transfer,
    is_quote_expired,
)
from app.services.transport_service import UiTemplate
from app.services.validation import validate_amount, validate_pay_action, validate_quote_action


def _already_processed(transfer: Transfer) -> StaleStateError:
    return StaleStateError(
        f"This transfer ({transfer.transfer_code}) has already been processed.\n\nType STATUS to check progress."
    )


def _load_open_quote(ctx: HandlerContext) -> Transfer:
    """The session's quote, still open and unexpired; otherwise StaleStateError."""
    transfer_id = ctx.session_data.transfer_id
    if not transfer_id:
        raise StaleStateError(bot_messages.MSG_SESSION_EXPIRED)
    transfer = get_transfer(ctx.db, transfer_id)
    if transfer is None:
        raise StaleStateError("Transfer not found.")
    if transfer.status != TransferStatus.QUOTE.value:
        raise _already_processed(transfer)
    if is_quote_expired(transfer):
        cancel_quote(ctx.db, transfer.id)
        raise StaleStateError(bot_messages.MSG_QUOTE_EXPIRED)
    return transfer


def _confirm_details(ctx: HandlerContext, transfer: Transfer, account) -> HandlerResult:
    recipient = get_recipient(ctx.db, transfer.user_id, transfer.recipient_id)
    if recipient is None:
        raise StaleStateError("Recipient not found.")
    return HandlerResult(
        next_state=DialogState.CONFIRMING_TRANSFER,
        response=bot_messages.transfer_summary(transfer, recipient, account),
        data={"selected_bank_account_id": str(account.id), "rate_job_id": None},
        template=UiTemplate.PAY_CANCEL.value,
    )


async def handle_asking_amount(ctx: HandlerContext) -> HandlerResult:
    amount = validate_amount(ctx.message)
    user = require_user(ctx)

    recipient_id = ctx.session_data.selected_recipient_id
    recipient = get_recipient(ctx.db, user.id, recipient_id) if recipient_id else None
    if recipient is None or not recipient.is_active:
        return HandlerResult(
            next_state=DialogState.ASKING_RECIPIENT_NAME,
            response=f"Please choose a recipient first.\n\n{bot_messages.MSG_ASK_RECIPIENT}",
            data={"selected_recipient_id": None},
        )

    duplicate = find_active_duplicate(ctx.db, user.id, recipient.id, amount)
    if duplicate is not None:
        return HandlerResult(
            next_state=DialogState.IDLE,
            response=bot_messages.with_menu(
                f"You already have an active transfer ({duplicate.transfer_code}) for this amount.\n\n"
                "Type STATUS to check progress."
            ),
            data=cleared_transaction_fields(),
            template=UiTemplate.IDLE_MENU.value,
        )

    live_rate = await ctx.services.rates.get_live_rate()
    if live_rate is None:
        return HandlerResult(
            next_state=DialogState.IDLE,
            response=bot_messages.with_menu(bot_messages.MSG_RATE_UNAVAILABLE),
            data=cleared_transaction_fields(),
            template=UiTemplate.IDLE_MENU.value,
        )

    quote = calculate_quote(amount, live_rate)
    transfer = create_quote_transfer(
        ctx.db,
        user.id,
        recipient.id,
        quote,
        ttl_seconds=ctx.services.settings.quote_ttl_seconds,
    )
    ctx.db.commit()
    job_id = start_rate_refresh(ctx.services, ctx.phone_number, transfer.id)

    return HandlerResult(
        next_state=DialogState.SHOWING_QUOTE,
        response=bot_messages.quote_message(transfer, recipient, quote.fee_label),
        data={
            "transfer_id": str(transfer.id),
            "rate_job_id": job_id,
            "quote_started_at": utcnow(),
        },
        template=UiTemplate.CONFIRM_CANCEL.value,
    )


async def handle_showing_quote(ctx: HandlerContext) -> HandlerResult:
    action = validate_quote_action(ctx.message)
    if action == "CANCEL":
        return await handle_cancel(ctx)

    # The rate is frozen from here on.
    ctx.services.jobs.stop(ctx.session_data.rate_job_id)
    transfer = _load_open_quote(ctx)
    user = require_user(ctx)

    accounts = list_active_accounts(ctx.db, user.id)
    if not accounts:
        return HandlerResult(
            next_state=DialogState.INITIATING_BANK_LINK,
            response="You need to link a bank account first.\n\nReply LINK BANK to connect.",
            data={"adding_bank": True, "rate_job_id": None},
            template=UiTemplate.LINK_BANK.value,
        )
    if len(accounts) == 1:
        return _confirm_details(ctx, transfer, accounts[0])

    return HandlerResult(
        next_state=DialogState.BANK_ACCOUNT_SELECTION,
        response=(
            f"Select bank account:\n\n{bot_messages.numbered_accounts(accounts)}\n\n"
            f"Reply with the number of your choice.\n{bot_messages.CANCEL_HINT}"
        ),
        data={"rate_job_id": None},
    )


async def handle_bank_account_selection(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    accounts = list_active_accounts(ctx.db, user.id)
    choice = ctx.message.strip()
    if not choice.isdigit() or not 1 <= int(choice) <= len(accounts):
        raise ValidationError(
            f"Invalid selection. Please choose:\n\n{bot_messages.numbered_accounts(accounts)}\n\nReply with the number."
        )

    transfer = _load_open_quote(ctx)
    return _confirm_details(ctx, transfer, accounts[int(choice) - 1])


async def handle_confirming_transfer(ctx: HandlerContext) -> HandlerResult:
    action = validate_pay_action(ctx.message)
    if action == "CANCEL":
        return await handle_cancel(ctx)

    user = require_user(ctx)
    transfer_id = ctx.session_data.transfer_id
    if not transfer_id:
        raise StaleStateError(bot_messages.MSG_SESSION_EXPIRED)

    account = get_account(ctx.db, user.id, ctx.session_data.selected_bank_account_id)
    if account is None:
        account = get_default_account(ctx.db, user.id)

    result = confirm_for_settlement(ctx.db, transfer_id, account.id if account else None)
    if result.error_code == "already_processed":
        raise StaleStateError(f"{result.error}\n\nType STATUS to check progress.")
    if result.error_code == "expired":
        raise StaleStateError(bot_messages.MSG_QUOTE_EXPIRED)
    transfer = result.unwrap_or_raise(StaleStateError)
    ctx.db.commit()
    job_id = start_settlement_notifier(ctx.services, ctx.phone_number, transfer.id)

    return HandlerResult(
        next_state=DialogState.IDLE,
        response="\n".join(
            [
                "✓ Transfer initiated!",
                "",
                bot_messages.SEPARATOR,
                transfer.transfer_code,
                bot_messages.SEPARATOR,
                "",
                f"Step 1/2: Withdrawing ${bot_messages.money(transfer.amount_usd)} from your bank...",
                "",
                "You'll receive live updates on progress.",
            ]
        ),
        data={
            **cleared_transaction_fields(),
            "transfer_processing": True,
            "active_transfer_id": str(transfer.id),
            "settlement_job_id": job_id,
        },
    )
