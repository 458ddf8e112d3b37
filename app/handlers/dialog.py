"""State dispatch for the transfer dialog."""

from typing import Optional

from app.handlers import bank_link, commands, onboarding, recipient, transfer
from app.handlers.base import HandlerContext, HandlerResult, StateHandler
from app.handlers.cancel import handle_cancel
from app.logging_config import get_logger
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.errors import StaleStateError, ValidationError
from app.services.state_machine import DialogState
from app.services.transport_service import UiTemplate

logger = get_logger("dialog")

STATE_HANDLERS: dict[DialogState, StateHandler] = {
    DialogState.INITIAL: onboarding.handle_initial,
    DialogState.ASKING_NAME: onboarding.handle_asking_name,
    DialogState.ASKING_EMAIL: onboarding.handle_asking_email,
    DialogState.ASKING_DOB: onboarding.handle_asking_dob,
    DialogState.ASKING_ADDRESS: onboarding.handle_asking_address,
    DialogState.INITIATING_BANK_LINK: bank_link.handle_initiating_bank_link,
    DialogState.SELECTING_BANK: bank_link.handle_selecting_bank,
    DialogState.CONFIRMING_LINKED_ACCOUNT: bank_link.handle_confirming_linked_account,
    DialogState.ASKING_RECIPIENT_NAME: recipient.handle_asking_recipient_name,
    DialogState.ASKING_PAYMENT_METHOD: recipient.handle_asking_payment_method,
    DialogState.ASKING_UPI_ID: recipient.handle_asking_upi_id,
    DialogState.ASKING_ACCOUNT_NUMBER: recipient.handle_asking_account_number,
    DialogState.ASKING_IFSC: recipient.handle_asking_ifsc,
    DialogState.ASKING_BANK_NAME: recipient.handle_asking_bank_name,
    DialogState.CONFIRMING_RECIPIENT: recipient.handle_confirming_recipient,
    DialogState.ASKING_AMOUNT: transfer.handle_asking_amount,
    DialogState.SHOWING_QUOTE: transfer.handle_showing_quote,
    DialogState.BANK_ACCOUNT_SELECTION: transfer.handle_bank_account_selection,
    DialogState.CONFIRMING_TRANSFER: transfer.handle_confirming_transfer,
    DialogState.IDLE: commands.handle_idle,
}

_missing = set(DialogState) - set(STATE_HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for states: {sorted(state.value for state in _missing)}")

# Step hint and button template shown again after invalid input.
REPROMPTS: dict[DialogState, tuple[Optional[str], Optional[str]]] = {
    DialogState.ASKING_DOB: ("Format: DD/MM/YYYY", None),
    DialogState.INITIATING_BANK_LINK: (None, UiTemplate.LINK_BANK.value),
    DialogState.SELECTING_BANK: (bank_link.bank_selection_prompt(), UiTemplate.BANK_SELECTION.value),
    DialogState.CONFIRMING_LINKED_ACCOUNT: (None, UiTemplate.YES_NO.value),
    DialogState.ASKING_PAYMENT_METHOD: ("1. UPI (instant)\n2. Bank account (IFSC)", UiTemplate.PAYMENT_METHOD.value),
    DialogState.CONFIRMING_RECIPIENT: (None, UiTemplate.YES_NO.value),
    DialogState.ASKING_AMOUNT: (bot_messages.MSG_ASK_AMOUNT_LIMITS, None),
    DialogState.SHOWING_QUOTE: (None, UiTemplate.CONFIRM_CANCEL.value),
    DialogState.CONFIRMING_TRANSFER: (None, UiTemplate.PAY_CANCEL.value),
}


def reprompt(state: DialogState, message: str) -> HandlerResult:
    hint, template = REPROMPTS.get(state, (None, None))
    parts = [message]
    if hint:
        parts.append(hint)
    parts.append(bot_messages.CANCEL_HINT)
    return HandlerResult(next_state=state, response="\n\n".join(parts), template=template)


def back_to_idle(message: str) -> HandlerResult:
    return HandlerResult(
        next_state=DialogState.IDLE,
        response=bot_messages.with_menu(message),
        data=cleared_transaction_fields(),
        template=UiTemplate.IDLE_MENU.value,
    )


async def dispatch(state: DialogState, ctx: HandlerContext) -> HandlerResult:
    """Run the handler for ``state``.

    Invalid input keeps the state and re-prompts; a missing, expired or
    already processed session object sends the user back to idle.
    """
    if state is not DialogState.IDLE and ctx.message.strip().upper() == "CANCEL":
        return await handle_cancel(ctx)

    handler = STATE_HANDLERS[state]
    try:
        return await handler(ctx)
    except ValidationError as exc:
        return reprompt(state, exc.message)
    except StaleStateError as exc:
        logger.info(
            "Stale dialog state, returning to idle",
            extra={"context": {"state": state.value, "reason": exc.message}},
        )
        return back_to_idle(exc.message)
