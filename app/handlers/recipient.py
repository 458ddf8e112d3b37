from app.handlers.base import HandlerContext, HandlerResult, require_user
from app.models import Recipient
from app.schemas.session import RecipientDraft
from app.services import bot_messages
from app.services.errors import StaleStateError, ValidationError
from app.services.recipient_service import create_recipient, find_by_nickname
from app.services.state_machine import DialogState
from app.services.transport_service import UiTemplate
from app.services.validation import (
    validate_account_number,
    validate_bank_name,
    validate_confirmation,
    validate_ifsc,
    validate_nickname,
    validate_payment_method,
    validate_upi_id,
)


def _require_draft(ctx: HandlerContext) -> RecipientDraft:
    draft = ctx.session_data.recipient_draft
    if draft is None:
        raise StaleStateError("Recipient setup expired. Reply NEW to start again.")
    return draft


def ask_amount(recipient: Recipient, lead: str) -> HandlerResult:
    return HandlerResult(
        next_state=DialogState.ASKING_AMOUNT,
        response=f"{lead}\n\nHow much USD do you want to send?\n\n{bot_messages.MSG_ASK_AMOUNT_LIMITS}",
        data={"selected_recipient_id": str(recipient.id), "recipient_draft": None},
    )


def _confirmation_prompt(draft: RecipientDraft) -> HandlerResult:
    if draft.payment_method == "upi":
        destination = f"UPI: {draft.upi_id}"
    else:
        destination = f"Bank: {draft.bank_name}\nAccount: ****{draft.account_number[-4:]}\nIFSC: {draft.ifsc_code}"
    text = "\n".join(
        [
            "✓ Verified",
            "",
            bot_messages.SEPARATOR,
            f"Nickname: {draft.nickname}",
            f"Name: {draft.verification_name}",
            destination,
            bot_messages.SEPARATOR,
            "",
            "Is this correct? Reply YES or NO.",
        ]
    )
    return HandlerResult(
        next_state=DialogState.CONFIRMING_RECIPIENT,
        response=text,
        data={"recipient_draft": draft},
        template=UiTemplate.YES_NO.value,
    )


async def handle_asking_recipient_name(ctx: HandlerContext) -> HandlerResult:
    user = require_user(ctx)
    nickname = validate_nickname(ctx.message)

    existing = find_by_nickname(ctx.db, user.id, nickname)
    if existing is not None:
        return ask_amount(
            existing,
            f"Sending to {existing.nickname} ({bot_messages.recipient_destination(existing)}).",
        )

    return HandlerResult(
        next_state=DialogState.ASKING_PAYMENT_METHOD,
        response=(
            f"How should {nickname} receive money?\n\n"
            "1. UPI (instant)\n"
            "2. Bank account (IFSC)\n\n"
            "Reply 1 or 2."
        ),
        data={"recipient_draft": RecipientDraft(nickname=nickname), "selected_recipient_id": None},
        template=UiTemplate.PAYMENT_METHOD.value,
    )


async def handle_asking_payment_method(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    method = validate_payment_method(ctx.message)
    draft = draft.model_copy(update={"payment_method": method})

    if method == "upi":
        return HandlerResult(
            next_state=DialogState.ASKING_UPI_ID,
            response=f"Enter {draft.nickname}'s UPI ID:\n(Example: name@paytm)",
            data={"recipient_draft": draft},
        )
    return HandlerResult(
        next_state=DialogState.ASKING_ACCOUNT_NUMBER,
        response=f"Enter {draft.nickname}'s bank account number:",
        data={"recipient_draft": draft},
    )


async def handle_asking_upi_id(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    upi_id = validate_upi_id(ctx.message)

    verification = await ctx.services.verifier.verify_payment_identifier(upi_id)
    if not verification.valid:
        return HandlerResult(
            next_state=DialogState.ASKING_UPI_ID,
            response=f"Could not verify this UPI ID. Please check and re-enter it.\n\n{bot_messages.CANCEL_HINT}",
        )

    draft = draft.model_copy(update={"upi_id": upi_id, "verification_name": verification.resolved_name})
    return _confirmation_prompt(draft)


async def handle_asking_account_number(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    account_number = validate_account_number(ctx.message)
    return HandlerResult(
        next_state=DialogState.ASKING_IFSC,
        response="Enter the IFSC code:\n(Example: SBIN0001234)",
        data={"recipient_draft": draft.model_copy(update={"account_number": account_number})},
    )


async def handle_asking_ifsc(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    ifsc_code = validate_ifsc(ctx.message)
    return HandlerResult(
        next_state=DialogState.ASKING_BANK_NAME,
        response="Enter the bank name:\n(Example: State Bank of India)",
        data={"recipient_draft": draft.model_copy(update={"ifsc_code": ifsc_code})},
    )


async def handle_asking_bank_name(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    bank_name = validate_bank_name(ctx.message)
    if not (draft.account_number and draft.ifsc_code):
        raise StaleStateError("Recipient setup expired. Reply NEW to start again.")

    verification = await ctx.services.verifier.verify_bank_account(draft.account_number, draft.ifsc_code)
    if not verification.valid:
        retry = draft.model_copy(update={"account_number": None, "ifsc_code": None, "bank_name": None})
        return HandlerResult(
            next_state=DialogState.ASKING_ACCOUNT_NUMBER,
            response="Could not verify this bank account.\n\nPlease re-enter the account number:",
            data={"recipient_draft": retry},
        )

    draft = draft.model_copy(update={"bank_name": bank_name, "verification_name": verification.resolved_name})
    return _confirmation_prompt(draft)


async def handle_confirming_recipient(ctx: HandlerContext) -> HandlerResult:
    draft = _require_draft(ctx)
    answer = validate_confirmation(ctx.message)

    if answer == "NO":
        if draft.payment_method == "upi":
            retry = draft.model_copy(update={"upi_id": None, "verification_name": None})
            return HandlerResult(
                next_state=DialogState.ASKING_UPI_ID,
                response=f"Let's try again.\n\nEnter {draft.nickname}'s UPI ID:",
                data={"recipient_draft": retry},
            )
        retry = draft.model_copy(
            update={"account_number": None, "ifsc_code": None, "bank_name": None, "verification_name": None}
        )
        return HandlerResult(
            next_state=DialogState.ASKING_ACCOUNT_NUMBER,
            response=f"Let's try again.\n\nEnter {draft.nickname}'s bank account number:",
            data={"recipient_draft": retry},
        )

    user = require_user(ctx)
    try:
        recipient = create_recipient(ctx.db, user.id, draft)
    except ValidationError as exc:
        return HandlerResult(
            next_state=DialogState.ASKING_RECIPIENT_NAME,
            response=f"{exc.message}\n\nEnter a different nickname:",
            data={"recipient_draft": None},
        )
    return ask_amount(recipient, f"✓ {recipient.nickname} saved!")
