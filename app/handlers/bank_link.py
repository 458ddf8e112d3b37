from app.handlers.base import HandlerContext, HandlerResult, require_user
from app.logging_config import get_logger
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.bank_account_service import add_bank_account
from app.services.bank_link_service import format_institution_menu, parse_bank_selection
from app.services.errors import BankAccountError, StaleStateError, ValidationError
from app.services.state_machine import DialogState
from app.services.transport_service import UiTemplate
from app.services.user_service import create_user_with_account
from app.services.validation import validate_confirmation, validate_link_start

logger = get_logger("bank_link_handlers")


def bank_selection_prompt(prefix: str = "Select your bank:") -> str:
    return f"{prefix}\n\n{format_institution_menu()}\n\nReply with the number or bank name."


def _selection_result(prefix: str = "Select your bank:") -> HandlerResult:
    return HandlerResult(
        next_state=DialogState.SELECTING_BANK,
        response=bank_selection_prompt(prefix),
        template=UiTemplate.BANK_SELECTION.value,
    )


async def handle_initiating_bank_link(ctx: HandlerContext) -> HandlerResult:
    validate_link_start(ctx.message)
    return _selection_result()


async def handle_selecting_bank(ctx: HandlerContext) -> HandlerResult:
    if ctx.message.strip().upper() == "RETRY":
        return _selection_result()

    bank_key = parse_bank_selection(ctx.message)
    if bank_key is None:
        raise ValidationError("Please choose a bank from the list.")

    holder_name = ctx.user.full_name if ctx.user else (ctx.session_data.name or "Account Holder")
    linked = await ctx.services.bank_link.connect(bank_key, holder_name)
    if linked is None:
        return _selection_result("Connection failed. Please try again.\n\nReply RETRY or choose a bank:")

    details = "\n".join(
        [
            "✓ Bank connected",
            "",
            bot_messages.SEPARATOR,
            f"Bank: {linked.bank_name}",
            f"Account: ****{linked.account_number[-4:]} ({linked.account_type})",
            f"Routing: {linked.routing_number}",
            f"Holder: {linked.account_holder}",
            bot_messages.SEPARATOR,
            "",
            "Use this account? Reply YES or NO.",
        ]
    )
    return HandlerResult(
        next_state=DialogState.CONFIRMING_LINKED_ACCOUNT,
        response=details,
        data={"bank_key": bank_key, "linked_account": linked},
        template=UiTemplate.YES_NO.value,
    )


async def handle_confirming_linked_account(ctx: HandlerContext) -> HandlerResult:
    answer = validate_confirmation(ctx.message)
    if answer == "NO":
        result = _selection_result("No problem. Choose another bank:")
        result.data = {"bank_key": None, "linked_account": None}
        return result

    data = ctx.session_data
    linked = data.linked_account
    if linked is None:
        raise StaleStateError("Bank connection expired. Type ADD BANK to try again.")

    if data.adding_bank or ctx.user is not None:
        user = require_user(ctx)
        try:
            account = add_bank_account(ctx.db, user.id, linked)
        except BankAccountError as exc:
            return HandlerResult(
                next_state=DialogState.IDLE,
                response=bot_messages.with_menu(exc.message),
                data=cleared_transaction_fields(),
                template=UiTemplate.IDLE_MENU.value,
            )
        default_note = " It is your default account." if account.is_default else ""
        return HandlerResult(
            next_state=DialogState.IDLE,
            response=bot_messages.with_menu(
                f"✓ Bank account added!\n\n{bot_messages.account_line(account)} is now linked.{default_note}"
            ),
            data=cleared_transaction_fields(),
            template=UiTemplate.IDLE_MENU.value,
        )

    if not (data.name and data.email and data.dob and data.address):
        raise StaleStateError("Your signup session expired. Type Hi to start again.")

    user, account = create_user_with_account(
        ctx.db,
        phone_number=ctx.phone_number,
        full_name=data.name,
        email=data.email,
        dob=data.dob,
        address=data.address,
        linked=linked,
    )
    logger.info(
        "User onboarded",
        extra={"context": {"user_id": str(user.id), "account_id": str(account.id)}},
    )
    return HandlerResult(
        next_state=DialogState.ASKING_RECIPIENT_NAME,
        response=(
            f"✓ Account created!\n\n{bot_messages.account_line(account)} is linked as your default account.\n\n"
            f"{bot_messages.MSG_ASK_RECIPIENT}"
        ),
        data={
            **cleared_transaction_fields(),
            "name": None,
            "email": None,
            "dob": None,
            "address": None,
        },
        template=UiTemplate.ADD_RECIPIENT.value,
    )
