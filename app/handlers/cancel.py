from app.handlers.base import HandlerContext, HandlerResult
from app.logging_config import get_logger
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.state_machine import DialogState
from app.services.transfer_service import cancel_quote
from app.services.transport_service import UiTemplate

logger = get_logger("cancel_handler")


async def handle_cancel(ctx: HandlerContext) -> HandlerResult:
    """Leave the current flow: stop the quote's rate job, drop an open quote
    and clear every transaction-scoped session field."""
    data = ctx.session_data
    ctx.services.jobs.stop(data.rate_job_id)

    transfer_cancelled = False
    if data.transfer_id:
        transfer_cancelled = cancel_quote(ctx.db, data.transfer_id)
        if transfer_cancelled:
            logger.info("Quote cancelled by user", extra={"context": {"transfer_id": data.transfer_id}})

    text = bot_messages.MSG_TRANSFER_CANCELLED if transfer_cancelled else bot_messages.MSG_ACTION_CANCELLED
    return HandlerResult(
        next_state=DialogState.IDLE,
        response=bot_messages.with_menu(text),
        data=cleared_transaction_fields(),
        template=UiTemplate.IDLE_MENU.value,
    )
