"""Global command gate that runs before the dialog handlers."""

import re
from typing import Optional

from app.handlers import commands
from app.handlers.base import HandlerContext, HandlerResult, StateHandler
from app.handlers.cancel import handle_cancel
from app.handlers.dialog import back_to_idle
from app.services import bot_messages
from app.services.errors import StaleStateError
from app.services.state_machine import DialogState

GLOBAL_COMMANDS: dict[str, StateHandler] = {
    "HELP": commands.handle_help,
    "STATUS": commands.handle_status,
    "RATE": commands.handle_rate,
    "FEES": commands.handle_fees,
    "BANKS": commands.handle_banks,
    "ADD BANK": commands.handle_add_bank,
    "RECIPIENTS": commands.handle_recipients,
    "PROFILE": commands.handle_profile,
    "NEW": commands.handle_new,
    "CONFIRM REMOVE": commands.handle_confirm_remove,
    "CANCEL": handle_cancel,
}

DEFAULT_PATTERN = re.compile(r"^DEFAULT\s+(\d+)$")
REMOVE_PATTERN = re.compile(r"^REMOVE\s+(?:BANK\s+)?(\d+)$")


def normalize_command(message: str) -> str:
    return " ".join((message or "").split()).upper()


def is_global_command(command: str) -> bool:
    return (
        command in GLOBAL_COMMANDS
        or DEFAULT_PATTERN.match(command) is not None
        or REMOVE_PATTERN.match(command) is not None
    )


async def intercept(state: DialogState, ctx: HandlerContext) -> Optional[HandlerResult]:
    """Handle ``ctx.message`` as a global command, or return None to pass it on."""
    command = normalize_command(ctx.message)

    # A transfer in settlement blocks everything, CANCEL included.
    if ctx.session_data.transfer_processing:
        return HandlerResult(next_state=state, response=bot_messages.MSG_TRANSFER_IN_PROGRESS)

    if state is not DialogState.IDLE:
        if command == "CANCEL":
            return await handle_cancel(ctx)
        if is_global_command(command):
            return HandlerResult(next_state=state, response=bot_messages.MSG_NOT_AVAILABLE)
        return None

    try:
        handler = GLOBAL_COMMANDS.get(command)
        if handler is not None:
            return await handler(ctx)

        match = DEFAULT_PATTERN.match(command)
        if match:
            return await commands.handle_set_default(ctx, int(match.group(1)))

        match = REMOVE_PATTERN.match(command)
        if match:
            return await commands.handle_remove_bank(ctx, int(match.group(1)))
    except StaleStateError as exc:
        return back_to_idle(exc.message)
    return None
