from app.handlers.base import HandlerContext, HandlerResult
from app.services import bot_messages
from app.services.state_machine import DialogState
from app.services.transport_service import UiTemplate
from app.services.validation import validate_address, validate_dob, validate_email, validate_name

WELCOME_MESSAGE = (
    "Welcome to SurgePay! 🇺🇸➡️🇮🇳\n\n"
    "Send money from the US to India in minutes.\n"
    "• Live exchange rates\n"
    "• 0.1% fee, never more than $2\n"
    "• UPI or bank account payouts\n\n"
    "Let's set up your account. It takes about 2 minutes.\n\n"
    "What's your full name?"
)


def start_onboarding() -> HandlerResult:
    return HandlerResult(next_state=DialogState.ASKING_NAME, response=WELCOME_MESSAGE)


async def handle_initial(ctx: HandlerContext) -> HandlerResult:
    if ctx.user is not None:
        return HandlerResult(
            next_state=DialogState.IDLE,
            response=bot_messages.with_menu(f"Welcome back, {ctx.user.full_name}! 👋"),
            template=UiTemplate.IDLE_MENU.value,
        )
    return start_onboarding()


async def handle_asking_name(ctx: HandlerContext) -> HandlerResult:
    name = validate_name(ctx.message)
    first_name = name.split()[0]
    return HandlerResult(
        next_state=DialogState.ASKING_EMAIL,
        response=f"Nice to meet you, {first_name}! 👋\n\nWhat's your email address?",
        data={"name": name},
    )


async def handle_asking_email(ctx: HandlerContext) -> HandlerResult:
    email = validate_email(ctx.message)
    return HandlerResult(
        next_state=DialogState.ASKING_DOB,
        response="What's your date of birth?\n\nFormat: DD/MM/YYYY\nExample: 15/08/1990",
        data={"email": email},
    )


async def handle_asking_dob(ctx: HandlerContext) -> HandlerResult:
    dob = validate_dob(ctx.message)
    return HandlerResult(
        next_state=DialogState.ASKING_ADDRESS,
        response="What's your US address?\n\nInclude street, city, state, and country.\nExample: 123 Main St, Austin, TX, USA",
        data={"dob": dob},
    )


async def handle_asking_address(ctx: HandlerContext) -> HandlerResult:
    address = validate_address(ctx.message)
    data = ctx.session_data
    summary = "\n".join(
        [
            "✓ Profile complete",
            "",
            bot_messages.SEPARATOR,
            f"Name: {data.name}",
            f"Email: {data.email}",
            f"DOB: {data.dob}",
            f"Address: {address}",
            bot_messages.SEPARATOR,
            "",
            "Next, link the US bank account you'll send from.",
            "Your bank login is never stored by SurgePay.",
            "",
            "Reply LINK BANK to continue.",
        ]
    )
    return HandlerResult(
        next_state=DialogState.INITIATING_BANK_LINK,
        response=summary,
        data={"address": address},
        template=UiTemplate.LINK_BANK.value,
    )
