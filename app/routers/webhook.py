from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.logging_config import get_logger
from app.schemas.webhook import TwilioInbound
from app.services.conversation_service import ConversationEngine, get_engine

logger = get_logger("webhook")

router = APIRouter()


@router.post("/api/webhook")
async def handle_webhook(
    request: Request,
    db: Session = Depends(get_db),
    engine: ConversationEngine = Depends(get_engine),
):
    """Twilio WhatsApp callback. Always answers 200 so Twilio does not retry."""
    form = await request.form()
    try:
        inbound = TwilioInbound.model_validate({key: value for key, value in form.items() if isinstance(value, str)})
    except PydanticValidationError as exc:
        logger.warning("Unreadable webhook payload", extra={"context": {"error": str(exc)}})
        return Response(status_code=200)

    if inbound.MessageStatus and not inbound.Body and not inbound.ButtonPayload:
        logger.info(
            "Delivery status callback",
            extra={"context": {"message_sid": inbound.MessageSid, "status": inbound.MessageStatus}},
        )
        return Response(status_code=200)

    sender_id = inbound.sender_id
    text = inbound.text
    if not sender_id or not text:
        logger.info("Ignoring webhook without sender or text", extra={"context": {"message_sid": inbound.MessageSid}})
        return Response(status_code=200)

    reply = await engine.handle_incoming_message(db, sender_id, text)
    await engine.services.transport.send(sender_id, reply.response, reply.template)
    return Response(status_code=200)
