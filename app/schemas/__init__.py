from app.schemas.health import HealthResponse
from app.schemas.message import MessageRequest, MessageResponse
from app.schemas.session import LinkedAccount, RecipientDraft, SessionData, SessionSnapshot
from app.schemas.webhook import TwilioInbound

__all__ = [
    "HealthResponse",
    "MessageRequest",
    "MessageResponse",
    "LinkedAccount",
    "RecipientDraft",
    "SessionData",
    "SessionSnapshot",
    "TwilioInbound",
]
