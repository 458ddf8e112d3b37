from typing import Optional

from pydantic import BaseModel

WHATSAPP_PREFIX = "whatsapp:"


class TwilioInbound(BaseModel):
    """Subset of the Twilio WhatsApp webhook form that the engine needs."""

    From: str = ""
    Body: Optional[str] = None
    ButtonPayload: Optional[str] = None
    ButtonText: Optional[str] = None
    MessageSid: Optional[str] = None
    MessageStatus: Optional[str] = None

    @property
    def sender_id(self) -> str:
        sender = self.From.strip()
        if sender.startswith(WHATSAPP_PREFIX):
            sender = sender[len(WHATSAPP_PREFIX) :]
        return sender

    @property
    def text(self) -> str:
        for candidate in (self.ButtonPayload, self.ButtonText, self.Body):
            if candidate and candidate.strip():
                return candidate.strip()
        return ""
