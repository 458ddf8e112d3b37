from enum import Enum
from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("transport_service")

WHATSAPP_PREFIX = "whatsapp:"


class UiTemplate(str, Enum):
    """Interactive WhatsApp content templates (quick-reply buttons)."""

    IDLE_MENU = "idle_menu"
    YES_NO = "yes_no"
    CONFIRM_CANCEL = "confirm_cancel"
    PAY_CANCEL = "pay_cancel"
    LINK_BANK = "link_bank"
    BANK_SELECTION = "bank_selection"
    PAYMENT_METHOD = "payment_method"
    ADD_RECIPIENT = "add_recipient"


class WhatsAppTransport:
    """Outbound WhatsApp messages through the Twilio Messages API.

    ``send`` never raises: failures are logged and reported as ``False`` so a
    delivery problem cannot break the dialog or a background job.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        api_base: str = "https://api.twilio.com/2010-04-01",
        content_sids: Optional[dict[str, str]] = None,
        timeout_seconds: float = 15.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.content_sids = {key: sid for key, sid in (content_sids or {}).items() if sid}
        self.timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, to: str, text: str, template: Optional[str] = None) -> bool:
        if not self.is_configured:
            logger.warning(
                "Transport not configured, message dropped",
                extra={"context": {"to": to, "template": template}},
            )
            return False

        template_key = template.value if isinstance(template, UiTemplate) else template
        content_sid = self.content_sids.get(template_key) if template_key else None

        ok = True
        if text and text.strip():
            ok = await self._post(to, {"Body": text})
        if content_sid:
            ok = await self._post(to, {"ContentSid": content_sid}) and ok
        return ok

    async def _post(self, to: str, payload: dict) -> bool:
        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "From": _as_whatsapp(self.from_number),
            "To": _as_whatsapp(to),
            **payload,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
            if response.status_code >= 400:
                logger.error(
                    "WhatsApp send rejected",
                    extra={"context": {"to": to, "status": response.status_code, "body": response.text[:300]}},
                )
                return False
            return True
        except httpx.HTTPError as exc:
            logger.error(
                "WhatsApp send failed",
                extra={"context": {"to": to, "error": str(exc)}},
            )
            return False


def _as_whatsapp(number: str) -> str:
    return number if number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{number}"
