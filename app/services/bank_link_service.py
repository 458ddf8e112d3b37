"""Sandbox bank-link aggregator.

Mimics the aggregator's contract: pick an institution, wait for the
connection, get account metadata back or a failure.
"""

import asyncio
import random
import uuid
from dataclasses import dataclass
from typing import Optional

from app.logging_config import get_logger
from app.schemas.session import LinkedAccount

logger = get_logger("bank_link_service")


@dataclass(frozen=True)
class Institution:
    key: str
    name: str
    routing_number: str


INSTITUTIONS = (
    Institution("chase", "Chase Bank", "021000021"),
    Institution("bofa", "Bank of America", "026009593"),
    Institution("wells", "Wells Fargo", "121000248"),
)


def get_institution(key: Optional[str]) -> Optional[Institution]:
    for institution in INSTITUTIONS:
        if institution.key == key:
            return institution
    return None


def parse_bank_selection(text: str) -> Optional[str]:
    """Institution key for a menu number or a fuzzy name match."""
    value = (text or "").strip().lower()
    if not value:
        return None
    if value.isdigit():
        index = int(value) - 1
        if 0 <= index < len(INSTITUTIONS):
            return INSTITUTIONS[index].key
        return None
    for institution in INSTITUTIONS:
        if value in institution.key or value in institution.name.lower() or institution.key in value:
            return institution.key
    return None


def format_institution_menu() -> str:
    lines = [f"{index}. {institution.name}" for index, institution in enumerate(INSTITUTIONS, start=1)]
    return "\n".join(lines)


class BankLinkService:
    def __init__(self, delay_seconds: float = 2.0, failure_rate: float = 0.05, rng: Optional[random.Random] = None):
        self.delay_seconds = delay_seconds
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    async def connect(self, bank_key: str, holder_name: str) -> Optional[LinkedAccount]:
        institution = get_institution(bank_key)
        if institution is None:
            logger.warning("Unknown institution", extra={"context": {"bank_key": bank_key}})
            return None

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.rng.random() < self.failure_rate:
            logger.warning("Bank link connection failed", extra={"context": {"bank_key": bank_key}})
            return None

        account_number = "".join(str(self.rng.randint(0, 9)) for _ in range(10))
        return LinkedAccount(
            access_token=f"access-sandbox-{uuid.uuid4().hex[:16]}",
            account_id=f"acc-{uuid.uuid4().hex[:12]}",
            account_number=account_number,
            routing_number=institution.routing_number,
            bank_name=institution.name,
            account_type="checking",
            account_holder=holder_name,
        )
