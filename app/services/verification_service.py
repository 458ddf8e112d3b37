"""Sandbox beneficiary-name lookup for UPI ids and Indian bank accounts."""

import asyncio
import random
from dataclasses import dataclass
from typing import Optional

from app.logging_config import get_logger
from app.services.errors import ValidationError
from app.services.validation import validate_account_number, validate_ifsc, validate_upi_id

logger = get_logger("verification_service")

SANDBOX_NAMES = (
    "Smt. Sunita Singh",
    "Shri Rajesh Kumar",
    "Ms. Priya Sharma",
    "Mr. Amit Patel",
    "Mrs. Kavitha Reddy",
)


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    resolved_name: Optional[str] = None


class IdentityVerifier:
    def __init__(self, delay_seconds: float = 1.0, rng: Optional[random.Random] = None):
        self.delay_seconds = delay_seconds
        self.rng = rng or random.Random()

    async def _lookup(self) -> str:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        return self.rng.choice(SANDBOX_NAMES)

    async def verify_payment_identifier(self, upi_id: str) -> VerificationResult:
        try:
            validate_upi_id(upi_id)
        except ValidationError:
            return VerificationResult(valid=False)
        return VerificationResult(valid=True, resolved_name=await self._lookup())

    async def verify_bank_account(self, account_number: str, ifsc_code: str) -> VerificationResult:
        try:
            validate_account_number(account_number)
            validate_ifsc(ifsc_code)
        except ValidationError as exc:
            logger.info("Bank account rejected by verifier", extra={"context": {"reason": exc.message}})
            return VerificationResult(valid=False)
        return VerificationResult(valid=True, resolved_name=await self._lookup())
