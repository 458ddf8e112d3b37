"""Periodic live-rate refresh for an open quote.

Each tick re-checks that the user is still looking at this quote and that the
transfer is still a quote; any drift ends the job quietly. Expiry and a lost
rate source end it with a notice and send the session back to idle.
"""

import asyncio
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.logging_config import get_logger
from app.models import Recipient
from app.schemas.session import cleared_transaction_fields
from app.services import bot_messages
from app.services.engine_services import EngineServices
from app.services.fx_service import calculate_quote
from app.services.job_registry import new_job_id
from app.services.state_machine import DialogState, TransferStatus
from app.services.transfer_service import apply_refreshed_rate, cancel_quote, get_transfer, is_quote_expired
from app.services.transport_service import UiTemplate

logger = get_logger("rate_refresh_service")


class RateRefreshJob:
    def __init__(
        self,
        services: EngineServices,
        phone_number: str,
        transfer_id: str,
        job_id: str,
        interval_seconds: Optional[float] = None,
    ):
        self.services = services
        self.phone_number = phone_number
        self.transfer_id = str(transfer_id)
        self.job_id = job_id
        if interval_seconds is None:
            interval_seconds = services.settings.rate_refresh_interval_seconds
        self.interval_seconds = interval_seconds

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if not await self.tick():
                logger.info(
                    "Rate refresh stopped",
                    extra={"context": {"job_id": self.job_id, "transfer_id": self.transfer_id}},
                )
                return

    async def tick(self) -> bool:
        """One refresh cycle. Returns False once the job should stop."""
        snapshot = await self.services.sessions.get(self.phone_number)
        if snapshot is None or snapshot.state != DialogState.SHOWING_QUOTE.value:
            return False
        if snapshot.data.transfer_id != self.transfer_id:
            return False

        db = self.services.session_factory()
        try:
            transfer = get_transfer(db, self.transfer_id)
            if transfer is None or transfer.status != TransferStatus.QUOTE.value:
                return False

            if is_quote_expired(transfer):
                cancel_quote(db, self.transfer_id)
                db.commit()
                await self._end_quote(bot_messages.MSG_QUOTE_EXPIRED_BACKGROUND)
                return False

            live_rate = await self.services.rates.get_live_rate()
            if live_rate is None:
                cancel_quote(db, self.transfer_id)
                db.commit()
                await self._end_quote(bot_messages.MSG_QUOTE_RATE_LOST)
                return False

            quote = calculate_quote(transfer.amount_usd, live_rate)
            if not apply_refreshed_rate(db, self.transfer_id, quote):
                db.rollback()
                return False
            db.commit()
            transfer = get_transfer(db, self.transfer_id)
            recipient = db.get(Recipient, transfer.recipient_id)
            text = bot_messages.rate_update_message(transfer, recipient.nickname if recipient else "Recipient")
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Rate refresh tick failed",
                extra={"context": {"job_id": self.job_id, "transfer_id": self.transfer_id, "error": str(exc)}},
            )
            return True
        finally:
            db.close()

        await self.services.transport.send(self.phone_number, text, UiTemplate.CONFIRM_CANCEL.value)
        logger.info(
            "Quote rate refreshed",
            extra={"context": {"job_id": self.job_id, "transfer_id": self.transfer_id, "fx_rate": str(quote.fx_rate)}},
        )
        return True

    async def _end_quote(self, notice: str) -> None:
        """Return the user to idle if they are still on this quote, then tell them."""
        snapshot = await self.services.sessions.get(self.phone_number)
        if (
            snapshot is not None
            and snapshot.state == DialogState.SHOWING_QUOTE.value
            and snapshot.data.transfer_id == self.transfer_id
        ):
            await self.services.sessions.put(
                self.phone_number,
                DialogState.IDLE.value,
                snapshot.data.merge(cleared_transaction_fields()),
            )
        await self.services.transport.send(
            self.phone_number,
            bot_messages.with_menu(notice),
            UiTemplate.IDLE_MENU.value,
        )


def start_rate_refresh(services: EngineServices, phone_number: str, transfer_id) -> str:
    job_id = new_job_id("fx", str(transfer_id))
    job = RateRefreshJob(services, phone_number, str(transfer_id), job_id)
    return services.jobs.start(job_id, job.run())
