import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from app.models import Transfer
from app.models.types import utcnow
from app.schemas.session import SessionData
from app.services import bot_messages
from app.services.fx_service import calculate_quote
from app.services.rate_refresh_service import RateRefreshJob, start_rate_refresh
from app.services.state_machine import DialogState, TransferStatus
from app.services.transfer_service import create_quote_transfer
from conftest import PHONE


@pytest.fixture
def quote(db, user, recipient):
    transfer = create_quote_transfer(
        db, user.id, recipient.id, calculate_quote(Decimal("100"), Decimal("83.50")), ttl_seconds=300
    )
    db.commit()
    return transfer


def _show_quote(services, transfer_id, state=DialogState.SHOWING_QUOTE):
    data = SessionData(transfer_id=str(transfer_id), rate_job_id="fx_job")
    asyncio.run(services.sessions.put(PHONE, state.value, data))


def _job(services, transfer, interval_seconds=None):
    return RateRefreshJob(services, PHONE, str(transfer.id), "fx_job", interval_seconds=interval_seconds)


def _reload(db, transfer):
    db.expire_all()
    return db.get(Transfer, transfer.id)


class TestTickGuards:
    def test_stops_when_user_left_quote(self, services, transport, quote):
        _show_quote(services, quote.id, state=DialogState.CONFIRMING_TRANSFER)
        assert asyncio.run(_job(services, quote).tick()) is False
        assert transport.sent == []

    def test_stops_without_session(self, services, quote):
        assert asyncio.run(_job(services, quote).tick()) is False

    def test_stops_for_other_quote(self, services, transport, rates, quote):
        _show_quote(services, "00000000-0000-0000-0000-000000000000")
        assert asyncio.run(_job(services, quote).tick()) is False
        assert rates.live_calls == 0

    def test_stops_once_transfer_is_not_a_quote(self, db, services, transport, quote):
        _show_quote(services, quote.id)
        transfer = _reload(db, quote)
        transfer.status = TransferStatus.CANCELLED.value
        db.commit()

        assert asyncio.run(_job(services, quote).tick()) is False
        assert transport.sent == []


class TestTickRefresh:
    def test_new_rate_is_stored_and_sent(self, db, services, transport, rates, quote):
        _show_quote(services, quote.id)
        rates.rate = Decimal("84.00")

        assert asyncio.run(_job(services, quote).tick()) is True

        transfer = _reload(db, quote)
        assert transfer.fx_rate == Decimal("84.0000")
        assert transfer.amount_inr == Decimal("8391.60")
        assert transfer.amount_usd == Decimal("100.00")
        [message] = transport.sent
        assert message.text.startswith("Rate Update")
        assert "Rate: 1 USD = ₹84.0000" in message.text
        assert "Mom receives: ₹8391.60" in message.text
        assert message.template == "confirm_cancel"

    def test_expired_quote_is_cancelled(self, db, services, transport, quote):
        _show_quote(services, quote.id)
        transfer = _reload(db, quote)
        transfer.quote_expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        assert asyncio.run(_job(services, quote).tick()) is False

        assert _reload(db, quote).status == TransferStatus.CANCELLED.value
        snapshot = asyncio.run(services.sessions.get(PHONE))
        assert snapshot.state == DialogState.IDLE.value
        assert snapshot.data.transfer_id is None
        assert snapshot.data.rate_job_id is None
        [message] = transport.sent
        assert message.text == bot_messages.with_menu(bot_messages.MSG_QUOTE_EXPIRED_BACKGROUND)
        assert message.template == "idle_menu"

    def test_lost_rate_cancels_quote(self, db, services, transport, rates, quote):
        _show_quote(services, quote.id)
        rates.rate = None

        assert asyncio.run(_job(services, quote).tick()) is False

        assert _reload(db, quote).status == TransferStatus.CANCELLED.value
        assert transport.sent[0].text.startswith(bot_messages.MSG_QUOTE_RATE_LOST)
        assert asyncio.run(services.sessions.get(PHONE)).state == DialogState.IDLE.value


class TestJobLifecycle:
    def test_run_ends_when_quote_expires(self, db, services, transport, quote):
        _show_quote(services, quote.id)
        transfer = _reload(db, quote)
        transfer.quote_expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        asyncio.run(_job(services, quote, interval_seconds=0).run())

        assert len(transport.sent) == 1

    def test_interval_defaults_to_settings(self, services, quote):
        assert _job(services, quote).interval_seconds == 3600

    def test_start_registers_job(self, services, quote):
        async def scenario():
            job_id = start_rate_refresh(services, PHONE, quote.id)
            running = services.jobs.is_running(job_id)
            stopped = services.jobs.stop(job_id)
            return job_id, running, stopped

        job_id, running, stopped = asyncio.run(scenario())

        assert job_id.startswith(f"fx_{quote.id}_")
        assert running is True
        assert stopped is True
