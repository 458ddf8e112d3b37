import asyncio
import random
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.models import BankAccount, Recipient, User
from app.models.types import utcnow
from app.schemas.session import SessionData
from app.services.bank_link_service import BankLinkService
from app.services.conversation_service import ConversationEngine
from app.services.engine_services import EngineServices
from app.services.fx_service import RateSnapshot
from app.services.job_registry import JobRegistry
from app.services.session_store import SessionStore
from app.services.state_machine import DialogState
from app.services.verification_service import IdentityVerifier

PHONE = "+15550001111"


class FakeRedis:
    """In-memory stand-in for redis.asyncio with a switch to simulate an outage."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        self._check()
        return 1 if self.store.pop(key, None) is not None else 0

    async def ping(self):
        self._check()
        return True


class FakeTransport:
    def __init__(self):
        self.sent = []

    async def send(self, to, text, template=None):
        self.sent.append(SimpleNamespace(to=to, text=text, template=template))
        return True


class FakeRates:
    def __init__(self, rate=Decimal("83.50")):
        self.rate = rate
        self.live_calls = 0

    async def get_live_rate(self):
        self.live_calls += 1
        return self.rate

    async def get_rate(self):
        if self.rate is None:
            return RateSnapshot(rate=Decimal("83.50"), source="fallback")
        return RateSnapshot(rate=self.rate, source="live")


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite://",
        redis_url="",
        quote_ttl_seconds=300,
        rate_refresh_interval_seconds=3600,
        settlement_withdrawal_initiated_seconds=0,
        settlement_withdrawal_completed_seconds=0,
        settlement_payout_progress_seconds=0,
        settlement_completed_seconds=0,
        bank_link_delay_seconds=0,
        bank_link_failure_rate=0,
        verification_delay_seconds=0,
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def rates():
    return FakeRates()


@pytest.fixture
def services(test_settings, session_factory, transport, rates):
    return EngineServices(
        settings=test_settings,
        session_factory=session_factory,
        sessions=SessionStore(session_factory, ttl_seconds=3600),
        jobs=JobRegistry(),
        transport=transport,
        rates=rates,
        bank_link=BankLinkService(delay_seconds=0, failure_rate=0.0, rng=random.Random(7)),
        verifier=IdentityVerifier(delay_seconds=0, rng=random.Random(7)),
    )


@pytest.fixture
def engine(services):
    return ConversationEngine(services)


@pytest.fixture
def chat(engine, db):
    """Send messages from one sender inside a single event loop.

    Background jobs are stopped when the batch ends, so anything a job should
    do has to happen within the same call.
    """

    def _chat(*messages, phone=PHONE):
        async def scenario():
            replies = []
            try:
                for text in messages:
                    replies.append(await engine.handle_incoming_message(db, phone, text))
            finally:
                await engine.services.jobs.stop_all()
            return replies

        return asyncio.run(scenario())

    return _chat


@pytest.fixture
def load_session(services):
    def _load(phone=PHONE):
        return asyncio.run(services.sessions.get(phone))

    return _load


def make_user(db, phone=PHONE, name="Asha Rao"):
    now = utcnow()
    user = User(
        phone_number=phone,
        full_name=name,
        email="asha@example.com",
        date_of_birth=date(1990, 8, 15),
        address="12 Main St, Austin, TX, USA",
        kyc_status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.flush()
    return user


def make_account(db, user, bank_name="Chase Bank", number="1234567890", is_default=True):
    now = utcnow()
    account = BankAccount(
        user_id=user.id,
        account_number=number,
        routing_number="021000021",
        bank_name=bank_name,
        account_holder_name=user.full_name,
        account_type="checking",
        verified=True,
        is_active=True,
        is_default=is_default,
        created_at=now,
        updated_at=now,
    )
    db.add(account)
    db.flush()
    return account


def make_recipient(db, user, nickname="Mom", upi_id="mom@paytm"):
    now = utcnow()
    recipient = Recipient(
        user_id=user.id,
        nickname=nickname,
        payment_method="upi",
        upi_id=upi_id,
        account_holder_name="Smt. Sunita Singh",
        verified=True,
        verification_name="Smt. Sunita Singh",
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(recipient)
    db.flush()
    return recipient


@pytest.fixture
def user(db):
    user = make_user(db)
    make_account(db, user)
    db.commit()
    return user


@pytest.fixture
def returning_user(user, services):
    """A known user whose last conversation ended at the idle menu."""
    asyncio.run(services.sessions.put(PHONE, DialogState.IDLE.value, SessionData()))
    return user


@pytest.fixture
def recipient(db, user):
    recipient = make_recipient(db, user)
    db.commit()
    return recipient
