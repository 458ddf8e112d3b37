import asyncio
import json
from datetime import timedelta

from app.models import ChatSession
from app.models.types import utcnow
from app.schemas.session import (
    TRANSACTION_FIELDS,
    LinkedAccount,
    RecipientDraft,
    SessionData,
    cleared_transaction_fields,
)
from app.services.session_store import SessionStore
from conftest import PHONE, FakeRedis


def _store(session_factory, redis_client=None):
    return SessionStore(session_factory, redis_client=redis_client, ttl_seconds=3600, key_prefix="session:")


class TestSessionData:
    def test_none_removes_field(self):
        data = SessionData(name="Asha", transfer_id="abc")
        merged = data.merge({"transfer_id": None, "email": "asha@example.com"})
        assert merged.transfer_id is None
        assert merged.name == "Asha"
        assert merged.email == "asha@example.com"

    def test_models_are_stored_as_dicts(self):
        draft = RecipientDraft(nickname="Mom", payment_method="upi")
        merged = SessionData().merge({"recipient_draft": draft})
        assert merged.recipient_draft == draft
        assert merged.to_storage()["recipient_draft"] == {"nickname": "Mom", "payment_method": "upi"}

    def test_cleared_fields_cover_every_transaction_field(self):
        data = SessionData(
            recipient_draft=RecipientDraft(nickname="Mom"),
            transfer_id="t",
            selected_recipient_id="r",
            selected_bank_account_id="b",
            linked_account=LinkedAccount(
                access_token="tok",
                account_id="acc",
                account_number="1234567890",
                routing_number="021000021",
                bank_name="Chase Bank",
                account_holder="Asha Rao",
            ),
            bank_key="chase",
            adding_bank=True,
            awaiting_remove_confirm=True,
            bank_to_remove="b",
            rate_job_id="fx_t_1",
            quote_started_at=utcnow(),
            name="Asha",
        )
        cleared = data.merge(cleared_transaction_fields())
        assert set(cleared.to_storage()) == {"name"}
        assert set(cleared_transaction_fields()) == set(TRANSACTION_FIELDS)

    def test_unknown_keys_ignored(self):
        assert SessionData.model_validate({"legacy_flag": True, "name": "Asha"}).name == "Asha"


class TestCachePath:
    def test_round_trip_through_redis(self, session_factory):
        redis = FakeRedis()
        store = _store(session_factory, redis)

        assert asyncio.run(store.put(PHONE, "asking_email", SessionData(name="Asha"))) is True
        snapshot = asyncio.run(store.get(PHONE))

        assert snapshot.state == "asking_email"
        assert snapshot.data.name == "Asha"
        assert redis.ttls[f"session:{PHONE}"] == 3600

    def test_cache_write_skips_database(self, session_factory, db):
        store = _store(session_factory, FakeRedis())
        asyncio.run(store.put(PHONE, "idle", SessionData()))
        assert db.query(ChatSession).count() == 0

    def test_unreadable_cache_entry_falls_back(self, session_factory):
        redis = FakeRedis()
        redis.store[f"session:{PHONE}"] = "{not json"
        store = _store(session_factory, redis)
        assert asyncio.run(store.get(PHONE)) is None


class TestDatabaseFallback:
    def test_cache_outage_writes_to_database(self, session_factory, db):
        redis = FakeRedis()
        redis.fail = True
        store = _store(session_factory, redis)

        assert asyncio.run(store.put(PHONE, "asking_dob", SessionData(email="a@b.co"))) is True

        row = db.query(ChatSession).filter(ChatSession.user_id == PHONE).one()
        assert row.current_state == "asking_dob"
        assert row.session_data == {"email": "a@b.co"}

    def test_cache_outage_reads_from_database(self, session_factory):
        redis = FakeRedis()
        store = _store(session_factory, redis)
        redis.fail = True
        asyncio.run(store.put(PHONE, "idle", SessionData(name="Asha")))

        snapshot = asyncio.run(store.get(PHONE))
        assert snapshot.state == "idle"
        assert snapshot.data.name == "Asha"

    def test_without_redis_updates_existing_row(self, session_factory, db):
        store = _store(session_factory)
        asyncio.run(store.put(PHONE, "asking_name", SessionData()))
        asyncio.run(store.put(PHONE, "asking_email", SessionData(name="Asha")))

        rows = db.query(ChatSession).all()
        assert len(rows) == 1
        assert rows[0].current_state == "asking_email"

    def test_expired_row_is_ignored(self, session_factory, db):
        now = utcnow()
        db.add(
            ChatSession(
                user_id=PHONE,
                current_state="asking_amount",
                session_data={"transfer_id": "old"},
                created_at=now - timedelta(hours=2),
                updated_at=now - timedelta(hours=2),
                expires_at=now - timedelta(hours=1),
            )
        )
        db.commit()

        assert asyncio.run(_store(session_factory).get(PHONE)) is None

    def test_json_string_payload_is_parsed(self, session_factory, db):
        now = utcnow()
        db.add(
            ChatSession(
                user_id=PHONE,
                current_state="idle",
                session_data=json.dumps({"name": "Asha"}),
                created_at=now,
                updated_at=now,
                expires_at=now + timedelta(hours=1),
            )
        )
        db.commit()

        assert asyncio.run(_store(session_factory).get(PHONE)).data.name == "Asha"

    def test_delete_clears_both_backends(self, session_factory, db):
        redis = FakeRedis()
        store = _store(session_factory, redis)
        asyncio.run(store.put(PHONE, "idle", SessionData()))

        assert asyncio.run(store.delete(PHONE)) is True
        assert redis.store == {}
        assert asyncio.run(store.get(PHONE)) is None
