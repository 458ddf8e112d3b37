"""Per-sender dialog session persistence.

Reads and writes try redis first and fall back to the ``sessions`` table when
the cache is missing, empty or failing. Each write lands on whichever backend
accepted it, so the two copies can diverge after a failover; the table is the
source of truth whenever the cache has nothing.
"""

import json
from datetime import timedelta
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import ChatSession
from app.models.types import ensure_utc, utcnow
from app.schemas.session import SessionData, SessionSnapshot

logger = get_logger("session_store")


class SessionStore:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        redis_client=None,
        ttl_seconds: int = 3600,
        key_prefix: str = "session:",
    ):
        self.session_factory = session_factory
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def get(self, user_id: str) -> Optional[SessionSnapshot]:
        cached = await self._cache_get(user_id)
        if cached is not None:
            return cached
        return self._db_get(user_id)

    async def put(self, user_id: str, state: str, data: SessionData) -> bool:
        snapshot = SessionSnapshot(state=state, data=data)
        if await self._cache_put(user_id, snapshot):
            return True
        return self._db_put(user_id, snapshot)

    async def delete(self, user_id: str) -> bool:
        if self.redis_client is not None:
            try:
                await self.redis_client.delete(self._key(user_id))
            except Exception as exc:
                logger.warning(
                    "Session cache delete failed",
                    extra={"context": {"sender": user_id, "error": str(exc)}},
                )
        db = self.session_factory()
        try:
            db.query(ChatSession).filter(ChatSession.user_id == user_id).delete(synchronize_session=False)
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Session delete failed",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return False
        finally:
            db.close()

    async def _cache_get(self, user_id: str) -> Optional[SessionSnapshot]:
        if self.redis_client is None:
            return None
        try:
            raw = await self.redis_client.get(self._key(user_id))
        except Exception as exc:
            logger.warning(
                "Session cache read failed, using database",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return None
        if not raw:
            return None
        try:
            return SessionSnapshot.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning(
                "Discarding unreadable cached session",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return None

    async def _cache_put(self, user_id: str, snapshot: SessionSnapshot) -> bool:
        if self.redis_client is None:
            return False
        try:
            await self.redis_client.set(self._key(user_id), snapshot.model_dump_json(), ex=self.ttl_seconds)
            return True
        except Exception as exc:
            logger.warning(
                "Session cache write failed, using database",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return False

    def _db_get(self, user_id: str) -> Optional[SessionSnapshot]:
        db = self.session_factory()
        try:
            row = (
                db.query(ChatSession)
                .filter(ChatSession.user_id == user_id, ChatSession.expires_at > utcnow())
                .first()
            )
            if row is None:
                return None
            data = row.session_data
            if isinstance(data, str):
                data = json.loads(data)
            return SessionSnapshot(
                state=row.current_state,
                data=SessionData.model_validate(data or {}),
                created_at=ensure_utc(row.created_at),
            )
        except (SQLAlchemyError, PydanticValidationError, ValueError) as exc:
            logger.error(
                "Session read failed",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return None
        finally:
            db.close()

    def _db_put(self, user_id: str, snapshot: SessionSnapshot) -> bool:
        db = self.session_factory()
        try:
            self._upsert_row(db, user_id, snapshot)
            db.commit()
            return True
        except IntegrityError:
            # A concurrent request inserted the row first; retry as an update.
            db.rollback()
            try:
                self._upsert_row(db, user_id, snapshot)
                db.commit()
                return True
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(
                    "Session write failed",
                    extra={"context": {"sender": user_id, "error": str(exc)}},
                )
                return False
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Session write failed",
                extra={"context": {"sender": user_id, "error": str(exc)}},
            )
            return False
        finally:
            db.close()

    def _upsert_row(self, db: Session, user_id: str, snapshot: SessionSnapshot) -> None:
        now = utcnow()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        row = db.query(ChatSession).filter(ChatSession.user_id == user_id).first()
        if row is None:
            row = ChatSession(user_id=user_id, created_at=now)
            db.add(row)
        row.current_state = snapshot.state
        row.session_data = snapshot.data.to_storage()
        row.updated_at = now
        row.expires_at = expires_at
        db.flush()
