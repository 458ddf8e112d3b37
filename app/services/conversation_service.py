"""Per-message orchestration: session read, command gate, dialog, session write."""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import SessionLocal
from app.handlers.base import HandlerContext
from app.handlers.dialog import dispatch
from app.handlers.interceptor import intercept
from app.logging_config import SenderLogger, get_logger
from app.schemas.session import SessionData
from app.services import bot_messages
from app.services.bank_link_service import BankLinkService
from app.services.cache_service import get_redis_client
from app.services.engine_services import EngineServices
from app.services.errors import PersistenceError
from app.services.fx_service import FXRateService
from app.services.job_registry import JobRegistry
from app.services.session_store import SessionStore
from app.services.state_machine import DialogState
from app.services.transfer_service import cancel_quote
from app.services.transport_service import UiTemplate, WhatsAppTransport
from app.services.user_service import get_user_by_phone
from app.services.verification_service import IdentityVerifier

logger = get_logger("conversation_service")


@dataclass
class ConversationReply:
    response: str
    template: Optional[str]
    state: str


class ConversationEngine:
    def __init__(self, services: EngineServices):
        self.services = services

    async def handle_incoming_message(self, db: Session, sender_id: str, text: str) -> ConversationReply:
        """Process one inbound message to completion and return the reply.

        Database errors and unexpected failures roll back the handler's work
        and leave the stored session untouched.
        """
        log = SenderLogger(logger, {"sender": sender_id})
        message = (text or "").strip()

        snapshot = await self.services.sessions.get(sender_id)
        state = DialogState.INITIAL
        data = SessionData()
        if snapshot is not None:
            try:
                state = DialogState(snapshot.state)
                data = snapshot.data
            except ValueError:
                log.warning("Unknown stored state, resetting session", context={"stored_state": snapshot.state})

        log.info("Message received", context={"state": state.value})

        try:
            user = get_user_by_phone(db, sender_id)
            ctx = HandlerContext(
                message=message,
                phone_number=sender_id,
                user=user,
                session_data=data,
                db=db,
                services=self.services,
                state=state,
            )
            result = await intercept(state, ctx)
            intercepted = result is not None
            if not intercepted:
                result = await dispatch(state, ctx)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log.error("Database error while handling message", context={"state": state.value, "error": str(exc)}, exc_info=True)
            return ConversationReply(bot_messages.MSG_TEMPORARY_ISSUE, None, state.value)
        except Exception as exc:
            db.rollback()
            log.error("Message handling failed", context={"state": state.value, "error": str(exc)}, exc_info=True)
            return ConversationReply(bot_messages.MSG_GENERIC_ERROR, None, state.value)

        try:
            await self._save_session(sender_id, result.next_state, data.merge(result.data))
        except PersistenceError as exc:
            log.error("Session write failed", context={"state": state.value, "next_state": result.next_state.value})
            self._abandon_quote(db, result.data, log)
            return ConversationReply(exc.message, None, state.value)

        log.info(
            "Message handled",
            context={
                "state": state.value,
                "next_state": result.next_state.value,
                "intercepted": intercepted,
                "template": result.template,
            },
        )
        return ConversationReply(result.response, result.template, result.next_state.value)

    def _abandon_quote(self, db: Session, data: dict, log: SenderLogger) -> None:
        """Withdraw a quote whose session never recorded it, so a retry is not a duplicate."""
        self.services.jobs.stop(data.get("rate_job_id"))
        transfer_id = data.get("transfer_id")
        if not transfer_id:
            return
        try:
            if cancel_quote(db, transfer_id):
                db.commit()
                log.info("Unrecorded quote cancelled", context={"transfer_id": transfer_id})
        except SQLAlchemyError as exc:
            db.rollback()
            log.error("Could not cancel unrecorded quote", context={"transfer_id": transfer_id, "error": str(exc)})

    async def _save_session(self, sender_id: str, state: DialogState, data: SessionData) -> None:
        if not await self.services.sessions.put(sender_id, state.value, data):
            raise PersistenceError(bot_messages.MSG_TEMPORARY_ISSUE)


def build_services(
    settings: Settings,
    session_factory: Callable[[], Session] = SessionLocal,
    redis_client=None,
) -> EngineServices:
    content_sids = {
        UiTemplate.IDLE_MENU.value: settings.content_sid_idle_menu,
        UiTemplate.YES_NO.value: settings.content_sid_yes_no,
        UiTemplate.CONFIRM_CANCEL.value: settings.content_sid_confirm_cancel,
        UiTemplate.PAY_CANCEL.value: settings.content_sid_pay_cancel,
        UiTemplate.LINK_BANK.value: settings.content_sid_link_bank,
        UiTemplate.BANK_SELECTION.value: settings.content_sid_bank_selection,
        UiTemplate.PAYMENT_METHOD.value: settings.content_sid_payment_method,
        UiTemplate.ADD_RECIPIENT.value: settings.content_sid_add_recipient,
    }
    return EngineServices(
        settings=settings,
        session_factory=session_factory,
        sessions=SessionStore(
            session_factory,
            redis_client=redis_client,
            ttl_seconds=settings.session_ttl_seconds,
            key_prefix=settings.session_key_prefix,
        ),
        jobs=JobRegistry(),
        transport=WhatsAppTransport(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_whatsapp_number,
            api_base=settings.twilio_api_base,
            content_sids=content_sids,
            timeout_seconds=settings.transport_timeout_seconds,
        ),
        rates=FXRateService(
            api_key=settings.fx_api_key,
            api_url=settings.fx_api_url,
            redis_client=redis_client,
            timeout_seconds=settings.fx_timeout_seconds,
            cache_ttl_seconds=settings.fx_cache_ttl_seconds,
            fallback_rate=settings.fx_fallback_rate,
        ),
        bank_link=BankLinkService(
            delay_seconds=settings.bank_link_delay_seconds,
            failure_rate=settings.bank_link_failure_rate,
        ),
        verifier=IdentityVerifier(delay_seconds=settings.verification_delay_seconds),
    )


_engine: Optional[ConversationEngine] = None


def get_engine() -> ConversationEngine:
    """Process-wide engine, built on first use. Also a FastAPI dependency."""
    global _engine
    if _engine is None:
        from app.config import settings

        _engine = ConversationEngine(build_services(settings, redis_client=get_redis_client()))
    return _engine


async def shutdown_engine() -> int:
    """Cancel every background job of the running engine, if one was built."""
    global _engine
    if _engine is None:
        return 0
    stopped = await _engine.services.jobs.stop_all()
    _engine = None
    return stopped
