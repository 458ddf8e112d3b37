"""Settlement notifier: the timed status sequence after a user pays.

The phase logic (order, status effects, copy) is plain data and pure
functions; ``SettlementNotifier`` only walks the phases on a schedule and
performs the side effects.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings
from app.logging_config import get_logger
from app.models import BankAccount, Recipient, Transfer
from app.models.types import utcnow
from app.services import bot_messages
from app.services.bot_messages import SEPARATOR, money
from app.services.engine_services import EngineServices
from app.services.job_registry import new_job_id
from app.services.state_machine import TransferStatus
from app.services.transfer_service import advance_status, get_transfer, mark_failed
from app.services.transport_service import UiTemplate

logger = get_logger("settlement_service")


class NotifierPhase(str, Enum):
    INITIATED = "initiated"
    WITHDRAWAL_DONE = "withdrawal_done"
    PAYOUT_STARTED = "payout_started"
    COMPLETED = "completed"


PHASE_ORDER = (
    NotifierPhase.INITIATED,
    NotifierPhase.WITHDRAWAL_DONE,
    NotifierPhase.PAYOUT_STARTED,
    NotifierPhase.COMPLETED,
)


@dataclass(frozen=True)
class StatusChange:
    expected: TransferStatus
    target: TransferStatus
    timestamps: tuple[str, ...]


PHASE_STATUS_CHANGES = {
    NotifierPhase.WITHDRAWAL_DONE: StatusChange(
        TransferStatus.PROCESSING_WITHDRAWAL,
        TransferStatus.PROCESSING_PAYOUT,
        ("withdrawal_completed_at", "payout_initiated_at"),
    ),
    NotifierPhase.COMPLETED: StatusChange(
        TransferStatus.PROCESSING_PAYOUT,
        TransferStatus.COMPLETED,
        ("payout_completed_at",),
    ),
}


def next_phase(phase: Optional[NotifierPhase]) -> Optional[NotifierPhase]:
    """Phase that follows ``phase``; None starts the sequence, None after the last."""
    if phase is None:
        return PHASE_ORDER[0]
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[index + 1] if index + 1 < len(PHASE_ORDER) else None


@dataclass(frozen=True)
class SettlementSchedule:
    """Offsets in seconds from payment confirmation for each phase."""

    offsets: dict

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettlementSchedule":
        return cls(
            offsets={
                NotifierPhase.INITIATED: settings.settlement_withdrawal_initiated_seconds,
                NotifierPhase.WITHDRAWAL_DONE: settings.settlement_withdrawal_completed_seconds,
                NotifierPhase.PAYOUT_STARTED: settings.settlement_payout_progress_seconds,
                NotifierPhase.COMPLETED: settings.settlement_completed_seconds,
            }
        )

    def delay_before(self, phase: NotifierPhase) -> float:
        index = PHASE_ORDER.index(phase)
        previous = self.offsets[PHASE_ORDER[index - 1]] if index else 0
        return max(float(self.offsets[phase]) - float(previous), 0.0)


@dataclass(frozen=True)
class SettlementView:
    transfer_code: str
    amount_usd: object
    fee_usd: object
    amount_inr: object
    recipient_name: str
    payment_type: str
    payment_details: str
    bank_name: str
    bank_last4: str

    @classmethod
    def build(cls, transfer: Transfer, recipient: Recipient, account: Optional[BankAccount]) -> "SettlementView":
        return cls(
            transfer_code=transfer.transfer_code,
            amount_usd=transfer.amount_usd,
            fee_usd=transfer.fee_usd,
            amount_inr=transfer.amount_inr,
            recipient_name=recipient.nickname,
            payment_type="UPI" if recipient.payment_method == "upi" else "Bank Account",
            payment_details=bot_messages.recipient_destination(recipient),
            bank_name=account.bank_name if account else "your bank",
            bank_last4=account.last4 if account else "",
        )


def render_phase_message(phase: NotifierPhase, view: SettlementView, completed_at=None) -> tuple[str, Optional[str]]:
    header = [SEPARATOR, f"Transfer {view.transfer_code}", SEPARATOR, ""]
    if phase is NotifierPhase.INITIATED:
        body = [
            "Withdrawal initiated!",
            "",
            *header,
            "Step 1/2: Processing",
            f"Withdrawing ${money(view.amount_usd)} from {view.bank_name}...",
            "",
            "This usually takes a few seconds.",
        ]
        return "\n".join(body), None
    if phase is NotifierPhase.WITHDRAWAL_DONE:
        body = [
            "Withdrawal successful!",
            "",
            *header,
            "Step 1/2: Complete ✓",
            f"${money(view.amount_usd)} withdrawn from {view.bank_name}.",
            "",
            f"Step 2/2: Sending ₹{money(view.amount_inr)} to {view.recipient_name}...",
        ]
        return "\n".join(body), None
    if phase is NotifierPhase.PAYOUT_STARTED:
        body = [
            "Payout initiated!",
            "",
            *header,
            "Step 2/2: Processing",
            f"Sending ₹{money(view.amount_inr)} to {view.recipient_name}'s {view.payment_type}...",
            "",
            view.payment_details,
        ]
        return "\n".join(body), None

    completed_at = completed_at or utcnow()
    body = [
        "✓ Transfer Complete!",
        "",
        *header,
        "Step 1/2: Withdrawal ✓",
        "Step 2/2: Payout ✓",
        "",
        SEPARATOR,
        f"Amount Sent: ${money(view.amount_usd)}",
        f"Fee: ${money(view.fee_usd)}",
        f"{view.recipient_name} received: ₹{money(view.amount_inr)}",
        SEPARATOR,
        "",
        f"Completed: {completed_at:%b %d, %Y %H:%M} UTC",
    ]
    return "\n".join(body), UiTemplate.IDLE_MENU.value


class SettlementNotifier:
    def __init__(
        self,
        services: EngineServices,
        phone_number: str,
        transfer_id: str,
        schedule: Optional[SettlementSchedule] = None,
    ):
        self.services = services
        self.phone_number = phone_number
        self.transfer_id = str(transfer_id)
        self.schedule = schedule or SettlementSchedule.from_settings(services.settings)
        self.phase: Optional[NotifierPhase] = None

    async def run(self) -> None:
        phase = next_phase(None)
        while phase is not None:
            await asyncio.sleep(self.schedule.delay_before(phase))
            if not await self.step(phase):
                return
            self.phase = phase
            phase = next_phase(phase)

    async def step(self, phase: NotifierPhase) -> bool:
        """Apply one phase. Returns False when the sequence must stop."""
        view: Optional[SettlementView] = None
        db = self.services.session_factory()
        try:
            change = PHASE_STATUS_CHANGES.get(phase)
            if change is not None:
                now = utcnow()
                moved = advance_status(
                    db,
                    self.transfer_id,
                    change.expected,
                    change.target,
                    **{field: now for field in change.timestamps},
                )
                if not moved:
                    db.rollback()
                    await self._abort(phase)
                    return False
                db.commit()
            view = self._load_view(db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Settlement step failed",
                extra={"context": {"transfer_id": self.transfer_id, "phase": phase.value, "error": str(exc)}},
            )
        finally:
            db.close()

        if view is not None:
            text, template = render_phase_message(phase, view)
            sent = await self.services.transport.send(self.phone_number, text, template)
            if not sent:
                logger.error(
                    "Settlement message not delivered",
                    extra={"context": {"transfer_id": self.transfer_id, "phase": phase.value}},
                )

        if phase is NotifierPhase.COMPLETED:
            await self._release_lock()
            logger.info("Settlement completed", extra={"context": {"transfer_id": self.transfer_id}})
        return True

    def _load_view(self, db) -> Optional[SettlementView]:
        transfer = get_transfer(db, self.transfer_id)
        if transfer is None:
            return None
        recipient = db.get(Recipient, transfer.recipient_id)
        account = db.get(BankAccount, transfer.bank_account_id) if transfer.bank_account_id else None
        if recipient is None:
            return None
        return SettlementView.build(transfer, recipient, account)

    async def _abort(self, phase: NotifierPhase) -> None:
        db = self.services.session_factory()
        code = None
        try:
            mark_failed(db, self.transfer_id)
            db.commit()
            transfer = get_transfer(db, self.transfer_id)
            code = transfer.transfer_code if transfer else None
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Could not mark transfer failed",
                extra={"context": {"transfer_id": self.transfer_id, "error": str(exc)}},
            )
        finally:
            db.close()

        logger.warning(
            "Settlement stopped, transfer left expected status",
            extra={"context": {"transfer_id": self.transfer_id, "phase": phase.value}},
        )
        label = f" ({code})" if code else ""
        await self.services.transport.send(
            self.phone_number,
            bot_messages.with_menu(f"Your transfer{label} could not be completed. No further action was taken."),
            UiTemplate.IDLE_MENU.value,
        )
        await self._release_lock()

    async def _release_lock(self) -> None:
        snapshot = await self.services.sessions.get(self.phone_number)
        if snapshot is None:
            return
        active = snapshot.data.active_transfer_id
        if active is not None and active != self.transfer_id:
            return
        data = snapshot.data.merge(
            {"transfer_processing": None, "active_transfer_id": None, "settlement_job_id": None}
        )
        await self.services.sessions.put(self.phone_number, snapshot.state, data)


def start_settlement_notifier(services: EngineServices, phone_number: str, transfer_id) -> str:
    job_id = new_job_id("settlement")
    notifier = SettlementNotifier(services, phone_number, str(transfer_id))
    return services.jobs.start(job_id, notifier.run())
