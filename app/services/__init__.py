from app.services.result import Result
from app.services.state_machine import (
    DialogState,
    InvalidTransitionError,
    TransferStatus,
    can_transition,
    transition,
)

__all__ = [
    "Result",
    "DialogState",
    "InvalidTransitionError",
    "TransferStatus",
    "can_transition",
    "transition",
]
