from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from app.models import User
from app.schemas.session import SessionData
from app.services.engine_services import EngineServices
from app.services.errors import StaleStateError
from app.services.state_machine import DialogState


@dataclass
class HandlerContext:
    message: str
    phone_number: str
    user: Optional[User]
    session_data: SessionData
    db: Session
    services: EngineServices
    state: DialogState = DialogState.IDLE


@dataclass
class HandlerResult:
    next_state: DialogState
    response: str
    data: dict[str, Any] = field(default_factory=dict)
    template: Optional[str] = None


StateHandler = Callable[[HandlerContext], Awaitable[HandlerResult]]


def require_user(ctx: HandlerContext) -> User:
    if ctx.user is None:
        raise StaleStateError("No account found. Type Hi to get started.")
    return ctx.user
