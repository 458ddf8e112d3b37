from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from app.config import Settings
from app.services.bank_link_service import BankLinkService
from app.services.fx_service import FXRateService
from app.services.job_registry import JobRegistry
from app.services.session_store import SessionStore
from app.services.transport_service import WhatsAppTransport
from app.services.verification_service import IdentityVerifier


@dataclass
class EngineServices:
    """Collaborators shared by the dialog handlers and the background jobs."""

    settings: Settings
    session_factory: Callable[[], Session]
    sessions: SessionStore
    jobs: JobRegistry
    transport: WhatsAppTransport
    rates: FXRateService
    bank_link: BankLinkService
    verifier: IdentityVerifier
