from typing import Optional


class SurgePayError(Exception):
    """Base error; ``message`` is always safe to show to the user."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SurgePayError):
    """Malformed user input. The dialog re-prompts the same state."""


class StaleStateError(SurgePayError):
    """Session or transfer reference is missing, expired or already processed."""


class CollaboratorUnavailable(SurgePayError):
    """Rate source, bank-link aggregator or verifier could not be reached."""

    def __init__(self, message: str, collaborator: str):
        self.collaborator = collaborator
        super().__init__(message)


class PersistenceError(SurgePayError):
    """Durable store read or write failed."""


class BankAccountError(SurgePayError):
    def __init__(self, message: str, code: str, limit: Optional[int] = None):
        self.code = code
        self.limit = limit
        super().__init__(message)
