from app.models.bank_account import BankAccount
from app.models.chat_session import ChatSession
from app.models.recipient import Recipient
from app.models.transfer import Transfer
from app.models.user import User

__all__ = [
    "User",
    "BankAccount",
    "Recipient",
    "Transfer",
    "ChatSession",
]
