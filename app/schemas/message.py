from typing import Optional

from pydantic import BaseModel


class MessageRequest(BaseModel):
    sender_id: str
    content: str


class MessageResponse(BaseModel):
    success: bool
    state: str
    response: str
    template: Optional[str] = None
