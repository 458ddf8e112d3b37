from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.message import MessageRequest, MessageResponse
from app.services.conversation_service import ConversationEngine, get_engine

router = APIRouter()


@router.post("/message", response_model=MessageResponse)
async def handle_message(
    request: MessageRequest,
    db: Session = Depends(get_db),
    engine: ConversationEngine = Depends(get_engine),
):
    """Run one message through the engine and return the reply instead of sending it."""
    if not request.sender_id.strip() or not request.content.strip():
        raise HTTPException(status_code=400, detail="sender_id and content are required")

    reply = await engine.handle_incoming_message(db, request.sender_id.strip(), request.content)
    return MessageResponse(
        success=True,
        state=reply.state,
        response=reply.response,
        template=reply.template,
    )
