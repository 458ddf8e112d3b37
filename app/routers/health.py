from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.health import HealthResponse
from app.services.conversation_service import ConversationEngine, get_engine
from app.services.health_service import get_health

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(db: Session = Depends(get_db), engine: ConversationEngine = Depends(get_engine)):
    return await get_health(db, engine)
