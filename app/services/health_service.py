from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.schemas.health import HealthResponse
from app.services.cache_service import ping_redis
from app.services.conversation_service import ConversationEngine

logger = get_logger("health_service")


def check_database(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "up"
    except SQLAlchemyError as exc:
        logger.error("Database health check failed", extra={"context": {"error": str(exc)}})
        return "down"


async def get_health(db: Session, engine: ConversationEngine) -> HealthResponse:
    """Database down is unhealthy; a configured but unreachable redis is degraded."""
    database = check_database(db)
    redis = await ping_redis(engine.services.sessions.redis_client)

    if database == "down":
        status = "unhealthy"
    elif redis == "down":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        database=database,
        redis=redis,
        active_jobs=engine.services.jobs.count(),
    )
