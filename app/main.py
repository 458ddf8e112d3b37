import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.logging_config import get_logger, setup_logging
from app.routers import health, message, webhook
from app.services.cache_service import close_redis_client
from app.services.conversation_service import shutdown_engine

setup_logging(settings.log_level)
logger = get_logger("main")

app = FastAPI(
    title="SurgePay API",
    description="WhatsApp conversation engine for US to India transfers",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(message.router)
app.include_router(health.router)


@app.on_event("startup")
async def on_startup() -> None:
    logger.info(
        "SurgePay API started",
        extra={"context": {"redis": bool(settings.redis_url), "transport": bool(settings.twilio_account_sid)}},
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    stopped = await shutdown_engine()
    await close_redis_client()
    logger.info("SurgePay API stopped", extra={"context": {"jobs_cancelled": stopped}})
