import logging
import os

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from datetime import datetime  # noqa: E402
from datetime import UTC  # noqa: E402
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402

from src.api.api import api_router  # noqa: E402
from src.api.dependencies import get_notification_dispatcher  # noqa: E402
from src.cron_jobs.sessions import cleanup_stale_sessions  # noqa: E402
from src.cron_jobs.subscriptions import (  # noqa: E402
    expire_lapsed_subscriptions,
    send_expiry_notifications,
)
from src.cron_jobs.users import cleanup_expired_refresh_tokens  # noqa: E402
from src.database.config import db_config  # noqa: E402
from src.database.session import init_models  # noqa: E402
from src.exceptions.handlers import register_exception_handlers  # noqa: E402
from src.services.session_registry import SessionConfig  # noqa: E402
from src.services.subscription_ledger import SubscriptionConfig  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db_config.create_tables:
        await init_models()

    dispatcher = get_notification_dispatcher()
    dispatcher.start()

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        func=cleanup_stale_sessions,
        trigger="interval",
        seconds=SessionConfig.SWEEP_INTERVAL_SECONDS,
        next_run_time=datetime.now(UTC),
    )
    scheduler.add_job(
        func=send_expiry_notifications,
        trigger="interval",
        minutes=SubscriptionConfig.EXPIRY_CHECK_INTERVAL_MINUTES,
        next_run_time=datetime.now(UTC),
    )
    scheduler.add_job(
        func=expire_lapsed_subscriptions,
        trigger="interval",
        hours=SubscriptionConfig.SWEEP_INTERVAL_HOURS,
        next_run_time=datetime.now(UTC),
    )
    scheduler.add_job(
        func=cleanup_expired_refresh_tokens,
        trigger="interval",
        hours=12,
        next_run_time=datetime.now(UTC),
    )
    scheduler.start()
    app.state.scheduler = scheduler
    yield
    scheduler.shutdown(wait=False)
    await dispatcher.stop()


app = FastAPI(
    title="StreamVault API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
async def root():
    return {
        "status": "online",
        "message": "StreamVault API is running",
    }


app.include_router(api_router, prefix="")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
