import logging
from typing import Any, Mapping
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect
from line_channel import LineChannel
from reminder_worker.composer import MessageComposer
from reminder_worker.dispatcher import Dispatcher
from reminder_worker.scheduler import DeadlineScheduler
from reminder_worker.scheduler_config import load_reminder_settings
from server import models  # noqa: F401  registers tables on Base
from server.config import config
from server.database import engine, Base, SessionLocal
from server.routes import router
from server.routes.prometheus import metrics_middleware
from server.store import SqlTaskStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# =========================================================
# FASTAPI APP
# =========================================================

app = FastAPI(title="Deadline Reminder API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register Prometheus middleware
app.middleware("http")(metrics_middleware)

# Include API Router
app.include_router(router)


@app.get("/health")
def health() -> Mapping[str, Any]:
    return {"status": "ok"}


# =========================================================
# STARTUP: TABLES + SHARED CLIENTS
# =========================================================
@app.on_event("startup")
def init_database():
    logger.info("🔄 Creating database tables if not exist...")
    existing_tables = inspect(engine).get_table_names()
    Base.metadata.create_all(bind=engine)
    logger.info(f"✅ Tables ready (existing before startup: {existing_tables})")


@app.on_event("startup")
def init_clients():
    settings = load_reminder_settings()
    channel = LineChannel(timeout=settings.dispatch_timeout_seconds)
    dispatcher = Dispatcher(
        channel,
        batch_size=settings.batch_size,
        pacing_seconds=settings.batch_pacing_seconds,
    )
    app.state.line_channel = channel
    app.state.deadline_scheduler = DeadlineScheduler(
        SqlTaskStore(SessionLocal),
        dispatcher,
        MessageComposer(burst_size=settings.burst_size),
        settings,
    )
    logger.info(f"🚀 LINE channel ready, on-demand reminders in {settings.timezone}")
