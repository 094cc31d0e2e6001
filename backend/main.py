"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import ldap
from config import settings
from database import get_session_local, init_db
from integrations.ldap_client import LdapDirectoryClient
from logging_config import setup_logging
from services.config_gate import ConfigGate
from services.sync_coordinator import SyncCoordinator
from services.sync_log_service import SyncLogService
from services.sync_run_service import SyncRunService
from services.sync_scheduler import SyncScheduler
from services.user_repository import SqlAlchemyUserRepository

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the directory sync services and start the scheduler."""
    init_db()
    SessionLocal = get_session_local()

    config_gate = ConfigGate(SessionLocal, bootstrap_settings=settings)
    coordinator = SyncCoordinator(
        config_gate,
        LdapDirectoryClient(),
        SqlAlchemyUserRepository(SessionLocal),
        SyncLogService(SessionLocal),
        SyncRunService(SessionLocal),
    )
    scheduler = SyncScheduler(coordinator, config_gate)

    app.state.config_gate = config_gate
    app.state.sync_coordinator = coordinator
    app.state.sync_scheduler = scheduler

    scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()
        coordinator.shutdown()


app = FastAPI(
    title="Directory Sync",
    description="Synchronizes local user accounts from an LDAP directory",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(ldap.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
