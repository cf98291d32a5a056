"""Factline — FastAPI Application Entry Point.

Mirrors ChurchTools facts into a local store and serves them to Grafana
as a JSON datasource.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from factline.config import settings
from factline.database import init_db, test_connection
from factline.connectors.churchtools.client import AuthenticationError, ChurchToolsClient
from factline.connectors.churchtools.endpoints import ChurchToolsEndpoints
from factline.sync.service import DataSyncService
from factline.scheduler.jobs import start_scheduler, stop_scheduler
from factline.api.datasource_routes import router as datasource_router
from factline.api.sync_routes import router as sync_router, VERSION
from factline.core.logging import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 Factline starting up...")
    if test_connection():
        init_db()
    else:
        logger.error("❌ Database NOT connected, endpoints will fail")

    client = ChurchToolsClient()
    service = DataSyncService(ChurchToolsEndpoints(client))
    app.state.client = client
    app.state.sync_service = service

    # AuthenticationError propagates and aborts startup
    logger.info("Authenticating with ChurchTools...")
    await client.authenticate()

    if settings.initial_sync_enabled:
        try:
            await service.perform_initial_sync()
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error(f"❌ Initial sync failed: {e}")

    start_scheduler(service)
    yield
    stop_scheduler()
    await client.close()
    logger.info("Factline shut down")


app = FastAPI(
    title="Factline",
    description="ChurchTools facts mirrored locally and served as a Grafana JSON datasource.",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(datasource_router)
app.include_router(sync_router)
