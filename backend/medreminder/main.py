"""Main FastAPI application for the medicine reminder service."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .dependencies import default_dispatcher
from .routers import (
    confirmations_router,
    notifications_router,
    notifications_ws_router,
    pharmacy_router,
    push_router,
)
from .services.scheduler import SchedulerService
from .services.websocket_manager import websocket_manager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

scheduler_service = SchedulerService(default_dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting medicine reminder service")

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        scheduler_service.start()
    else:
        logger.info("In-process scheduler disabled; expecting an external dispatch trigger")

    if not (settings.vapid_public_key and settings.vapid_private_key):
        logger.warning("VAPID keys not configured - push notifications will fail")

    yield

    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="MedReminder",
        description="Medicine reminders, dose confirmations and pharmacy stock",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(notifications_router)
    app.include_router(notifications_ws_router)
    app.include_router(confirmations_router)
    app.include_router(push_router)
    app.include_router(pharmacy_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": scheduler_service.running,
            "websocket_connections": websocket_manager.connection_count,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
