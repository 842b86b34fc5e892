from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_engine.config import get_settings
from booking_engine.dependencies.services import get_background_jobs_cached, get_engine_cached
from booking_engine.health import router as health_router
from booking_engine.routes.bookings import router as bookings_router
from booking_engine.routes.locks import router as locks_router
from booking_engine.routes.reminders import router as reminders_router
from booking_engine.routes.services import router as services_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)

# Configure logging as soon as the module is loaded
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Starts the background sweeps with the app and stops them on shutdown.
    """
    # --- Startup Logic ---
    settings = get_settings()

    settings_snapshot = settings.model_dump(
        exclude={"record_store_token", "notification_token"},
        mode="json",
    )
    logger.info("Application settings on startup: %s", settings_snapshot)

    engine = get_engine_cached()
    jobs = get_background_jobs_cached()
    if settings.enable_background_jobs:
        jobs.start()
    else:
        logger.info("Background jobs disabled by configuration")
    logger.info("Application startup complete.")

    try:
        yield  # The application is now running
    finally:
        # --- Shutdown Logic ---
        jobs.shutdown()
        logger.info("Closing record store and notification clients.")
        await engine.close()
        logger.info("Application shutdown complete.")


# --- Application Setup ---

settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include Routers ---

app.include_router(services_router, prefix="/services")
app.include_router(locks_router, prefix="/locks")
app.include_router(bookings_router, prefix="/bookings")
app.include_router(reminders_router, prefix="/reminders")
app.include_router(health_router)
