"""FastAPI application entry point."""
import os

# Force UTC before anything caches timezone information
os.environ['TZ'] = 'UTC'

import asyncio
import time

if hasattr(time, "tzset"):
    time.tzset()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager

from closeword.config import get_settings, Settings
from closeword.version import APP_VERSION
from closeword.routers import rooms, health, stats

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SQLTransactionFilter(logging.Filter):
    """Drop transaction chatter and flatten statements onto one line."""

    NOISE = ('BEGIN', 'COMMIT', 'ROLLBACK', 'generated in', 'cached since')

    def filter(self, record):
        if record.levelno != logging.INFO:
            return True
        message = record.getMessage()
        if any(token in message for token in self.NOISE):
            return False
        record.msg = ' '.join(message.split())
        record.args = ()
        return True


def _file_handler(path: Path, max_mb: int, backups: int, fmt: str = LOG_FORMAT) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8')
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(settings: Settings) -> None:
    """Route app, request and SQL logs to separate rotating files under ``log_dir``."""
    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    app_handler = _file_handler(logs_dir / "closeword.log", max_mb=1, backups=5)
    # Force=True overrides any configuration uvicorn installed first
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=[logging.StreamHandler(), app_handler], force=True)

    api_logger = logging.getLogger("closeword.api")
    api_logger.handlers.clear()
    api_logger.addHandler(_file_handler(logs_dir / "closeword_api.log", max_mb=2, backups=15,
                                        fmt='%(asctime)s - %(levelname)s - %(message)s'))
    api_logger.setLevel(logging.INFO)
    api_logger.propagate = False

    access_logger = logging.getLogger("uvicorn.access")
    if app_handler not in access_logger.handlers:
        access_logger.addHandler(app_handler)

    sql_logger = logging.getLogger("sqlalchemy.engine.Engine")
    sql_logger.handlers.clear()
    sql_logger.propagate = False
    if settings.log_sql_statements:
        sql_handler = _file_handler(logs_dir / "closeword_sql.log", max_mb=1, backups=5)
        sql_handler.addFilter(SQLTransactionFilter())
        sql_logger.addHandler(sql_handler)
        sql_logger.setLevel(logging.INFO)
    else:
        sql_logger.setLevel(logging.WARNING)


settings = get_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)
api_logger = logging.getLogger("closeword.api")


async def cleanup_cycle():
    """Delete rooms left waiting past the retention window, forever."""
    from closeword.database import AsyncSessionLocal
    from closeword.services import CleanupService

    startup_delay = 120
    logger.info(f"Cleanup cycle starting in {startup_delay}s")
    await asyncio.sleep(startup_delay)

    interval = settings.cleanup_interval_minutes * 60
    while True:
        try:
            async with AsyncSessionLocal() as db:
                await CleanupService(db).run_all_cleanup_tasks()
        except Exception as e:
            logger.error(f"Cleanup cycle error: {e}", exc_info=True)

        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application startup and shutdown tasks."""
    from closeword.services.ranking import close_ranking_registry
    from closeword.services.room_events import get_room_event_manager
    from closeword.utils import change_feed

    logger.info("=" * 60)
    logger.info("Closeword API Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
    logger.info(f"Change feed: {change_feed.backend}")
    logger.info(f"Default game mode: {settings.default_game_mode}")
    logger.info("=" * 60)

    cleanup_task = None
    try:
        cleanup_task = asyncio.create_task(cleanup_cycle())
        logger.info(f"Cleanup cycle task started (runs every {settings.cleanup_interval_minutes} minutes)")
    except Exception as e:
        logger.error(f"Failed to start cleanup cycle: {e}")

    try:
        yield
    finally:
        logger.info("Shutting down background tasks...")
        if cleanup_task:
            cleanup_task.cancel()
            try:
                await asyncio.wait_for(cleanup_task, timeout=2.0)
            except asyncio.CancelledError:
                logger.info("Cleanup task cancelled")
            except asyncio.TimeoutError:
                logger.warning("Cleanup task did not cancel within timeout, forcing shutdown")
            except Exception as e:
                logger.error(f"Error cancelling cleanup task: {e}")

        try:
            await get_room_event_manager().close()
            await change_feed.close()
        except Exception as e:
            logger.error(f"Error closing realtime fan-out: {e}")

        try:
            await close_ranking_registry()
            logger.info("Ranking providers closed")
        except Exception as e:
            logger.error(f"Error closing ranking providers: {e}")

        logger.info("Closeword API Shutting Down... Goodbye!")


app = FastAPI(
    title="Closeword API",
    description="Multiplayer word-guessing game backend",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
        errors.append({
            "field": field_path,
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": errors
        }
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Write one line per request outcome to the API log."""
    started = time.perf_counter()
    client_ip = request.client.host if request.client else "unknown"
    target = f"{request.method} {request.url.path}"
    if request.query_params:
        target = f"{target}?{request.query_params}"

    try:
        response = await call_next(request)
    except Exception as e:
        elapsed = time.perf_counter() - started
        api_logger.error(f"{target} | EXCEPTION {type(e).__name__}: {str(e)[:100]} | {elapsed:.3f}s | {client_ip}")
        raise

    elapsed = time.perf_counter() - started
    api_logger.info(f"{target} | {response.status_code} | {elapsed:.3f}s | {client_ip}")
    return response


allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
if not allowed_origins or allowed_origins == [""]:
    allowed_origins = [
        settings.frontend_url,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(rooms.router)
app.include_router(stats.router)
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Closeword API",
        "version": APP_VERSION,
        "environment": settings.environment,
        "docs": "/docs",
    }
