"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app and the Socket.IO relay
- Loads configuration and logging
- Registers API routes (meeting statistics)
- No business logic should be written here
- Manages application lifecycle (startup/shutdown)
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from contextlib import asynccontextmanager
import socketio
import time

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.realtime.relay import MeetingStatsRelay, create_socket_server
from app.services.rollover_scheduler import MonthlyRolloverScheduler
from app.api import meeting_stats

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

rollover_scheduler = MonthlyRolloverScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting meeting statistics service...")

    try:
        logger.info("Validating configuration...")
        validate_settings()

        logger.info("Connecting to MongoDB...")
        await connect_to_mongo()

        logger.info("Creating database indexes...")
        await create_indexes()

        is_healthy = await check_database_health()
        if not is_healthy:
            logger.warning("Database health check failed during startup")
        else:
            logger.info("Database health check passed")

        if settings.ENABLE_MONTHLY_ROLLOVER:
            rollover_scheduler.start()

        logger.info("Meeting statistics service started")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug Mode: {settings.DEBUG}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down meeting statistics service...")

    try:
        await rollover_scheduler.stop()
        await close_mongo_connection()
        logger.info("Meeting statistics service shut down")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title="Meeting Statistics",
    description="Per-user video call statistics with real-time updates",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(SessionMiddleware, **settings.session_middleware_options)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


add_exception_handlers(app)

app.include_router(meeting_stats.router, prefix=settings.API_PREFIX, tags=["Meeting Stats"])

# Real-time relay, served on /socket.io alongside the HTTP app
sio = create_socket_server()
relay = MeetingStatsRelay(sio)
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "Meeting Statistics API",
        "version": "1.0.0",
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.
    Checks database connectivity and the rollover job.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
        "checks": {}
    }

    db_healthy = await check_database_health()
    health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
    if not db_healthy:
        health_status["status"] = "unhealthy"

    if settings.ENABLE_MONTHLY_ROLLOVER:
        health_status["checks"]["monthly_rollover"] = "running" if rollover_scheduler.is_running else "stopped"
    else:
        health_status["checks"]["monthly_rollover"] = "disabled"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe - indicates if app is ready to receive traffic.
    """
    if await check_database_health():
        return {"status": "ready"}
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "reason": "database_unavailable"}
    )


@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:asgi_app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
