"""
Main FastAPI Application for SensorHub
Runs the simulated telemetry pipeline and exposes the REST control plane
and realtime WebSocket channel
"""
from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging
import os

from sensorhub.api.dependencies import get_telemetry_service, set_telemetry_service
from sensorhub.api.routes import health, realtime, safety, sensors
from sensorhub.api.schemas import ErrorResponse
from sensorhub.config.telemetry_config import DEFAULT_CONFIG_PATH, TelemetryConfigLoader
from sensorhub.core.error_handling import ConfigurationError, SensorHubError
from sensorhub.core.logging_config import setup_logging
from sensorhub.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def build_service() -> TelemetryService:
    """Load configuration, configure logging and construct the telemetry service"""
    config_path = os.getenv("SENSORHUB_CONFIG", DEFAULT_CONFIG_PATH)
    config = TelemetryConfigLoader.load(config_path)
    TelemetryConfigLoader.apply_env_overrides(config)

    setup_logging(
        log_level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        console_output=config.logging.console,
    )

    is_valid, errors = TelemetryConfigLoader.validate(config)
    if not is_valid:
        raise ConfigurationError("Invalid telemetry configuration", details={'errors': errors})

    return TelemetryService(config)


def create_app(service: Optional[TelemetryService] = None, use_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Pre-built service (tests); built from configuration when omitted
        use_lifespan: Run startup/shutdown hooks
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info("Starting SensorHub...")
        logger.info("=" * 60)

        telemetry = service
        try:
            if telemetry is None:
                telemetry = build_service()
            set_telemetry_service(telemetry)
            logger.info("✓ Telemetry service initialized")

            sinks = ", ".join(f"{s.name}={'on' if s.enabled else 'off'}" for s in telemetry.sinks)
            logger.info(f"Alert sinks: {sinks}")

            if _env_flag("SKIP_SCHEDULER") or not telemetry.config.scheduler.autostart:
                logger.info("Scheduler autostart disabled - telemetry can be started via API")
            else:
                await telemetry.start()
                logger.info("✓ Telemetry scheduler started")

            yield

        except Exception as e:
            logger.error(f"Error during startup: {e}", exc_info=True)
            raise

        finally:
            logger.info("Shutting down SensorHub...")
            if telemetry is not None:
                try:
                    await telemetry.close()
                    logger.info("SensorHub shutdown complete")
                except Exception as e:
                    logger.error(f"Error during shutdown: {e}", exc_info=True)
            set_telemetry_service(None)

    app = FastAPI(
        title="SensorHub Telemetry API",
        description="""
        Simulated IoT telemetry backend for the maintenance dashboard.

        ## Features
        - Synthetic vibration / temperature / current readings every tick
        - Scheduled anomaly bursts that exercise the safety alert path
        - Runtime-adjustable safety thresholds
        - Realtime fan-out over WebSocket (`/ws`)

        ## Endpoints
        - Latest readings at `/api/sensors`
        - History at `/api/sensors/history`
        - Thresholds and alerts at `/api/safety/*`
        - Health at `/health`
        """,
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if service is not None and not use_lifespan:
        set_telemetry_service(service)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SensorHubError)
    async def sensorhub_exception_handler(request: Request, exc: SensorHubError):
        if exc.client_error:
            logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
            status_code = status.HTTP_400_BAD_REQUEST
        else:
            logger.error(f"Service error on {request.url.path}: {exc.message}", extra={'error': exc.to_dict()})
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(message=exc.message, error_code=exc.error_code.value).model_dump()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else "unknown"
            }
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "message": "Internal server error",
                "path": str(request.url.path)
            }
        )

    app.include_router(sensors.router)
    app.include_router(safety.router)
    app.include_router(health.router)
    app.include_router(realtime.router)

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint - API information"""
        return {
            "name": "SensorHub Telemetry API",
            "version": "1.0.0",
            "status": "running",
            "documentation": "/docs",
            "endpoints": {
                "sensors": "/api/sensors",
                "history": "/api/sensors/history",
                "thresholds": "/api/safety/thresholds",
                "alerts": "/api/safety/alerts",
                "health": "/health",
                "realtime": "/ws"
            }
        }

    @app.post("/api/control/start", tags=["control"])
    async def start_telemetry(
        interval_ms: Optional[int] = Query(None, gt=0, description="Tick interval in milliseconds")
    ):
        """Start the telemetry scheduler (no-op if already running)"""
        telemetry = get_telemetry_service()
        await telemetry.start(interval_ms)
        logger.info("Telemetry scheduler started via API")
        return {"status": "success", "data": telemetry.scheduler.get_status()}

    @app.post("/api/control/stop", tags=["control"])
    async def stop_telemetry():
        """Stop the telemetry scheduler"""
        telemetry = get_telemetry_service()
        await telemetry.stop()
        logger.info("Telemetry scheduler stopped via API")
        return {"status": "success", "data": telemetry.scheduler.get_status()}

    @app.get("/api/control/status", tags=["control"])
    async def telemetry_status():
        """Scheduler, history, registry and sink status"""
        telemetry = get_telemetry_service()
        return {"status": "success", "data": telemetry.get_status()}

    return app


app = create_app(use_lifespan=not _env_flag("DISABLE_LIFESPAN"))


# Development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sensorhub.main:app",
        host=os.getenv("APP_HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        reload=False,
        log_level="info"
    )
