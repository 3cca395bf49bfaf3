"""
Mutual Scheduler - FastAPI Application Setup

Main FastAPI application that provides:
- Mutual availability and conflict checking endpoints
- Pattern analysis and ranked meeting suggestions
- Health monitoring
"""

import asyncio
import logging
import logging.config
from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..utils.config import config
from ..utils.exceptions import SchedulingError
from ..utils.helpers import create_error_response
from ..agent.scheduling_engine import SchedulingEngine
from .scheduling_routes import scheduling_router

# Configure logging
logging.config.dictConfig(config.get_log_config())
logger = logging.getLogger(__name__)

SERVICE_NAME = "Mutual Scheduler"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {SERVICE_NAME}...")
    app.state.engine = SchedulingEngine(config.scheduling)
    logger.info(f"{SERVICE_NAME} started successfully")
    try:
        yield
    finally:
        logger.info(f"Shutting down {SERVICE_NAME}...")
        app.state.engine = None


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title=SERVICE_NAME,
        description="Mutual availability and smart scheduling for two users",
        version=SERVICE_VERSION,
        docs_url="/docs" if config.api.debug else None,
        redoc_url="/redoc" if config.api.debug else None,
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Add custom middleware for request logging
    @app.middleware("http")
    async def log_requests(request, call_next):
        start_time = asyncio.get_running_loop().time()
        response = await call_next(request)
        process_time = asyncio.get_running_loop().time() - start_time

        logger.info(
            f"{request.method} {request.url.path} "
            f"completed in {process_time:.3f}s with status {response.status_code}"
        )
        return response

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        logger.warning(f"{request.url.path} rejected: [{exc.code}] {exc.message}")
        return JSONResponse(
            status_code=422,
            content=create_error_response(exc.message, exc.code, exc.details)
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"{request.url.path} rejected: {exc}")
        return JSONResponse(
            status_code=422,
            content=create_error_response(str(exc), "INVALID_REQUEST")
        )

    # Include API routers
    app.include_router(scheduling_router)

    @app.get("/")
    async def root():
        """Root endpoint with basic service information"""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "operational",
            "capabilities": [
                "mutual_availability",
                "conflict_detection",
                "pattern_analysis",
                "smart_suggestions"
            ],
            "endpoints": {
                "scheduling": "/api/scheduling",
                "health": "/health"
            }
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint for monitoring and load balancing"""
        engine = getattr(request.app.state, "engine", None)
        if engine is None:
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "engine": "not initialized"}
            )

        return {
            "status": "healthy",
            "engine": "ready",
            "settings": {
                "default_buffer_minutes": engine.settings.availability.default_buffer_minutes,
                "default_duration_minutes": engine.settings.availability.default_duration_minutes,
                "bucket_minutes": engine.settings.pattern.bucket_minutes,
                "weights": engine.settings.ranking.weights.as_dict()
            }
        }

    return app


# Create the app instance
app = create_app()


def start_server():
    """Run the API with uvicorn using the configured host and port"""
    uvicorn.run(
        "mutual_scheduler.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.debug,
        log_config=config.get_log_config()
    )


if __name__ == "__main__":
    start_server()
