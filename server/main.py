"""
FastAPI backend exposing the resilient data-access layer of the livestock
management platform.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import configure_logging, get_logger
from routers import data_access
from services.exceptions import DataAccessError

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting data access services")
    await container.data_access().startup()
    logger.info("Services started successfully")
    yield

    await container.data_access().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="AgriIntel Data Access",
    version="1.0.0",
    description="Cached, health-gated access to livestock records",
    lifespan=lifespan,
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error_type=type(e).__name__, error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


@app.exception_handler(DataAccessError)
async def data_access_error_handler(request: Request, exc: DataAccessError):
    """Data-access failures are reported in the API envelope as 503."""
    logger.warning("Data access failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "error": str(exc)},
    )


# Exception middleware goes in before CORS so CORS wraps it
app.add_middleware(CatchAllExceptionsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(data_access.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "service": "data-access",
        "environment": "development" if settings.is_development else "production",
        **container.data_access().health_report(),
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting data access service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
