"""
Module: main.py
Description: FastAPI application entry point for the webhook relay.

Initializes the FastAPI application with all routes, middleware,
and error handlers. Exposes a Mangum handler for AWS Lambda.
"""

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from webhook_relay.config.settings import get_settings
from webhook_relay.handlers.webhooks import router as webhooks_router
from webhook_relay.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

settings = get_settings()
configure_logging(settings.log_level)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant webhook ingestion with durable, retried delivery",
    version=settings.app_version,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc"  # ReDoc
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic application health information.
    """
    logger.info("Health check requested")

    return {
        "status": "ok",
        "message": "Webhook relay is healthy",
        "version": settings.app_version,
        "environment": settings.stage
    }


def _error_response(status_code: int, message, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type
            }
        }
    )


# Global exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global HTTP exception handler.

    Logs HTTP exceptions and returns structured error responses.
    """
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return _error_response(exc.status_code, exc.detail, "http_exception")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return request validation failures as 400 errors."""
    logger.warning(
        "Request validation failed",
        path=request.url.path,
        method=request.method,
        errors=str(exc.errors())
    )

    return _error_response(400, "Invalid request parameters", "validation_error")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Logs unexpected exceptions and returns generic error responses.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method
    )

    return _error_response(500, "Internal server error", "internal_error")


@app.on_event("startup")
async def startup_event():
    """Application startup event handler."""
    logger.info(
        "Starting webhook relay API",
        version=settings.app_version,
        stage=settings.stage,
        region=settings.aws_region
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Release queue connections held by the shared EventService."""
    service = getattr(app.state, "event_service", None)
    if service is not None:
        await service.queue.close()
    logger.info("Shutting down webhook relay API")


# Lambda handler
handler = Mangum(app, lifespan="off")
