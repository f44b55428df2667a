import json
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reflect.core.db import init_db
from reflect.core.logging import setup_logging
from reflect.core.settings import get_settings
from reflect.routers import api

# Initialize
settings = get_settings()
logger = setup_logging()

# Create app
app = FastAPI(
    title=settings.app_name, version="1.0.0", description="Journaling nudges and profile memory"
)


# Exception handlers
def _serialize_validation_errors(errors: list) -> list:
    """Convert validation errors to JSON-serializable format."""
    serialized = []
    for error in errors:
        serialized_error = {
            "loc": error.get("loc"),
            "msg": str(error.get("msg", "")),
            "type": error.get("type"),
        }
        # Only include input if it's JSON-serializable
        if "input" in error:
            try:
                json.dumps(error["input"])
                serialized_error["input"] = error["input"]
            except (TypeError, ValueError):
                serialized_error["input"] = str(error["input"])
        serialized.append(serialized_error)
    return serialized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle Pydantic validation errors with detailed logging.

    Journal bodies are private, so only their size is logged.
    """
    body = await request.body()
    errors = exc.errors()

    logger.error(
        f"Validation error on {request.method} {request.url.path}",
        extra={
            "component": "api",
            "operation": "request_validation",
            "context_data": {
                "body_bytes": len(body),
                "errors": [
                    {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
                    for error in errors
                ],
            },
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": _serialize_validation_errors(errors)},
    )


# Request logging middleware with timing
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests with timing information."""
    start_time = time.perf_counter()

    logger.info(f">>> {request.method} {request.url.path}")
    logger.debug(f"    Client: {request.client.host if request.client else 'unknown'}")

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    # Add timing header to response
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    # Model calls dominate latency, so thresholds are in seconds rather than milliseconds
    method = request.method
    path = request.url.path
    status_code = response.status_code
    time_str = f"{duration_ms:.2f}ms"

    if duration_ms < 1500:
        logger.info(f"<<< {method} {path} - {status_code} [{time_str}]")
    elif duration_ms < 5000:
        logger.info(f"<<< {method} {path} - {status_code} [{time_str}] (slow)")
    else:
        logger.warning(f"<<< {method} {path} - {status_code} [{time_str}] (very slow)")

    return response


# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api.router, prefix="/api")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting up...")
    init_db()
    logger.info("Database initialized")


# Health check
@app.get("/health")
async def health_check():
    return {"status": "ok", "service": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
