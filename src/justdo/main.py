import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ErrorCode, ErrorEnvelope, ErrorResponse, RestException, StoreError
from .logging_setup import setup_logging
from .query import OperationCancelled
from .routers import todos as todos_router
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "CRUD operations for todos and grouped list queries with filtering, ordering and paging.",
    },
]

_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_file)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="JustDo",
    description="Task tracking service with grouped, filtered and paged todo queries.",
    version="1.0.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, errors: List[ErrorResponse]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorEnvelope(errors=errors).model_dump(mode="json"),
    )


def _field_path(loc: Any) -> str:
    parts = [str(p) for p in loc or ()]
    # Drop the request part ('body', 'path', 'query') FastAPI prefixes
    if len(parts) > 1 and parts[0] in {"body", "path", "query"}:
        parts = parts[1:]
    return ".".join(parts) or "request"


# Global exception handlers for a consistent error envelope
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Reject invalid requests with one entry per offending field.

    Response format:
        {
            "errors": [
                {"error": "e_invalid_data", "message": "<field> has invalid data: <reason>"},
                ...
            ]
        }
    """
    errors = [
        ErrorResponse(
            error=ErrorCode.INVALID_DATA,
            message=f"{_field_path(e.get('loc'))} has invalid data: {e.get('msg')}",
        )
        for e in exc.errors()
    ]
    return _error_response(400, errors)


@app.exception_handler(RestException)
async def rest_exception_handler(request: Request, exc: RestException) -> JSONResponse:
    return _error_response(exc.status_code, exc.errors)


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Store failures are logged in full and reported without detail."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error_response(500, [ErrorResponse(error=ErrorCode.DB_CONN, message="DB Error")])


@app.exception_handler(OperationCancelled)
async def cancelled_exception_handler(request: Request, exc: OperationCancelled) -> JSONResponse:
    logger.warning("Request cancelled: %s %s", request.method, request.url.path)
    return _error_response(
        503, [ErrorResponse(error=ErrorCode.CANCELLED, message="Request was cancelled")]
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_response(500, [ErrorResponse(error=ErrorCode.UNKNOWN, message="Unexpected error")])


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(todos_router.router)


def run() -> None:
    """Serve the app with uvicorn (install the `server` extra)."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
