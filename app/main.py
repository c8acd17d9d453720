"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.api.routes import router as incidents_router
from app.models import HealthResponse
from core.config import settings
from core.logging import configure_logging, get_logger
from incidents.storage import get_incident_storage
from incidents.store import IncidentStore

# Configure logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Incident Tracker", version=settings.app_version)

    store: Optional[IncidentStore] = getattr(app.state, "incident_store", None)
    if store is None:
        store = IncidentStore(get_incident_storage())
        app.state.incident_store = store

    # Startup fails if the record is corrupt (on_corrupt_record=fail) or unwritable
    if not store.is_initialized:
        await store.initialize()
    logger.info("Incident store ready", incidents=len(store.list_all(include_archived=True)))

    yield

    # Shutdown: a store running without auto-save still holds unsaved changes
    if store.is_dirty:
        try:
            await store.flush()
        except Exception as e:
            logger.error("Failed to flush incidents on shutdown", error=str(e))
    logger.info("Shutting down Incident Tracker")


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as {"error": ...} bodies."""
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Route not found"
    return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies and parameters as 400 {"error": [...]}."""
    messages = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        messages.append(f"{'.'.join(location) or 'body'}: {error['msg']}")
    logger.debug("Rejected malformed request", path=request.url.path, errors=messages)
    return JSONResponse(status_code=400, content={"error": messages})


def create_app(incident_store: Optional[IncidentStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        incident_store: Store to serve; built from settings at startup when omitted
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Track operational incidents through OPEN → INVESTIGATING → RESOLVED → ARCHIVED.",
        lifespan=lifespan
    )
    if incident_store is not None:
        app.state.incident_store = incident_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(incidents_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(status="ok")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=3001,
        reload=settings.debug
    )
