"""
FlightDesk - Backend-for-frontend entry point

Endpoints:
    /auth          - Agency login / logout
    /flights       - Search, offer enrichment, offer selection, booked flights
    /wizards       - Booking wizard steps
    /ticket-bookings
    /health        - Health check
    /metrics       - Prometheus
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flightdesk.core import config
from flightdesk.core.errors import (
    BackendError,
    EnrichmentError,
    FlightDeskError,
    IncompleteManifestError,
    MalformedResponseError,
    SearchError,
    SessionExpiredError,
    SubmissionError,
    WizardStateError,
)
from flightdesk.core.metrics import setup_metrics
from flightdesk.core.workspace import clear_workspaces, discard_workspace
from flightdesk.api.v1.deps import bearer_token
from flightdesk.api.v1.auth_routes import router as auth_router
from flightdesk.api.v1.flight_routes import router as flight_router
from flightdesk.api.v1.booking_routes import router as booking_router

# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("FlightDesk-Backend")


# ═══════════════════════════════════════════════════════════════════
# LIFESPAN
# ═══════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting FlightDesk | backend={config.API_BASE_URL}")
    yield
    logger.info("🛑 Shutting down FlightDesk...")
    clear_workspaces()


app = FastAPI(
    title="FlightDesk",
    description="Flight search, validation and booking for the agency back office",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)

app.include_router(auth_router)
app.include_router(flight_router)
app.include_router(booking_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "backend": config.API_BASE_URL}


# ═══════════════════════════════════════════════════════════════════
# ERROR HANDLERS
# ═══════════════════════════════════════════════════════════════════

def _error(status_code: int, exc: FlightDeskError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.to_app_error().model_dump(), **extra}
    )


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(request: Request, exc: SessionExpiredError):
    token = bearer_token(request.headers.get("authorization"))
    if token:
        discard_workspace(token)
    return _error(401, exc)


@app.exception_handler(IncompleteManifestError)
async def incomplete_manifest_handler(request: Request, exc: IncompleteManifestError):
    return _error(422, exc, missing={str(i): f for i, f in exc.missing.items()})


@app.exception_handler(WizardStateError)
async def wizard_state_handler(request: Request, exc: WizardStateError):
    return _error(409, exc)


@app.exception_handler(FlightDeskError)
async def flightdesk_error_handler(request: Request, exc: FlightDeskError):
    if isinstance(exc, (SearchError, EnrichmentError, MalformedResponseError)):
        return _error(502, exc)
    if isinstance(exc, SubmissionError):
        return _error(502 if exc.retryable else 400, exc)
    if isinstance(exc, BackendError):
        return _error(exc.status_code if 400 <= exc.status_code < 500 else 502, exc)
    logger.error(f"Unhandled FlightDesk error: {exc.message}")
    return _error(400, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if app.debug else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "flightdesk.main:app",
        host="0.0.0.0",
        port=8100,
        reload=True,
        log_level="info"
    )
