"""
Proposal Workflow Engine - FastAPI Application Entry Point.

Proposal authoring and review for the CRM:
- Three-step proposal wizard (service type, client info, edit & submit)
- Review listing driving the proposal status lifecycle

Run with:
    uvicorn proposal_workflow.main:app --reload --port 8000
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proposal_workflow.core.config import get_settings
from proposal_workflow.core.exceptions import (
    CrmApiError,
    FieldValidationError,
    IllegalTransitionError,
    PdfFetchError,
    ProposalWorkflowError,
    SubmissionBlockedError,
    TemplateLoadError,
)
from proposal_workflow.api.proposals import proposals_router, wizard_router


# ===========================================
# Logging Configuration
# ===========================================

def setup_logging():
    """Configure application logging."""
    settings = get_settings()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger(__name__)


logger = setup_logging()


# ===========================================
# Application Lifespan
# ===========================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    logger.info("=" * 50)
    logger.info("Proposal Workflow Engine Starting Up")
    logger.info("=" * 50)
    logger.info(f"Environment: {'Development' if settings.DEBUG else 'Production'}")
    logger.info(f"CRM API: {settings.CRM_API_URL}")
    logger.info(f"Template conditional mode: {settings.TEMPLATE_CONDITIONAL_MODE}")

    if not settings.CRM_API_TOKEN:
        logger.warning("CRM API token not configured!")

    logger.info("Startup complete - ready to accept requests")

    yield

    logger.info("Proposal Workflow Engine shutting down...")


# ===========================================
# Error Mapping
# ===========================================

def error_status(exc: ProposalWorkflowError) -> int:
    """HTTP status for a workflow error."""
    if isinstance(exc, FieldValidationError):
        return 422
    if isinstance(exc, (IllegalTransitionError, SubmissionBlockedError)):
        return 409
    if isinstance(exc, CrmApiError):
        return exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    if isinstance(exc, (TemplateLoadError, PdfFetchError)):
        return 502
    return 400


async def workflow_exception_handler(request: Request, exc: ProposalWorkflowError):
    """Turn workflow errors into a notice-shaped JSON body."""
    status_code = error_status(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")

    content = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, FieldValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


# ===========================================
# FastAPI Application
# ===========================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Proposal Workflow Engine",
        description="""
        Proposal authoring and review for the CRM.

        ## Wizard

        - `POST /wizard` - Open a wizard for an inquiry
        - `POST /wizard/{id}/service-type` - Step 1: choose service type
        - `PATCH /wizard/{id}/fields` - Step 2: edit client info
        - `PUT /wizard/{id}/content`, `POST /wizard/{id}/save` - Step 3: edit & save
        - `POST /wizard/{id}/submit` - Submit for review

        ## Proposals

        - `GET /proposals` - Filtered, paginated listing
        - `POST /proposals/{id}/approve|reject|send|cancel|retry-email`
        - `GET /proposals/{id}/pdf` - Stored PDF or preview
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProposalWorkflowError, workflow_exception_handler)

    # Include routers
    app.include_router(wizard_router)
    app.include_router(proposals_router)

    return app


# Create app instance
app = create_app()


# ===========================================
# Root Endpoints
# ===========================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return JSONResponse({
        "service": "Proposal Workflow Engine",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "wizard": {
                "open": "POST /wizard",
                "service_type": "POST /wizard/{session_id}/service-type",
                "fields": "PATCH /wizard/{session_id}/fields",
                "next": "POST /wizard/{session_id}/next",
                "back": "POST /wizard/{session_id}/back",
                "content": "PUT /wizard/{session_id}/content",
                "save": "POST /wizard/{session_id}/save",
                "submit": "POST /wizard/{session_id}/submit",
                "close": "DELETE /wizard/{session_id}"
            },
            "proposals": {
                "list": "GET /proposals",
                "detail": "GET /proposals/{proposal_id}",
                "approve": "POST /proposals/{proposal_id}/approve",
                "reject": "POST /proposals/{proposal_id}/reject",
                "send": "POST /proposals/{proposal_id}/send",
                "cancel": "POST /proposals/{proposal_id}/cancel",
                "retry_email": "POST /proposals/{proposal_id}/retry-email",
                "pdf": "GET /proposals/{proposal_id}/pdf"
            },
            "docs": "GET /docs"
        }
    })


@app.get("/health", tags=["root"])
async def health():
    """Health check."""
    return {"status": "healthy", "service": "proposal-workflow"}


# ===========================================
# Error Handlers
# ===========================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if get_settings().DEBUG else "An error occurred"
        }
    )


# ===========================================
# Main Entry Point
# ===========================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "proposal_workflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
