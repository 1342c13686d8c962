"""
Student Voting Core - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Registers all API route handlers
5. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers (verification, students, ballot, admin)
- models/: SQLAlchemy ORM models
- services/: Business logic (OTP, verification flow, ballot, tallies)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from votecore import config
from votecore.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from votecore.routes import verification, students, ballot, admin
from votecore.database import DATABASE_URL, create_tables
from votecore.services.outcomes import ActionResult, ErrorKind, GENERIC_ERROR_MESSAGE

# Import all models so they are registered with Base.metadata
import votecore.models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Student Voting Core",
    description=(
        "Student election backend: student ID, phone and SMS one-time-code "
        "verification, one vote per category, and admin results data."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Reuses the caller's X-Request-ID (e.g. from a proxy) or generates a
# fresh UUID, and:
# 1. Stores it in a context variable (available to all log entries)
# 2. Returns it in the X-Request-ID response header
# 3. Logs request start/end with latency measurement
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Middleware that assigns a request ID to every HTTP request.
    
    The request ID is stored in a context variable, included in the
    X-Request-ID response header, and logged at request start and end.
    """
    req_id = request.headers.get("x-request-id") or generate_request_id()
    request_id_var.set(req_id)
    
    start_time = time.time()
    
    # Query params are not logged: they may carry student IDs
    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        })
    
    response = await call_next(request)
    
    duration_ms = (time.time() - start_time) * 1000
    
    response.headers["X-Request-ID"] = req_id
    
    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })
    
    return response


# ──────────────────────────────────────────────────────────────
# Database failures that escape a service become a generic 503
# ──────────────────────────────────────────────────────────────
@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    log_with_context(logger, "ERROR",
        f"Unhandled database error on {request.method} {request.url.path}: {exc}",
        context={"request_id": request_id_var.get("")})
    return JSONResponse(
        status_code=503,
        content=ActionResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE).model_dump(mode="json"),
    )


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(verification.router, tags=["Verification"])
app.include_router(students.router, tags=["Students"])
app.include_router(ballot.router, tags=["Ballot"])
app.include_router(admin.router, tags=["Admin"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "student-voting-core", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Student Voting Core",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "start_verification": "POST /api/verification/sessions",
            "submit_student_id": "POST /api/verification/sessions/{id}/student-id",
            "submit_phone": "POST /api/verification/sessions/{id}/phone",
            "resend_code": "POST /api/verification/sessions/{id}/resend",
            "submit_code": "POST /api/verification/sessions/{id}/otp",
            "go_back": "POST /api/verification/sessions/{id}/back",
            "student_details": "GET|POST /api/students/me[/details]",
            "ballot": "GET /api/ballot",
            "cast_vote": "POST /api/ballot/votes",
            "confirmation": "GET /api/ballot/confirmation",
            "voting_status": "GET|PUT /api/admin/voting-status",
            "results": "GET /api/admin/results"
        }
    }
