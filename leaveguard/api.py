"""FastAPI server for the leave-management endpoints guarded by LeaveGuard."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Optional

from fastapi import FastAPI, File, UploadFile, HTTPException, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from leaveguard.config import load_settings
from leaveguard.guard import check_rate_limit
from leaveguard.headers import format_headers, rate_limit_body
from leaveguard.quotas import (
    ADMIN_OPERATION,
    APPROVE_LEAVE,
    CREATE_LEAVE_REQUEST,
    DOCUMENT_UPLOAD,
    READ_OPERATION,
)
from leaveguard.rate_limiter import AdmissionResult, SlidingWindowLimiter

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB
PRINCIPAL_HEADER = "X-Principal-Id"

# ------------------------------------------------------------------
# Configuration from environment
# ------------------------------------------------------------------

settings = load_settings()

rate_limiter = SlidingWindowLimiter(
    quotas=settings.quotas.values(),
    reclaim_interval=settings.reclaim_interval,
    shared_key=settings.shared_key,
)

# In-memory stand-ins for the hosted database.
leave_store: dict[str, dict] = {}
document_store: dict[str, dict] = {}

# ------------------------------------------------------------------
# Auth & rate-limit dependencies
# ------------------------------------------------------------------

async def get_principal_id(request: Request) -> Optional[str]:
    """Principal id set by the authenticating gateway, if any."""
    principal = request.headers.get(PRINCIPAL_HEADER, "").strip()
    return principal or None


def rate_limit(category: str):
    """Build a dependency enforcing the quota for *category*.

    Denied requests raise 429 before the endpoint body runs; admitted ones
    get the quota headers attached to the response.
    """
    quota = settings.quotas[category]

    async def dependency(
        request: Request,
        response: Response,
        principal_id: Optional[str] = Depends(get_principal_id),
    ) -> AdmissionResult:
        result = check_rate_limit(rate_limiter, request.headers, principal_id, quota)
        if not result.allowed:
            now = rate_limiter.now_ms()
            raise HTTPException(
                status_code=429,
                detail=rate_limit_body(result, now),
                headers=format_headers(result, now),
            )
        response.headers.update(format_headers(result))
        return result

    return dependency


async def require_principal(principal_id: Optional[str] = Depends(get_principal_id)) -> str:
    if not principal_id:
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthorized", "message": f"{PRINCIPAL_HEADER} header is required."},
        )
    return principal_id

# ------------------------------------------------------------------
# Security headers middleware
# ------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

# ------------------------------------------------------------------
# App setup
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    rate_limiter.start()
    yield
    rate_limiter.stop()


app = FastAPI(
    title="LeaveGuard API",
    description="Leave-management endpoints with sliding-window rate limiting.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class LeaveRequestIn(BaseModel):
    leave_type_id: str
    start_date: date
    end_date: date
    reason: Optional[str] = None


def business_days(start: date, end: date) -> int:
    """Count weekdays from *start* to *end*, inclusive."""
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def _get_leave(leave_id: str) -> dict:
    leave = leave_store.get(leave_id)
    if leave is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_found", "message": f"Leave request {leave_id} not found."},
        )
    return leave

# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@app.get("/api/health")
async def health() -> dict:
    """Health check."""
    return {"status": "ok", "tracked_clients": rate_limiter.size()}


@app.post("/api/leave-requests", status_code=201)
async def create_leave_request(
    payload: LeaveRequestIn,
    _: AdmissionResult = Depends(rate_limit(CREATE_LEAVE_REQUEST)),
    principal_id: str = Depends(require_principal),
) -> dict:
    """Submit a leave request for the calling employee."""
    if payload.end_date < payload.start_date:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_dates", "message": "end_date must not be before start_date."},
        )

    leave_id = str(uuid.uuid4())
    leave = {
        "id": leave_id,
        "requester_id": principal_id,
        "leave_type_id": payload.leave_type_id,
        "start_date": payload.start_date.isoformat(),
        "end_date": payload.end_date.isoformat(),
        "days_count": business_days(payload.start_date, payload.end_date),
        "reason": payload.reason,
        "status": "pending",
    }
    leave_store[leave_id] = leave
    logger.info("Leave request %s created (%d days)", leave_id, leave["days_count"])
    return leave


@app.post("/api/leave-requests/{leave_id}/approve")
async def approve_leave(
    leave_id: str,
    _: AdmissionResult = Depends(rate_limit(APPROVE_LEAVE)),
    principal_id: str = Depends(require_principal),
) -> dict:
    """Approve a pending leave request."""
    leave = _get_leave(leave_id)
    if leave["status"] != "pending":
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_status", "message": f"Leave request is already {leave['status']}."},
        )
    leave["status"] = "approved"
    leave["approver_id"] = principal_id
    return leave


@app.get("/api/leave-requests")
async def list_leave_requests(
    _: AdmissionResult = Depends(rate_limit(READ_OPERATION)),
    principal_id: str = Depends(require_principal),
) -> dict:
    """List the caller's leave requests."""
    items = [leave for leave in leave_store.values() if leave["requester_id"] == principal_id]
    return {"items": items, "count": len(items)}


@app.post("/api/documents", status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    _: AdmissionResult = Depends(rate_limit(DOCUMENT_UPLOAD)),
    principal_id: str = Depends(require_principal),
) -> dict:
    """Upload a supporting document for a leave request."""
    contents = await file.read()
    if len(contents) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail={"error": "file_too_large", "message": f"File exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit."},
        )

    document_id = str(uuid.uuid4())
    document = {
        "id": document_id,
        "owner_id": principal_id,
        "filename": file.filename or "upload",
        "content_type": file.content_type,
        "size": len(contents),
    }
    document_store[document_id] = document
    return document


@app.get("/api/admin/org-stats")
async def org_stats(
    _: AdmissionResult = Depends(rate_limit(ADMIN_OPERATION)),
    principal_id: str = Depends(require_principal),
) -> dict:
    """Organisation-wide leave statistics."""
    by_status: dict[str, int] = {}
    for leave in leave_store.values():
        by_status[leave["status"]] = by_status.get(leave["status"], 0) + 1
    return {
        "total_requests": len(leave_store),
        "by_status": by_status,
        "total_days": sum(leave["days_count"] for leave in leave_store.values()),
        "documents": len(document_store),
    }


# ------------------------------------------------------------------
# Runner: python -m leaveguard.api
# ------------------------------------------------------------------

def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False) -> None:
    """Start the uvicorn server."""
    import uvicorn
    uvicorn.run(
        "leaveguard.api:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    run_server()
