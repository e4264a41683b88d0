"""
REST API - Markdown Submission and Session Control Endpoints.

FastAPI router used by editor integrations to drive the preview.

Endpoints:
- POST /api/v1/markdown - Submit new markdown source
- GET /api/v1/status - Current page sequence and connection state
- POST /api/v1/shutdown - Close the live browser session
- GET /api/v1/health - Health check
- GET /metrics - Prometheus metrics
"""

from fastapi import APIRouter, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from typing import Optional
import time
import logging

from ..core.renderer import RenderError
from ..core.update_channel import ChannelClosed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["preview"])
metrics_router = APIRouter(tags=["observability"])


# Request/Response Models

class SubmitRequest(BaseModel):
    """New markdown source for the preview."""
    markdown: str = Field(..., description="Complete markdown source", max_length=10_485_760)  # 10MB limit


class SubmitResponse(BaseModel):
    """Result of a successful render."""
    sequence: int
    html_length: int


class StatusResponse(BaseModel):
    """Preview state snapshot."""
    state: str
    connected: bool
    sequence: int
    session_id: Optional[str] = None
    messages_sent: int = 0
    last_error: Optional[str] = None


class ShutdownResponse(BaseModel):
    """Result of a shutdown request."""
    closed: bool


@router.post("/markdown", response_model=SubmitResponse)
async def submit_markdown(body: SubmitRequest, request: Request):
    """
    Render new markdown and push it to the browser.

    A render failure leaves the previous preview in place and is reported
    with status 422.
    """
    service = request.app.state.preview

    try:
        page = await service.submit(body.markdown)
    except RenderError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except ChannelClosed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Preview service is shutting down"
        )

    return SubmitResponse(sequence=page.sequence, html_length=len(page.html))


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Get current preview and connection state."""
    return StatusResponse(**request.app.state.preview.get_status())


@router.post("/shutdown", response_model=ShutdownResponse)
async def shutdown_session(request: Request):
    """
    Close the live browser session.

    The browser client treats this as final and closes its window.
    """
    closed = await request.app.state.preview.shutdown()

    logger.info(f"Shutdown requested (session closed: {closed})")

    return ShutdownResponse(closed=closed)


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    service = request.app.state.preview
    return {
        "status": "healthy",
        "connected": service.connections.is_connected,
        "timestamp": time.time()
    }


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus metrics exposition."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
