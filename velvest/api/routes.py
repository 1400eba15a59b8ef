"""
Velvest REST API Routes

Read-only snapshot access, the clear and filter commands, and capture replay
into the running pipeline.
"""

import queue
from pathlib import Path

import structlog
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel, Field

from velvest.analysis.pipeline import IngestPipeline
from velvest.capture.decoder import read_capture
from velvest.exceptions import CaptureError, LogEntryNotFound, PipelineClosed

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["analysis"])

# Seconds a command may wait on a backlogged queue before the request fails
COMMAND_TIMEOUT = 5.0

CAPTURE_EXTENSIONS = {".pcap", ".pcapng", ".cap"}


# =============================================================================
# Request/Response Models
# =============================================================================


class FilterRequest(BaseModel):
    """Request to change the activity log filter."""

    text: str = Field(default="", description="Case-insensitive substring; empty matches everything")


class FilterResponse(BaseModel):
    text: str
    message: str


class ReplayRequest(BaseModel):
    """Request to replay a capture file from the server's filesystem."""

    path: str = Field(..., description="Path to a pcap/pcapng file")


class ReplayResponse(BaseModel):
    path: str
    status: str
    message: str


class LogEntryResponse(BaseModel):
    """A single activity log entry with its detail block."""

    index: int
    sequence_number: int
    summary: str
    detail: str


# =============================================================================
# Helpers
# =============================================================================


def _get_pipeline(request: Request) -> IngestPipeline:
    pipeline: IngestPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None or not pipeline.running:
        raise HTTPException(status_code=503, detail="Ingest pipeline is not running")
    return pipeline


def run_replay(pipeline: IngestPipeline, file_path: Path) -> None:
    """Submit every record of a capture file to the pipeline."""
    submitted = 0
    try:
        for record in read_capture(file_path):
            pipeline.submit(record)
            submitted += 1
    except (CaptureError, PipelineClosed) as e:
        logger.error("capture_replay_failed", path=str(file_path), records=submitted, error=str(e))
        return

    logger.info("capture_replay_submitted", path=str(file_path), records=submitted)


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/snapshot")
async def get_snapshot(request: Request) -> dict:
    """
    Current traffic counters, top sources and activity log.
    """
    pipeline = _get_pipeline(request)
    return pipeline.snapshot().to_dict()


@router.get("/log/{index}", response_model=LogEntryResponse)
async def get_log_entry(request: Request, index: int) -> LogEntryResponse:
    """
    Resolve a log position to its detail block.

    Positions refer to the latest snapshot's log, oldest first.
    """
    pipeline = _get_pipeline(request)
    snapshot = pipeline.snapshot()

    try:
        entry = snapshot.entry(index)
    except LogEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    return LogEntryResponse(
        index=index,
        sequence_number=entry.sequence_number,
        summary=entry.summary_line,
        detail=entry.detail_text,
    )


@router.post("/clear")
def clear(request: Request) -> dict:
    """Reset counters, top sources and the activity log."""
    pipeline = _get_pipeline(request)

    try:
        snapshot = pipeline.clear(timeout=COMMAND_TIMEOUT)
    except (PipelineClosed, TimeoutError) as e:
        logger.error("clear_failed", error=str(e))
        raise HTTPException(status_code=503, detail=str(e)) from e

    return snapshot.to_dict()


@router.put("/filter", response_model=FilterResponse)
def set_filter(request: Request, body: FilterRequest) -> FilterResponse:
    """
    Change the activity log filter.

    Applies to packets ingested after the change; existing entries stay.
    """
    pipeline = _get_pipeline(request)

    try:
        pipeline.set_filter(body.text, timeout=COMMAND_TIMEOUT)
    except PipelineClosed as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except queue.Full as e:
        logger.error("filter_change_failed", error="ingest queue is full")
        raise HTTPException(status_code=503, detail="Ingest queue is full") from e

    return FilterResponse(text=body.text, message="Filter applies to subsequent packets")


@router.post("/replay", response_model=ReplayResponse, status_code=202)
async def replay_capture(
    background_tasks: BackgroundTasks,
    request: Request,
    body: ReplayRequest,
) -> ReplayResponse:
    """
    Replay a capture file from a filesystem path into the running pipeline.

    Records are submitted in the background; poll /snapshot for progress.
    """
    pipeline = _get_pipeline(request)
    file_path = Path(body.path)

    if not file_path.exists():
        raise HTTPException(status_code=404, detail=f"File not found: {body.path}")

    if not file_path.is_file():
        raise HTTPException(status_code=400, detail="Path is not a file")

    if file_path.suffix.lower() not in CAPTURE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Accepted: {', '.join(sorted(CAPTURE_EXTENSIONS))}",
        )

    logger.info("capture_replay_requested", path=str(file_path), size_bytes=file_path.stat().st_size)

    # Plain function, so Starlette runs it in the threadpool
    background_tasks.add_task(run_replay, pipeline, file_path)

    return ReplayResponse(
        path=str(file_path),
        status="started",
        message=f"Replay started for {file_path.name}",
    )
