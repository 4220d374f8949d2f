import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..core.coordinator import FlushResult
from ..core.tracker import ReadingTracker
from ..models import Dashboard, DailyReadingSummary, DocumentStats, LiveStats, ReadingSessionRecord
from ..reader.last_page import LastPageStore
from ..reader.signals import ActivityKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ── Dependencies ───────────────────────────────────────────────────────────

def get_tracker(request: Request) -> ReadingTracker:
    return request.app.state.tracker


def get_last_pages(request: Request) -> LastPageStore:
    return request.app.state.last_pages


# ── Request/Response models ────────────────────────────────────────────────

class OpenRequest(BaseModel):
    document_id: str = Field(min_length=1)
    page: int | None = Field(default=None, ge=1)
    name: str | None = None

class PageRequest(BaseModel):
    page: int = Field(ge=1)

class ActivityRequest(BaseModel):
    kind: ActivityKind

class FocusRequest(BaseModel):
    focused: bool

class TrackResponse(BaseModel):
    state: str
    flush: dict | None = None
    advisory: str | None = None


def _track_response(tracker: ReadingTracker, result: FlushResult | None = None) -> TrackResponse:
    advisory = None
    if result is not None and not result.ok:
        # Reading continues; the time is kept and saved on a later trigger.
        advisory = f"Reading stats could not be saved yet: {result.error}"
    return TrackResponse(
        state=tracker.state.value,
        flush=asdict(result) if result is not None else None,
        advisory=advisory,
    )


# ── Routes ─────────────────────────────────────────────────────────────────

@router.post("/documents/open")
async def open_document(req: OpenRequest, tracker: ReadingTracker = Depends(get_tracker),
                        last_pages: LastPageStore = Depends(get_last_pages)) -> TrackResponse:
    page = req.page or last_pages.get_last_page(req.document_id)
    result = await tracker.open_document(req.document_id, page, req.name)
    return _track_response(tracker, result)


@router.post("/documents/close")
async def close_document(tracker: ReadingTracker = Depends(get_tracker)) -> TrackResponse:
    result = await tracker.close_document()
    return _track_response(tracker, result)


@router.post("/page")
async def change_page(req: PageRequest, tracker: ReadingTracker = Depends(get_tracker),
                      last_pages: LastPageStore = Depends(get_last_pages)) -> dict:
    session = tracker.recorder.session
    if session is None:
        raise HTTPException(400, "No document open.")
    committed = tracker.report_page_change(req.page)
    last_pages.save_last_page(session.document_id, req.page)
    return {"state": tracker.state.value, "committed": committed}


@router.post("/activity")
async def activity(req: ActivityRequest, tracker: ReadingTracker = Depends(get_tracker)) -> dict:
    return {"state": tracker.state.value, "recorded": tracker.report_activity(req.kind)}


@router.post("/focus")
async def focus(req: FocusRequest, tracker: ReadingTracker = Depends(get_tracker)) -> TrackResponse:
    result = await tracker.set_focus(req.focused)
    return _track_response(tracker, result if isinstance(result, FlushResult) else None)


@router.post("/pause")
async def pause(tracker: ReadingTracker = Depends(get_tracker)) -> TrackResponse:
    result = await tracker.set_paused()
    return _track_response(tracker, result)


@router.post("/resume")
async def resume(tracker: ReadingTracker = Depends(get_tracker)) -> TrackResponse:
    await tracker.set_active()
    return _track_response(tracker)


@router.get("/stats/live")
async def live_stats(tracker: ReadingTracker = Depends(get_tracker)) -> LiveStats:
    return tracker.get_live_stats()


@router.get("/dashboard")
async def dashboard(recent: int | None = None, tracker: ReadingTracker = Depends(get_tracker)) -> Dashboard:
    if recent is not None and recent < 0:
        raise HTTPException(400, "recent must not be negative.")
    return await tracker.get_dashboard(recent)


@router.get("/documents/{document_id}/stats")
async def document_stats(document_id: str, tracker: ReadingTracker = Depends(get_tracker)) -> DocumentStats:
    stats = await tracker.dashboard.get_document_stats(document_id)
    if stats is None:
        raise HTTPException(404, "No reading recorded for this document.")
    return stats


@router.get("/documents/{document_id}/sessions")
async def document_sessions(document_id: str,
                            tracker: ReadingTracker = Depends(get_tracker)) -> list[ReadingSessionRecord]:
    return await tracker.dashboard.get_sessions_for_document(document_id)


@router.get("/weekly")
async def weekly(tracker: ReadingTracker = Depends(get_tracker)) -> list[DailyReadingSummary]:
    return await tracker.dashboard.get_weekly_summaries()


@router.get("/last-page/{document_id}")
async def get_last_page(document_id: str, last_pages: LastPageStore = Depends(get_last_pages)) -> dict:
    return {"document_id": document_id, "page": last_pages.get_last_page(document_id)}


@router.put("/last-page/{document_id}")
async def put_last_page(document_id: str, req: PageRequest,
                        last_pages: LastPageStore = Depends(get_last_pages)) -> dict:
    last_pages.save_last_page(document_id, req.page)
    return {"document_id": document_id, "page": req.page}


@router.get("/health")
async def health(tracker: ReadingTracker = Depends(get_tracker)) -> dict:
    last = tracker.last_flush
    return {
        "status": "ok",
        "state": tracker.state.value,
        "persistent": tracker.persistent,
        "unsaved_chunks": tracker.coordinator.backlog_size,
        "last_flush": asdict(last) if last else None,
    }
