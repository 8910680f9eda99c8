from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from app.schemas.coach import (
    CoachSession,
    CoachSettings,
    CoachSettingsOut,
    CoachSettingsUpdate,
    FeedItem,
    PlatformOut,
    SessionSummary,
    StatusSnapshot,
    VideoCandidateIn,
    VideoSourceScoreOut,
    VideoSourceSelectRequest,
    VideoSourceSelectResponse,
)
from app.services.coach_storage import CoachStorageError
from app.services.platforms import detect_platform, get_self_video_selectors, is_supported_platform
from app.services.session_lifecycle import coach_actor
from app.services.session_summary import summary_as_text
from app.services.video_source_selector import VideoCandidate, VideoTrack, pick_best_index, score_source

router = APIRouter()


def _settings_out(current: CoachSettings) -> CoachSettingsOut:
    return CoachSettingsOut(
        api_configured=bool(current.api_key),
        **current.model_dump(exclude={"api_key"}),
    )


def _to_candidate(item: VideoCandidateIn) -> VideoCandidate:
    return VideoCandidate(
        ready_state=item.ready_state,
        current_time=item.current_time,
        has_stream=item.has_stream,
        tracks=tuple(
            VideoTrack(
                label=track.label,
                ready_state=track.ready_state,
                enabled=track.enabled,
                muted=track.muted,
            )
            for track in item.tracks
        ),
        width=item.width,
        height=item.height,
        in_self_view=item.in_self_view,
        transform=item.transform,
        mirrored=item.mirrored,
    )


@router.get("/health")
async def health() -> Dict[str, Any]:
    return {"ok": True}


@router.get("/status", response_model=StatusSnapshot)
async def get_status() -> StatusSnapshot:
    return await coach_actor.status()


@router.get("/settings", response_model=CoachSettingsOut)
async def get_settings() -> CoachSettingsOut:
    return _settings_out(await coach_actor.get_settings())


@router.put("/settings", response_model=CoachSettingsOut)
async def update_settings(payload: CoachSettingsUpdate) -> CoachSettingsOut:
    try:
        updated = await coach_actor.update_settings(payload.model_dump(exclude_none=True))
    except CoachStorageError as exc:
        raise HTTPException(status_code=503, detail=f"Settings could not be saved: {exc}") from exc
    return _settings_out(updated)


@router.get("/feed", response_model=List[FeedItem])
async def get_feed() -> List[FeedItem]:
    return await coach_actor.get_feed()


@router.delete("/feed")
async def clear_feed() -> Dict[str, Any]:
    await coach_actor.clear_feed()
    return {"ok": True}


@router.get("/summary", response_model=SessionSummary)
async def get_summary() -> SessionSummary:
    summary = await coach_actor.get_summary()
    if summary is None:
        raise HTTPException(status_code=404, detail="No completed session")
    return summary


@router.get("/summary/text", response_class=PlainTextResponse)
async def get_summary_text() -> str:
    summary = await coach_actor.get_summary()
    if summary is None:
        raise HTTPException(status_code=404, detail="No completed session")
    return summary_as_text(summary)


@router.delete("/data")
async def clear_data() -> Dict[str, Any]:
    try:
        await coach_actor.clear_data()
    except CoachStorageError as exc:
        raise HTTPException(status_code=503, detail=f"Local data could not be cleared: {exc}") from exc
    return {"ok": True}


@router.get("/sessions", response_model=List[CoachSession])
async def list_sessions() -> List[CoachSession]:
    return await coach_actor.get_history()


@router.post("/video-sources/select", response_model=VideoSourceSelectResponse)
async def select_video_source(payload: VideoSourceSelectRequest) -> VideoSourceSelectResponse:
    candidates = [_to_candidate(item) for item in payload.candidates]
    scores = []
    for index, candidate in enumerate(candidates):
        scored = score_source(candidate)
        scores.append(VideoSourceScoreOut(index=index, score=scored.score, area=scored.area))
    return VideoSourceSelectResponse(selected_index=pick_best_index(candidates), scores=scores)


@router.get("/platforms/{hostname}", response_model=PlatformOut)
async def get_platform(hostname: str) -> PlatformOut:
    platform = detect_platform(hostname)
    return PlatformOut(
        hostname=hostname,
        supported=is_supported_platform(hostname),
        name=platform.name if platform else None,
        self_video_selectors=get_self_video_selectors(hostname),
    )
