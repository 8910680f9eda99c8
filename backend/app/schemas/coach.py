from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.core.constants import DEFAULT_API_PROVIDER, DEFAULT_SENSITIVITY, DELIVERY_IN_APP
from app.core.i18n import DEFAULT_LANGUAGE


class CategoryScore(BaseModel):
    score: float = Field(ge=0, le=10)
    issue: Optional[str] = None
    suggestion: Optional[str] = None


class FocusCondition(BaseModel):
    score: Optional[float] = None
    issue: Optional[str] = None
    suggestion: Optional[str] = None


class AnalysisResult(BaseModel):
    posture: CategoryScore
    facial: CategoryScore
    hands: CategoryScore
    appearance: CategoryScore
    focus_conditions: Dict[str, FocusCondition] = Field(default_factory=dict)
    priority_actions: List[str] = Field(default_factory=list)
    timestamp: Optional[int] = None

    def category(self, name: str) -> CategoryScore:
        return getattr(self, name)


class CoachSession(BaseModel):
    id: str
    start_time: int
    end_time: Optional[int] = None
    analyses: List[AnalysisResult] = Field(default_factory=list)
    no_key_warning_shown: bool = False
    platform: Optional[str] = None


class FeedItem(BaseModel):
    id: str
    title: str = ""
    message: str = ""
    title_by_language: Dict[str, str] = Field(default_factory=dict)
    message_by_language: Dict[str, str] = Field(default_factory=dict)
    source_language: str = DEFAULT_LANGUAGE
    category: str = "info"
    timestamp: int
    delivery: str = DELIVERY_IN_APP


class CoachSettings(BaseModel):
    api_key: str = ""
    api_provider: str = DEFAULT_API_PROVIDER
    sensitivity: str = DEFAULT_SENSITIVITY
    notifications_enabled: bool = True
    monitoring_enabled: bool = True
    data_retention_days: int = 7
    ephemeral_mode: bool = False
    language: str = DEFAULT_LANGUAGE


class CoachSettingsUpdate(BaseModel):
    api_key: Optional[str] = None
    api_provider: Optional[Literal["gemini", "groq"]] = None
    sensitivity: Optional[Literal["low", "medium", "high"]] = None
    notifications_enabled: Optional[bool] = None
    monitoring_enabled: Optional[bool] = None
    data_retention_days: Optional[int] = Field(default=None, ge=0, le=3650)
    ephemeral_mode: Optional[bool] = None
    language: Optional[Literal["en-CA", "fr-FR"]] = None


class CoachSettingsOut(BaseModel):
    api_configured: bool
    api_provider: str
    sensitivity: str
    notifications_enabled: bool
    monitoring_enabled: bool
    data_retention_days: int
    ephemeral_mode: bool
    language: str


class AnalysisRuntimeOut(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    last_attempt_at: Optional[int] = None
    last_success_at: Optional[int] = None
    last_failure_at: Optional[int] = None
    last_error: Optional[str] = None


class StatusSnapshot(BaseModel):
    active: bool
    session_id: Optional[str] = None
    analysis_count: int = 0
    api_configured: bool
    api_provider: str
    monitoring_enabled: bool
    notifications_enabled: bool
    notification_permission: str
    capture_interval_ms: int
    analysis_runtime: AnalysisRuntimeOut


class MeetingStartedPayload(BaseModel):
    timestamp: Optional[int] = None
    url: Optional[str] = None


class AnalyzeFramePayload(BaseModel):
    frame: str = Field(description="Base64 JPEG or data:image URL")
    timestamp: Optional[int] = None


class MeetingEndedPayload(BaseModel):
    timestamp: Optional[int] = None


class SetMonitoringPayload(BaseModel):
    enabled: bool


class NotificationPermissionPayload(BaseModel):
    level: Literal["granted", "denied", "unknown"]


class VideoTrackIn(BaseModel):
    label: str = ""
    ready_state: str = "live"
    enabled: bool = True
    muted: bool = False


class VideoCandidateIn(BaseModel):
    ready_state: int = Field(default=0, ge=0)
    current_time: float = 0.0
    has_stream: bool = False
    tracks: List[VideoTrackIn] = Field(default_factory=list)
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)
    in_self_view: bool = False
    transform: str = ""
    mirrored: bool = False


class VideoSourceSelectRequest(BaseModel):
    candidates: List[VideoCandidateIn] = Field(default_factory=list)


class VideoSourceScoreOut(BaseModel):
    index: int
    score: int
    area: float


class VideoSourceSelectResponse(BaseModel):
    selected_index: Optional[int] = None
    scores: List[VideoSourceScoreOut] = Field(default_factory=list)


class PlatformOut(BaseModel):
    hostname: str
    supported: bool
    name: Optional[str] = None
    self_video_selectors: List[str] = Field(default_factory=list)


class CategorySummary(BaseModel):
    average: float
    issue_count: int
    recommendation: str


class SessionSummary(BaseModel):
    session_id: str
    start_time: int
    end_time: Optional[int] = None
    duration_minutes: int
    analysis_count: int
    overall: float
    strong: bool
    categories: Dict[str, CategorySummary] = Field(default_factory=dict)
    action_items: List[Dict[str, Any]] = Field(default_factory=list)
