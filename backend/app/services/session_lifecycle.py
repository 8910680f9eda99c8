"""
Meeting session coordinator.

A single SessionActor owns the active session, the warning hysteresis
counters, the analysis runtime counters and the notification clocks. Every
public operation runs under the actor's lock, so inbound events (meeting
start, analysed frame, meeting end, monitoring toggle, settings change) are
applied one at a time.

Flow per frame:
provider analysis -> validation -> issue classification -> suggestion
extraction -> bilingual localization -> notification gate / live feed.

Persistence failures are logged and swallowed; the in-memory state stays
authoritative until the next successful write.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import get_settings
from app.core.constants import MS_PER_DAY, PERMISSION_UNKNOWN
from app.core.i18n import resolve_language, t, t_all
from app.llm.vision_client import AnalysisProviderError, analyze_frame, translate_text
from app.schemas.coach import (
    AnalysisResult,
    AnalysisRuntimeOut,
    CoachSession,
    CoachSettings,
    FeedItem,
    SessionSummary,
    StatusSnapshot,
)
from app.services.analysis_validator import AnalysisValidationError, parse_analysis
from app.services.bilingual_text import BilingualTextCache, Translator
from app.services.coach_storage import CoachStorage, CoachStorageError
from app.services.frame_recorder import FrameRecorder
from app.services.issue_classifier import WarningTracker, classify_issues
from app.services.notification_gate import (
    TIER_ISSUE,
    BusNotificationSink,
    DeliveryResult,
    NotificationGate,
    NotificationSink,
    should_notify,
)
from app.services.platforms import detect_platform_from_url
from app.services.session_summary import build_session_summary, duration_minutes
from app.services.suggestion_extractor import build_encouragement_message, extract_top

logger = logging.getLogger(__name__)
settings = get_settings()

AnalyzeFn = Callable[[str, str, str, Optional[str]], Awaitable[Dict[str, Any]]]
TranslateFn = Callable[[str, str, str, Optional[str]], Awaitable[str]]


class ConfigurationError(RuntimeError):
    pass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AnalysisRuntime:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    last_attempt_at: Optional[int] = None
    last_success_at: Optional[int] = None
    last_failure_at: Optional[int] = None
    last_error: Optional[str] = None

    def mark_attempt(self, now: int) -> None:
        self.attempted += 1
        self.last_attempt_at = now

    def mark_success(self, now: int) -> None:
        self.succeeded += 1
        self.last_success_at = now
        self.last_error = None

    def mark_failure(self, now: int, error: Optional[str]) -> None:
        self.failed += 1
        self.last_failure_at = now
        self.last_error = error or "Unknown analysis error"

    def to_out(self) -> AnalysisRuntimeOut:
        return AnalysisRuntimeOut(
            attempted=self.attempted,
            succeeded=self.succeeded,
            failed=self.failed,
            last_attempt_at=self.last_attempt_at,
            last_success_at=self.last_success_at,
            last_failure_at=self.last_failure_at,
            last_error=self.last_error,
        )


async def apply_data_retention(storage: CoachStorage, retention_days: int, now: int) -> int:
    """Drop archived sessions older than the retention window. Returns how many were dropped."""
    if not retention_days or retention_days <= 0:
        return 0
    sessions = await storage.get_sessions()
    cutoff = now - retention_days * MS_PER_DAY
    kept = [session for session in sessions if (session.end_time or 0) >= cutoff]
    dropped = len(sessions) - len(kept)
    if dropped:
        await storage.save_sessions(kept)
        logger.info("coach_retention_sweep dropped=%s kept=%s", dropped, len(kept))
    return dropped


class SessionActor:
    def __init__(
        self,
        storage: Optional[CoachStorage] = None,
        sink: Optional[NotificationSink] = None,
        analyze: Optional[AnalyzeFn] = None,
        translate: Optional[TranslateFn] = None,
        frame_recorder: Optional[FrameRecorder] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.storage = storage or CoachStorage()
        self.sink = sink or BusNotificationSink()
        self.gate = NotificationGate(
            self.storage,
            self.sink,
            max_feed_items=settings.coach_live_feed_max_items,
            cooldown_ms=settings.coach_notification_cooldown_ms,
        )
        self.text_cache = BilingualTextCache(timeout_seconds=settings.coach_translation_timeout_seconds)
        self.analyze = analyze or analyze_frame
        self.translate = translate or translate_text
        self.frame_recorder = frame_recorder or FrameRecorder()
        self.frame_recorder.record_feed = self._record_side_channel
        self.clock = clock or now_ms

        self.current_session: Optional[CoachSession] = None
        self.tracker = WarningTracker()
        self.runtime = AnalysisRuntime()
        self.last_encouragement_time = 0
        self._last_settings: Optional[CoachSettings] = None
        self._restored = False
        self._lock = asyncio.Lock()

    # Helpers

    async def _store(self, action: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except CoachStorageError:
            logger.warning("coach_storage_failed action=%s", action, exc_info=True)
            return None

    async def _load_settings(self) -> CoachSettings:
        loaded = await self._store("get_settings", self.storage.get_settings())
        if loaded is None:
            # last good read wins over defaults
            return self._last_settings or CoachSettings()
        self._last_settings = loaded
        return loaded

    async def _restore(self) -> None:
        if self._restored:
            return
        self._restored = True
        session = await self._store("get_current_session", self.storage.get_current_session())
        if session is not None and self.current_session is None:
            self.current_session = session
            logger.info("coach_session_restored session_id=%s analyses=%s", session.id, len(session.analyses))

    def _translator(self, current: CoachSettings) -> Optional[Translator]:
        if not current.api_key:
            return None
        api_key = current.api_key
        provider = current.api_provider

        async def _translate(text_value: str, target_language: str) -> str:
            return await self.translate(text_value, api_key, provider, target_language)

        return _translate

    def _catalog_item(
        self,
        item_id: str,
        title_key: str,
        message_key: str,
        category: str,
        timestamp: int,
        language: Optional[str],
        **params: Any,
    ) -> FeedItem:
        titles = t_all(title_key)
        messages = t_all(message_key, **params)
        item = FeedItem(
            id=item_id,
            title_by_language=titles,
            message_by_language=messages,
            source_language=resolve_language(language),
            category=category,
            timestamp=timestamp,
        )
        return self.text_cache.resolve(item, language)

    def _note_delivery(self, result: Optional[DeliveryResult]) -> None:
        if result is not None and result.error:
            self.runtime.last_error = result.error

    async def _record_side_channel(self, item: FeedItem) -> None:
        async with self._lock:
            current = await self._load_settings()
            await self.gate.record(self.text_cache.resolve(item, current.language))

    # Transitions

    async def _start(self, timestamp: int, url: Optional[str] = None) -> bool:
        if self.current_session is not None:
            return False
        current = await self._load_settings()
        if not current.monitoring_enabled:
            logger.info("coach_session_start_skipped reason=monitoring_disabled")
            return False

        await self._store("clear_summary_session", self.storage.clear_summary_session())
        platform = detect_platform_from_url(url)
        self.current_session = CoachSession(
            id=f"session_{timestamp}",
            start_time=timestamp,
            platform=platform.name if platform else None,
        )
        self.runtime = AnalysisRuntime()
        self.tracker = WarningTracker()
        await self._store("save_current_session", self.storage.save_current_session(self.current_session))
        await self.gate.record(
            self._catalog_item(
                f"meeting-start-{timestamp}",
                "meetingStart.title",
                "meetingStart.message",
                "system",
                timestamp,
                current.language,
            )
        )
        logger.info(
            "coach_session_started session_id=%s platform=%s",
            self.current_session.id,
            self.current_session.platform,
        )
        return True

    async def _close(self, end_timestamp: int, notify: bool) -> Optional[CoachSession]:
        session = self.current_session
        if session is None:
            await self._store("clear_current_session", self.storage.clear_current_session())
            return None

        session.end_time = end_timestamp
        current = await self._load_settings()
        has_data = bool(session.analyses)

        if has_data:
            await self._store("save_summary_session", self.storage.save_summary_session(session))
            if not current.ephemeral_mode:
                await self._store("add_session", self.storage.add_session(session))
                await self._store(
                    "apply_data_retention",
                    apply_data_retention(self.storage, current.data_retention_days, self.clock()),
                )
        else:
            await self._store("clear_summary_session", self.storage.clear_summary_session())

        await self._store("clear_current_session", self.storage.clear_current_session())

        if notify and has_data:
            now = self.clock()
            minutes = duration_minutes(session.start_time, end_timestamp)
            result = await self.gate.deliver(
                self._catalog_item(
                    f"summary-ready-{now}",
                    "meetingEndNotice.title",
                    "meetingEndNotice.message",
                    "system",
                    now,
                    current.language,
                    minutes=minutes,
                ),
                now=now,
                notifications_enabled=current.notifications_enabled,
            )
            self._note_delivery(result)

        self.current_session = None
        self.tracker = WarningTracker()
        logger.info(
            "coach_session_closed session_id=%s analyses=%s archived=%s",
            session.id,
            len(session.analyses),
            has_data and not current.ephemeral_mode,
        )
        return session

    async def _check_for_issues(self, analysis: AnalysisResult, current: CoachSettings, now: int) -> Optional[str]:
        report = classify_issues(
            analysis,
            current.sensitivity,
            self.tracker,
            consecutive_warnings=settings.coach_consecutive_warnings,
        )
        tier = report.escalation
        if tier is None:
            await self._maybe_encourage(analysis, current, now)
            return None

        language = resolve_language(current.language)
        titles = t_all(f"{tier}.title")
        suggestions = extract_top(analysis, report.escalated_issues)
        if suggestions:
            messages = {language: "; ".join(suggestions)}
        else:
            messages = t_all(f"{tier}.fallback")

        item = FeedItem(
            id=f"{tier}-{now}",
            title=titles[language],
            message=messages[language],
            title_by_language=titles,
            message_by_language=messages,
            source_language=language,
            category=tier,
            timestamp=now,
        )
        item = await self.text_cache.localize(
            item,
            language,
            current.language,
            translate=self._translator(current),
            fallback_title=titles[language],
            fallback_message=t(language, f"{tier}.fallback"),
        )
        result = await self.gate.deliver(
            item,
            now=now,
            notifications_enabled=current.notifications_enabled,
            priority=2 if tier == "critical" else 1,
            tier=TIER_ISSUE,
        )
        self._note_delivery(result)
        logger.info(
            "coach_issue_escalated tier=%s categories=%s delivery=%s",
            tier,
            ",".join(issue.category for issue in report.escalated_issues),
            result.item.delivery,
        )
        return tier

    async def _maybe_encourage(self, analysis: AnalysisResult, current: CoachSettings, now: int) -> None:
        message_key = build_encouragement_message(analysis)
        if message_key is None:
            return
        if not should_notify(now, self.last_encouragement_time, settings.coach_encouragement_cooldown_ms):
            return
        self.last_encouragement_time = now
        await self.gate.record(
            self._catalog_item(
                f"encouragement-{now}",
                "encouragement.title",
                message_key,
                "info",
                now,
                current.language,
            )
        )

    async def _analysis_failed(self, now: int, error: str, rate_limited: bool, current: CoachSettings) -> None:
        logger.warning(
            "coach_analysis_failed session_id=%s rate_limited=%s error=%s",
            self.current_session.id if self.current_session else None,
            rate_limited,
            error,
        )
        self.runtime.mark_failure(now, error)
        result = await self.gate.deliver_error(
            self._catalog_item(f"error-{now}", "error.title", "error.message", "error", now, current.language),
            now=now,
            notifications_enabled=current.notifications_enabled,
            rate_limited=rate_limited,
        )
        self._note_delivery(result)

    @staticmethod
    def _require_api_key(current: CoachSettings) -> str:
        if not current.api_key:
            raise ConfigurationError("API key missing in saved settings")
        return current.api_key

    # Inbound events

    async def meeting_started(self, timestamp: Optional[int] = None, url: Optional[str] = None) -> Dict[str, Any]:
        async with self._lock:
            await self._restore()
            started = await self._start(timestamp or self.clock(), url)
            return {
                "ok": True,
                "started": started,
                "active": self.current_session is not None,
                "session_id": self.current_session.id if self.current_session else None,
            }

    async def frame_analysis(self, frame: str, timestamp: Optional[int] = None) -> Dict[str, Any]:
        async with self._lock:
            await self._restore()
            now = self.clock()
            frame_ts = timestamp or now
            if self.current_session is None:
                await self._start(frame_ts)
            session = self.current_session
            if session is None:
                return {"ok": False, "status": "ignored", "session_id": None}

            current = await self._load_settings()
            if not current.monitoring_enabled:
                return {"ok": False, "status": "ignored", "session_id": session.id}

            self.runtime.mark_attempt(now)
            try:
                api_key = self._require_api_key(current)
            except ConfigurationError as exc:
                self.runtime.mark_failure(now, str(exc))
                if not session.no_key_warning_shown:
                    result = await self.gate.deliver(
                        self._catalog_item(
                            f"setup-{now}",
                            "setup.title",
                            "setup.message",
                            "error",
                            now,
                            current.language,
                        ),
                        now=now,
                        notifications_enabled=current.notifications_enabled,
                    )
                    self._note_delivery(result)
                    session.no_key_warning_shown = True
                    await self._store("save_current_session", self.storage.save_current_session(session))
                return {"ok": False, "status": "setup_required", "session_id": session.id}

            self.frame_recorder.spawn(frame, session.id, frame_ts, now)

            timeout = settings.coach_analysis_timeout_seconds
            error: Optional[str] = None
            rate_limited = False
            try:
                raw = await asyncio.wait_for(
                    self.analyze(frame, api_key, current.api_provider, current.language),
                    timeout=timeout,
                )
                analysis = parse_analysis(raw, frame_ts)
            except asyncio.TimeoutError:
                error = f"Analysis timed out after {timeout:g}s"
            except AnalysisProviderError as exc:
                error = str(exc)
                rate_limited = exc.is_rate_limit
            except AnalysisValidationError as exc:
                error = str(exc)

            if error is not None:
                await self._analysis_failed(now, error, rate_limited, current)
                return {
                    "ok": False,
                    "status": "failed",
                    "session_id": session.id,
                    "error": error,
                    "rate_limited": rate_limited,
                }

            session.analyses.append(analysis)
            self.runtime.mark_success(self.clock())
            await self._store("save_current_session", self.storage.save_current_session(session))
            escalation = await self._check_for_issues(analysis, current, now)
            return {
                "ok": True,
                "status": "analyzed",
                "session_id": session.id,
                "analysis_count": len(session.analyses),
                "escalation": escalation,
            }

    async def meeting_ended(self, timestamp: Optional[int] = None) -> Dict[str, Any]:
        async with self._lock:
            await self._restore()
            if self.current_session is None:
                return {"ok": True, "ended": False}

            end_ts = timestamp or self.clock()
            current = await self._load_settings()
            session = await self._close(end_ts, notify=True)
            has_data = bool(session and session.analyses)
            await self.gate.record(
                self._catalog_item(
                    f"meeting-end-{end_ts}",
                    "meetingEnd.title",
                    "meetingEnd.withSummary" if has_data else "meetingEnd.noData",
                    "system",
                    end_ts,
                    current.language,
                )
            )
            return {
                "ok": True,
                "ended": True,
                "session_id": session.id if session else None,
                "analysis_count": len(session.analyses) if session else 0,
                "summary_ready": has_data,
            }

    async def _set_monitoring(self, enabled: bool) -> None:
        now = self.clock()
        saved = await self._store(
            "save_settings",
            self.storage.save_settings({"monitoring_enabled": enabled}),
        )
        current = saved or await self._load_settings()

        if not enabled:
            await self._close(now, notify=False)
            await self.gate.record(
                self._catalog_item(
                    f"monitoring-off-{now}",
                    "monitoringOff.title",
                    "monitoringOff.message",
                    "system",
                    now,
                    current.language,
                )
            )
        else:
            await self.gate.record(
                self._catalog_item(
                    f"monitoring-on-{now}",
                    "monitoringOn.title",
                    "monitoringOn.message",
                    "system",
                    now,
                    current.language,
                )
            )
        logger.info("coach_monitoring_toggled enabled=%s", enabled)

    async def set_monitoring(self, enabled: bool) -> Dict[str, Any]:
        async with self._lock:
            await self._restore()
            await self._set_monitoring(enabled)
            return {"ok": True, "monitoring_enabled": enabled}

    # Queries and settings

    async def status(self) -> StatusSnapshot:
        async with self._lock:
            await self._restore()
            current = await self._load_settings()
            session = self.current_session
            return StatusSnapshot(
                active=session is not None,
                session_id=session.id if session else None,
                analysis_count=len(session.analyses) if session else 0,
                api_configured=bool(current.api_key),
                api_provider=current.api_provider,
                monitoring_enabled=current.monitoring_enabled,
                notifications_enabled=current.notifications_enabled,
                notification_permission=await self.gate.permission_level(),
                capture_interval_ms=settings.coach_capture_interval_ms,
                analysis_runtime=self.runtime.to_out(),
            )

    async def get_settings(self) -> CoachSettings:
        return await self._load_settings()

    async def update_settings(self, partial: Dict[str, Any]) -> CoachSettings:
        async with self._lock:
            await self._restore()
            previous = await self._load_settings()
            changes = {key: value for key, value in partial.items() if value is not None}

            monitoring = changes.pop("monitoring_enabled", None)
            if monitoring is not None and monitoring != previous.monitoring_enabled:
                await self._set_monitoring(monitoring)

            if changes:
                # storage errors propagate to the caller
                updated = await self.storage.save_settings(changes)
                self._last_settings = updated
            else:
                updated = await self._load_settings()

            if resolve_language(updated.language) != resolve_language(previous.language):
                await self._relocalize_feed(updated)
            return updated

    async def _relocalize_feed(self, current: CoachSettings) -> None:
        feed = await self._store("get_live_coaching_feed", self.storage.get_live_coaching_feed())
        if not feed:
            return
        relocalized = await self.text_cache.relocalize_feed(
            feed,
            current.language,
            translate=self._translator(current),
            fallback_title=t(current.language, "feed.defaultTitle"),
        )
        await self._store("save_live_coaching_feed", self.storage.save_live_coaching_feed(relocalized))
        logger.info("coach_feed_relocalized language=%s items=%s", current.language, len(relocalized))

    async def set_notification_permission(self, level: str) -> str:
        setter = getattr(self.sink, "set_permission_level", None)
        if setter is None:
            return PERMISSION_UNKNOWN
        setter(level)
        logger.info("coach_notification_permission level=%s", level)
        return await self.gate.permission_level()

    async def get_feed(self) -> List[FeedItem]:
        feed = await self._store("get_live_coaching_feed", self.storage.get_live_coaching_feed())
        if not feed:
            return []
        current = await self._load_settings()
        return [self.text_cache.resolve(item, current.language) for item in feed]

    async def clear_feed(self) -> None:
        async with self._lock:
            await self._store("clear_live_coaching_feed", self.storage.clear_live_coaching_feed())

    async def clear_data(self) -> None:
        """Wipe every stored document and drop the in-memory session.

        Storage errors propagate so the caller can report that nothing was cleared.
        """
        async with self._lock:
            await self.storage.clear_all()
            self.current_session = None
            self.tracker = WarningTracker()
            self.runtime = AnalysisRuntime()
            self.last_encouragement_time = 0
            self._last_settings = None
            logger.info("coach_local_data_cleared")

    async def get_history(self) -> List[CoachSession]:
        sessions = await self._store("get_sessions", self.storage.get_sessions())
        return sessions or []

    async def get_summary(self) -> Optional[SessionSummary]:
        session = await self._store("get_summary_session", self.storage.get_summary_session())
        if session is None:
            history = await self.get_history()
            session = history[-1] if history else None
        if session is None:
            return None
        return build_session_summary(session, now=self.clock())


coach_actor = SessionActor()
