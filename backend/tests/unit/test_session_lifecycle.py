import asyncio

import pytest

import app.services.session_lifecycle as sl
from app.core.i18n import EN_CA, FR_FR, t
from app.llm.vision_client import AnalysisProviderError
from app.schemas.coach import CoachSession
from app.services.coach_storage import CoachStorageError
from app.services.frame_recorder import FrameRecorder
from app.services.session_lifecycle import SessionActor

from conftest import BASE_TS, make_raw

FRAME = "data:image/jpeg;base64,AAAA"


class FakeProvider:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, frame, api_key, provider, language):
        self.calls.append((api_key, provider, language))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


async def fake_translate(text_value, api_key, provider, target_language):
    return f"FR:{text_value}" if target_language == FR_FR else f"EN:{text_value}"


def _actor(storage, sink, clock, analyze=None) -> SessionActor:
    return SessionActor(
        storage=storage,
        sink=sink,
        analyze=analyze or FakeProvider(make_raw()),
        translate=fake_translate,
        frame_recorder=FrameRecorder(url=""),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_full_meeting_is_archived_and_second_end_is_noop(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock)

    started = await actor.meeting_started(BASE_TS, "https://meet.google.com/abc-defg-hij")
    assert started["started"] is True
    assert actor.current_session.platform == "Google Meet"

    for index in range(3):
        clock.advance(30_000)
        result = await actor.frame_analysis(FRAME, clock.now)
        assert result["status"] == "analyzed"
        assert result["analysis_count"] == index + 1

    end_ts = BASE_TS + 5 * 60_000
    clock.now = end_ts
    ended = await actor.meeting_ended(end_ts)
    assert ended["ended"] is True
    assert ended["summary_ready"] is True

    history = await storage.get_sessions()
    assert len(history) == 1
    assert len(history[0].analyses) == 3
    assert history[0].end_time == end_ts
    assert await storage.get_current_session() is None
    assert (await storage.get_summary_session()).id == f"session_{BASE_TS}"

    assert len(sink.shown) == 1
    assert sink.shown[0]["message"].startswith("5 minutes monitored")

    feed = await storage.get_live_coaching_feed()
    assert feed[0].id == f"meeting-end-{end_ts}"
    assert feed[0].message == t(EN_CA, "meetingEnd.withSummary")
    assert [item.category for item in feed].count("info") == 1

    again = await actor.meeting_ended(end_ts + 1000)
    assert again["ended"] is False
    assert len(await storage.get_sessions()) == 1

    summary = await actor.get_summary()
    assert summary.analysis_count == 3
    assert summary.strong is True


@pytest.mark.asyncio
async def test_concurrent_start_is_noop_and_frame_synthesizes_start(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock)

    result = await actor.frame_analysis(FRAME, BASE_TS + 5)
    assert result["session_id"] == f"session_{BASE_TS + 5}"

    second = await actor.meeting_started(BASE_TS + 10)
    assert second["started"] is False
    assert second["session_id"] == f"session_{BASE_TS + 5}"


@pytest.mark.asyncio
async def test_monitoring_disabled_ignores_frames(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1", "monitoring_enabled": False})
    provider = FakeProvider(make_raw())
    actor = _actor(storage, sink, clock, analyze=provider)

    result = await actor.frame_analysis(FRAME, BASE_TS)

    assert result["status"] == "ignored"
    assert provider.calls == []
    assert (await actor.status()).active is False


@pytest.mark.asyncio
async def test_missing_api_key_warns_once_per_session(storage, sink, clock) -> None:
    provider = FakeProvider(make_raw())
    actor = _actor(storage, sink, clock, analyze=provider)

    first = await actor.frame_analysis(FRAME, BASE_TS)
    clock.advance(30_000)
    second = await actor.frame_analysis(FRAME, clock.now)

    assert first["status"] == second["status"] == "setup_required"
    assert provider.calls == []
    assert [item["title"] for item in sink.shown] == [t(EN_CA, "setup.title")]
    assert actor.runtime.failed == 2
    assert actor.runtime.last_error == "API key missing in saved settings"
    assert (await storage.get_current_session()).no_key_warning_shown is True


@pytest.mark.asyncio
async def test_provider_errors_respect_rate_limit_and_cooldown(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    provider = FakeProvider(
        AnalysisProviderError("Gemini API error: 429 (rate limit exceeded)", status_code=429),
        AnalysisProviderError("Gemini API error: invalid key", status_code=401),
        AnalysisProviderError("Gemini API error: invalid key", status_code=401),
    )
    actor = _actor(storage, sink, clock, analyze=provider)
    await actor.meeting_started(BASE_TS)

    limited = await actor.frame_analysis(FRAME, clock.now)
    assert limited["status"] == "failed"
    assert limited["rate_limited"] is True
    assert sink.shown == []

    clock.advance(1000)
    failed = await actor.frame_analysis(FRAME, clock.now)
    assert failed["rate_limited"] is False
    assert [item["title"] for item in sink.shown] == [t(EN_CA, "error.title")]

    clock.advance(1000)
    await actor.frame_analysis(FRAME, clock.now)
    assert len(sink.shown) == 1

    feed = await storage.get_live_coaching_feed()
    assert [item.category for item in feed].count("error") == 1
    assert actor.runtime.attempted == 3
    assert actor.runtime.failed == 3
    assert actor.runtime.succeeded == 0


@pytest.mark.asyncio
async def test_invalid_response_counts_as_failure(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock, analyze=FakeProvider({"posture": {"score": "n/a"}}))

    result = await actor.frame_analysis(FRAME, BASE_TS)

    assert result["status"] == "failed"
    assert "Invalid analysis response" in actor.runtime.last_error
    assert actor.current_session.analyses == []


@pytest.mark.asyncio
async def test_analysis_timeout_is_a_failure(storage, sink, clock, monkeypatch) -> None:
    await storage.save_settings({"api_key": "key-1"})
    monkeypatch.setattr(sl.settings, "coach_analysis_timeout_seconds", 0.01)

    async def slow(*_args):
        await asyncio.sleep(1)
        return make_raw()

    actor = _actor(storage, sink, clock, analyze=slow)
    result = await actor.frame_analysis(FRAME, BASE_TS)

    assert result["status"] == "failed"
    assert "timed out" in result["error"]


@pytest.mark.asyncio
async def test_critical_issue_notifies_with_bilingual_feed_item(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    raw = make_raw(posture=3)
    raw["posture"]["suggestion"] = "Sit upright"
    actor = _actor(storage, sink, clock, analyze=FakeProvider(raw))

    result = await actor.frame_analysis(FRAME, BASE_TS)

    assert result["escalation"] == "critical"
    assert sink.shown[0]["priority"] == 2
    assert sink.shown[0]["title"] == t(EN_CA, "critical.title")
    assert sink.shown[0]["message"] == "Sit upright"

    item = (await storage.get_live_coaching_feed())[0]
    assert item.category == "critical"
    assert item.delivery == "shown"
    assert item.message_by_language[FR_FR] == "FR:Sit upright"
    assert item.title_by_language[FR_FR] == t(FR_FR, "critical.title")


@pytest.mark.asyncio
async def test_warning_needs_consecutive_passes(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock, analyze=FakeProvider(make_raw(hands=6)))

    first = await actor.frame_analysis(FRAME, BASE_TS)
    clock.advance(30_000)
    second = await actor.frame_analysis(FRAME, clock.now)

    assert first["escalation"] is None
    assert second["escalation"] == "warning"
    assert [item["priority"] for item in sink.shown] == [1]


@pytest.mark.asyncio
async def test_disabling_monitoring_closes_session_silently(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock)
    await actor.meeting_started(BASE_TS)
    await actor.frame_analysis(FRAME, BASE_TS + 1000)

    await actor.set_monitoring(False)

    assert sink.shown == []
    assert len(await storage.get_sessions()) == 1
    assert (await storage.get_settings()).monitoring_enabled is False
    feed = await storage.get_live_coaching_feed()
    assert feed[0].id.startswith("monitoring-off-")
    assert not any(item.id.startswith("meeting-end-") for item in feed)
    assert (await actor.status()).active is False

    await actor.set_monitoring(True)
    assert (await storage.get_live_coaching_feed())[0].id.startswith("monitoring-on-")


@pytest.mark.asyncio
async def test_meeting_without_analyses_clears_summary(storage, sink, clock) -> None:
    actor = _actor(storage, sink, clock)
    await storage.save_summary_session(CoachSession(id="previous", start_time=1, end_time=2))

    await actor.meeting_started(BASE_TS)
    await actor.meeting_ended(BASE_TS + 60_000)

    assert await storage.get_summary_session() is None
    assert sink.shown == []
    assert (await storage.get_live_coaching_feed())[0].message == t(EN_CA, "meetingEnd.noData")


@pytest.mark.asyncio
async def test_ephemeral_mode_skips_history(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1", "ephemeral_mode": True})
    actor = _actor(storage, sink, clock)
    await actor.frame_analysis(FRAME, BASE_TS)
    await actor.meeting_ended(BASE_TS + 60_000)

    assert await storage.get_sessions() == []
    assert (await actor.get_summary()).analysis_count == 1


@pytest.mark.asyncio
async def test_active_session_is_restored_once(storage, sink, clock) -> None:
    await storage.save_current_session(CoachSession(id="session_1", start_time=BASE_TS))
    actor = _actor(storage, sink, clock)

    status = await actor.status()

    assert status.active is True
    assert status.session_id == "session_1"
    assert status.notification_permission == "granted"


@pytest.mark.asyncio
async def test_language_change_relocalizes_stored_feed(storage, sink, clock) -> None:
    actor = _actor(storage, sink, clock)
    await actor.meeting_started(BASE_TS)

    updated = await actor.update_settings({"language": FR_FR})

    assert updated.language == FR_FR
    feed = await storage.get_live_coaching_feed()
    assert feed[0].title == t(FR_FR, "meetingStart.title")


@pytest.mark.asyncio
async def test_update_settings_can_turn_monitoring_off(storage, sink, clock) -> None:
    actor = _actor(storage, sink, clock)
    await actor.meeting_started(BASE_TS)

    updated = await actor.update_settings({"monitoring_enabled": False, "sensitivity": "low"})

    assert updated.monitoring_enabled is False
    assert updated.sensitivity == "low"
    assert actor.current_session is None


@pytest.mark.asyncio
async def test_notification_permission_is_forwarded_to_sink(storage, sink, clock) -> None:
    actor = _actor(storage, sink, clock)
    assert await actor.set_notification_permission("denied") == "denied"
    assert (await actor.status()).notification_permission == "denied"


async def _disk_full(*_args, **_kwargs):
    raise CoachStorageError("disk full")


@pytest.mark.asyncio
async def test_hung_translation_does_not_block_frame_or_status(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1"})
    raw = make_raw(posture=3)
    raw["posture"]["suggestion"] = "Sit upright"

    async def hung(text_value, api_key, provider, target_language):
        await asyncio.sleep(3600)
        return text_value

    actor = SessionActor(
        storage=storage,
        sink=sink,
        analyze=FakeProvider(raw),
        translate=hung,
        frame_recorder=FrameRecorder(url=""),
        clock=clock,
    )
    actor.text_cache.timeout_seconds = 0.01

    result = await asyncio.wait_for(actor.frame_analysis(FRAME, BASE_TS), timeout=5)
    status = await asyncio.wait_for(actor.status(), timeout=5)

    assert result["status"] == "analyzed"
    assert status.analysis_count == 1
    item = (await storage.get_live_coaching_feed())[0]
    assert item.message_by_language[FR_FR] == "Sit upright"


@pytest.mark.asyncio
async def test_settings_read_failure_keeps_last_loaded_settings(storage, sink, clock, monkeypatch) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock)

    assert (await actor.frame_analysis(FRAME, BASE_TS))["status"] == "analyzed"

    monkeypatch.setattr(storage, "get_settings", _disk_full)
    clock.advance(30_000)
    result = await actor.frame_analysis(FRAME, clock.now)

    assert result["status"] == "analyzed"
    assert all(item["title"] != t(EN_CA, "setup.title") for item in sink.shown)
    assert actor.current_session.no_key_warning_shown is False
    assert (await actor.get_settings()).api_key == "key-1"


@pytest.mark.asyncio
async def test_persistence_failures_keep_in_memory_session(storage, sink, clock, monkeypatch) -> None:
    await storage.save_settings({"api_key": "key-1"})
    actor = _actor(storage, sink, clock)
    await actor.meeting_started(BASE_TS)

    monkeypatch.setattr(storage, "save_current_session", _disk_full)
    monkeypatch.setattr(storage, "save_live_coaching_feed", _disk_full)
    monkeypatch.setattr(storage, "add_session", _disk_full)

    for _ in range(2):
        clock.advance(30_000)
        result = await actor.frame_analysis(FRAME, clock.now)
        assert result["status"] == "analyzed"

    assert len(actor.current_session.analyses) == 2
    assert (await actor.status()).analysis_count == 2

    ended = await actor.meeting_ended(clock.now + 60_000)

    assert ended["ended"] is True
    assert ended["summary_ready"] is True
    assert actor.current_session is None
    assert await storage.get_sessions() == []
    assert len((await storage.get_summary_session()).analyses) == 2


@pytest.mark.asyncio
async def test_clear_data_wipes_storage_and_session(storage, sink, clock) -> None:
    await storage.save_settings({"api_key": "key-1", "language": FR_FR})
    actor = _actor(storage, sink, clock)
    await actor.frame_analysis(FRAME, BASE_TS)
    await actor.meeting_ended(BASE_TS + 60_000)
    await actor.meeting_started(BASE_TS + 120_000)

    await actor.clear_data()

    assert actor.current_session is None
    assert await storage.get_sessions() == []
    assert await storage.get_live_coaching_feed() == []
    assert (await actor.get_settings()).api_key == ""
