"""
Services module - Business logic layer
"""
from . import (
    video_source_selector,
    analysis_validator,
    issue_classifier,
    suggestion_extractor,
    bilingual_text,
    coach_storage,
    realtime_bus,
    notification_gate,
    frame_recorder,
    platforms,
    session_summary,
    session_lifecycle,
)

__all__ = [
    'video_source_selector',
    'analysis_validator',
    'issue_classifier',
    'suggestion_extractor',
    'bilingual_text',
    'coach_storage',
    'realtime_bus',
    'notification_gate',
    'frame_recorder',
    'platforms',
    'session_summary',
    'session_lifecycle',
]
