"""
Self-camera frame source selection.

Capture clients describe every <video> element they can see as a
VideoCandidate; the highest scoring candidate is the one frames are taken
from. Scoring is a pure function of the candidate so it can be unit tested
without a DOM.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

MINIMUM_USABLE_SCORE = 4
MINIMUM_PREFERRED_AREA = 96 * 54
LIKELY_SCREEN_AREA = 640 * 360
MAX_ASPECT_RATIO = 2.2
MIN_ASPECT_RATIO = 0.5
HAVE_CURRENT_DATA = 2

CAMERA_LABEL_PATTERN = re.compile(r"camera|webcam|facetime|isight|\bcam\b|usb video|front", re.IGNORECASE)
SCREEN_LABEL_PATTERN = re.compile(r"screen|display|window|monitor", re.IGNORECASE)
MIRROR_TRANSFORM_PATTERN = re.compile(
    r"scalex\(\s*-|scale\(\s*-|rotatey\(\s*180deg|matrix\(\s*-",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class VideoTrack:
    label: str = ""
    ready_state: str = "live"
    enabled: bool = True
    muted: bool = False

    @property
    def is_live(self) -> bool:
        return self.ready_state != "ended" and self.enabled and not self.muted


@dataclass(frozen=True)
class VideoCandidate:
    ready_state: int = 0
    current_time: float = 0.0
    has_stream: bool = False
    tracks: Tuple[VideoTrack, ...] = field(default_factory=tuple)
    width: float = 0.0
    height: float = 0.0
    in_self_view: bool = False
    transform: str = ""
    mirrored: bool = False
    ref: Any = None

    @property
    def area(self) -> float:
        return max(0.0, float(self.width) * float(self.height))

    @property
    def track_label(self) -> str:
        for track in self.tracks:
            if track.label:
                return track.label
        return ""


@dataclass(frozen=True)
class SourceScore:
    score: int
    area: float


def _is_mirrored(candidate: VideoCandidate) -> bool:
    if candidate.mirrored:
        return True
    return bool(candidate.transform) and bool(MIRROR_TRANSFORM_PATTERN.search(candidate.transform))


def _aspect_ratio(candidate: VideoCandidate) -> Optional[float]:
    if candidate.width <= 0 or candidate.height <= 0:
        return None
    return float(candidate.width) / float(candidate.height)


def score_source(candidate: Optional[VideoCandidate]) -> SourceScore:
    if candidate is None:
        return SourceScore(score=-1, area=0.0)

    area = candidate.area
    label = candidate.track_label
    has_live_track = any(track.is_live for track in candidate.tracks)
    camera_labeled = bool(label) and bool(CAMERA_LABEL_PATTERN.search(label))
    screen_labeled = bool(label) and bool(SCREEN_LABEL_PATTERN.search(label))

    score = 0
    if candidate.ready_state >= HAVE_CURRENT_DATA:
        score += 2
    if has_live_track:
        score += 4
    elif candidate.has_stream or candidate.tracks:
        score += 3
    if candidate.current_time > 0:
        score += 2
    if area > 0:
        score += 1
    if area >= MINIMUM_PREFERRED_AREA:
        score += 1
    if candidate.in_self_view:
        score += 5
    if camera_labeled:
        score += 4
    if _is_mirrored(candidate):
        score += 2
    if screen_labeled:
        score -= 8
    if not candidate.in_self_view and not camera_labeled and area > LIKELY_SCREEN_AREA:
        score -= 2

    ratio = _aspect_ratio(candidate)
    if ratio is not None and (ratio > MAX_ASPECT_RATIO or ratio < MIN_ASPECT_RATIO):
        score -= 1

    return SourceScore(score=score, area=area)


def pick_best_index(candidates: Optional[Sequence[VideoCandidate]]) -> Optional[int]:
    if not candidates:
        return None

    best_index: Optional[int] = None
    best_score = -1
    best_area = -1.0
    for index, candidate in enumerate(candidates):
        result = score_source(candidate)
        if result.score > best_score or (result.score == best_score and result.area > best_area):
            best_index = index
            best_score = result.score
            best_area = result.area

    if best_score < MINIMUM_USABLE_SCORE:
        return None
    return best_index


def pick_best(candidates: Optional[Sequence[VideoCandidate]]) -> Optional[VideoCandidate]:
    """Best usable candidate, or None when capture should stop."""
    index = pick_best_index(candidates)
    if index is None:
        return None
    return candidates[index]  # type: ignore[index]
