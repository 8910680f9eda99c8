from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class MeetingPlatform:
    name: str
    self_video_selectors: Tuple[str, ...]


_TEAMS = MeetingPlatform(
    name="Microsoft Teams",
    self_video_selectors=(
        '[data-tid="self-video"] video',
        "#self-video video",
        '[data-cid="calling-self-video"] video',
    ),
)

PLATFORMS = {
    "meet.google.com": MeetingPlatform(
        name="Google Meet",
        self_video_selectors=(
            'div[data-self-video="true"] video',
            'video[data-self-video="true"]',
            '[data-is-self="true"] video',
            '[data-local-participant="true"] video',
            "[data-self-name] video",
        ),
    ),
    "app.zoom.us": MeetingPlatform(
        name="Zoom",
        self_video_selectors=(
            '[class*="self-view"] video',
            '[data-type="self"] video',
            'video[class*="self-video"]',
        ),
    ),
    "teams.microsoft.com": _TEAMS,
    "teams.live.com": _TEAMS,
    "app.slack.com": MeetingPlatform(
        name="Slack",
        self_video_selectors=(
            '[data-qa="self_video"] video',
            '[class*="self_view"] video',
            '[data-qa="huddle_self_video"] video',
        ),
    ),
    "discord.com": MeetingPlatform(
        name="Discord",
        self_video_selectors=(
            '[class*="mirror"] video',
            'video[class*="video-"]',
        ),
    ),
}

WILDCARD_PLATFORMS: List[Tuple[str, MeetingPlatform]] = [
    (
        ".webex.com",
        MeetingPlatform(
            name="Webex",
            self_video_selectors=(
                '[class*="self-view"] video',
                'video[mediatype="local"]',
                '[class*="LocalVideo"] video',
            ),
        ),
    ),
]


def detect_platform(hostname: Optional[str]) -> Optional[MeetingPlatform]:
    host = (hostname or "").strip().lower()
    if not host:
        return None
    if host in PLATFORMS:
        return PLATFORMS[host]
    for suffix, platform in WILDCARD_PLATFORMS:
        if host.endswith(suffix):
            return platform
    return None


def detect_platform_from_url(url: Optional[str]) -> Optional[MeetingPlatform]:
    if not url:
        return None
    return detect_platform(urlparse(url).hostname)


def get_self_video_selectors(hostname: Optional[str]) -> List[str]:
    platform = detect_platform(hostname)
    return list(platform.self_video_selectors) if platform else []


def is_supported_platform(hostname: Optional[str]) -> bool:
    return detect_platform(hostname) is not None
