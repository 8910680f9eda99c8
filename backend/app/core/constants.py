"""Domain constants shared by the coaching services."""

ANALYSIS_CATEGORIES = ("posture", "facial", "hands", "appearance")

# Severity thresholds on the 0-10 score scale
SEVERITY_CRITICAL = 5
SEVERITY_WARNING = 7
SEVERITY_GOOD = 8

DEFAULT_SENSITIVITY = "medium"

DEFAULT_API_PROVIDER = "gemini"

# Feed item delivery outcomes
DELIVERY_IN_APP = "in-app"
DELIVERY_SHOWN = "shown"
DELIVERY_BLOCKED = "blocked"
DELIVERY_FAILED = "failed"

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_UNKNOWN = "unknown"

RATE_LIMIT_MARKER = "rate limit"

MS_PER_DAY = 24 * 60 * 60 * 1000

DEFAULT_FALLBACK_SUGGESTIONS = {
    "posture": "Set your webcam eye-level, keep an upright spine, and lean slightly forward with open shoulders.",
    "facial": "Maintain lens-focused eye contact with calm facial expressions and small active nodding cues.",
    "hands": "Keep visible hand gestures in-frame and reduce minimal fidgeting when listening.",
    "appearance": "Use front-facing lighting, solid-colored attire, a neutral background, and a matte skin finish.",
}
