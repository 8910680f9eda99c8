import math

import pytest

from app.services.analysis_validator import (
    AnalysisValidationError,
    normalize_score,
    parse_analysis,
    validate,
)


def test_normalize_score() -> None:
    assert normalize_score(7) == 7.0
    assert normalize_score(7.25) == 7.25
    assert normalize_score("7.5/10") == 7.5
    assert normalize_score("score: -2") == -2.0
    assert math.isnan(normalize_score(True))
    assert math.isnan(normalize_score("n/a"))
    assert math.isnan(normalize_score(float("inf")))
    assert math.isnan(normalize_score(None))
    assert math.isnan(normalize_score({"score": 5}))


def test_validate_coerces_scores_in_place() -> None:
    analysis = {
        "posture": {"score": "7.5/10"},
        "facial": {"score": 9},
        "hands": {"score": 0},
        "appearance": {"score": 10},
    }
    assert validate(analysis) is True
    assert analysis["posture"]["score"] == 7.5


@pytest.mark.parametrize(
    "analysis",
    [
        None,
        [],
        "posture: 8",
        {"posture": {"score": 8}, "facial": {"score": 8}, "hands": {"score": "n/a"}, "appearance": {"score": 8}},
        {"posture": {"score": 8}, "facial": {"score": 8}, "hands": {"score": 8}},
        {"posture": {"score": 8}, "facial": {"score": 8}, "hands": 8, "appearance": {"score": 8}},
        {"posture": {"score": 11}, "facial": {"score": 8}, "hands": {"score": 8}, "appearance": {"score": 8}},
        {"posture": {"score": -1}, "facial": {"score": 8}, "hands": {"score": 8}, "appearance": {"score": 8}},
    ],
)
def test_validate_rejects_bad_payloads(analysis) -> None:
    assert validate(analysis) is False


def test_parse_analysis_builds_typed_record() -> None:
    raw = {
        "posture": {"score": "6", "issue": "  Slouching   forward ", "suggestion": "Sit upright"},
        "facial": {"score": 8, "issue": None, "suggestion": None},
        "hands": {"score": 9},
        "appearance": {"score": 10, "issue": ""},
        "focus_conditions": {
            "webcam_eye_level": {"score": 5, "suggestion": "Raise the webcam"},
            "lighting_front": {"score": "?", "suggestion": "Add a lamp"},
            "broken": "nope",
        },
        "priority_actions": ["Sit upright", 42, None, "Look at the lens"],
    }

    result = parse_analysis(raw, timestamp=123)

    assert result.timestamp == 123
    assert result.posture.score == 6.0
    assert result.posture.issue == "Slouching forward"
    assert result.appearance.issue is None
    assert result.focus_conditions["webcam_eye_level"].score == 5.0
    assert result.focus_conditions["lighting_front"].score is None
    assert "broken" not in result.focus_conditions
    assert result.priority_actions == ["Sit upright", "Look at the lens"]


def test_parse_analysis_without_optional_fields() -> None:
    raw = {category: {"score": 8} for category in ("posture", "facial", "hands", "appearance")}
    result = parse_analysis(raw)
    assert result.focus_conditions == {}
    assert result.priority_actions == []


def test_parse_analysis_raises_on_invalid_structure() -> None:
    with pytest.raises(AnalysisValidationError):
        parse_analysis({"posture": {"score": 8}})
