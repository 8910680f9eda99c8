from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.schemas.coach import AnalysisResult
from app.services.analysis_validator import parse_analysis
from app.services.coach_storage import CoachStorage

BASE_TS = 1_700_000_000_000


class FakeSink:
    def __init__(self, permission: str = "granted", result: bool = True, error: Optional[Exception] = None) -> None:
        self.permission = permission
        self.result = result
        self.error = error
        self.shown: List[Dict[str, Any]] = []

    async def get_permission_level(self) -> str:
        return self.permission

    def set_permission_level(self, level: str) -> None:
        self.permission = level

    async def show(self, notification_id: str, title: str, message: str, priority: int) -> bool:
        if self.error is not None:
            raise self.error
        self.shown.append({"id": notification_id, "title": title, "message": message, "priority": priority})
        return self.result


class FakeClock:
    def __init__(self, now: int = BASE_TS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_raw(**scores: Any) -> Dict[str, Any]:
    raw: Dict[str, Any] = {}
    for category in ("posture", "facial", "hands", "appearance"):
        raw[category] = {"score": scores.get(category, 9), "issue": None, "suggestion": None}
    return raw


def make_analysis(timestamp: Optional[int] = None, **scores: Any) -> AnalysisResult:
    return parse_analysis(make_raw(**scores), timestamp)


@pytest.fixture
def storage():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield CoachStorage(session_factory=factory)
    engine.dispose()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
