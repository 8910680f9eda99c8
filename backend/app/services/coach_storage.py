"""
Durable key-value store for the coaching engine.

Every value is one JSON document under a fixed key (settings, current
session, summary slot, session history, live feed). Writes are
last-write-wins with no cross-key transaction.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import text

from app.db.session import SessionLocal
from app.schemas.coach import CoachSession, CoachSettings, FeedItem

logger = logging.getLogger(__name__)

KEY_SETTINGS = "settings"
KEY_SESSIONS = "sessions"
KEY_CURRENT_SESSION = "current_session"
KEY_SUMMARY_SESSION = "summary_session"
KEY_LIVE_COACHING_FEED = "live_coaching_feed"


class CoachStorageError(RuntimeError):
    pass


class CoachStorage:
    def __init__(self, session_factory: Optional[Callable[[], Any]] = None) -> None:
        self._session_factory = session_factory or SessionLocal
        self._schema_lock = threading.Lock()
        self._schema_ensured = False

    def _ensure_schema(self) -> None:
        if self._schema_ensured:
            return
        with self._schema_lock:
            if self._schema_ensured:
                return
            db = self._session_factory()
            try:
                db.execute(
                    text(
                        """
                        CREATE TABLE IF NOT EXISTS coach_kv (
                            item_key VARCHAR(64) PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                        """
                    )
                )
                db.commit()
                self._schema_ensured = True
            except Exception as exc:
                db.rollback()
                raise CoachStorageError(f"cannot create coach_kv table: {exc}") from exc
            finally:
                db.close()

    def _read(self, key: str) -> Any:
        self._ensure_schema()
        db = self._session_factory()
        try:
            row = db.execute(
                text("SELECT value FROM coach_kv WHERE item_key = :key"),
                {"key": key},
            ).fetchone()
        except Exception as exc:
            db.rollback()
            raise CoachStorageError(f"read {key} failed: {exc}") from exc
        finally:
            db.close()
        if not row or row[0] is None:
            return None
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning("coach_storage_corrupt_value key=%s", key)
            return None

    def _write(self, key: str, value: Any) -> None:
        self._ensure_schema()
        db = self._session_factory()
        try:
            db.execute(
                text(
                    """
                    INSERT INTO coach_kv (item_key, value, updated_at)
                    VALUES (:key, :value, CURRENT_TIMESTAMP)
                    ON CONFLICT (item_key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                    """
                ),
                {"key": key, "value": json.dumps(value, ensure_ascii=False)},
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            raise CoachStorageError(f"write {key} failed: {exc}") from exc
        finally:
            db.close()

    def _remove(self, key: str) -> None:
        self._ensure_schema()
        db = self._session_factory()
        try:
            db.execute(text("DELETE FROM coach_kv WHERE item_key = :key"), {"key": key})
            db.commit()
        except Exception as exc:
            db.rollback()
            raise CoachStorageError(f"remove {key} failed: {exc}") from exc
        finally:
            db.close()

    @staticmethod
    def _parse_session(value: Any) -> Optional[CoachSession]:
        if not isinstance(value, dict):
            return None
        try:
            return CoachSession.model_validate(value)
        except ValidationError:
            logger.warning("coach_storage_invalid_session id=%s", value.get("id"), exc_info=True)
            return None

    # Settings

    async def get_settings(self) -> CoachSettings:
        stored = self._read(KEY_SETTINGS)
        merged: Dict[str, Any] = CoachSettings().model_dump()
        if isinstance(stored, dict):
            merged.update({k: v for k, v in stored.items() if k in merged and v is not None})
        try:
            return CoachSettings.model_validate(merged)
        except ValidationError:
            logger.warning("coach_storage_invalid_settings, using defaults", exc_info=True)
            return CoachSettings()

    async def save_settings(self, partial: Dict[str, Any]) -> CoachSettings:
        current = (await self.get_settings()).model_dump()
        current.update({k: v for k, v in partial.items() if k in current and v is not None})
        merged = CoachSettings.model_validate(current)
        self._write(KEY_SETTINGS, merged.model_dump(mode="json"))
        return merged

    # Current (live) session

    async def get_current_session(self) -> Optional[CoachSession]:
        return self._parse_session(self._read(KEY_CURRENT_SESSION))

    async def save_current_session(self, session: CoachSession) -> None:
        self._write(KEY_CURRENT_SESSION, session.model_dump(mode="json"))

    async def clear_current_session(self) -> None:
        self._remove(KEY_CURRENT_SESSION)

    # Last completed session shown by the summary report

    async def get_summary_session(self) -> Optional[CoachSession]:
        return self._parse_session(self._read(KEY_SUMMARY_SESSION))

    async def save_summary_session(self, session: CoachSession) -> None:
        self._write(KEY_SUMMARY_SESSION, session.model_dump(mode="json"))

    async def clear_summary_session(self) -> None:
        self._remove(KEY_SUMMARY_SESSION)

    # History

    async def get_sessions(self) -> List[CoachSession]:
        stored = self._read(KEY_SESSIONS)
        if not isinstance(stored, list):
            return []
        sessions: List[CoachSession] = []
        for value in stored:
            parsed = self._parse_session(value)
            if parsed is not None:
                sessions.append(parsed)
        return sessions

    async def save_sessions(self, sessions: List[CoachSession]) -> None:
        self._write(KEY_SESSIONS, [session.model_dump(mode="json") for session in sessions])

    async def add_session(self, session: CoachSession) -> None:
        sessions = await self.get_sessions()
        sessions.append(session)
        await self.save_sessions(sessions)

    # Live coaching feed (newest first)

    async def get_live_coaching_feed(self) -> List[FeedItem]:
        stored = self._read(KEY_LIVE_COACHING_FEED)
        if not isinstance(stored, list):
            return []
        items: List[FeedItem] = []
        for value in stored:
            try:
                items.append(FeedItem.model_validate(value))
            except ValidationError:
                logger.debug("coach_storage_invalid_feed_item value=%s", value)
        return items

    async def save_live_coaching_feed(self, items: List[FeedItem]) -> None:
        self._write(KEY_LIVE_COACHING_FEED, [item.model_dump(mode="json") for item in items])

    async def clear_live_coaching_feed(self) -> None:
        self._remove(KEY_LIVE_COACHING_FEED)

    async def clear_all(self) -> None:
        for key in (KEY_SETTINGS, KEY_SESSIONS, KEY_CURRENT_SESSION, KEY_SUMMARY_SESSION, KEY_LIVE_COACHING_FEED):
            self._remove(key)
