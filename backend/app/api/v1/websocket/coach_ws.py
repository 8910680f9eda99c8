from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.schemas.coach import (
    AnalyzeFramePayload,
    MeetingEndedPayload,
    MeetingStartedPayload,
    NotificationPermissionPayload,
    SetMonitoringPayload,
)
from app.services.notification_gate import COACH_CHANNEL
from app.services.realtime_bus import session_bus
from app.services.session_lifecycle import coach_actor

router = APIRouter()
logger = logging.getLogger(__name__)


async def _safe_send_json(websocket: WebSocket, lock: asyncio.Lock, payload: Dict[str, Any]) -> None:
    async with lock:
        await websocket.send_json(payload)


def _extract_payload(message_obj: Dict[str, Any]) -> Dict[str, Any]:
    payload = message_obj.get("payload")
    if isinstance(payload, dict):
        return payload
    return message_obj


async def _dispatch(event_name: str, payload: Dict[str, Any]) -> Any:
    """Run one inbound event against the session actor. Returns None for unknown events."""
    if event_name == "meeting_started":
        data = MeetingStartedPayload.model_validate(payload)
        return await coach_actor.meeting_started(data.timestamp, data.url)

    if event_name == "analyze_frame":
        data = AnalyzeFramePayload.model_validate(payload)
        return await coach_actor.frame_analysis(data.frame, data.timestamp)

    if event_name == "meeting_ended":
        data = MeetingEndedPayload.model_validate(payload)
        return await coach_actor.meeting_ended(data.timestamp)

    if event_name == "set_monitoring":
        data = SetMonitoringPayload.model_validate(payload)
        return await coach_actor.set_monitoring(data.enabled)

    if event_name == "request_status":
        snapshot = await coach_actor.status()
        return snapshot.model_dump()

    if event_name == "notification_permission":
        data = NotificationPermissionPayload.model_validate(payload)
        level = await coach_actor.set_notification_permission(data.level)
        return {"ok": True, "level": level}

    return None


@router.websocket("/coach/ws")
async def coach_events(websocket: WebSocket) -> None:
    await websocket.accept()
    queue = session_bus.subscribe(COACH_CHANNEL)
    send_lock = asyncio.Lock()
    stop_event = asyncio.Event()

    await websocket.send_json({"event": "connected", "channel": COACH_CHANNEL})

    async def _forward_bus_events() -> None:
        try:
            while not stop_event.is_set():
                event = await queue.get()
                await _safe_send_json(websocket, send_lock, event)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("coach_ws_forward_failed")

    forward_task = asyncio.create_task(_forward_bus_events())

    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break

            text_payload = message.get("text")
            if text_payload is None:
                continue

            try:
                obj = json.loads(text_payload)
                if not isinstance(obj, dict):
                    raise ValueError("message must be a JSON object")
            except Exception as exc:
                await _safe_send_json(
                    websocket,
                    send_lock,
                    {
                        "event": "error",
                        "payload": {
                            "code": "invalid_json",
                            "message": str(exc),
                        },
                    },
                )
                continue

            event_name = str(obj.get("event") or "").strip()
            payload = _extract_payload(obj)
            try:
                result = await _dispatch(event_name, payload)
                if result is None:
                    await _safe_send_json(
                        websocket,
                        send_lock,
                        {
                            "event": "error",
                            "payload": {
                                "code": "unsupported_event",
                                "message": f"Unsupported event: {event_name or '<empty>'}",
                            },
                        },
                    )
                    continue

                await _safe_send_json(
                    websocket,
                    send_lock,
                    {
                        "event": f"{event_name}_ack",
                        "payload": result,
                    },
                )
            except ValidationError as exc:
                await _safe_send_json(
                    websocket,
                    send_lock,
                    {
                        "event": "error",
                        "payload": {
                            "code": "validation_error",
                            "message": str(exc),
                        },
                    },
                )
            except Exception as exc:
                logger.exception("coach_ws_event_failed event=%s", event_name)
                await _safe_send_json(
                    websocket,
                    send_lock,
                    {
                        "event": "error",
                        "payload": {
                            "code": "server_error",
                            "message": str(exc),
                        },
                    },
                )
    except WebSocketDisconnect:
        pass
    finally:
        stop_event.set()
        forward_task.cancel()
        session_bus.unsubscribe(COACH_CHANNEL, queue)
        try:
            await websocket.close()
        except Exception:
            pass
