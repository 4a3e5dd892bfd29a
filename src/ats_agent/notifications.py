"""Outbound notifications for the job-orchestration side of the system."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

NAVIGATION_STARTING = "NAVIGATION_STARTING"
NAVIGATION_FAILED = "NAVIGATION_FAILED"
NAVIGATION_COMPLETE = "NAVIGATION_COMPLETE"

Subscriber = Callable[[Dict[str, Any]], None]


class TelemetryWriter:
    """Append structured events to a run.jsonl file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fp = path.open("a", encoding="utf-8")

    def write(self, event: Dict[str, Any]) -> None:
        payload = dict(event)
        payload.setdefault("timestamp", datetime.utcnow().isoformat() + "Z")
        self._fp.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
        self._fp.flush()

    def close(self) -> None:
        try:
            self._fp.close()
        except Exception:  # noqa: BLE001
            pass


class EventChannel:
    """In-process message channel; every event also goes to the optional JSONL sink."""

    def __init__(self, sink: Optional[TelemetryWriter] = None) -> None:
        self.sink = sink
        self._subscribers: List[Subscriber] = []
        self.events: List[Dict[str, Any]] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        event = {"type": event_type, "payload": dict(payload)}
        self.events.append(event)
        logger.debug("Event %s %s", event_type, payload)
        if self.sink:
            self.sink.write({"event": event_type, "payload": payload})
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Subscriber failed on %s: %s", event_type, exc)

    def navigation_starting(self, job_id: Optional[str], url: str) -> None:
        self.emit(NAVIGATION_STARTING, {"jobId": job_id, "url": url})

    def navigation_failed(self, job_id: Optional[str], reason: str, message: str) -> None:
        self.emit(NAVIGATION_FAILED, {"jobId": job_id, "reason": reason, "message": message})

    def navigation_complete(self, job_id: Optional[str], message: str) -> None:
        self.emit(NAVIGATION_COMPLETE, {"jobId": job_id, "message": message})
