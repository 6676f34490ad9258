"""Asynchronous events delivered to the frontend."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class EventType(str, Enum):
    """Known event types."""

    DOWNLOAD_PROGRESS = "download-progress"
    DOWNLOAD_COMPLETE = "download-complete"
    DOWNLOAD_ERROR = "download-error"
    QUEUE_CHANGED = "queue-changed"
    SERVICE_STATUS = "service-status-changed"
    LOG_MESSAGE = "log-message"


def _serialise(payload: Any) -> Any:
    to_dict = getattr(payload, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return payload


@dataclass(frozen=True)
class Event:
    """An event with a type and an optional payload."""

    type: Union[EventType, str]
    payload: Any = None

    def to_dict(self) -> dict:
        """JSON-ready form; the payload is left out when it is None."""
        kind = self.type.value if isinstance(self.type, EventType) else str(self.type)
        data: dict = {"type": kind}
        if self.payload is not None:
            data["payload"] = _serialise(self.payload)
        return data