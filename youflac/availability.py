"""Classification of video availability failures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass
class AvailabilityResult:
    """Outcome of an availability check.

    ``reason`` is one of removed, age_restricted, geo_blocked, private,
    invalid_url or unknown when the video is not available.
    """

    available: bool
    reason: str = ""
    title: str = ""
    video_id: str = ""

    def to_dict(self) -> dict:
        data: dict = {"available": self.available}
        if self.reason:
            data["reason"] = self.reason
        if self.title:
            data["title"] = self.title
        if self.video_id:
            data["videoId"] = self.video_id
        return data


def classify_availability_error(error: Optional[Union[BaseException, str]]) -> str:
    """Map an error message to an availability reason; "" for no error."""
    if error is None:
        return ""
    msg = str(error).lower()
    if "private" in msg:
        return "private"
    if "age" in msg and "confirm" in msg:
        return "age_restricted"
    if "country" in msg or "geo" in msg:
        return "geo_blocked"
    if "removed" in msg or "unavailable" in msg:
        return "removed"
    return "unknown"