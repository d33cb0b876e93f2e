import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


def parse_iso8601_duration(value: str) -> timedelta:
    """Parse YouTube's ``contentDetails.duration`` (e.g. ``PT1H2M3S``)."""

    match = _DURATION_RE.match(str(value or "").strip())
    if not match:
        raise ValueError(f"Unsupported ISO-8601 duration: {value!r}")
    parts = {k: float(v) for k, v in match.groupdict().items() if v}
    return timedelta(
        days=parts.get("days", 0),
        hours=parts.get("hours", 0),
        minutes=parts.get("minutes", 0),
        seconds=parts.get("seconds", 0),
    )


def parse_published_at(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Video:
    id: str
    title: str = ""
    artist: str = ""
    published_at: Optional[datetime] = None
    duration: timedelta = field(default_factory=timedelta)
    language: str = ""

    @staticmethod
    def from_api_item(item: Dict[str, Any]) -> "Video":
        """Build a Video from a ``videos.list`` item with snippet + contentDetails."""

        snippet = item.get("snippet") or {}
        details = item.get("contentDetails") or {}
        return Video(
            id=str(item.get("id") or ""),
            title=str(snippet.get("title") or ""),
            artist=str(snippet.get("channelTitle") or ""),
            published_at=parse_published_at(snippet.get("publishedAt")),
            duration=parse_iso8601_duration(details.get("duration") or "PT0S"),
            language=str(snippet.get("defaultAudioLanguage") or ""),
        )


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

SORT_KEYS: Dict[str, Callable[[Video], Any]] = {
    "title": lambda v: v.title.casefold(),
    "duration": lambda v: v.duration,
    "published": lambda v: v.published_at or _EPOCH,
    "language": lambda v: v.language,
}


@dataclass
class Playlist:
    id: str
    title: str = ""
    channel_id: str = ""
    videos: List[Video] = field(default_factory=list)

    def sort_by(self, key: str, *, reverse: bool = False) -> None:
        """Reorder videos in place by one of SORT_KEYS (stable)."""

        if key not in SORT_KEYS:
            raise ValueError(f"Unknown sort key {key!r}; expected one of {sorted(SORT_KEYS)}")
        self.videos.sort(key=SORT_KEYS[key], reverse=reverse)

    @property
    def total_duration(self) -> timedelta:
        return sum((v.duration for v in self.videos), timedelta())
