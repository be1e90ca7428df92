"""Typed inference of attribute and body string values.

Strings are classified in a fixed order: empty, boolean literal, null
literal, numeric literal, date/time, compact timecode, ISO-8601 duration,
normal-play-time range and finally the raw string.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Union

from .casing import camelcase

_INTEGER = re.compile(r"^[+-]?\d+$")
_HEX_INTEGER = re.compile(r"^[+-]?0[xX][0-9a-fA-F]+$")
_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_ISO_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)
_COMPACT_DATE = re.compile(r"^(\d{14})\s*([+-]\d{4})$")
_RFC_2822_HINT = re.compile(r"^([A-Za-z]{3},\s*)?\d{1,2}\s+[A-Za-z]{3}\s+\d{2,4}")
_TIMECODE = re.compile(r"^([012]\d):(\d\d):(\d\d)([:;.])(\d\d)$")
_DURATION = re.compile(
    r"^P(?!$)(?:(\d+(?:\.\d+)?)Y)?(?:(\d+(?:\.\d+)?)M)?(?:(\d+(?:\.\d+)?)W)?"
    r"(?:(\d+(?:\.\d+)?)D)?(?:T(?=\d)(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?"
    r"(?:(\d+(?:\.\d+)?)S)?)?$"
)
_NPT_TIME = r"(now|\d+(?:\.\d*)?|\d+:\d{1,2}:\d{1,2}(?:\.\d*)?)"
_NPT_PREFIXED = re.compile(rf"^npt[=:]\s*{_NPT_TIME}-{_NPT_TIME}?$", re.IGNORECASE)
_NPT_CLOCK = re.compile(
    r"^(\d+:\d{1,2}:\d{1,2}(?:\.\d*)?)-(\d+:\d{1,2}:\d{1,2}(?:\.\d*)?)?$"
)


@dataclass(frozen=True)
class Timecode:
    """SMPTE timecode ``HH:MM:SS:FF``; ``;`` as frame separator marks drop-frame."""

    hours: int
    minutes: int
    seconds: int
    frames: int
    drop_frame: bool = False

    def total_frames(self, frame_rate: float = 30.0) -> int:
        """Count frames from zero at ``frame_rate`` ignoring drop-frame numbering."""
        seconds = self.hours * 3600 + self.minutes * 60 + self.seconds
        return int(round(seconds * frame_rate)) + self.frames

    def __str__(self) -> str:
        separator = ";" if self.drop_frame else ":"
        return (
            f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"
            f"{separator}{self.frames:02d}"
        )


@dataclass(frozen=True)
class Duration:
    """ISO-8601 duration such as ``PT1H30M``."""

    years: float = 0
    months: float = 0
    weeks: float = 0
    days: float = 0
    hours: float = 0
    minutes: float = 0
    seconds: float = 0

    def to_timedelta(self) -> timedelta:
        """Convert to ``timedelta``; calendar units have no fixed length."""
        if self.years or self.months:
            raise ValueError("Durations with years or months have no fixed length")
        return timedelta(
            weeks=self.weeks,
            days=self.days,
            hours=self.hours,
            minutes=self.minutes,
            seconds=self.seconds,
        )

    def total_seconds(self) -> float:
        """Get the duration length in seconds."""
        return self.to_timedelta().total_seconds()

    def __str__(self) -> str:
        def part(value: float, unit: str) -> str:
            if not value:
                return ""
            text = str(int(value)) if float(value).is_integer() else str(value)
            return f"{text}{unit}"

        date_part = "".join((
            part(self.years, "Y"),
            part(self.months, "M"),
            part(self.weeks, "W"),
            part(self.days, "D"),
        ))
        time_part = "".join((
            part(self.hours, "H"),
            part(self.minutes, "M"),
            part(self.seconds, "S"),
        ))
        if not date_part and not time_part:
            return "PT0S"
        return f"P{date_part}" + (f"T{time_part}" if time_part else "")


NptTime = Union[float, str]


@dataclass(frozen=True)
class NptRange:
    """Normal-play-time range (RFC 2326); ``start`` may be ``"now"``."""

    start: NptTime
    end: Optional[NptTime] = None

    @property
    def duration(self) -> Optional[float]:
        """Get the range length in seconds when both ends are numeric."""
        if isinstance(self.start, float) and isinstance(self.end, float):
            return self.end - self.start
        return None

    def __str__(self) -> str:
        def render(value: Optional[NptTime]) -> str:
            if value is None:
                return ""
            if isinstance(value, float) and value.is_integer():
                return str(int(value))
            return str(value)

        return f"npt={render(self.start)}-{render(self.end)}"


def _parse_npt_time(text: Optional[str]) -> Optional[NptTime]:
    if text is None:
        return None
    if text == "now":
        return text
    if ":" in text:
        hours, minutes, seconds = text.split(":")
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds or 0)
    return float(text)


def _parse_number(text: str) -> Optional[Union[int, float]]:
    stripped = text.strip()
    if _INTEGER.match(stripped):
        return int(stripped)
    if _HEX_INTEGER.match(stripped):
        return int(stripped, 16)
    if _FLOAT.match(stripped):
        number = float(stripped)
        if math.isfinite(number):
            return number
    return None


def _parse_date(text: str) -> Optional[datetime]:
    if _ISO_DATE.match(text):
        iso = text.replace(" ", "T", 1)
        if iso.endswith("Z"):
            iso = iso[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(iso)
        except ValueError:
            return None

    compact = _COMPACT_DATE.match(text)
    if compact:
        try:
            return datetime.strptime(f"{compact.group(1)} {compact.group(2)}",
                                     "%Y%m%d%H%M%S %z")
        except ValueError:
            return None

    if _RFC_2822_HINT.match(text):
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
        if parsed is not None and parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def _parse_timecode(text: str) -> Optional[Timecode]:
    match = _TIMECODE.match(text)
    if not match:
        return None
    hours, minutes, seconds, separator, frames = match.groups()
    return Timecode(int(hours), int(minutes), int(seconds), int(frames),
                    drop_frame=separator == ";")


def _parse_duration(text: str) -> Optional[Duration]:
    match = _DURATION.match(text)
    if not match:
        return None
    values = [float(group) if group else 0 for group in match.groups()]
    return Duration(*values)


def _parse_npt_range(text: str) -> Optional[NptRange]:
    match = _NPT_PREFIXED.match(text) or _NPT_CLOCK.match(text)
    if not match:
        return None
    start, end = match.groups()
    return NptRange(_parse_npt_time(start), _parse_npt_time(end))


def normalize_value(value: Any) -> Any:
    """Infer a typed value from an attribute or body string.

    Args:
        value: Raw value; anything that is not a string is returned unchanged

    Returns:
        ``bool``, ``None``, ``int``, ``float``, ``datetime``, ``Timecode``,
        ``Duration``, ``NptRange`` or the original string

    Example:
        >>> normalize_value("42"), normalize_value("true"), normalize_value("PT5M")
        (42, True, Duration(years=0, months=0, weeks=0, days=0, hours=0, minutes=5.0, seconds=0))
    """
    if not isinstance(value, str):
        return value

    text = str(value)
    if text == "":
        return ""
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None

    number = _parse_number(text)
    if number is not None:
        return number

    for parser in (_parse_date, _parse_timecode, _parse_duration, _parse_npt_range):
        parsed = parser(text)
        if parsed is not None:
            return parsed

    return text


def normalize_key(key: Any, preserve_consecutive_uppercase: bool = True) -> str:
    """Normalize an attribute or variable key to camelCase."""
    return camelcase(str(key), preserve_consecutive_uppercase=preserve_consecutive_uppercase)


def normalize_name(name: Optional[str]) -> str:
    """Normalize a node name for name-based addressing."""
    return (name or "").lower()
