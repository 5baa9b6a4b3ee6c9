import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .schema import DAYS_OF_WEEK

IMAGE_FILENAME_FORMAT = "%Y-%m-%d-%H-%M"
IMAGE_FILENAME_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})-(\d{2})-(\d{2})\.jpg$")


@dataclass(frozen=True)
class CaptureTime:
    local: datetime

    @property
    def iso(self) -> str:
        return self.local.isoformat(timespec="minutes")

    @property
    def day_of_week(self) -> str:
        return DAYS_OF_WEEK[self.local.weekday()]


def decode_capture_time(filename: str, tz) -> Optional[CaptureTime]:
    """Decode ``YYYY-MM-DD-HH-MM.jpg`` in ``tz``; None when it does not parse."""
    match = IMAGE_FILENAME_PATTERN.match(Path(filename).name)
    if not match:
        return None
    year, month, day, hour, minute = (int(part) for part in match.groups())
    try:
        naive = datetime(year, month, day, hour, minute)
    except ValueError:
        return None
    return CaptureTime(tz.localize(naive))


def build_image_filename(dt_local: datetime) -> str:
    return dt_local.strftime(IMAGE_FILENAME_FORMAT) + ".jpg"


def timestamp_matches(timestamp: str, capture: CaptureTime, tz) -> bool:
    """True when ``timestamp`` names the same local minute as the capture."""
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return False
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    expected = capture.local
    return (
        parsed.date() == expected.date()
        and parsed.hour == expected.hour
        and parsed.minute == expected.minute
    )
