"""
Route search primitives
=======================

1. **Search keys** -- origin and destination are stored alongside a folded
   key (NFKD, combining marks dropped, case-folded) so ``"bouake"`` finds
   ``"Bouaké"`` with a plain ``LIKE``.
2. **Day window** -- a requested calendar date becomes a half-open UTC
   interval ``[start, end)`` shifted by the marketplace's UTC offset.
3. **Keyset cursor** -- results are ordered by ``(departure_time, id)``; a
   cursor is the last pair seen, so a search can be resumed without server
   state.

Complexity: O(len(text)) per key, O(1) for windows and cursors.
"""

from __future__ import annotations

import base64
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .clock import as_utc
from .errors import ValidationError

MAX_PARTY_SIZE = 8


def search_key(text: str) -> str:
    """Fold *text* for accent- and case-insensitive substring matching."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


def like_pattern(fragment: str) -> str:
    """``%fragment%`` with LIKE wildcards escaped (escape char ``\\``)."""
    escaped = (
        fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def day_window(day: date, utc_offset_minutes: int = 0) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` bounds of *day* in the local offset."""
    local_tz = timezone(timedelta(minutes=utc_offset_minutes))
    start = datetime.combine(day, time.min, tzinfo=local_tz).astimezone(timezone.utc)
    return start, start + timedelta(days=1)


@dataclass(frozen=True)
class SearchCriteria:
    origin: str = ""
    destination: str = ""
    date: Optional[date] = None
    min_seats: int = 1

    def __post_init__(self):
        if isinstance(self.min_seats, bool) or not isinstance(self.min_seats, int):
            raise ValidationError("min_seats must be an integer", field="min_seats")
        if not 1 <= self.min_seats <= MAX_PARTY_SIZE:
            raise ValidationError(
                f"min_seats must be between 1 and {MAX_PARTY_SIZE}",
                field="min_seats",
            )

    @property
    def origin_key(self) -> str:
        return search_key(self.origin)

    @property
    def destination_key(self) -> str:
        return search_key(self.destination)


@dataclass(frozen=True)
class SearchCursor:
    departure_time: datetime
    ride_id: str

    def encode(self) -> str:
        raw = f"{as_utc(self.departure_time).isoformat()}|{self.ride_id}"
        return base64.urlsafe_b64encode(raw.encode()).decode()

    @classmethod
    def decode(cls, token: str) -> "SearchCursor":
        try:
            raw = base64.urlsafe_b64decode(token.encode()).decode()
            stamp, ride_id = raw.split("|", 1)
            return cls(as_utc(datetime.fromisoformat(stamp)), ride_id)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError("malformed search cursor", field="cursor") from exc
