"""
Calendar event ingestion and indexing

Walks a directory of .ics files, parses them with icalendar and builds a
time-ordered index of events keyed by their UTC start instant.
"""

import bisect
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, date, time, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from icalendar import Calendar
from icalendar.timezone import tzp

logger = logging.getLogger(__name__)

CALENDAR_EXTENSION = ".ics"


class CalendarEvent:
    """Represents one calendar event, normalized to a UTC start instant"""

    def __init__(self, start: datetime, summary: str = "", uid: Optional[str] = None,
                 end: Optional[datetime] = None, location: Optional[str] = None,
                 is_all_day: bool = False, source: Optional[str] = None):
        self.start = start
        self.summary = summary
        self.uid = uid
        self.end = end
        self.location = location
        self.is_all_day = is_all_day
        self.source = source

    @classmethod
    def from_component(cls, component, source: Optional[str] = None,
                       known_tzids: Iterable[str] = ()) -> Optional['CalendarEvent']:
        """Build an event from a VEVENT component, or None if its start can't be normalized

        known_tzids are the VTIMEZONE ids defined by the enclosing calendar.
        """
        if _unknown_tzid(component, 'DTSTART', known_tzids):
            return None

        start_value = _decoded_value(component, 'DTSTART')
        start = utc_start(start_value)
        if start is None:
            return None

        end = None
        if not _unknown_tzid(component, 'DTEND', known_tzids):
            end = utc_start(_decoded_value(component, 'DTEND'))

        return cls(
            start=start,
            summary=_text_value(component, 'SUMMARY') or "",
            uid=_text_value(component, 'UID'),
            end=end,
            location=_text_value(component, 'LOCATION'),
            # datetime is a date subclass, so check it explicitly
            is_all_day=isinstance(start_value, date) and not isinstance(start_value, datetime),
            source=source,
        )

    def __eq__(self, other):
        if not isinstance(other, CalendarEvent):
            return NotImplemented
        return (self.start, self.summary, self.uid, self.end, self.location, self.is_all_day) == \
            (other.start, other.summary, other.uid, other.end, other.location, other.is_all_day)

    def __repr__(self):
        return f"CalendarEvent(start={self.start.isoformat()}, summary={self.summary!r})"


def _decoded_value(component, name: str):
    """Return the python value of a date/date-time property, or None"""
    prop = component.get(name)
    if prop is None:
        return None
    try:
        return prop.dt
    except (AttributeError, ValueError):
        # Values icalendar could not decode have no .dt, or raise on access
        return None


def _text_value(component, name: str) -> Optional[str]:
    """Return a text property as str, taking the first one when it repeats"""
    value = component.get(name)
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def _unknown_tzid(component, name: str, known_tzids: Iterable[str]) -> bool:
    """True when a date-time property names a TZID nothing can resolve"""
    prop = component.get(name)
    params = getattr(prop, 'params', None)
    if not params:
        return False
    tzid = params.get('TZID')
    if not tzid or tzid in known_tzids:
        return False
    try:
        return tzp.timezone(str(tzid)) is None
    except (KeyError, ValueError):
        return True


def utc_start(value) -> Optional[datetime]:
    """Normalize a DTSTART value to an aware UTC datetime

    Date-times are converted to UTC (floating times are taken as local time),
    bare dates become midnight UTC on that date. Anything else is None.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        try:
            return value.astimezone(timezone.utc)
        except (OverflowError, ValueError, OSError):
            return None

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    return None


class EventIndex:
    """Events keyed by UTC start instant, with keys kept in sorted order"""

    def __init__(self):
        self._keys: List[datetime] = []
        self._events: Dict[datetime, CalendarEvent] = {}

    def insert(self, event: CalendarEvent) -> Optional[CalendarEvent]:
        """Insert an event, returning the event it replaced (same start instant) if any"""
        key = event.start
        replaced = self._events.get(key)
        if replaced is None:
            bisect.insort(self._keys, key)
        self._events[key] = event
        return replaced

    def range(self, start: datetime, end: datetime, inclusive: bool = False) -> Iterator[CalendarEvent]:
        """Yield events with start <= key < end (or <= end when inclusive), in key order"""
        lo = bisect.bisect_left(self._keys, start)
        if inclusive:
            hi = bisect.bisect_right(self._keys, end)
        else:
            hi = bisect.bisect_left(self._keys, end)
        for key in self._keys[lo:hi]:
            yield self._events[key]

    def keys(self) -> List[datetime]:
        return list(self._keys)

    def get(self, key: datetime) -> Optional[CalendarEvent]:
        return self._events.get(key)

    def __contains__(self, key) -> bool:
        return key in self._events

    def __iter__(self) -> Iterator[CalendarEvent]:
        for key in self._keys:
            yield self._events[key]

    def __len__(self) -> int:
        return len(self._keys)


@dataclass
class SkipRecord:
    path: str
    reason: str


@dataclass
class IngestResult:
    index: EventIndex
    skipped: List[SkipRecord] = field(default_factory=list)


def iter_calendar_files(root: str) -> Iterator[str]:
    """Yield every .ics file under root, walking directories in sorted order"""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.endswith(CALENDAR_EXTENSION):
                yield os.path.join(dirpath, filename)


def _invalid_start_reason(component) -> str:
    errors = getattr(component, 'errors', None) or []
    if component.get('DTSTART') is not None or any(name == 'DTSTART' for name, _ in errors):
        return "invalid start"
    return "missing start"


def load_calendar_file(path: str, index: EventIndex, skipped: List[SkipRecord]) -> int:
    """Parse one calendar file into the index, returning the number of events added"""
    try:
        with open(path, encoding='utf-8') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        skipped.append(SkipRecord(path, f"unreadable: {e}"))
        logger.debug("Skipping unreadable file %s: %s", path, e)
        return 0

    try:
        calendars = Calendar.from_ical(content, multiple=True)
    except Exception as e:
        skipped.append(SkipRecord(path, f"unparseable: {e}"))
        logger.debug("Skipping unparseable file %s: %s", path, e)
        return 0

    added = 0
    for calendar in calendars:
        tzids = {str(tz.get('TZID')) for tz in calendar.walk('VTIMEZONE') if tz.get('TZID')}
        for component in calendar.walk('VEVENT'):
            event = CalendarEvent.from_component(component, source=path, known_tzids=tzids)
            if event is None:
                reason = _invalid_start_reason(component)
                skipped.append(SkipRecord(path, reason))
                logger.debug("Dropping event %r from %s: %s", _text_value(component, 'SUMMARY'), path, reason)
                continue

            replaced = index.insert(event)
            if replaced is not None:
                skipped.append(SkipRecord(
                    replaced.source or path,
                    f"replaced by later event at {event.start.isoformat()}",
                ))
                logger.debug("Event %r replaced %r at %s", event.summary, replaced.summary, event.start.isoformat())
            added += 1

    return added


def load_calendar_dir(root: str) -> IngestResult:
    """Build the event index from every calendar file under root

    Unreadable files, unparseable documents and events without a usable start
    are skipped and reported in IngestResult.skipped rather than raised.
    """
    if not os.path.isdir(root):
        raise FileNotFoundError(f"Calendar directory not found: {root}")

    index = EventIndex()
    skipped: List[SkipRecord] = []
    files = 0

    for path in iter_calendar_files(root):
        files += 1
        load_calendar_file(path, index, skipped)

    logger.info("Indexed %d events from %d calendar files under %s (%d skipped)",
                len(index), files, root, len(skipped))
    return IngestResult(index=index, skipped=skipped)
