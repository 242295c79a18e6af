"""
Month grid layout

Maps a view state, the event index and the available screen area onto a
5x7 grid of day cells. Painting is left to the curses renderer.
"""

from dataclasses import dataclass, field
from datetime import MAXYEAR, MINYEAR, datetime, date, time, timedelta, timezone
from typing import Iterable, List, NamedTuple, Optional, Tuple, Union

from termcal.events import EventIndex

GRID_ROWS = 5
GRID_COLUMNS = 7

ELLIPSIS = "…"

# Latest Monday whose 5 weeks, plus the day after, still fit in a date
LAST_GRID_START = date.max - timedelta(days=GRID_ROWS * GRID_COLUMNS)
LAST_GRID_START -= timedelta(days=LAST_GRID_START.weekday())

# Line styles, mapped to curses attributes by the renderer
STYLE_TODAY = "today"
STYLE_DAY = "day"
STYLE_EVENT = "event"
STYLE_MORE = "more"


class Line(NamedTuple):
    text: str
    style: str = STYLE_EVENT


@dataclass(frozen=True)
class MonthView:
    anchor: datetime


@dataclass(frozen=True)
class WeekView:
    anchor: datetime


ViewState = Union[MonthView, WeekView]


class UnsupportedViewError(Exception):
    """Raised when asked to lay out a view that has no layout yet"""

    def __init__(self, view):
        self.view = view
        super().__init__(f"{type(view).__name__} is not supported yet")


@dataclass
class GridCell:
    day: date
    header: Line
    lines: List[Line] = field(default_factory=list)


@dataclass
class MonthGrid:
    rows: List[List[GridCell]]
    cell_width: int
    cell_height: int

    @property
    def column_widths(self) -> List[int]:
        return [self.cell_width] * GRID_COLUMNS

    def cell_for(self, day: date) -> Optional[GridCell]:
        """Find the cell showing a given day"""
        for row in self.rows:
            for cell in row:
                if cell.day == day:
                    return cell
        return None


def initial_view(now: Optional[datetime] = None) -> MonthView:
    """Month view anchored on the first day of the current local month"""
    if now is None:
        now = datetime.now().astimezone()
    return MonthView(now.replace(day=1))


def shift_month(view: ViewState, delta: int) -> MonthView:
    """Month view anchored on day 1 of the month delta months from the view's anchor"""
    anchor = view.anchor
    year, month = divmod(anchor.year * 12 + (anchor.month - 1) + delta, 12)
    if not MINYEAR <= year <= MAXYEAR:
        return MonthView(anchor.replace(day=1))
    return MonthView(anchor.replace(year=year, month=month + 1, day=1))


def grid_start(anchor: datetime) -> date:
    """Step back from the anchor to the Monday that starts its week"""
    day = anchor
    while day.weekday() != 0:  # Monday=0
        day = day - timedelta(days=1)
    if isinstance(day, datetime):
        return day.date()
    return day


def day_range(day: date) -> Tuple[datetime, datetime]:
    """UTC bounds [start, end) of a calendar day

    The local day's boundaries are read as UTC instants, which is how all-day
    events are normalized at ingestion.
    """
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    if day == date.max:
        return start, datetime.max.replace(tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def render_event_line(summary: str, width: int) -> str:
    """Truncate a summary to width characters, marking the cut with an ellipsis"""
    if width < 1:
        return ""
    if len(summary) > width:
        return summary[:width - 1] + ELLIPSIS
    return summary


def more_lines(max_lines: int, lines: Iterable[Line]) -> List[Line]:
    """Bound lines to max_lines, replacing the overflow with an "N more" line"""
    lines = list(lines)
    if max_lines <= 0:
        return []
    if len(lines) <= max_lines:
        return lines

    kept = lines[:max_lines - 1]
    omitted = len(lines) - len(kept)
    kept.append(Line(f"{omitted} more", STYLE_MORE))
    return kept


def layout_month(view: MonthView, index: EventIndex, height: int, width: int,
                 today: Optional[date] = None) -> MonthGrid:
    """Lay out five weeks starting on the Monday on or before the view's anchor"""
    if today is None:
        today = datetime.now().astimezone().date()

    first_day = min(grid_start(view.anchor), LAST_GRID_START)
    cell_height = height // GRID_ROWS
    cell_width = width // GRID_COLUMNS

    rows = []
    for week in range(GRID_ROWS):
        row = []
        for weekday in range(GRID_COLUMNS):
            day = first_day + timedelta(days=week * GRID_COLUMNS + weekday)
            day_start, day_end = day_range(day)

            style = STYLE_TODAY if day == today else STYLE_DAY
            header = Line(day.strftime("%b %d"), style)

            event_lines = (
                Line(render_event_line(event.summary, cell_width), STYLE_EVENT)
                for event in index.range(day_start, day_end)
            )
            # One line of the cell is taken by the header
            row.append(GridCell(day, header, more_lines(cell_height - 1, event_lines)))
        rows.append(row)

    return MonthGrid(rows=rows, cell_width=cell_width, cell_height=cell_height)


def layout_view(view: ViewState, index: EventIndex, height: int, width: int,
                today: Optional[date] = None) -> MonthGrid:
    """Lay out the current view; only the month view is implemented"""
    if isinstance(view, MonthView):
        return layout_month(view, index, height, width, today=today)
    raise UnsupportedViewError(view)
