#!/usr/bin/env python3
"""
Terminal Calendar Viewer
Reads .ics files from a local directory and shows the month as a grid

Requirements:
    pip install icalendar pyyaml
"""

import curses
import logging
import sys
import argparse
from datetime import datetime
from pathlib import Path
from typing import Optional

from termcal.config import CONFIG_DEFAULT_PATH, ConfigError, load_config, resolve_calendar_dir
from termcal.events import IngestResult, load_calendar_dir
from termcal.layout import (
    STYLE_DAY, STYLE_MORE, STYLE_TODAY,
    GridCell, MonthGrid, UnsupportedViewError, ViewState,
    initial_view, layout_view, shift_month,
)

logger = logging.getLogger(__name__)

# Rows kept below the grid for the status footer
FOOTER_HEIGHT = 1


class CalendarTUI:
    """Terminal UI showing the indexed events as a month grid"""

    def __init__(self, stdscr, ingest: IngestResult, debug: bool = False):
        self.stdscr = stdscr
        self.events = ingest.index
        self.skipped = ingest.skipped
        self.debug = debug
        self.view: ViewState = initial_view()

        self._init_colors()

        # Hide cursor
        curses.curs_set(0)

    def _init_colors(self):
        """Register the color pairs used by the grid"""
        curses.start_color()

        curses.init_pair(1, curses.COLOR_GREEN, curses.COLOR_BLACK)   # Current day header
        curses.init_pair(2, curses.COLOR_BLUE, curses.COLOR_BLACK)    # Other day headers
        curses.init_pair(3, curses.COLOR_YELLOW, curses.COLOR_BLACK)  # "N more" lines
        curses.init_pair(4, curses.COLOR_RED, curses.COLOR_BLACK)     # Errors on the status line

    def style_attr(self, style: str) -> int:
        """Map a layout line style to a curses attribute"""
        if style == STYLE_TODAY:
            return curses.color_pair(1) | curses.A_BOLD
        if style == STYLE_DAY:
            return curses.color_pair(2) | curses.A_BOLD
        if style == STYLE_MORE:
            return curses.color_pair(3)
        return curses.A_NORMAL

    def grid_area(self):
        """Height and width available to the grid"""
        height, width = self.stdscr.getmaxyx()
        return max(0, height - FOOTER_HEIGHT), width

    def draw_cell(self, y: int, x: int, cell: GridCell, grid: MonthGrid):
        """Draw one day cell with its top-left corner at (y, x)"""
        lines = [cell.header] + cell.lines
        for offset, line in enumerate(lines[:grid.cell_height]):
            try:
                self.stdscr.addnstr(y + offset, x, line.text, grid.cell_width, self.style_attr(line.style))
            except curses.error:
                # Writing into the bottom-right corner raises even when it succeeds
                pass

    def draw_grid(self, grid: MonthGrid):
        for week, row in enumerate(grid.rows):
            for weekday, cell in enumerate(row):
                self.draw_cell(week * grid.cell_height, weekday * grid.cell_width, cell, grid)

    def draw_footer(self, error: Optional[str] = None):
        """Draw the status line with counts and key help"""
        height, width = self.stdscr.getmaxyx()
        if height < 1 or width < 1:
            return

        if error:
            text, attr = error, curses.color_pair(4) | curses.A_BOLD
        else:
            month = self.view.anchor.strftime("%B %Y")
            text = f"{month} | {len(self.events)} events, {len(self.skipped)} skipped | ←/→: Prev/Next Month | t: Today | q: Quit"
            if self.debug:
                text += " | DEBUG"
            attr = curses.A_DIM

        try:
            self.stdscr.addnstr(height - 1, 0, text, max(0, width - 1), attr)
        except curses.error:
            pass

    def draw(self):
        """Draw the entire UI"""
        self.stdscr.erase()

        height, width = self.grid_area()
        error = None
        try:
            grid = layout_view(self.view, self.events, height, width)
        except UnsupportedViewError as e:
            error = f"❌ {e}"
        else:
            self.draw_grid(grid)

        self.draw_footer(error)
        self.stdscr.refresh()

    def handle_key(self, key: int) -> bool:
        """Apply a key press, returning False when the app should exit"""
        if key in (ord('q'), ord('Q')):
            return False

        if key in (curses.KEY_LEFT, ord('h')):
            self.view = shift_month(self.view, -1)
        elif key in (curses.KEY_RIGHT, ord('l')):
            self.view = shift_month(self.view, 1)
        elif key == ord('t'):
            self.view = initial_view()
        elif key == curses.KEY_RESIZE:
            logger.debug("Terminal resized to %s", self.stdscr.getmaxyx())
        return True

    def run(self):
        """Main event loop"""
        self.draw()
        while True:
            key = self.stdscr.getch()
            if not self.handle_key(key):
                break
            self.draw()


def dump_events(ingest: IngestResult, out=None):
    """Print the index and skip records without starting curses"""
    if out is None:
        out = sys.stdout
    for event in ingest.index:
        if event.is_all_day:
            when = event.start.strftime('%Y-%m-%d')
        else:
            when = event.start.astimezone().strftime('%Y-%m-%d %H:%M')
        print(f"{when}  {event.summary}", file=out)
    for record in ingest.skipped:
        print(f"skipped {record.path}: {record.reason}", file=out)


def main(argv=None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Terminal month view of local .ics calendars')
    parser.add_argument('--config', default=str(CONFIG_DEFAULT_PATH), help='Path to config YAML')
    parser.add_argument('--calendar-dir', help='Directory to scan for .ics files (overrides config)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging to stderr')
    parser.add_argument('--dump', action='store_true', help='Print indexed events and exit')

    args = parser.parse_args(argv)

    debug = args.debug
    if args.calendar_dir:
        calendar_dir = resolve_calendar_dir(args.calendar_dir)
    else:
        try:
            config = load_config(Path(args.config).expanduser())
        except ConfigError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        calendar_dir = config.calendar_dir
        debug = debug or config.debug

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='[%(levelname)s] %(name)s: %(message)s',
        stream=sys.stderr,
    )

    started = datetime.now()
    try:
        ingest = load_calendar_dir(str(calendar_dir))
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    logger.debug("Ingestion took %.3fs", (datetime.now() - started).total_seconds())

    if args.dump:
        dump_events(ingest)
        return 0

    def curses_main(stdscr):
        """Curses wrapper function"""
        CalendarTUI(stdscr, ingest, debug=debug).run()

    # Print debug instructions before curses takes over the terminal
    if debug:
        print("Debug logs are being written to stderr. Redirect them with:", file=sys.stderr)
        print("  termcal --debug 2>debug.log", file=sys.stderr)

    try:
        curses.wrapper(curses_main)
    except KeyboardInterrupt:
        pass

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
