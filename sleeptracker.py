#!/usr/bin/env python3
"""
SleepTracker CLI - Daily sleep log with history table and 7-day chart

A small personal tool for recording when you went to sleep and when you woke
up. Each saved entry keeps its derived duration, and the whole log lives in a
single JSON file on disk.

Features:
- Log sleep with date, bedtime and wake time (overnight sleep handled)
- Sleep history table, most recent night first
- 7-day bar chart in the terminal and as a PNG image (auto-displayed)
- Reset the whole history after confirmation
- Interactive menu when run without arguments

License: MIT
"""

import argparse
import contextlib
import json
import logging
import os
import subprocess
import sys
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Configuration
DATA_FILE = Path.home() / ".sleeptracker" / "sleep_history.json"
DATA_FILE_ENV = "SLEEPTRACKER_DATA"
STORAGE_KEY = "sleepHistory"
DEFAULT_SLEEP_TIME = "22:00"
DEFAULT_WAKE_TIME = "06:00"
CHART_DAYS = 7
CHART_MAX_HOURS = 12
CHART_COLOR = '#9DB2BF'
CHART_FILE_NAME = "sleep_chart.png"
RESET_PROMPT = "Are you sure you want to delete all sleep history?"

# ANSI colors for terminal output
class Colors:
    RED = '\033[91m'
    YELLOW = '\033[93m'
    GREEN = '\033[92m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    MAGENTA = '\033[95m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    END = '\033[0m'


@dataclass(frozen=True)
class SleepEntry:
    """One recorded night. `duration` is in minutes and derived at save time."""
    id: str
    date: str
    sleep_time: str
    wake_time: str
    duration: int

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date,
            'sleepTime': self.sleep_time,
            'wakeTime': self.wake_time,
            'duration': self.duration,
        }

    @classmethod
    def from_dict(cls, raw):
        """Build an entry from its stored form, raising ValueError if malformed."""
        if not isinstance(raw, dict):
            raise ValueError(f"entry is not an object: {raw!r}")
        try:
            entry = cls(
                id=str(raw['id']),
                date=raw['date'],
                sleep_time=raw['sleepTime'],
                wake_time=raw['wakeTime'],
                duration=raw['duration'],
            )
        except KeyError as e:
            raise ValueError(f"entry is missing field {e}") from e

        for name in ('date', 'sleep_time', 'wake_time'):
            if not isinstance(getattr(entry, name), str):
                raise ValueError(f"entry {entry.id}: {name} must be a string")
        if datetime.strptime(entry.date, '%Y-%m-%d').date().isoformat() != entry.date:
            raise ValueError(f"entry {entry.id}: date {entry.date!r} is not YYYY-MM-DD")
        if isinstance(entry.duration, bool) or not isinstance(entry.duration, int) or entry.duration < 0:
            raise ValueError(f"entry {entry.id}: invalid duration {entry.duration!r}")
        return entry


class LoadResult(NamedTuple):
    """Entries read from storage; `error` holds a diagnostic when they were discarded."""
    entries: List[SleepEntry]
    error: Optional[str] = None


class ChartBucket(NamedTuple):
    date: str
    label: str
    hours: float


def new_entry_id():
    return uuid.uuid4().hex

def parse_clock(value):
    """Parse an HH:MM 24-hour time into (hour, minute). Raises ValueError."""
    if not isinstance(value, str):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    parts = value.strip().split(':')
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time out of range: {value!r}")
    return hour, minute

def normalize_clock(value):
    """Rewrite a valid time as zero-padded HH:MM; malformed values are returned unchanged."""
    try:
        hour, minute = parse_clock(value)
    except ValueError:
        return value
    return f"{hour:02d}:{minute:02d}"

def calculate_duration(reference_date, sleep_time, wake_time):
    """
    Minutes slept between sleep_time and wake_time on reference_date.

    If the wake time is earlier than the sleep time, the wake is taken to be
    on the following day (sleep crossing midnight). Arithmetic is on naive
    datetimes, so daylight-saving transitions are not accounted for.
    Malformed times give a duration of 0.
    """
    try:
        sleep_hour, sleep_minute = parse_clock(sleep_time)
        wake_hour, wake_minute = parse_clock(wake_time)
        sleep_dt = datetime.combine(reference_date, time(sleep_hour, sleep_minute))
        wake_dt = datetime.combine(reference_date, time(wake_hour, wake_minute))
        if wake_dt < sleep_dt:
            wake_dt += timedelta(days=1)
    except (ValueError, OverflowError) as e:
        logger.warning("Error calculating duration: %s", e)
        return 0

    return int((wake_dt - sleep_dt).total_seconds() // 60)

def minutes_to_hours(minutes):
    """Convert minutes to hours, rounded half-up to one decimal place."""
    hours = (Decimal(minutes) / Decimal(60)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    return float(hours)

def format_duration(minutes):
    """Format minutes as 'X hours and Y minutes'."""
    hours, mins = divmod(minutes, 60)
    return f"{hours} hours and {mins} minutes"

def format_duration_short(minutes):
    """Format minutes as 'Xh Ym'."""
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"

def format_entry_date(date_str):
    """Convert YYYY-MM-DD to 'Mon DD, YYYY'."""
    return datetime.strptime(date_str, '%Y-%m-%d').strftime('%b %d, %Y')

def parse_date(value, today=None):
    """Parse YYYY-MM-DD, MM-DD (current year), 'today' or 'yesterday'."""
    today = today or date.today()
    text = value.strip().lower()
    if text == 'today':
        return today
    if text == 'yesterday':
        return today - timedelta(days=1)
    if len(text) == 5 and '-' in text:  # MM-DD format
        text = f"{today.year}-{text}"
    try:
        return datetime.strptime(text, '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"invalid date {value!r}, expected YYYY-MM-DD, MM-DD, today or yesterday") from None

def get_color_for_sleep(hours):
    """Return color based on sleep duration."""
    if hours >= 7.0:
        return Colors.GREEN
    elif hours >= 6.0:
        return Colors.YELLOW
    else:
        return Colors.RED


class SleepStore:
    """
    JSON file holding the whole sleep log under a single key.

    Every save rewrites the full list; there is no incremental append.
    """

    def __init__(self, path=DATA_FILE, key=STORAGE_KEY):
        self.path = Path(path)
        self.key = key

    def load(self):
        """Return the saved entries, or an empty list plus a diagnostic if they can't be read."""
        if not self.path.exists():
            return LoadResult([])

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            return self._discard(f"could not read {self.path}: {e}")

        if not isinstance(data, dict):
            return self._discard(f"{self.path} does not hold a JSON object")
        if self.key not in data:
            return LoadResult([])

        raw_entries = data[self.key]
        if not isinstance(raw_entries, list):
            return self._discard(f"{self.key!r} in {self.path} is not a list")

        try:
            entries = [SleepEntry.from_dict(raw) for raw in raw_entries]
        except ValueError as e:
            return self._discard(f"malformed entry in {self.path}: {e}")

        logger.debug("Loaded %d entries from %s", len(entries), self.path)
        return LoadResult(entries)

    def _discard(self, reason):
        logger.warning("Error loading sleep history, starting empty: %s", reason)
        return LoadResult([], reason)

    def save(self, entries):
        """Overwrite the stored list with `entries`. Returns False if the write failed."""
        payload = {self.key: [entry.to_dict() for entry in entries]}
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Error saving sleep data to %s: %s", self.path, e)
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            return False

        logger.debug("Saved %d entries to %s", len(entries), self.path)
        return True

    def clear(self):
        """Remove the stored list. Returns False if the file could not be removed."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Error clearing sleep data at %s: %s", self.path, e)
            return False
        return True


def sort_history(entries):
    """Entries ordered by date, newest first. Same-date entries keep insertion order."""
    return sorted(entries, key=lambda e: e.date, reverse=True)

def latest_duration_by_date(entries):
    """
    Map each date to a single duration in minutes.

    When several entries share a date, the most recently inserted one (the
    last in list order) wins.
    """
    durations = {}
    for entry in entries:
        durations[entry.date] = entry.duration
    return durations

def chart_buckets(entries, today, days=CHART_DAYS):
    """Hours slept on each of the `days` calendar days ending today, oldest first."""
    durations = latest_duration_by_date(entries)
    buckets = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        key = day.isoformat()
        minutes = durations.get(key)
        hours = minutes_to_hours(minutes) if minutes is not None else 0.0
        buckets.append(ChartBucket(key, day.strftime('%b %d'), hours))
    return buckets


class SleepTracker:
    """
    Application state: the in-memory sleep log and the store behind it.

    Views only render once `load()` has run.
    """

    def __init__(self, store, today=None):
        self.store = store
        self.today = today
        self.entries = []
        self.loaded = False

    def current_date(self):
        return self.today or date.today()

    def load(self):
        result = self.store.load()
        self.entries = list(result.entries)
        self.loaded = True
        return result

    def add_entry(self, entry_date, sleep_time, wake_time):
        """Create an entry, append it and rewrite storage. Returns the new entry."""
        if not self.loaded:
            self.load()

        entry = SleepEntry(
            id=new_entry_id(),
            date=entry_date.isoformat(),
            sleep_time=normalize_clock(sleep_time),
            wake_time=normalize_clock(wake_time),
            duration=calculate_duration(entry_date, sleep_time, wake_time),
        )
        # memory keeps the entry even if the write fails
        self.entries = self.entries + [entry]
        self.store.save(self.entries)
        logger.info("Saved entry %s for %s (%d min)", entry.id, entry.date, entry.duration)
        return entry

    def reset(self, confirm):
        """Delete all history if `confirm(prompt)` returns true."""
        if not confirm(RESET_PROMPT):
            return False
        self.store.clear()
        self.entries = []
        logger.info("Sleep history reset")
        return True

    def history(self):
        return sort_history(self.entries)

    def chart_buckets(self):
        return chart_buckets(self.entries, self.current_date())


def resolve_data_file(cli_value=None, environ=None):
    """Data file from --data-file, then $SLEEPTRACKER_DATA, then the default."""
    environ = os.environ if environ is None else environ
    if cli_value:
        return Path(cli_value).expanduser()
    if environ.get(DATA_FILE_ENV):
        return Path(environ[DATA_FILE_ENV]).expanduser()
    return DATA_FILE

def default_chart_path(tracker):
    return tracker.store.path.parent / CHART_FILE_NAME

def ask_confirmation(prompt):
    answer = input(f"{Colors.YELLOW}{prompt}{Colors.END} [y/N]: ").strip().lower()
    return answer in ('y', 'yes')

def open_image(filepath):
    """Open an image file in the default viewer (cross-platform)."""
    try:
        if sys.platform == 'darwin':  # macOS
            subprocess.Popen(['open', str(filepath)])
        elif sys.platform == 'win32':  # Windows
            os.startfile(str(filepath))
        else:  # Linux
            subprocess.Popen(['xdg-open', str(filepath)])
    except OSError as e:
        logger.warning("Could not auto-open %s: %s", filepath, e)
        print(f"{Colors.YELLOW}Could not auto-open {filepath}: {e}{Colors.END}")

def plot_chart(buckets, path):
    """Write the 7-day bar chart as a PNG and return its path."""
    from matplotlib.figure import Figure
    import numpy as np

    fig = Figure(figsize=(8, 3.5))
    fig.patch.set_facecolor('white')
    ax = fig.subplots()

    x = np.arange(len(buckets))
    hours = np.array([b.hours for b in buckets])
    bars = ax.bar(x, hours, color=CHART_COLOR, width=0.6)

    for bar, h in zip(bars, hours):
        if h > 0:
            ax.text(bar.get_x() + bar.get_width() / 2., min(h, CHART_MAX_HOURS) + 0.15,
                    f'{h:.1f}', ha='center', va='bottom', fontsize=9, color='#353839')

    ax.set_xticks(x)
    ax.set_xticklabels([b.label for b in buckets], color='#353839', fontsize=10)
    ax.set_ylim(0, CHART_MAX_HOURS)
    ax.set_ylabel('Hours', color='#D3D3D3', fontsize=11)
    ax.set_title('Sleep Duration (Last 7 Days)', fontsize=13, fontweight='bold', color='#353839', loc='left')
    ax.tick_params(axis='y', colors='#353839')
    ax.tick_params(axis='x', length=0)
    for side in ('top', 'right'):
        ax.spines[side].set_visible(False)
    for side in ('left', 'bottom'):
        ax.spines[side].set_color('#E7E7E7')

    fig.tight_layout()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150)
    return path

def render_history(tracker):
    """Print the sleep history table."""
    if not tracker.loaded:
        print(f"{Colors.DIM}Loading...{Colors.END}")
        return

    print(f"\n{Colors.BOLD}{Colors.CYAN}Sleep History{Colors.END}\n")
    rows = tracker.history()
    if not rows:
        print(f"  {Colors.DIM}No sleep data recorded yet.{Colors.END}\n")
        return

    print(f"  {Colors.DIM}{'Date':<14} {'Sleep Time':>10} {'Wake Time':>10} {'Duration':>10}{Colors.END}")
    print(f"  {'-'*47}")
    for entry in rows:
        color = get_color_for_sleep(entry.duration / 60)
        print(f"  {format_entry_date(entry.date):<14} {Colors.MAGENTA}{entry.sleep_time:>10}{Colors.END} "
              f"{Colors.BLUE}{entry.wake_time:>10}{Colors.END} {color}{format_duration_short(entry.duration):>10}{Colors.END}")
    print()

def render_chart(tracker):
    """Print the 7-day chart as horizontal bars."""
    if not tracker.loaded:
        print(f"{Colors.DIM}Loading...{Colors.END}")
        return

    print(f"\n{Colors.BOLD}{Colors.CYAN}Sleep Duration (Last 7 Days){Colors.END}\n")
    for bucket in tracker.chart_buckets():
        if bucket.hours <= 0:
            print(f"  {bucket.label:<7} {Colors.DIM}{'--':>5}{Colors.END}")
            continue
        color = get_color_for_sleep(bucket.hours)
        bar = '█' * int(bucket.hours * 3)
        print(f"  {bucket.label:<7} {color}{bucket.hours:>4.1f}h{Colors.END}  {color}{bar}{Colors.END}")
    print()

def print_saved(entry):
    color = get_color_for_sleep(entry.duration / 60)
    print(f"\n{Colors.GREEN}Saved:{Colors.END} {format_entry_date(entry.date)}  "
          f"{Colors.MAGENTA}{entry.sleep_time}{Colors.END} → {Colors.BLUE}{entry.wake_time}{Colors.END}")
    print(f"  {Colors.BOLD}Sleep Duration:{Colors.END} {color}{format_duration(entry.duration)}{Colors.END}\n")

def cmd_add(args, tracker):
    """Save a sleep entry from the command line."""
    try:
        entry_date = parse_date(args.date, tracker.current_date()) if args.date else tracker.current_date()
    except ValueError as e:
        print(f"{Colors.RED}Error: {e}{Colors.END}", file=sys.stderr)
        return 2

    entry = tracker.add_entry(entry_date, args.sleep, args.wake)
    print_saved(entry)
    return 0

def cmd_history(args, tracker):
    """Show the sleep history table."""
    render_history(tracker)
    return 0

def cmd_chart(args, tracker):
    """Show the 7-day chart and write it as a PNG."""
    render_chart(tracker)
    if args.no_image:
        return 0

    try:
        path = plot_chart(tracker.chart_buckets(), args.png or default_chart_path(tracker))
    except ImportError:
        print(f"{Colors.RED}Error: matplotlib required for chart images.{Colors.END}")
        print("Install with: pip install matplotlib")
        return 1
    except OSError as e:
        logger.error("Error writing chart image: %s", e)
        print(f"{Colors.RED}Could not write chart image: {e}{Colors.END}")
        return 1

    print(f"{Colors.GREEN}Generated:{Colors.END} {path}")
    if not args.no_open:
        open_image(path)
    return 0

def cmd_reset(args, tracker):
    """Delete all sleep history after confirmation."""
    confirm = (lambda prompt: True) if args.yes else ask_confirmation
    if tracker.reset(confirm):
        print(f"{Colors.GREEN}All sleep history deleted.{Colors.END}")
    else:
        print(f"{Colors.DIM}Reset cancelled.{Colors.END}")
    return 0

def cmd_interactive_log(tracker):
    """Interactive entry form."""
    print(f"\n{Colors.BOLD}{Colors.CYAN}Log Sleep Entry{Colors.END}\n")

    date_input = input("Date (YYYY-MM-DD, MM-DD, today, yesterday) [today]: ").strip()
    try:
        entry_date = parse_date(date_input, tracker.current_date()) if date_input else tracker.current_date()
    except ValueError as e:
        print(f"{Colors.YELLOW}{e}. Cancelled.{Colors.END}")
        return None

    sleep_time = input(f"Sleep time (HH:MM) [{DEFAULT_SLEEP_TIME}]: ").strip() or DEFAULT_SLEEP_TIME
    wake_time = input(f"Wake time (HH:MM) [{DEFAULT_WAKE_TIME}]: ").strip() or DEFAULT_WAKE_TIME

    entry = tracker.add_entry(entry_date, sleep_time, wake_time)
    print_saved(entry)
    return entry

def interactive_mode(tracker):
    """Main interactive mode - menu over the loaded sleep log."""
    while True:
        entries = tracker.history()

        print(f"{Colors.BOLD}{'='*60}{Colors.END}")
        print(f"{Colors.BOLD}{Colors.CYAN}  SLEEP TRACKER{Colors.END}")
        print(f"{Colors.BOLD}{'='*60}{Colors.END}\n")

        print(f"  {Colors.BOLD}Entries recorded:{Colors.END} {len(tracker.entries)}")
        if entries:
            last = entries[0]
            print(f"  {Colors.DIM}Most recent: {format_entry_date(last.date)} - "
                  f"{format_duration_short(last.duration)}{Colors.END}")

        print(f"\n{Colors.BOLD}{'─'*60}{Colors.END}")
        print(f"  {Colors.CYAN}1{Colors.END}  Log sleep")
        print(f"  {Colors.CYAN}2{Colors.END}  View 7-day chart")
        print(f"  {Colors.CYAN}3{Colors.END}  View history")
        print(f"  {Colors.CYAN}4{Colors.END}  Refresh chart image")
        print(f"  {Colors.RED}5{Colors.END}  Reset history")
        print(f"  {Colors.CYAN}q{Colors.END}  Quit")
        print(f"{Colors.BOLD}{'─'*60}{Colors.END}")

        try:
            choice = input(f"\n{Colors.BOLD}Choose option:{Colors.END} ").strip().lower()

            if choice == '1':
                cmd_interactive_log(tracker)
            elif choice == '2':
                render_chart(tracker)
            elif choice == '3':
                render_history(tracker)
            elif choice == '4':
                cmd_chart(argparse.Namespace(no_image=False, png=None, no_open=False), tracker)
            elif choice == '5':
                cmd_reset(argparse.Namespace(yes=False), tracker)
            elif choice in ('q', 'quit', 'exit'):
                print(f"\n{Colors.GREEN}Sleep well!{Colors.END}\n")
                return 0
            else:
                print(f"{Colors.YELLOW}Invalid option. Please enter 1-5 or q.{Colors.END}")

            input(f"\n{Colors.DIM}Press Enter to continue...{Colors.END}")
        except (EOFError, KeyboardInterrupt):
            print()
            return 0
        print("\n" * 2)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='sleeptracker',
        description='SleepTracker - Log nightly sleep and review the last week',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Run without arguments for the interactive menu.

Direct commands:
  sleeptracker add                        Log 22:00 -> 06:00 for today
  sleeptracker add -d yesterday -s 23:30 -w 07:15
  sleeptracker history                    Show all entries, newest first
  sleeptracker chart                      Show & open the 7-day chart
  sleeptracker reset                      Delete all history (asks first)
        """
    )
    parser.add_argument('--data-file', help=f'Sleep log JSON file (default: ${DATA_FILE_ENV} or {DATA_FILE})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    add_parser = subparsers.add_parser('add', help='Save a sleep entry')
    add_parser.add_argument('-d', '--date', help='Date: YYYY-MM-DD, MM-DD, today, or yesterday (default: today)')
    add_parser.add_argument('-s', '--sleep', default=DEFAULT_SLEEP_TIME, help=f'Sleep time HH:MM (default: {DEFAULT_SLEEP_TIME})')
    add_parser.add_argument('-w', '--wake', default=DEFAULT_WAKE_TIME, help=f'Wake time HH:MM (default: {DEFAULT_WAKE_TIME})')
    add_parser.set_defaults(func=cmd_add)

    history_parser = subparsers.add_parser('history', help='Show sleep history')
    history_parser.set_defaults(func=cmd_history)

    chart_parser = subparsers.add_parser('chart', help='Show the 7-day chart')
    chart_parser.add_argument('--png', help=f'Where to write the chart image (default: {CHART_FILE_NAME} next to the data file)')
    chart_parser.add_argument('--no-image', action='store_true', help='Terminal chart only')
    chart_parser.add_argument('--no-open', action='store_true', help='Write the image without opening it')
    chart_parser.set_defaults(func=cmd_chart)

    reset_parser = subparsers.add_parser('reset', help='Delete all sleep history')
    reset_parser.add_argument('-y', '--yes', action='store_true', help='Skip the confirmation prompt')
    reset_parser.set_defaults(func=cmd_reset)

    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    tracker = SleepTracker(SleepStore(resolve_data_file(args.data_file)))
    tracker.load()

    # If no command given, launch interactive mode
    if args.command is None:
        return interactive_mode(tracker)
    return args.func(args, tracker)

if __name__ == '__main__':
    sys.exit(main())
