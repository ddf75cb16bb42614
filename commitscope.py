#!/usr/bin/env python3
"""
Commit Scope - Commit History Visual Analytics Engine (v1.0.0)

Turns a per-line code-change dataset (loc.csv) into an interactive commit
scatter plot model:

- Commit aggregation (rows grouped by commit id, derived hour-of-day)
- Coordinate model with time / linear / square-root scales
- Scatter renderer with keyed enter/update/exit transitions and hover tooltip
- Rectangular brush selection with count label and line-type breakdown
- Slider-driven temporal playback
- Repository statistics, SVG scene export and JSON datasets

All interaction state lives on a single AnalyticsSession; every handler runs
to completion and recomputes its derived state from scratch.

Version: 1.0.0
"""

import calendar
import hashlib
import html
import json
import math
import os
import re
import sys
import time
from bisect import bisect_right
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import click
import pandas as pd
import yaml
from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

colorama_init(autoreset=True)


# Version information
VERSION = "1.0.0"
SCHEMA_VERSION = "1.0.0"

DEFAULT_REPO_URL = "https://github.com/vis-society/lab-7"

REQUIRED_COLUMNS = (
    "commit",
    "file",
    "line",
    "depth",
    "length",
    "type",
    "author",
    "date",
    "time",
    "timezone",
    "datetime",
)


# ============================================================================
# PROGRESS REPORTING
# ============================================================================


class ProgressReporter:
    """
    Interactive progress reporting.
    - Color-coded output (colorama)
    - Progress bars with percentage (tqdm)
    - Errors always go to stderr, everything else respects quiet mode
    """

    def __init__(
        self, quiet: bool = False, verbose: bool = False, use_colors: bool = True
    ):
        self.quiet = quiet
        self.verbose = verbose
        self.use_colors = use_colors
        self.start_time = time.time()
        self.stage_times = {}

    def _colorize(self, text: str, color: str) -> str:
        """Apply color if enabled"""
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def stage_start(self, stage_name: str, message: str = ""):
        """Mark the start of a processing stage"""
        if self.quiet:
            return
        self.stage_times[stage_name] = time.time()

        separator = self._colorize("=" * 70, Fore.CYAN)
        stage_text = self._colorize(f"🔄 {stage_name}", Fore.BLUE + Style.BRIGHT)

        print(f"\n{separator}")
        print(stage_text)
        if message:
            print(f"   {message}")
        print(separator)

    def stage_complete(self, stage_name: str, stats: Optional[Dict] = None):
        """Mark completion of a processing stage"""
        if self.quiet:
            return
        elapsed = time.time() - self.stage_times.get(stage_name, time.time())

        complete_text = self._colorize(
            f"✅ {stage_name} complete ({elapsed:.2f}s)", Fore.GREEN + Style.BRIGHT
        )
        print(complete_text)

        if stats and self.verbose:
            for key, value in stats.items():
                print(f"   {key}: {value}")

    def create_progress_bar(
        self, total: int, desc: str = "Processing", unit: str = " rows"
    ) -> Optional[tqdm]:
        """Create a progress bar with ETA, or None in quiet mode"""
        if self.quiet:
            return None

        return tqdm(
            total=total,
            desc=self._colorize(desc, Fore.CYAN),
            unit=unit,
            ncols=100,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        )

    def info(self, message: str):
        """Display informational message"""
        if not self.quiet:
            info_text = self._colorize("ℹ️  ", Fore.BLUE)
            print(f"{info_text}{message}")

    def warning(self, message: str):
        """Display warning message"""
        if not self.quiet:
            warning_text = self._colorize("⚠️  ", Fore.YELLOW + Style.BRIGHT)
            print(f"{warning_text}{message}")

    def error(self, message: str):
        """Display error message (always shown)"""
        error_text = self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT)
        print(error_text, file=sys.stderr)

    def success(self, message: str):
        """Display success message"""
        if not self.quiet:
            success_text = self._colorize(f"✨ {message}", Fore.GREEN + Style.BRIGHT)
            print(success_text)

    def summary(self, stats: Dict[str, Any]):
        """Display final summary"""
        if self.quiet:
            return
        elapsed = time.time() - self.start_time

        separator = self._colorize("=" * 70, Fore.CYAN)
        header = self._colorize("📊 COMMIT ANALYTICS SUMMARY", Fore.MAGENTA + Style.BRIGHT)

        print(f"\n{separator}")
        print(header)
        print(separator)
        for key, value in stats.items():
            print(f"   {key}: {value}")

        time_text = self._colorize(f"⏱️  Total time: {elapsed:.2f}s", Fore.YELLOW)
        print(f"\n{time_text}")
        print(f"{separator}\n")


# ============================================================================
# DATA STRUCTURES & MODELS
# ============================================================================


class DatasetError(Exception):
    """The line dataset could not be read or parsed."""


@dataclass(frozen=True)
class Row:
    """One changed source line, as recorded in loc.csv."""

    commit_id: str
    file: str
    line: int
    depth: int
    length: int
    type: str
    author: str
    date: datetime
    time: str
    timezone: str
    datetime: datetime


def commit_url(repo_url: str, commit_id: str) -> str:
    return f"{repo_url.rstrip('/')}/commit/{commit_id}"


@dataclass(frozen=True)
class Commit:
    """
    Aggregate over every row sharing a commit id.

    The dataclass fields are the serializable record. The row group is held
    next to it and read through ``lines``; it never shows up in
    ``fields()``, ``asdict()``, ``to_dict()`` or equality.
    """

    id: str
    url: str
    author: str
    date: datetime
    time: str
    timezone: str
    datetime: datetime
    hour_frac: float
    total_lines: int

    @classmethod
    def from_rows(
        cls, commit_id: str, rows: Sequence[Row], repo_url: str = DEFAULT_REPO_URL
    ) -> "Commit":
        if not rows:
            raise ValueError(f"Commit {commit_id} has no rows")

        # All rows of one commit share author and timestamp; the first one wins.
        first = rows[0]
        commit = cls(
            id=commit_id,
            url=commit_url(repo_url, commit_id),
            author=first.author,
            date=first.date,
            time=first.time,
            timezone=first.timezone,
            datetime=first.datetime,
            hour_frac=first.datetime.hour + first.datetime.minute / 60,
            total_lines=len(rows),
        )
        object.__setattr__(commit, "_lines", tuple(rows))
        return commit

    @property
    def lines(self) -> Tuple[Row, ...]:
        return self.__dict__.get("_lines", ())

    def to_dict(self) -> Dict[str, Any]:
        record = asdict(self)
        record["date"] = self.date.isoformat()
        record["datetime"] = self.datetime.isoformat()
        return record


# ============================================================================
# ROW INGESTION
# ============================================================================


_OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


def _parse_offset(text: str) -> timezone:
    text = text.strip()
    if not text or text == "Z":
        return timezone.utc
    match = re.fullmatch(r"([+-])(\d{2}):?(\d{2})", text)
    if not match:
        raise ValueError(f"Invalid timezone offset: {text!r}")
    sign = -1 if match.group(1) == "-" else 1
    delta = timedelta(hours=int(match.group(2)), minutes=int(match.group(3)))
    return timezone(sign * delta)


def parse_timestamp(value: str, fallback_offset: str = "") -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware datetime.

    Accepts ``Z``, ``+HHMM`` and ``+HH:MM`` offsets. A naive value gets
    ``fallback_offset`` attached (UTC when that is empty too).
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _OFFSET_WITHOUT_COLON.sub(r"\1:\2", text)

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_parse_offset(fallback_offset))
    return parsed


def load_rows(path: str) -> List[Row]:
    """
    Read loc.csv into typed rows.

    ``line``, ``depth`` and ``length`` become integers, ``date`` becomes
    local midnight in the row's timezone and ``datetime`` is parsed on its
    own. Any failure raises DatasetError.
    """
    if not os.path.isfile(path):
        raise DatasetError(f"Dataset not found: {path}")

    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (
        OSError,
        pd.errors.EmptyDataError,
        pd.errors.ParserError,
        UnicodeDecodeError,
    ) as e:
        raise DatasetError(f"Failed to parse dataset {path}: {e}") from e

    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise DatasetError(f"Dataset is missing columns: {', '.join(missing)}")

    rows = []
    for position, record in enumerate(frame.to_dict("records"), start=1):
        try:
            rows.append(
                Row(
                    commit_id=record["commit"],
                    file=record["file"],
                    line=int(record["line"]),
                    depth=int(record["depth"]),
                    length=int(record["length"]),
                    type=record["type"],
                    author=record["author"],
                    date=parse_timestamp(
                        f"{record['date']}T00:00{record['timezone']}"
                    ),
                    time=record["time"],
                    timezone=record["timezone"],
                    datetime=parse_timestamp(record["datetime"], record["timezone"]),
                )
            )
        except ValueError as e:
            raise DatasetError(f"Row {position}: {e}") from e

    return rows


# ============================================================================
# COMMIT AGGREGATION
# ============================================================================


def aggregate_commits(
    rows: Iterable[Row],
    repo_url: str = DEFAULT_REPO_URL,
    reporter: Optional[ProgressReporter] = None,
) -> List[Commit]:
    """
    Group rows by commit id, in order of first appearance.

    Single pass over the complete input; a Commit is only built once its
    whole row group is known.
    """
    rows = list(rows)
    groups: Dict[str, List[Row]] = {}

    progress_bar = (
        reporter.create_progress_bar(len(rows), "Grouping rows") if reporter else None
    )
    for row in rows:
        groups.setdefault(row.commit_id, []).append(row)
        if progress_bar:
            progress_bar.update(1)
    if progress_bar:
        progress_bar.close()

    return [
        Commit.from_rows(commit_id, group, repo_url)
        for commit_id, group in groups.items()
    ]


def compute_stats(rows: Sequence[Row], commits: Sequence[Commit]) -> Dict[str, Any]:
    """Repository summary shown above the scatter plot."""
    if not rows:
        return {
            "total_loc": 0,
            "commits": len(commits),
            "files": 0,
            "longest_file": 0,
            "most_productive_day": None,
            "avg_file_depth": 0.0,
        }

    frame = pd.DataFrame(
        {
            "file": [row.file for row in rows],
            "line": [row.line for row in rows],
            "depth": [row.depth for row in rows],
            "weekday": [row.datetime.strftime("%A") for row in rows],
        }
    )
    per_file = frame.groupby("file", sort=False)
    work_by_day = frame.groupby("weekday", sort=False).size()

    return {
        "total_loc": len(rows),
        "commits": len(commits),
        "files": int(per_file.ngroups),
        "longest_file": int(per_file["line"].max().max()),
        "most_productive_day": str(work_by_day.idxmax()),
        "avg_file_depth": round(float(per_file["depth"].mean().mean()), 2),
    }


# ============================================================================
# SCALES
# ============================================================================

_E10 = math.sqrt(50)
_E5 = math.sqrt(10)
_E2 = math.sqrt(2)


def tick_step(start: float, stop: float, count: int) -> float:
    """Round step (1, 2 or 5 times a power of ten) giving about count ticks."""
    if count <= 0:
        return 0.0
    step0 = abs(stop - start) / count
    if step0 == 0 or not math.isfinite(step0):
        return 0.0
    step1 = 10 ** math.floor(math.log10(step0))
    error = step0 / step1
    if error >= _E10:
        step1 *= 10
    elif error >= _E5:
        step1 *= 5
    elif error >= _E2:
        step1 *= 2
    return step1 if stop >= start else -step1


def ease_cubic_in_out(t: float) -> float:
    t = max(0.0, min(1.0, t)) * 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


def _interpolate(a: float, b: float, t: float) -> float:
    return a * (1 - t) + b * t


class LinearScale:
    """Continuous scale; a zero-width domain maps to the range midpoint."""

    def __init__(
        self,
        domain: Tuple[float, float] = (0.0, 1.0),
        range_: Tuple[float, float] = (0.0, 1.0),
    ):
        self.domain = (domain[0], domain[1])
        self.range = (range_[0], range_[1])

    @staticmethod
    def _transform(value: float) -> float:
        return value

    @staticmethod
    def _untransform(value: float) -> float:
        return value

    def _normalize(self, value: float) -> float:
        d0, d1 = (self._transform(v) for v in self.domain)
        span = d1 - d0
        if span == 0:
            return 0.5
        return (self._transform(value) - d0) / span

    def __call__(self, value: float) -> float:
        return _interpolate(self.range[0], self.range[1], self._normalize(value))

    def invert(self, pixel: float) -> float:
        r0, r1 = self.range
        t = (pixel - r0) / (r1 - r0) if r1 != r0 else 0.5
        d0, d1 = (self._transform(v) for v in self.domain)
        return self._untransform(_interpolate(d0, d1, t))

    def ticks(self, count: int = 10) -> List[float]:
        if count <= 0:
            return []
        start, stop = sorted(self.domain)
        if start == stop:
            return [start]
        step = tick_step(start, stop, count)
        if step <= 0:
            return []
        first = math.ceil(start / step)
        last = math.floor(stop / step)
        return [round(i * step, 12) for i in range(first, last + 1)]


class SqrtScale(LinearScale):
    """Square-root scale, so circle area tracks the value."""

    @staticmethod
    def _transform(value: float) -> float:
        return math.copysign(math.sqrt(abs(value)), value)

    @staticmethod
    def _untransform(value: float) -> float:
        return math.copysign(value * value, value)


_SECOND = 1
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_MONTH = 30 * _DAY
_YEAR = 365 * _DAY


@dataclass(frozen=True)
class TimeInterval:
    """Calendar interval (unit times step) used for nicing and time ticks."""

    unit: str
    step: int = 1

    def floor(self, value: datetime) -> datetime:
        step = self.step
        if self.unit == "second":
            value = value.replace(microsecond=0)
            return value.replace(second=value.second - value.second % step)
        if self.unit == "minute":
            value = value.replace(second=0, microsecond=0)
            return value.replace(minute=value.minute - value.minute % step)
        if self.unit == "hour":
            value = value.replace(minute=0, second=0, microsecond=0)
            return value.replace(hour=value.hour - value.hour % step)

        day = value.replace(hour=0, minute=0, second=0, microsecond=0)
        if self.unit == "day":
            return day.replace(day=day.day - (day.day - 1) % step)
        if self.unit == "week":
            # Weeks start on Sunday
            return day - timedelta(days=(day.weekday() + 1) % 7)
        if self.unit == "month":
            month = day.replace(day=1)
            return month.replace(month=month.month - (month.month - 1) % step)
        if self.unit == "year":
            year = day.replace(month=1, day=1)
            return year.replace(year=year.year - year.year % step)
        raise ValueError(f"Unknown time unit: {self.unit}")

    def offset(self, value: datetime, count: int = 1) -> datetime:
        amount = count * self.step
        if self.unit == "second":
            return value + timedelta(seconds=amount)
        if self.unit == "minute":
            return value + timedelta(minutes=amount)
        if self.unit == "hour":
            return value + timedelta(hours=amount)
        if self.unit == "day":
            return value + timedelta(days=amount)
        if self.unit == "week":
            return value + timedelta(weeks=amount)
        if self.unit == "month":
            months = value.month - 1 + amount
            year = value.year + months // 12
            month = months % 12 + 1
            day = min(value.day, calendar.monthrange(year, month)[1])
            return value.replace(year=year, month=month, day=day)
        if self.unit == "year":
            year = value.year + amount
            day = min(value.day, calendar.monthrange(year, value.month)[1])
            return value.replace(year=year, day=day)
        raise ValueError(f"Unknown time unit: {self.unit}")

    def ceil(self, value: datetime) -> datetime:
        floored = self.floor(value)
        if floored == value:
            return floored
        return self.floor(self.offset(floored))

    def range(self, start: datetime, stop: datetime) -> List[datetime]:
        """Interval boundaries in [start, stop]."""
        values = []
        current = self.ceil(start)
        while current <= stop:
            values.append(current)
            current = self.floor(self.offset(current))
        return values


_TICK_INTERVALS = [
    (TimeInterval("second", 1), _SECOND),
    (TimeInterval("second", 5), 5 * _SECOND),
    (TimeInterval("second", 15), 15 * _SECOND),
    (TimeInterval("second", 30), 30 * _SECOND),
    (TimeInterval("minute", 1), _MINUTE),
    (TimeInterval("minute", 5), 5 * _MINUTE),
    (TimeInterval("minute", 15), 15 * _MINUTE),
    (TimeInterval("minute", 30), 30 * _MINUTE),
    (TimeInterval("hour", 1), _HOUR),
    (TimeInterval("hour", 3), 3 * _HOUR),
    (TimeInterval("hour", 6), 6 * _HOUR),
    (TimeInterval("hour", 12), 12 * _HOUR),
    (TimeInterval("day", 1), _DAY),
    (TimeInterval("day", 2), 2 * _DAY),
    (TimeInterval("week", 1), _WEEK),
    (TimeInterval("month", 1), _MONTH),
    (TimeInterval("month", 3), 3 * _MONTH),
    (TimeInterval("year", 1), _YEAR),
]
_TICK_DURATIONS = [duration for _, duration in _TICK_INTERVALS]


def tick_interval(start: datetime, stop: datetime, count: int = 10) -> TimeInterval:
    """Pick the calendar interval whose duration is closest to span / count."""
    if count <= 0:
        return _TICK_INTERVALS[0][0]
    start_ts, stop_ts = start.timestamp(), stop.timestamp()
    target = abs(stop_ts - start_ts) / count
    i = bisect_right(_TICK_DURATIONS, target)

    if i == len(_TICK_INTERVALS):
        years = tick_step(start_ts / _YEAR, stop_ts / _YEAR, count)
        return TimeInterval("year", max(1, int(round(abs(years)))))
    if i == 0:
        return _TICK_INTERVALS[0][0]
    if target / _TICK_DURATIONS[i - 1] < _TICK_DURATIONS[i] / target:
        return _TICK_INTERVALS[i - 1][0]
    return _TICK_INTERVALS[i][0]


def format_time_tick(value: datetime) -> str:
    """Multi-scale label: the coarsest unit the tick is not aligned to."""
    if value.microsecond:
        return value.strftime(".%f")[:4]
    if value.second:
        return value.strftime(":%S")
    if value.minute:
        return value.strftime("%I:%M")
    if value.hour:
        return value.strftime("%I %p")
    if value.day != 1:
        if value.weekday() != 6:
            return value.strftime("%a %d")
        return value.strftime("%b %d")
    if value.month != 1:
        return value.strftime("%B")
    return value.strftime("%Y")


class TimeScale:
    """Linear mapping from aware datetimes to pixels."""

    def __init__(
        self,
        domain: Tuple[datetime, datetime],
        range_: Tuple[float, float] = (0.0, 1.0),
    ):
        self.domain = (domain[0], domain[1])
        self.range = (range_[0], range_[1])

    def _normalize(self, value: datetime) -> float:
        d0, d1 = (v.timestamp() for v in self.domain)
        span = d1 - d0
        if span == 0:
            return 0.5
        return (value.timestamp() - d0) / span

    def __call__(self, value: datetime) -> float:
        return _interpolate(self.range[0], self.range[1], self._normalize(value))

    def invert_timestamp(self, pixel: float) -> float:
        r0, r1 = self.range
        t = (pixel - r0) / (r1 - r0) if r1 != r0 else 0.5
        d0, d1 = (v.timestamp() for v in self.domain)
        return _interpolate(d0, d1, t)

    def invert(self, pixel: float) -> datetime:
        return datetime.fromtimestamp(
            self.invert_timestamp(pixel), tz=self.domain[0].tzinfo
        )

    def nice(self, count: int = 10) -> "TimeScale":
        """Extend the domain to round calendar boundaries."""
        start, stop = self.domain
        if start == stop:
            return self
        reverse = stop < start
        if reverse:
            start, stop = stop, start
        stop = stop.astimezone(start.tzinfo)

        interval = tick_interval(start, stop, count)
        start, stop = interval.floor(start), interval.ceil(stop)
        self.domain = (stop, start) if reverse else (start, stop)
        return self

    def ticks(self, count: int = 10) -> List[datetime]:
        if count <= 0:
            return []
        start, stop = sorted(self.domain)
        if start == stop:
            return [start]
        stop = stop.astimezone(start.tzinfo)
        return tick_interval(start, stop, count).range(start, stop)


# ============================================================================
# CONFIGURATION
# ============================================================================


@dataclass
class Settings:
    """Canvas geometry, mark styling and playback constants."""

    width: int = 1000
    height: int = 600
    margin_top: int = 10
    margin_right: int = 10
    margin_bottom: int = 30
    margin_left: int = 40
    min_radius: float = 3.0
    max_radius: float = 15.0
    fill: str = "steelblue"
    fill_opacity: float = 0.7
    hover_opacity: float = 1.0
    transition_ms: float = 200.0
    tooltip_offset: int = 10
    repo_url: str = DEFAULT_REPO_URL

    @classmethod
    def from_resolver(cls, resolver: "ConfigResolver") -> "Settings":
        defaults = cls()
        return cls(
            **{
                f.name: resolver.get(f.name, getattr(defaults, f.name))
                for f in fields(cls)
            }
        )


PRESETS = {
    "standard": {},
    "compact": {
        "width": 640,
        "height": 400,
        "min_radius": 2.0,
        "max_radius": 10.0,
    },
    "presentation": {
        "width": 1400,
        "height": 800,
        "min_radius": 4.0,
        "max_radius": 20.0,
        "transition_ms": 400.0,
    },
}

CONFIG_NAMES = [
    ".commitscope.yaml",
    ".commitscope.yml",
    ".commitscope.json",
]


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML or JSON file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if file_ext in [".yaml", ".yml"]:
            return yaml.safe_load(f) or {}
        elif file_ext == ".json":
            return json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_ext}")


def find_config_file(search_dir: str) -> Optional[str]:
    """
    Auto-discover a configuration file next to the dataset or in the
    current directory.
    """
    for directory in [search_dir, os.getcwd()]:
        for config_name in CONFIG_NAMES:
            config_path = os.path.join(directory, config_name)
            if os.path.exists(config_path):
                return config_path

    return None


class ConfigResolver:
    """
    Resolve configuration with precedence: CLI > Config File > Preset > Defaults
    """

    def __init__(
        self,
        cli_args: Dict[str, Any],
        config_path: Optional[str],
        preset_name: Optional[str],
        search_dir: str,
    ):
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config = {}
        self.discovered_path: Optional[str] = None
        self.discovery_error: Optional[str] = None

        if config_path:
            self.config = load_config_file(config_path)
        else:
            auto_path = find_config_file(search_dir)
            if auto_path:
                try:
                    self.config = load_config_file(auto_path)
                    self.discovered_path = auto_path
                except (OSError, ValueError, yaml.YAMLError) as e:
                    self.discovery_error = (
                        f"Found config file {auto_path} but failed to load: {e}"
                    )

        # Normalize config keys (kebab-case to snake_case)
        self.config = {k.replace("-", "_"): v for k, v in self.config.items()}

        # CLI preset overrides config preset
        final_preset_name = preset_name or self.config.get("preset")
        self.preset = PRESETS.get(final_preset_name, {}) if final_preset_name else {}

    def report(self, reporter: ProgressReporter):
        """Tell the user about config auto-discovery once output settings are known"""
        if self.discovered_path:
            reporter.info(f"Auto-discovered configuration: {self.discovered_path}")
        if self.discovery_error:
            reporter.warning(self.discovery_error)

    def get(self, key: str, default: Any = None) -> Any:
        """Resolve value based on precedence"""
        if key in self.cli:
            return self.cli[key]
        if key in self.config:
            return self.config[key]
        if key in self.preset:
            return self.preset[key]
        return default


# ============================================================================
# COORDINATE MODEL
# ============================================================================


@dataclass(frozen=True)
class PlotArea:
    left: float
    right: float
    top: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass
class Tick:
    value: Any
    position: float
    label: str


@dataclass
class Axis:
    orient: str  # "bottom" or "left"
    offset: float
    ticks: List[Tick] = field(default_factory=list)


def format_hour_tick(value: float) -> str:
    return f"{int(value) % 24:02d}:00"


class CoordinateModel:
    """
    Time -> x, hour of day -> y and total lines -> radius.

    ``rebuild`` is the only mutation. The y domain never changes; the x and
    radius domains follow the commit set passed to the last rebuild.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        s = self.settings
        self.area = PlotArea(
            left=s.margin_left,
            right=s.width - s.margin_right,
            top=s.margin_top,
            bottom=s.height - s.margin_bottom,
        )
        self.y_scale = LinearScale((0, 24), (self.area.bottom, self.area.top))
        self.x_scale: Optional[TimeScale] = None
        self.r_scale: Optional[SqrtScale] = None

    def rebuild(self, commits: Sequence[Commit]):
        if not commits:
            self.x_scale = None
            self.r_scale = None
            return

        times = [commit.datetime for commit in commits]
        self.x_scale = TimeScale(
            (min(times), max(times)), (self.area.left, self.area.right)
        ).nice()

        totals = [commit.total_lines for commit in commits]
        self.r_scale = SqrtScale(
            (min(totals), max(totals)),
            (self.settings.min_radius, self.settings.max_radius),
        )

    @property
    def x_domain(self) -> Optional[Tuple[datetime, datetime]]:
        return self.x_scale.domain if self.x_scale else None

    @property
    def r_domain(self) -> Optional[Tuple[float, float]]:
        return self.r_scale.domain if self.r_scale else None

    @property
    def y_domain(self) -> Tuple[float, float]:
        return self.y_scale.domain

    def x(self, value: datetime) -> float:
        if self.x_scale is None:
            raise ValueError("x domain is empty; rebuild with a non-empty commit set")
        return self.x_scale(value)

    def y(self, hour_frac: float) -> float:
        return self.y_scale(hour_frac)

    def r(self, total_lines: int) -> float:
        if self.r_scale is None:
            raise ValueError("radius domain is empty; rebuild with a non-empty commit set")
        return self.r_scale(total_lines)

    def position(self, commit: Commit) -> Tuple[float, float]:
        return self.x(commit.datetime), self.y(commit.hour_frac)

    def x_axis(self) -> Axis:
        axis = Axis("bottom", self.area.bottom)
        if self.x_scale is not None:
            axis.ticks = [
                Tick(value, self.x_scale(value), format_time_tick(value))
                for value in self.x_scale.ticks()
            ]
        return axis

    def y_axis(self) -> Axis:
        return Axis(
            "left",
            self.area.left,
            [
                Tick(value, self.y_scale(value), format_hour_tick(value))
                for value in self.y_scale.ticks()
            ],
        )

    def gridlines(self) -> List[float]:
        return [tick.position for tick in self.y_axis().ticks]


# ============================================================================
# PANELS
# ============================================================================


@dataclass
class PointerEvent:
    client_x: float
    client_y: float


@dataclass
class Tooltip:
    """Commit details shown next to the pointer."""

    hidden: bool = True
    left: float = 0.0
    top: float = 0.0
    link_href: str = ""
    link_text: str = ""
    date: str = ""
    time: str = ""
    author: str = ""
    lines: str = ""

    def populate(self, commit: Commit):
        self.link_href = commit.url
        self.link_text = commit.id
        self.date = commit.date.strftime("%Y-%m-%d")
        self.time = commit.time or commit.datetime.strftime("%H:%M:%S")
        self.author = commit.author
        self.lines = str(commit.total_lines)

    def set_visible(self, visible: bool):
        self.hidden = not visible

    def move_to(self, event: PointerEvent, offset: float = 10):
        self.left = event.client_x + offset
        self.top = event.client_y + offset


@dataclass
class TextLabel:
    text: str = ""


@dataclass
class BreakdownPanel:
    """Label/value pairs, e.g. ("js", "4 lines (66.7%)")."""

    entries: List[Tuple[str, str]] = field(default_factory=list)

    def clear(self):
        self.entries = []

    def render(self, breakdown: Sequence["BreakdownEntry"]):
        self.entries = [(entry.type, entry.label) for entry in breakdown]


@dataclass
class Panels:
    """UI anchors. Any of them may be absent on a given page."""

    tooltip: Optional[Tooltip] = None
    selection_count: Optional[TextLabel] = None
    breakdown: Optional[BreakdownPanel] = None
    slider_time: Optional[TextLabel] = None

    @classmethod
    def full(cls) -> "Panels":
        return cls(
            tooltip=Tooltip(),
            selection_count=TextLabel(),
            breakdown=BreakdownPanel(),
            slider_time=TextLabel(),
        )


# ============================================================================
# SCATTER RENDERER
# ============================================================================


@dataclass
class Transition:
    start: Dict[str, float]
    end: Dict[str, float]
    duration: float
    elapsed: float = 0.0

    @property
    def done(self) -> bool:
        return self.elapsed >= self.duration

    def sample(self) -> Dict[str, float]:
        t = 1.0 if self.duration <= 0 else min(self.elapsed / self.duration, 1.0)
        k = ease_cubic_in_out(t)
        return {
            name: self.start[name] + (self.end[name] - self.start[name]) * k
            for name in self.end
        }


@dataclass
class Mark:
    """One circle, keyed by commit id."""

    commit: Commit
    cx: float
    cy: float
    r: float
    fill_opacity: float
    selected: bool = False
    exiting: bool = False
    transition: Optional[Transition] = None

    @property
    def key(self) -> str:
        return self.commit.id

    def attrs(self) -> Dict[str, float]:
        current = {"cx": self.cx, "cy": self.cy, "r": self.r}
        if self.transition is not None:
            current.update(self.transition.sample())
        return current

    def animate(self, end: Dict[str, float], duration: float):
        # Restart from wherever a running transition has got to.
        current = self.attrs()
        self.cx, self.cy, self.r = current["cx"], current["cy"], current["r"]
        self.transition = Transition(
            start={name: current[name] for name in end},
            end=dict(end),
            duration=duration,
        )

    def step(self, ms: float):
        if self.transition is None:
            return
        self.transition.elapsed += ms
        if self.transition.done:
            for name, value in self.transition.end.items():
                setattr(self, name, value)
            self.transition = None


@dataclass
class MarkState:
    id: str
    cx: float
    cy: float
    r: float
    fill: str
    fill_opacity: float
    selected: bool


@dataclass
class MarkDiff:
    entered: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    exited: List[str] = field(default_factory=list)


def draw_order(commits: Iterable[Commit]) -> List[Commit]:
    """Largest first, so small circles end up on top and stay hoverable."""
    return sorted(commits, key=lambda commit: -commit.total_lines)


class ScatterRenderer:
    """
    Circle per commit positioned by the coordinate model.

    ``update`` reconciles the marks against a new commit set by id:
    entering marks grow from radius 0, matched marks move to their new
    position and radius, removed marks shrink to 0 and are dropped once
    their transition completes.
    """

    LAYERS = (
        "gridlines",
        "x-axis",
        "y-axis",
        "brush-overlay",
        "dots",
        "brush-selection",
    )

    def __init__(
        self,
        model: CoordinateModel,
        settings: Optional[Settings] = None,
        tooltip: Optional[Tooltip] = None,
    ):
        self.model = model
        self.settings = settings or model.settings
        self.tooltip = tooltip
        self.marks: Dict[str, Mark] = {}
        self.order: List[str] = []
        self.x_axis = model.x_axis()
        self.y_axis = model.y_axis()
        self.gridlines = model.gridlines()

    def _target(self, commit: Commit) -> Dict[str, float]:
        cx, cy = self.model.position(commit)
        return {"cx": cx, "cy": cy, "r": self.model.r(commit.total_lines)}

    def render_initial(self, commits: Sequence[Commit]):
        self.marks = {}
        ordered = draw_order(commits)
        for commit in ordered:
            target = self._target(commit)
            self.marks[commit.id] = Mark(
                commit,
                cx=target["cx"],
                cy=target["cy"],
                r=target["r"],
                fill_opacity=self.settings.fill_opacity,
            )
        self.order = [commit.id for commit in ordered]
        self.x_axis = self.model.x_axis()

    def update(self, commits: Sequence[Commit]) -> MarkDiff:
        duration = self.settings.transition_ms
        ordered = draw_order(commits)
        keys = {commit.id for commit in ordered}
        diff = MarkDiff()

        for commit in ordered:
            target = self._target(commit)
            mark = self.marks.get(commit.id)
            if mark is None:
                mark = Mark(
                    commit,
                    cx=target["cx"],
                    cy=target["cy"],
                    r=0.0,
                    fill_opacity=self.settings.fill_opacity,
                )
                self.marks[commit.id] = mark
                diff.entered.append(commit.id)
            else:
                mark.commit = commit
                mark.exiting = False
                diff.updated.append(commit.id)
            mark.animate(target, duration)

        for key in self.order:
            if key in keys:
                continue
            mark = self.marks[key]
            mark.exiting = True
            mark.selected = False
            mark.animate({"r": 0.0}, duration)
            diff.exited.append(key)

        self.order = [commit.id for commit in ordered]
        self.x_axis = self.model.x_axis()
        return diff

    def advance(self, ms: float):
        """Move the animation clock forward."""
        for key in list(self.marks):
            mark = self.marks[key]
            mark.step(ms)
            if mark.exiting and mark.transition is None:
                del self.marks[key]

    def settle(self):
        self.advance(math.inf)

    @property
    def animating(self) -> bool:
        return any(mark.transition is not None for mark in self.marks.values())

    def frame(self) -> List[MarkState]:
        """Marks as currently drawn: exiting ones underneath, then bound ones."""
        exiting = [mark for mark in self.marks.values() if mark.exiting]
        bound = [self.marks[key] for key in self.order]
        states = []
        for mark in exiting + bound:
            attrs = mark.attrs()
            states.append(
                MarkState(
                    id=mark.key,
                    cx=attrs["cx"],
                    cy=attrs["cy"],
                    r=attrs["r"],
                    fill=self.settings.fill,
                    fill_opacity=mark.fill_opacity,
                    selected=mark.selected,
                )
            )
        return states

    # Hover handlers

    def pointer_enter(self, commit_id: str, event: PointerEvent):
        mark = self.marks.get(commit_id)
        if mark is None or mark.exiting:
            return
        mark.fill_opacity = self.settings.hover_opacity
        if self.tooltip is not None:
            self.tooltip.populate(mark.commit)
            self.tooltip.set_visible(True)
            self.tooltip.move_to(event, self.settings.tooltip_offset)

    def pointer_move(self, event: PointerEvent):
        if self.tooltip is not None and not self.tooltip.hidden:
            self.tooltip.move_to(event, self.settings.tooltip_offset)

    def pointer_leave(self, commit_id: str):
        mark = self.marks.get(commit_id)
        if mark is not None:
            mark.fill_opacity = self.settings.fill_opacity
        if self.tooltip is not None:
            self.tooltip.set_visible(False)


# ============================================================================
# SELECTION
# ============================================================================


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in screen pixels, x0 <= x1 and y0 <= y1."""

    x0: float
    y0: float
    x1: float
    y1: float

    @classmethod
    def from_corners(cls, a: Tuple[float, float], b: Tuple[float, float]) -> "Rect":
        return cls(min(a[0], b[0]), min(a[1], b[1]), max(a[0], b[0]), max(a[1], b[1]))

    def contains(self, x: float, y: float) -> bool:
        return self.x0 <= x <= self.x1 and self.y0 <= y <= self.y1


class Brush:
    """
    Rectangular drag gesture.

    idle -> dragging on start, region follows every move, back to idle on
    end with the last region kept as the selection. Only ``cancel`` clears
    the region.
    """

    IDLE = "idle"
    DRAGGING = "dragging"

    def __init__(self, extent: Rect):
        self.extent = extent
        self.state = self.IDLE
        self.region: Optional[Rect] = None
        self._anchor: Optional[Tuple[float, float]] = None

    def _clamp(self, x: float, y: float) -> Tuple[float, float]:
        e = self.extent
        return min(max(x, e.x0), e.x1), min(max(y, e.y0), e.y1)

    def start(self, x: float, y: float):
        self._anchor = self._clamp(x, y)
        self.region = Rect.from_corners(self._anchor, self._anchor)
        self.state = self.DRAGGING

    def move(self, x: float, y: float):
        if self.state != self.DRAGGING:
            return
        self.region = Rect.from_corners(self._anchor, self._clamp(x, y))

    def end(self, x: Optional[float] = None, y: Optional[float] = None):
        if self.state != self.DRAGGING:
            return
        if x is not None and y is not None:
            self.move(x, y)
        self.state = self.IDLE

    def cancel(self):
        self.state = self.IDLE
        self.region = None
        self._anchor = None


def is_commit_selected(
    region: Optional[Rect], commit: Commit, model: CoordinateModel
) -> bool:
    """Bounds are inclusive; positions come from the model's current scales."""
    if region is None:
        return False
    cx, cy = model.position(commit)
    return region.contains(cx, cy)


@dataclass(frozen=True)
class BreakdownEntry:
    type: str
    count: int
    proportion: float

    @property
    def label(self) -> str:
        noun = "line" if self.count == 1 else "lines"
        return f"{self.count} {noun} ({self.proportion:.1%})"


def compute_breakdown(commits: Iterable[Commit]) -> List[BreakdownEntry]:
    """Row count per line type across the commits, in first-seen order."""
    counts: Dict[str, int] = {}
    total = 0
    for commit in commits:
        for row in commit.lines:
            counts[row.type] = counts.get(row.type, 0) + 1
            total += 1

    if total == 0:
        return []
    return [BreakdownEntry(kind, count, count / total) for kind, count in counts.items()]


def format_selection_count(count: int) -> str:
    return f"{count or 'No'} commits selected"


class SelectionController:
    """Keeps mark membership, count label and breakdown panel in sync."""

    def __init__(
        self,
        model: CoordinateModel,
        renderer: ScatterRenderer,
        brush: Brush,
        count_label: Optional[TextLabel] = None,
        breakdown_panel: Optional[BreakdownPanel] = None,
    ):
        self.model = model
        self.renderer = renderer
        self.brush = brush
        self.count_label = count_label
        self.breakdown_panel = breakdown_panel
        self.visible: List[Commit] = []
        self.selected: List[Commit] = []

    def set_visible(self, commits: Sequence[Commit]):
        self.visible = list(commits)

    def selected_commits(self) -> List[Commit]:
        region = self.brush.region
        return [
            commit
            for commit in self.visible
            if is_commit_selected(region, commit, self.model)
        ]

    def refresh(self) -> List[Commit]:
        """Recompute everything from the brush region and current scales."""
        self.selected = self.selected_commits()
        selected_ids = {commit.id for commit in self.selected}

        for mark in self.renderer.marks.values():
            mark.selected = mark.key in selected_ids and not mark.exiting

        if self.count_label is not None:
            self.count_label.text = format_selection_count(len(self.selected))

        if self.breakdown_panel is not None:
            if self.selected:
                self.breakdown_panel.render(compute_breakdown(self.selected))
            else:
                self.breakdown_panel.clear()

        return self.selected


# ============================================================================
# TEMPORAL PLAYBACK
# ============================================================================


def format_cutoff(value: datetime) -> str:
    """Long date, short time, in the machine's local timezone."""
    local = value.astimezone()
    hour = local.hour % 12 or 12
    return f"{local:%B} {local.day}, {local.year} at {hour}:{local:%M} {local:%p}"


class TemporalPlayback:
    """
    Slider progress (0-100) -> cutoff time -> visible commit prefix.

    The slider's time scale spans the full dataset and never changes.
    """

    def __init__(
        self,
        commits: Sequence[Commit],
        model: CoordinateModel,
        renderer: ScatterRenderer,
        selection: Optional[SelectionController] = None,
        time_label: Optional[TextLabel] = None,
    ):
        self.commits = list(commits)
        self.model = model
        self.renderer = renderer
        self.selection = selection
        self.time_label = time_label
        self.progress = 100.0
        self.max_time: Optional[datetime] = None
        self.filtered: List[Commit] = []

        self.time_scale: Optional[TimeScale] = None
        if self.commits:
            times = [commit.datetime for commit in self.commits]
            self.time_scale = TimeScale((min(times), max(times)), (0, 100))

    def filter_commits(self, progress: float) -> List[Commit]:
        """Commits at or before the cutoff; nothing has played at progress 0."""
        if self.time_scale is None or progress <= 0:
            return []
        max_ts = self.time_scale.invert_timestamp(progress)
        return [
            commit for commit in self.commits if commit.datetime.timestamp() <= max_ts
        ]

    def on_slider_change(self, progress: float) -> MarkDiff:
        progress = min(max(float(progress), 0.0), 100.0)
        self.progress = progress

        self.max_time = (
            self.time_scale.invert(progress) if self.time_scale is not None else None
        )
        if self.time_label is not None:
            self.time_label.text = format_cutoff(self.max_time) if self.max_time else ""

        self.filtered = self.filter_commits(progress)
        self.model.rebuild(self.filtered)
        diff = self.renderer.update(self.filtered)

        if self.selection is not None:
            self.selection.set_visible(self.filtered)
            self.selection.refresh()

        return diff


# ============================================================================
# SESSION
# ============================================================================


class AnalyticsSession:
    """
    Single owner of all interaction state.

    Handlers read and write through this object; before a dataset has been
    loaded they do nothing.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        panels: Optional[Panels] = None,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.settings = settings or Settings()
        self.panels = panels or Panels()
        self.reporter = reporter or ProgressReporter(quiet=True)

        self.rows: Optional[List[Row]] = None
        self.commits: Optional[List[Commit]] = None
        self.stats: Optional[Dict[str, Any]] = None

        self.model = CoordinateModel(self.settings)
        self.brush = Brush(Rect(0, 0, self.settings.width, self.settings.height))
        self.renderer: Optional[ScatterRenderer] = None
        self.selection: Optional[SelectionController] = None
        self.playback: Optional[TemporalPlayback] = None

    @property
    def loaded(self) -> bool:
        return self.playback is not None

    @property
    def visible_commits(self) -> List[Commit]:
        return self.playback.filtered if self.playback else []

    def load(self, path: str) -> bool:
        """Read the dataset and build the view; False if it cannot be read."""
        self.reporter.stage_start("Dataset Load", f"Reading {path}")
        try:
            rows = load_rows(path)
        except DatasetError as e:
            self.reporter.error(str(e))
            return False
        self.reporter.stage_complete("Dataset Load", {"Rows": f"{len(rows):,}"})

        self.start(rows)
        return True

    def start(self, rows: Iterable[Row]):
        self.reporter.stage_start("Commit Aggregation", "Grouping rows by commit...")
        self.rows = list(rows)
        self.commits = aggregate_commits(
            self.rows, self.settings.repo_url, reporter=self.reporter
        )
        self.stats = compute_stats(self.rows, self.commits)
        self.reporter.stage_complete(
            "Commit Aggregation", {"Commits": f"{len(self.commits):,}"}
        )

        self.model.rebuild(self.commits)
        self.renderer = ScatterRenderer(
            self.model, self.settings, tooltip=self.panels.tooltip
        )
        self.renderer.render_initial(self.commits)

        self.brush.cancel()
        self.selection = SelectionController(
            self.model,
            self.renderer,
            self.brush,
            count_label=self.panels.selection_count,
            breakdown_panel=self.panels.breakdown,
        )
        self.playback = TemporalPlayback(
            self.commits,
            self.model,
            self.renderer,
            selection=self.selection,
            time_label=self.panels.slider_time,
        )
        self.playback.on_slider_change(100)
        self.renderer.settle()

    # Slider

    def on_slider_input(self, progress: float) -> Optional[MarkDiff]:
        if self.playback is None:
            return None
        return self.playback.on_slider_change(progress)

    # Brush

    def on_brush_start(self, x: float, y: float) -> List[Commit]:
        if self.selection is None:
            return []
        self.brush.start(x, y)
        return self.selection.refresh()

    def on_brush_move(self, x: float, y: float) -> List[Commit]:
        if self.selection is None:
            return []
        self.brush.move(x, y)
        return self.selection.refresh()

    def on_brush_end(self, x: Optional[float] = None, y: Optional[float] = None) -> List[Commit]:
        if self.selection is None:
            return []
        self.brush.end(x, y)
        return self.selection.refresh()

    def on_brush_cancel(self) -> List[Commit]:
        if self.selection is None:
            return []
        self.brush.cancel()
        return self.selection.refresh()

    # Hover

    def on_pointer_enter(self, commit_id: str, client_x: float, client_y: float):
        if self.renderer is not None:
            self.renderer.pointer_enter(commit_id, PointerEvent(client_x, client_y))

    def on_pointer_move(self, client_x: float, client_y: float):
        if self.renderer is not None:
            self.renderer.pointer_move(PointerEvent(client_x, client_y))

    def on_pointer_leave(self, commit_id: str):
        if self.renderer is not None:
            self.renderer.pointer_leave(commit_id)

    def selection_snapshot(self) -> Dict[str, Any]:
        selected = self.selection.selected if self.selection else []
        playback = self.playback
        return {
            "progress": playback.progress if playback else None,
            "cutoff": playback.max_time.isoformat()
            if playback and playback.max_time
            else None,
            "visible_commits": [commit.id for commit in self.visible_commits],
            "region": asdict(self.brush.region) if self.brush.region else None,
            "selected_commits": [commit.id for commit in selected],
            "count_label": format_selection_count(len(selected)),
            "breakdown": [asdict(entry) for entry in compute_breakdown(selected)],
        }


# ============================================================================
# EXPORT
# ============================================================================


def _svg_text(x: float, y: float, text: str, anchor: str = "middle") -> str:
    return (
        f'    <text x="{x:.1f}" y="{y:.1f}" font-size="10" '
        f'text-anchor="{anchor}">{html.escape(text)}</text>'
    )


def _svg_gridlines(session: AnalyticsSession) -> List[str]:
    area = session.model.area
    parts = ['  <g class="gridlines" stroke="#ccc" stroke-opacity="0.5">']
    for y in session.model.gridlines():
        parts.append(
            f'    <line x1="{area.left:.1f}" y1="{y:.1f}" x2="{area.right:.1f}" y2="{y:.1f}"/>'
        )
    parts.append("  </g>")
    return parts


def _svg_x_axis(session: AnalyticsSession) -> List[str]:
    axis = session.renderer.x_axis if session.renderer else session.model.x_axis()
    parts = [f'  <g class="x-axis" transform="translate(0, {axis.offset:.1f})">']
    for tick in axis.ticks:
        parts.append(
            f'    <line x1="{tick.position:.1f}" y1="0" x2="{tick.position:.1f}" y2="6" stroke="currentColor"/>'
        )
        parts.append(_svg_text(tick.position, 18, tick.label))
    parts.append("  </g>")
    return parts


def _svg_y_axis(session: AnalyticsSession) -> List[str]:
    axis = session.model.y_axis()
    parts = [f'  <g class="y-axis" transform="translate({axis.offset:.1f}, 0)">']
    for tick in axis.ticks:
        parts.append(
            f'    <line x1="-6" y1="{tick.position:.1f}" x2="0" y2="{tick.position:.1f}" stroke="currentColor"/>'
        )
        parts.append(_svg_text(-9, tick.position + 3, tick.label, anchor="end"))
    parts.append("  </g>")
    return parts


def _svg_brush_overlay(session: AnalyticsSession) -> List[str]:
    e = session.brush.extent
    return [
        f'  <rect class="overlay" x="{e.x0:.1f}" y="{e.y0:.1f}" '
        f'width="{e.x1 - e.x0:.1f}" height="{e.y1 - e.y0:.1f}" fill="none"/>'
    ]


def _svg_dots(session: AnalyticsSession) -> List[str]:
    parts = ['  <g class="dots">']
    if session.renderer is not None:
        for mark in session.renderer.frame():
            css_class = ' class="selected"' if mark.selected else ""
            parts.append(
                f'    <circle{css_class} data-commit="{html.escape(mark.id)}" '
                f'cx="{mark.cx:.2f}" cy="{mark.cy:.2f}" r="{mark.r:.2f}" '
                f'fill="{mark.fill}" fill-opacity="{mark.fill_opacity}"/>'
            )
    parts.append("  </g>")
    return parts


def _svg_brush_selection(session: AnalyticsSession) -> List[str]:
    region = session.brush.region
    if region is None:
        return []
    return [
        f'  <rect class="selection" x="{region.x0:.1f}" y="{region.y0:.1f}" '
        f'width="{region.x1 - region.x0:.1f}" height="{region.y1 - region.y0:.1f}" '
        f'fill="#777" fill-opacity="0.3" stroke="#fff"/>'
    ]


_SVG_LAYERS = {
    "gridlines": _svg_gridlines,
    "x-axis": _svg_x_axis,
    "y-axis": _svg_y_axis,
    "brush-overlay": _svg_brush_overlay,
    "dots": _svg_dots,
    "brush-selection": _svg_brush_selection,
}


def render_svg(session: AnalyticsSession) -> str:
    """Current scene as a standalone SVG document, layers in draw order."""
    w, h = session.settings.width, session.settings.height
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}" '
        f'viewBox="0 0 {w} {h}" style="overflow: visible">'
    ]
    for layer in ScatterRenderer.LAYERS:
        parts.extend(_SVG_LAYERS[layer](session))
    parts.append("</svg>")
    return "\n".join(parts) + "\n"


def write_json(data: Any, output_path: str) -> int:
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return os.path.getsize(output_path)


def generate_manifest(
    output_dir: str, dataset_path: str, datasets: Dict[str, str]
) -> Dict[str, Any]:
    """Generate manifest.json with dataset metadata"""
    manifest = {
        "generator_version": VERSION,
        "schema_version": SCHEMA_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "source_dataset": dataset_path,
        "datasets": {},
    }

    for dataset_name, file_path in datasets.items():
        full_path = os.path.join(output_dir, file_path)
        if os.path.exists(full_path):
            with open(full_path, "rb") as f:
                data = f.read()

            manifest["datasets"][dataset_name] = {
                "file": file_path,
                "schema_version": SCHEMA_VERSION,
                "file_size_bytes": len(data),
                "sha256": hashlib.sha256(data).hexdigest(),
            }

    write_json(manifest, os.path.join(output_dir, "manifest.json"))
    return manifest


def export_session(session: AnalyticsSession, output_dir: str) -> Dict[str, str]:
    """Write every dataset for the session; returns name -> relative path."""
    os.makedirs(output_dir, exist_ok=True)
    datasets = {
        "commits": "commits.json",
        "stats": "stats.json",
        "selection": "selection.json",
        "scatter": "scatter.svg",
    }

    write_json(
        [commit.to_dict() for commit in session.commits or []],
        os.path.join(output_dir, datasets["commits"]),
    )
    write_json(session.stats or {}, os.path.join(output_dir, datasets["stats"]))
    write_json(
        session.selection_snapshot(), os.path.join(output_dir, datasets["selection"])
    )
    Path(output_dir, datasets["scatter"]).write_text(
        render_svg(session), encoding="utf-8"
    )
    return datasets


# ============================================================================
# CLI INTERFACE
# ============================================================================


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument(
    "dataset",
    type=click.Path(dir_okay=False, resolve_path=True),
    required=False,
)
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False),
    help="Output directory (default: commitscope_output_TIMESTAMP)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path (.yaml or .json)",
)
@click.option(
    "--preset",
    type=click.Choice(sorted(PRESETS)),
    help="Use predefined canvas configuration",
)
# Interaction
@click.option(
    "--progress",
    type=click.FloatRange(0, 100),
    help="Slider position 0-100 (default: 100, all commits)",
)
@click.option(
    "--brush",
    type=float,
    nargs=4,
    default=None,
    metavar="X0 Y0 X1 Y1",
    help="Brush a rectangle (canvas pixels) after playback",
)
# Canvas
@click.option("--repo-url", help="Repository base URL for commit links")
@click.option("--width", type=int, help="Canvas width in pixels")
@click.option("--height", type=int, help="Canvas height in pixels")
@click.option("--transition-ms", type=float, help="Transition duration")
# Output Control
@click.option(
    "-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=None,
    help="Show detailed progress information",
)
@click.option("--no-color", is_flag=True, default=None, help="Disable colored output")
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Show what would be generated without loading the dataset",
)
@click.version_option(version=VERSION)
def main(dataset, output, config, preset, brush, **kwargs):
    """
    Commit Scope v1.0.0 - commit history scatter plot, brushing and playback.

    DATASET is a loc.csv file with one row per changed line.
    """
    if not dataset:
        ctx = click.get_current_context()
        click.echo(ctx.get_help())
        ctx.exit(2)

    resolver = ConfigResolver(kwargs, config, preset, os.path.dirname(dataset))
    settings = Settings.from_resolver(resolver)

    quiet = resolver.get("quiet", False)
    verbose = resolver.get("verbose", False)
    no_color = resolver.get("no_color", False)
    dry_run = resolver.get("dry_run", False)
    progress = float(resolver.get("progress", 100.0))

    reporter = ProgressReporter(quiet=quiet, verbose=verbose, use_colors=not no_color)
    resolver.report(reporter)

    if dry_run:
        reporter.info("DRY RUN MODE - No dataset will be loaded")
        reporter.info(f"Dataset: {dataset}")
        reporter.info(f"Canvas: {settings.width}x{settings.height}")
        reporter.info(f"Slider progress: {progress:g}")
        if brush:
            reporter.info(f"Brush: {brush}")
        reporter.info("\nDatasets to generate:")
        for name in ["commits.json", "stats.json", "selection.json", "scatter.svg"]:
            reporter.info(f"  ✓ {name}")
        reporter.info("  ✓ manifest.json")
        return

    if output:
        output_dir = output
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_dir = f"commitscope_output_{timestamp}"

    session = AnalyticsSession(settings, Panels.full(), reporter)
    if not session.load(dataset):
        sys.exit(1)

    try:
        reporter.stage_start("Interaction", f"Slider at {progress:g}")
        session.on_slider_input(progress)
        session.renderer.settle()
        if brush:
            x0, y0, x1, y1 = brush
            session.on_brush_start(x0, y0)
            session.on_brush_move(x1, y1)
            session.on_brush_end(x1, y1)
        reporter.stage_complete(
            "Interaction",
            {
                "Visible commits": len(session.visible_commits),
                "Selection": session.panels.selection_count.text,
            },
        )

        reporter.stage_start("Dataset Export", f"Writing to {output_dir}")
        datasets = export_session(session, output_dir)
        generate_manifest(output_dir, dataset, datasets)
        reporter.stage_complete("Dataset Export")
    except (OSError, ValueError) as e:
        reporter.error(f"Export failed: {str(e)}")
        if verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)

    stats = session.stats
    summary_stats = {
        "Dataset": dataset,
        "Output directory": output_dir,
        "Total LOC": f"{stats['total_loc']:,}",
        "Commits": f"{stats['commits']:,}",
        "Files": f"{stats['files']:,}",
        "Longest file": stats["longest_file"],
        "Most productive day": stats["most_productive_day"],
        "Avg file depth": f"{stats['avg_file_depth']:.2f}",
        "Visible commits": len(session.visible_commits),
        "Cutoff": session.panels.slider_time.text,
        "Selection": session.panels.selection_count.text,
    }
    for kind, label in session.panels.breakdown.entries:
        summary_stats[f"  {kind}"] = label

    reporter.summary(summary_stats)
    reporter.success(f"Analysis complete! Results saved to: {output_dir}")


if __name__ == "__main__":
    main()
