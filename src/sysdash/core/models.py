from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class UnitKind(str, Enum):
    SERVICE = "service"
    TIMER = "timer"
    SOCKET = "socket"
    TARGET = "target"
    PATH = "path"

    @property
    def label(self) -> str:
        return {
            UnitKind.SERVICE: "Services",
            UnitKind.TIMER: "Timers",
            UnitKind.SOCKET: "Sockets",
            UnitKind.TARGET: "Targets",
            UnitKind.PATH: "Paths",
        }[self]

    @property
    def suffix(self) -> str:
        return f".{self.value}"


UNIT_KINDS: tuple[UnitKind, ...] = tuple(UnitKind)


class Scope(str, Enum):
    SYSTEM = "system"
    USER = "user"

    @property
    def label(self) -> str:
        return "User" if self is Scope.USER else "System"

    def toggled(self) -> "Scope":
        return Scope.SYSTEM if self is Scope.USER else Scope.USER


FILE_STATES: tuple[str, ...] = ("enabled", "disabled", "static", "masked", "indirect")

PRIORITY_LABELS: tuple[str, ...] = (
    "emerg",
    "alert",
    "crit",
    "err",
    "warning",
    "notice",
    "info",
    "debug",
)


def priority_label(priority: Optional[int]) -> str:
    if priority is None or not (0 <= priority < len(PRIORITY_LABELS)):
        return "unknown"
    return PRIORITY_LABELS[priority]


@dataclass(frozen=True, slots=True)
class Unit:
    name: str
    kind: UnitKind
    load_state: str = ""
    active_state: str = ""
    sub_state: str = ""
    description: str = ""
    file_state: str | None = None
    # Timer: microsecond epochs, None when unknown
    next_trigger: int | None = None
    last_trigger: int | None = None
    # Socket
    listen_address: str | None = None

    def with_file_state(self, file_state: str | None) -> "Unit":
        return replace(self, file_state=file_state)


@dataclass(frozen=True, slots=True)
class UnitProperties:
    name: str
    fragment_path: str = ""
    unit_file_state: str = ""
    active_state: str = ""
    sub_state: str = ""
    load_state: str = ""
    description: str = ""
    main_pid: int = 0
    active_enter_timestamp: int = 0
    exec_main_start_timestamp: int = 0
    memory_current: int | None = None
    cpu_usage_nsec: int | None = None
    requires: tuple[str, ...] = ()
    wants: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    before: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()
    triggered_by: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    # Timer
    timers_calendar: tuple[str, ...] = ()
    timers_monotonic: tuple[str, ...] = ()
    last_trigger_usec: int = 0
    next_elapse_realtime: int = 0
    persistent: bool | None = None
    accuracy_usec: int | None = None
    randomized_delay_usec: int | None = None
    result: str = ""
    # Socket
    listen: tuple[str, ...] = ()
    accept: bool | None = None
    n_connections: int | None = None
    n_accepted: int | None = None
    # Path
    paths: tuple[str, ...] = ()

    def dependencies(self) -> list[tuple[str, tuple[str, ...]]]:
        """Dependency edges in display order, including empty ones."""
        return [
            ("Requires", self.requires),
            ("Wants", self.wants),
            ("After", self.after),
            ("Before", self.before),
            ("Conflicts", self.conflicts),
            ("TriggeredBy", self.triggered_by),
            ("Triggers", self.triggers),
        ]


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: int
    priority: int
    message: str
    pid: str | None = None
    identifier: str | None = None
    cursor: str | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.timestamp, self.message)


class TimeRange(str, Enum):
    ALL = "all"
    FIFTEEN_MINUTES = "15m"
    ONE_HOUR = "1h"
    ONE_DAY = "24h"
    SEVEN_DAYS = "7d"
    TODAY = "today"

    @property
    def label(self) -> str:
        return {
            TimeRange.ALL: "All",
            TimeRange.FIFTEEN_MINUTES: "Last 15 minutes",
            TimeRange.ONE_HOUR: "Last 1 hour",
            TimeRange.ONE_DAY: "Last 24 hours",
            TimeRange.SEVEN_DAYS: "Last 7 days",
            TimeRange.TODAY: "Today",
        }[self]

    @property
    def journalctl_since(self) -> str | None:
        return {
            TimeRange.ALL: None,
            TimeRange.FIFTEEN_MINUTES: "15 min ago",
            TimeRange.ONE_HOUR: "1 hour ago",
            TimeRange.ONE_DAY: "1 day ago",
            TimeRange.SEVEN_DAYS: "7 days ago",
            TimeRange.TODAY: "today",
        }[self]

    def window_start(self, now: datetime.datetime) -> int | None:
        """Lower bound in microseconds since the epoch, or None for no bound.

        ``now`` must be timezone-aware; "Today" starts at local midnight of
        ``now``'s timezone.
        """
        if self is TimeRange.ALL:
            return None
        if self is TimeRange.TODAY:
            start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        else:
            start = now - _DURATIONS[self]
        return int(start.timestamp() * 1_000_000)


_DURATIONS = {
    TimeRange.FIFTEEN_MINUTES: datetime.timedelta(minutes=15),
    TimeRange.ONE_HOUR: datetime.timedelta(hours=1),
    TimeRange.ONE_DAY: datetime.timedelta(days=1),
    TimeRange.SEVEN_DAYS: datetime.timedelta(days=7),
}

TIME_RANGES: tuple[TimeRange, ...] = tuple(TimeRange)


@dataclass(slots=True)
class FilterState:
    search_text: str = ""
    status_filter: str | None = None
    file_state_filter: str | None = None

    def is_default(self) -> bool:
        return not self.search_text and self.status_filter is None and self.file_state_filter is None


@dataclass(slots=True)
class LogFilterState:
    priority_ceiling: int | None = None
    time_range: TimeRange = TimeRange.ALL
    search_text: str = ""
    current_match: int | None = None


@dataclass(frozen=True, slots=True)
class StatusMessage:
    text: str
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class Section:
    """One titled block of the Details view."""

    title: str
    rows: tuple[tuple[str, str], ...] = field(default_factory=tuple)
