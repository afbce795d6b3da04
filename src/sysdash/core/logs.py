"""Log entries of the open unit: severity/time filtering and in-log search."""

from __future__ import annotations

import datetime
from typing import Callable, Iterable, Sequence

from .models import LogEntry, LogFilterState, TimeRange

MatchPosition = tuple[int, int]  # (index into visible entries, char offset)


def _local_now() -> datetime.datetime:
    return datetime.datetime.now().astimezone()


def visible(
    entries: Sequence[LogEntry],
    log_filter: LogFilterState,
    start: int | None = None,
) -> list[LogEntry]:
    """Entries passing the priority ceiling and starting at or after ``start`` (usec), in order."""
    ceiling = log_filter.priority_ceiling
    out = []
    for e in entries:
        if ceiling is not None and e.priority > ceiling:
            continue
        if start is not None and e.timestamp < start:
            continue
        out.append(e)
    return out


def find_matches(entries: Sequence[LogEntry], text: str) -> list[MatchPosition]:
    """Case-insensitive, non-overlapping occurrences ordered by entry then offset."""
    if not text:
        return []
    needle = text.lower()
    step = len(needle)
    matches: list[MatchPosition] = []
    for idx, e in enumerate(entries):
        hay = e.message.lower()
        pos = hay.find(needle)
        while pos != -1:
            matches.append((idx, pos))
            pos = hay.find(needle, pos + step)
    return matches


class LogEngine:
    def __init__(self, now: Callable[[], datetime.datetime] = _local_now) -> None:
        self._now = now
        self.filter = LogFilterState()
        self.entries: list[LogEntry] = []
        self._keys: set[tuple[int, str]] = set()
        self._visible: list[LogEntry] = []
        # fixed when the window is applied, not on every append
        self._window_start: int | None = None
        self._matches: list[MatchPosition] = []

    # -- entry set -----------------------------------------------------------

    def load(self, entries: Iterable[LogEntry]) -> None:
        """Replace the entry set (one-shot fetch)."""
        self.entries = list(entries)
        self._keys = {e.key for e in self.entries}
        self._recompute(reset_position=True, rewindow=True)

    def append(self, entries: Iterable[LogEntry]) -> int:
        """Append followed entries in receipt order, skipping ones already held.

        Returns the number of entries actually added.
        """
        added = 0
        for e in entries:
            if e.key in self._keys:
                continue
            self._keys.add(e.key)
            self.entries.append(e)
            added += 1
        if added:
            self._recompute(reset_position=False)
        return added

    def clear(self) -> None:
        self.entries = []
        self._keys = set()
        self.clear_search()
        self._visible = []

    @property
    def last_cursor(self) -> str | None:
        for e in reversed(self.entries):
            if e.cursor:
                return e.cursor
        return None

    # -- filters -------------------------------------------------------------

    def set_priority_ceiling(self, ceiling: int | None) -> None:
        self.filter.priority_ceiling = ceiling
        self._recompute(reset_position=False)

    def set_time_range(self, time_range: TimeRange) -> None:
        self.filter.time_range = time_range
        self._recompute(reset_position=False, rewindow=True)

    def reset_filters(self) -> None:
        self.filter = LogFilterState()
        self._recompute(reset_position=True, rewindow=True)

    @property
    def visible_entries(self) -> list[LogEntry]:
        return self._visible

    # -- search --------------------------------------------------------------

    def search(self, text: str) -> list[MatchPosition]:
        self.filter.search_text = text
        self._matches = find_matches(self._visible, text)
        self.filter.current_match = 0 if self._matches else None
        return self._matches

    def clear_search(self) -> None:
        self.filter.search_text = ""
        self.filter.current_match = None
        self._matches = []

    def next_match(self) -> int | None:
        if not self._matches:
            self.filter.current_match = None
        elif self.filter.current_match is None:
            self.filter.current_match = 0
        else:
            self.filter.current_match = (self.filter.current_match + 1) % len(self._matches)
        return self.filter.current_match

    def prev_match(self) -> int | None:
        if not self._matches:
            self.filter.current_match = None
        elif self.filter.current_match is None:
            self.filter.current_match = len(self._matches) - 1
        else:
            self.filter.current_match = (self.filter.current_match - 1) % len(self._matches)
        return self.filter.current_match

    @property
    def matches(self) -> list[MatchPosition]:
        return self._matches

    @property
    def current_match(self) -> int | None:
        return self.filter.current_match

    @property
    def current_entry_index(self) -> int | None:
        """Index into the visible entries of the current match, for scrolling."""
        if self.filter.current_match is None:
            return None
        return self._matches[self.filter.current_match][0]

    def highlights(self) -> dict[int, tuple[int, ...]]:
        out: dict[int, list[int]] = {}
        for idx, offset in self._matches:
            out.setdefault(idx, []).append(offset)
        return {k: tuple(v) for k, v in out.items()}

    # -- internals -----------------------------------------------------------

    def _recompute(self, reset_position: bool, rewindow: bool = False) -> None:
        if rewindow:
            self._window_start = self.filter.time_range.window_start(self._now())
        previous = None
        if not reset_position and self.filter.current_match is not None:
            idx, offset = self._matches[self.filter.current_match]
            previous = (self._visible[idx], offset)

        self._visible = visible(self.entries, self.filter, self._window_start)
        self._matches = find_matches(self._visible, self.filter.search_text)

        if not self._matches:
            self.filter.current_match = None
            return
        self.filter.current_match = 0
        if previous is not None:
            entry, offset = previous
            for n, (idx, off) in enumerate(self._matches):
                if off == offset and self._visible[idx] is entry:
                    self.filter.current_match = n
                    break
