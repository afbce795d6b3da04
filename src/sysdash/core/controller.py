"""Application state controller.

``Controller.handle(event)`` reduces one input or data-source event into the
owned state and returns the effects (data-source calls) the caller must run,
as plain values.  ``Controller.view()`` builds the immutable view model the
renderer draws.  Nothing here performs I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Union

from . import filters
from .actions import FlowPhase, PendingAction, UnitAction
from .cache import EntityCache, Fetch
from .details import detail_sections, line_count
from .filters import clamp_selection, file_state_options, reselect, status_options
from .focus import (
    FocusMode,
    FocusStateMachine,
    LogPanel,
    LogSubMode,
    Modal,
    ModalKind,
    UnitList,
    UnitSearch,
)
from .logs import LogEngine
from .models import (
    PRIORITY_LABELS,
    TIME_RANGES,
    UNIT_KINDS,
    FilterState,
    LogEntry,
    Scope,
    Section,
    StatusMessage,
    TimeRange,
    Unit,
    UnitKind,
    UnitProperties,
)

log = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 1000
MOUSE_LOG_STEP = 3


# -- events --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeyPress:
    key: str
    char: str | None = None

    @property
    def name(self) -> str:
        """The printable character when there is one, else the key name."""
        if self.char and len(self.char) == 1 and self.char.isprintable():
            return self.char
        return self.key


@dataclass(frozen=True, slots=True)
class Resize:
    list_rows: int
    log_rows: int
    detail_rows: int


@dataclass(frozen=True, slots=True)
class Scroll:
    target: str  # "units" | "logs" | "details"
    delta: int


@dataclass(frozen=True, slots=True)
class RowClicked:
    row: int


@dataclass(frozen=True, slots=True)
class UnitsLoaded:
    epoch: int
    units: Sequence[Unit]
    file_states: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UnitsFailed:
    epoch: int
    message: str


@dataclass(frozen=True, slots=True)
class PropertiesLoaded:
    epoch: int
    name: str
    properties: UnitProperties | None  # None: the fetch failed


@dataclass(frozen=True, slots=True)
class LogsLoaded:
    token: int
    entries: Sequence[LogEntry]


@dataclass(frozen=True, slots=True)
class LogsFailed:
    token: int
    message: str


@dataclass(frozen=True, slots=True)
class FollowEntries:
    token: int
    entries: Sequence[LogEntry]


@dataclass(frozen=True, slots=True)
class FollowStopped:
    token: int
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ActionFinished:
    pending: PendingAction
    ok: bool
    message: str


Event = Union[
    KeyPress,
    Resize,
    Scroll,
    RowClicked,
    UnitsLoaded,
    UnitsFailed,
    PropertiesLoaded,
    LogsLoaded,
    LogsFailed,
    FollowEntries,
    FollowStopped,
    ActionFinished,
]

INPUT_EVENTS = (KeyPress, Scroll, RowClicked)
QUIT_KEYS = ("q", "ctrl+c")


# -- effects -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoadUnits:
    kind: UnitKind
    scope: Scope
    epoch: int


@dataclass(frozen=True, slots=True)
class FetchProperties:
    name: str
    scope: Scope
    epoch: int


@dataclass(frozen=True, slots=True)
class FetchLogs:
    unit_name: str
    scope: Scope
    priority_ceiling: int | None
    time_range: TimeRange
    limit: int
    token: int


@dataclass(frozen=True, slots=True)
class StartFollow:
    unit_name: str
    scope: Scope
    priority_ceiling: int | None
    time_range: TimeRange
    cursor: str | None
    token: int


@dataclass(frozen=True, slots=True)
class StopFollow:
    token: int


@dataclass(frozen=True, slots=True)
class PerformAction:
    pending: PendingAction
    scope: Scope


@dataclass(frozen=True, slots=True)
class Quit:
    pass


Effect = Union[LoadUnits, FetchProperties, FetchLogs, StartFollow, StopFollow, PerformAction, Quit]


# -- view model ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FilterView:
    search_text: str
    status_filter: str | None
    file_state_filter: str | None


@dataclass(frozen=True, slots=True)
class UnitListView:
    units: tuple[Unit, ...]
    selected: int | None
    total: int
    match_count: int


@dataclass(frozen=True, slots=True)
class LogView:
    unit_name: str | None
    entries: tuple[LogEntry, ...]
    scroll: int
    searching: bool
    search_text: str
    match_count: int
    current_match: int | None
    current_entry: int | None
    current_offset: int | None
    highlights: Mapping[int, tuple[int, ...]]
    priority_ceiling: int | None
    time_range: TimeRange
    following: bool


@dataclass(frozen=True, slots=True)
class PickerView:
    kind: ModalKind
    title: str
    options: tuple[str, ...]
    cursor: int
    active: int | None


@dataclass(frozen=True, slots=True)
class DetailsView:
    unit_name: str
    sections: tuple[Section, ...]
    scroll: int


@dataclass(frozen=True, slots=True)
class ViewModel:
    kind: UnitKind
    scope: Scope
    focus: FocusMode
    filter: FilterView
    units: UnitListView
    logs: LogView | None
    picker: PickerView | None
    confirmation: str | None
    details: DetailsView | None
    status: StatusMessage | None
    busy: str | None
    error: str | None


# -- controller ----------------------------------------------------------------


_PICKER_KEYS = {
    ModalKind.STATUS_PICKER: "s",
    ModalKind.FILE_STATE_PICKER: "f",
    ModalKind.TYPE_PICKER: "t",
    ModalKind.PRIORITY_PICKER: "p",
    ModalKind.TIME_RANGE_PICKER: "T",
    ModalKind.ACTION_PICKER: "a",
}


class Controller:
    def __init__(
        self,
        kind: UnitKind = UnitKind.SERVICE,
        scope: Scope = Scope.SYSTEM,
        log_limit: int = DEFAULT_LOG_LIMIT,
        log_engine: Optional[LogEngine] = None,
    ) -> None:
        self.kind = kind
        self.scope = scope
        self.log_limit = log_limit
        self.cache = EntityCache()
        self.filter = FilterState()
        self.focus = FocusStateMachine()
        self.logs = log_engine or LogEngine()

        self._visible: list[int] = []
        self.match_count = 0
        self.selected: int | None = None

        self.log_unit: str | None = None
        self.log_scroll = 0
        self._log_token = 0
        self.follow = False
        self._follow_token: int | None = None
        self._follow_seq = 0

        self.details_unit: Unit | None = None
        self.detail_scroll = 0

        # the data-source call input waits on; at most one at a time
        self.waiting: LoadUnits | FetchProperties | FetchLogs | PerformAction | None = None

        self.status: StatusMessage | None = None
        self.busy: str | None = None
        self.error: str | None = None
        self.should_quit = False

        self.list_rows = 20
        self.log_rows = 20
        self.detail_rows = 20

    # -- entry points ------------------------------------------------------------

    def start(self) -> list[Effect]:
        return [self._load_units()]

    def handle(self, event: Event) -> list[Effect]:
        if isinstance(event, INPUT_EVENTS):
            if self.waiting is not None:
                if isinstance(event, KeyPress) and event.name in QUIT_KEYS:
                    return self._quit()
                log.debug("dropping %s while waiting on %s", type(event).__name__, type(self.waiting).__name__)
                return []
            self.status = None
        elif self._answers_waiting(event):
            self.waiting = None
        handler = getattr(self, f"_on_{type(event).__name__}", None)
        if handler is None:
            log.debug("unhandled event %r", event)
            return []
        effects = handler(event) or []
        if effects:
            log.debug("%s -> %s", type(event).__name__, [type(e).__name__ for e in effects])
        return effects

    def _answers_waiting(self, event: Event) -> bool:
        w = self.waiting
        if isinstance(w, LoadUnits):
            return isinstance(event, (UnitsLoaded, UnitsFailed)) and event.epoch == w.epoch
        if isinstance(w, FetchProperties):
            return isinstance(event, PropertiesLoaded) and (event.name, event.epoch) == (w.name, w.epoch)
        if isinstance(w, FetchLogs):
            return isinstance(event, (LogsLoaded, LogsFailed)) and event.token == w.token
        if isinstance(w, PerformAction):
            return isinstance(event, ActionFinished) and event.pending == w.pending
        return False

    # -- derived state -------------------------------------------------------------

    @property
    def visible_units(self) -> list[Unit]:
        units = self.cache.units
        return [units[i] for i in self._visible]

    @property
    def selected_unit(self) -> Unit | None:
        if self.selected is None or not (0 <= self.selected < len(self._visible)):
            return None
        return self.cache.units[self._visible[self.selected]]

    @property
    def following(self) -> bool:
        return self._follow_token is not None

    def _recompute_filter(self, keep_name: str | None = None) -> None:
        self._visible, self.match_count = filters.visible(self.cache.units, self.filter)
        if keep_name is not None:
            names = (self.cache.units[i].name for i in self._visible)
            self.selected = reselect(names, keep_name, self.selected)
        else:
            self.selected = clamp_selection(self.selected, len(self._visible))

    def _max_log_scroll(self) -> int:
        return max(0, len(self.logs.visible_entries) - self.log_rows)

    def _max_detail_scroll(self) -> int:
        if self.details_unit is None:
            return 0
        return max(0, line_count(self._detail_sections()) - self.detail_rows)

    def _detail_sections(self) -> list[Section]:
        assert self.details_unit is not None
        return detail_sections(self.details_unit, self.cache.peek_properties(self.details_unit.name))

    # -- data-source requests --------------------------------------------------------

    def _load_units(self) -> LoadUnits:
        self.busy = f"Loading {self.kind.label.lower()}..."
        self.waiting = LoadUnits(self.kind, self.scope, self.cache.epoch)
        return self.waiting

    def _fetch_logs(self) -> FetchLogs:
        assert self.log_unit is not None
        self._log_token += 1
        self.busy = "Loading logs..."
        self.waiting = FetchLogs(
            self.log_unit,
            self.scope,
            self.logs.filter.priority_ceiling,
            self.logs.filter.time_range,
            self.log_limit,
            self._log_token,
        )
        return self.waiting

    def _start_follow(self) -> list[Effect]:
        if self.log_unit is None or self._follow_token is not None:
            return []
        self._follow_seq += 1
        self._follow_token = self._follow_seq
        return [
            StartFollow(
                self.log_unit,
                self.scope,
                self.logs.filter.priority_ceiling,
                self.logs.filter.time_range,
                self.logs.last_cursor,
                self._follow_token,
            )
        ]

    def _stop_follow(self) -> list[Effect]:
        if self._follow_token is None:
            return []
        token, self._follow_token = self._follow_token, None
        return [StopFollow(token)]

    def _refresh(self) -> list[Effect]:
        self.cache.invalidate()
        return [self._load_units()]

    def _reset_logs(self) -> None:
        self.logs.clear()
        self.logs.reset_filters()
        self.log_unit = None
        self.log_scroll = 0
        self._log_token += 1  # orphan any outstanding fetch

    def _switch_kind(self, kind: UnitKind) -> list[Effect]:
        effects = self._stop_follow()
        log.info("switching unit kind %s -> %s", self.kind.value, kind.value)
        self.kind = kind
        self.filter = FilterState()
        self._reset_logs()
        self.focus.reset_to_unit_list()
        self.cache.clear_units()
        self._recompute_filter()
        self.error = None
        self.cache.invalidate()
        effects.append(self._load_units())
        return effects

    def _toggle_scope(self) -> list[Effect]:
        if self.focus.mode != UnitList():
            return []
        effects = self._stop_follow()
        self.scope = self.scope.toggled()
        log.info("switching scope to %s", self.scope.value)
        self.filter = FilterState()
        self._reset_logs()
        self.cache.clear_units()
        self._recompute_filter()
        self.error = None
        self.cache.invalidate()
        effects.append(self._load_units())
        return effects

    # -- data-source results -----------------------------------------------------------

    def _on_UnitsLoaded(self, event: UnitsLoaded) -> list[Effect]:
        if not self.cache.is_current(event.epoch):
            log.debug("ignoring units from stale epoch %d", event.epoch)
            return []
        previous = self.selected_unit
        self.cache.replace_units(self.cache.merge_file_states(event.units, event.file_states))
        self._recompute_filter(keep_name=previous.name if previous else None)
        self.busy = None
        self.error = None
        return []

    def _on_UnitsFailed(self, event: UnitsFailed) -> list[Effect]:
        if not self.cache.is_current(event.epoch):
            return []
        self.busy = None
        self.status = StatusMessage(event.message, is_error=True)
        if not self.cache.units:
            self.error = event.message
        return []

    def _on_PropertiesLoaded(self, event: PropertiesLoaded) -> list[Effect]:
        if self.cache.store_properties(event.name, event.epoch, event.properties):
            self.busy = None
            self.detail_scroll = min(self.detail_scroll, self._max_detail_scroll())
        return []

    def _on_LogsLoaded(self, event: LogsLoaded) -> list[Effect]:
        if event.token != self._log_token:
            log.debug("ignoring logs for stale request %d", event.token)
            return []
        self.busy = None
        self.logs.load(event.entries)
        self.log_scroll = self._max_log_scroll()
        self._reveal_match()
        if self.follow and self.focus.logs_open:
            return self._start_follow()
        return []

    def _on_LogsFailed(self, event: LogsFailed) -> list[Effect]:
        if event.token != self._log_token:
            return []
        self.busy = None
        self.status = StatusMessage(event.message, is_error=True)
        return []

    def _on_FollowEntries(self, event: FollowEntries) -> list[Effect]:
        if event.token != self._follow_token:
            return []
        at_bottom = self.log_scroll >= self._max_log_scroll()
        if self.logs.append(event.entries) and at_bottom:
            self.log_scroll = self._max_log_scroll()
        return []

    def _on_FollowStopped(self, event: FollowStopped) -> list[Effect]:
        if event.token != self._follow_token:
            return []
        self._follow_token = None
        self.follow = False
        if event.message:
            self.status = StatusMessage(f"Follow stopped: {event.message}", is_error=True)
        return []

    def _on_ActionFinished(self, event: ActionFinished) -> list[Effect]:
        self.focus.action_flow.finish(event.pending)
        self.busy = None
        self.status = StatusMessage(event.message, is_error=not event.ok)
        if event.ok:
            log.info("action %s %s: %s", event.pending.action.verb, event.pending.unit_name, event.message)
        else:
            log.warning("action %s %s failed: %s", event.pending.action.verb, event.pending.unit_name, event.message)
        return self._refresh()

    # -- layout/mouse --------------------------------------------------------------------

    def _on_Resize(self, event: Resize) -> list[Effect]:
        self.list_rows = max(1, event.list_rows)
        self.log_rows = max(1, event.log_rows)
        self.detail_rows = max(1, event.detail_rows)
        self.log_scroll = min(self.log_scroll, self._max_log_scroll())
        self.detail_scroll = min(self.detail_scroll, self._max_detail_scroll())
        return []

    def _on_Scroll(self, event: Scroll) -> list[Effect]:
        mode = self.focus.mode
        if isinstance(mode, Modal):
            if mode.kind is ModalKind.DETAILS and event.target == "details":
                self._scroll_details(event.delta)
            return []
        if isinstance(mode, LogPanel):
            self._scroll_logs(event.delta * MOUSE_LOG_STEP)
        elif event.target == "units":
            if event.delta > 0:
                self._select_next()
            elif event.delta < 0:
                self._select_previous()
        return []

    def _on_RowClicked(self, event: RowClicked) -> list[Effect]:
        if self.focus.mode not in (UnitList(), UnitSearch()):
            return []
        if 0 <= event.row < len(self._visible):
            self.selected = event.row
        return []

    # -- keys -----------------------------------------------------------------------------

    def _on_KeyPress(self, event: KeyPress) -> list[Effect]:
        key = event.name
        mode = self.focus.mode
        if isinstance(mode, Modal):
            return self._modal_key(mode.kind, key)
        if isinstance(mode, UnitSearch) or mode == LogPanel(LogSubMode.SEARCH):
            return self._search_key(event)
        if key == "?":
            self.focus.open_modal(ModalKind.HELP)
            return []
        if isinstance(mode, LogPanel):
            return self._log_key(key)
        return self._list_key(key)

    def _list_key(self, key: str) -> list[Effect]:
        if key == "q":
            return self._quit()
        if key in ("j", "down"):
            self._select_next()
        elif key in ("k", "up"):
            self._select_previous()
        elif key in ("g", "home"):
            self.selected = clamp_selection(0, len(self._visible))
        elif key in ("G", "end"):
            self.selected = clamp_selection(len(self._visible) - 1, len(self._visible))
        elif key == "pageup":
            self._page(-self.list_rows)
        elif key == "pagedown":
            self._page(self.list_rows)
        elif key == "/":
            self.focus.begin_search()
        elif key == "escape":
            if self.filter.search_text:
                self.filter.search_text = ""
            else:
                self.filter.status_filter = None
                self.filter.file_state_filter = None
            self._recompute_filter()
        elif key == "l":
            return self._open_logs()
        elif key == "r":
            return self._refresh()
        elif key == "u":
            return self._toggle_scope()
        elif key == "a":
            return self._open_action_picker()
        elif key == "D":
            self.focus.action_flow.begin_direct(UnitAction.DAEMON_RELOAD)
            self.focus.open_modal(ModalKind.CONFIRMATION)
        else:
            return self._shared_key(key)
        return []

    def _log_key(self, key: str) -> list[Effect]:
        if key == "q":
            return self._quit()
        if key == "l":
            return self._close_logs()
        if key == "escape":
            if self.logs.filter.search_text:
                self.logs.clear_search()
                return []
            return self._close_logs()
        if key == "/":
            self.focus.begin_log_search()
        elif key == "n":
            self.logs.next_match()
            self._reveal_match()
        elif key == "N":
            self.logs.prev_match()
            self._reveal_match()
        elif key in ("j", "down"):
            self._scroll_logs(1)
        elif key in ("k", "up"):
            self._scroll_logs(-1)
        elif key in ("g", "home"):
            self.log_scroll = 0
        elif key in ("G", "end"):
            self.log_scroll = self._max_log_scroll()
        elif key == "pageup":
            self._scroll_logs(-self.log_rows)
        elif key == "pagedown":
            self._scroll_logs(self.log_rows)
        elif key == "ctrl+u":
            self._scroll_logs(-(self.log_rows // 2))
        elif key == "ctrl+d":
            self._scroll_logs(self.log_rows // 2)
        elif key == "F":
            return self._toggle_follow()
        else:
            return self._shared_key(key)
        return []

    def _shared_key(self, key: str) -> list[Effect]:
        """Keys that open modals from both the unit list and the log panel."""
        if key == "s" and self.focus.mode == UnitList():
            self.focus.open_modal(ModalKind.STATUS_PICKER, self._status_index())
        elif key == "f":
            options = file_state_options()
            current = self.filter.file_state_filter
            self.focus.open_modal(ModalKind.FILE_STATE_PICKER, options.index(current) if current in options else 0)
        elif key == "t":
            self.focus.open_modal(ModalKind.TYPE_PICKER, UNIT_KINDS.index(self.kind))
        elif key == "p":
            ceiling = self.logs.filter.priority_ceiling
            self.focus.open_modal(ModalKind.PRIORITY_PICKER, 0 if ceiling is None else ceiling + 1)
        elif key == "T":
            self.focus.open_modal(ModalKind.TIME_RANGE_PICKER, TIME_RANGES.index(self.logs.filter.time_range))
        elif key in ("i", "enter"):
            return self._open_details()
        return []

    def _search_key(self, event: KeyPress) -> list[Effect]:
        in_logs = isinstance(self.focus.mode, LogPanel)
        text = self.logs.filter.search_text if in_logs else self.filter.search_text
        key = event.name

        if key in ("escape", "enter"):
            if in_logs:
                self.focus.end_log_search()
            else:
                self.focus.end_search()
            return []
        if key == "ctrl+u":
            text = ""
            if in_logs:
                self.focus.end_log_search()
            else:
                self.focus.end_search()
        elif key == "backspace":
            text = text[:-1]
        elif key in ("pageup", "pagedown"):
            step = self.log_rows if in_logs else self.list_rows
            step = -step if key == "pageup" else step
            if in_logs:
                self._scroll_logs(step)
            else:
                self._page(step)
            return []
        elif key in ("down", "up") and not in_logs:
            if key == "down":
                self._select_next()
            else:
                self._select_previous()
            return []
        elif len(key) == 1:
            text += key
        else:
            return []

        if in_logs:
            self.logs.search(text)
            self._reveal_match()
        else:
            self.filter.search_text = text
            self._recompute_filter()
        return []

    def _modal_key(self, kind: ModalKind, key: str) -> list[Effect]:
        if kind is ModalKind.HELP:
            self.focus.close_modal()
            return []
        if kind is ModalKind.DETAILS:
            if key in ("escape", "i", "enter", "q"):
                self.focus.close_modal()
                self.details_unit = None
            elif key in ("j", "down"):
                self._scroll_details(1)
            elif key in ("k", "up"):
                self._scroll_details(-1)
            elif key in ("g", "home"):
                self.detail_scroll = 0
            elif key in ("G", "end"):
                self.detail_scroll = self._max_detail_scroll()
            elif key == "pagedown":
                self._scroll_details(self.detail_rows)
            elif key == "pageup":
                self._scroll_details(-self.detail_rows)
            return []
        if kind is ModalKind.CONFIRMATION:
            if key in ("y", "enter"):
                return self._confirm_action()
            if key in ("n", "escape", "q"):
                self.focus.action_flow.cancel()
                self.focus.close_modal()
            return []

        # pickers
        count = len(self._picker_options(kind))
        if key in ("escape", _PICKER_KEYS[kind]):
            if kind is ModalKind.ACTION_PICKER:
                self.focus.action_flow.cancel()
            self.focus.close_modal()
        elif key in ("j", "down"):
            self.focus.picker_next(count)
        elif key in ("k", "up"):
            self.focus.picker_previous(count)
        elif key == "enter":
            return self._confirm_picker(kind, self.focus.picker_index)
        elif kind is ModalKind.ACTION_PICKER:
            for action in self.focus.action_flow.options:
                if action.shortcut == key:
                    return self._choose_action(action)
        return []

    # -- selection -------------------------------------------------------------------------

    def _select_next(self) -> None:
        n = len(self._visible)
        if n == 0:
            return
        self.selected = 0 if self.selected is None or self.selected >= n - 1 else self.selected + 1

    def _select_previous(self) -> None:
        n = len(self._visible)
        if n == 0:
            return
        self.selected = n - 1 if self.selected is None or self.selected == 0 else self.selected - 1

    def _page(self, delta: int) -> None:
        n = len(self._visible)
        if n == 0:
            return
        self.selected = clamp_selection((self.selected or 0) + delta, n)

    # -- log panel ---------------------------------------------------------------------------

    def _open_logs(self) -> list[Effect]:
        unit = self.selected_unit
        if unit is None or not self.focus.open_logs():
            return []
        if unit.name == self.log_unit:
            return self._start_follow() if self.follow else []
        effects = self._stop_follow()
        self.log_unit = unit.name
        self.logs.clear()
        self.log_scroll = 0
        effects.append(self._fetch_logs())
        return effects

    def _close_logs(self) -> list[Effect]:
        effects = self._stop_follow()
        self.logs.clear_search()
        self.focus.close_logs()
        return effects

    def _toggle_follow(self) -> list[Effect]:
        if self.follow:
            self.follow = False
            return self._stop_follow()
        self.follow = True
        return self._start_follow()

    def _scroll_logs(self, delta: int) -> None:
        self.log_scroll = max(0, min(self.log_scroll + delta, self._max_log_scroll()))

    def _reveal_match(self) -> None:
        idx = self.logs.current_entry_index
        if idx is None:
            return
        if idx < self.log_scroll or idx >= self.log_scroll + self.log_rows:
            self.log_scroll = min(idx, self._max_log_scroll())

    def _apply_log_filter(self) -> list[Effect]:
        """Refetch after a priority/time change; the journal query is bounded after filtering."""
        self._reveal_match()
        self.log_scroll = min(self.log_scroll, self._max_log_scroll())
        if self.log_unit is None:
            return []
        effects = self._stop_follow()
        effects.append(self._fetch_logs())
        return effects

    # -- details -------------------------------------------------------------------------------

    def _open_details(self) -> list[Effect]:
        unit = self.selected_unit
        if unit is None or not self.focus.open_modal(ModalKind.DETAILS):
            return []
        self.details_unit = unit
        self.detail_scroll = 0
        if self.cache.get_properties(unit.name) is Fetch.MISS:
            self.busy = "Loading properties..."
            self.waiting = FetchProperties(unit.name, self.scope, self.cache.epoch)
            return [self.waiting]
        return []

    def _scroll_details(self, delta: int) -> None:
        self.detail_scroll = max(0, min(self.detail_scroll + delta, self._max_detail_scroll()))

    # -- pickers ---------------------------------------------------------------------------------

    def _status_index(self) -> int:
        options = status_options(self.kind)
        current = self.filter.status_filter
        return options.index(current) if current in options else 0

    def _picker_options(self, kind: ModalKind) -> list[str]:
        if kind is ModalKind.STATUS_PICKER:
            return status_options(self.kind)
        if kind is ModalKind.FILE_STATE_PICKER:
            return file_state_options()
        if kind is ModalKind.TYPE_PICKER:
            return [k.label for k in UNIT_KINDS]
        if kind is ModalKind.PRIORITY_PICKER:
            return [filters.ALL_OPTION] + [f"{i} {label}" for i, label in enumerate(PRIORITY_LABELS)]
        if kind is ModalKind.TIME_RANGE_PICKER:
            return [t.label for t in TIME_RANGES]
        if kind is ModalKind.ACTION_PICKER:
            return [f"{a.label} ({a.shortcut})" for a in self.focus.action_flow.options]
        return []

    def _confirm_picker(self, kind: ModalKind, index: int) -> list[Effect]:
        options = self._picker_options(kind)
        if not (0 <= index < len(options)):
            self.focus.close_modal()
            return []

        if kind is ModalKind.ACTION_PICKER:
            return self._choose_action(self.focus.action_flow.options[index])

        self.focus.close_modal()
        if kind is ModalKind.STATUS_PICKER:
            self.filter.status_filter = None if index == 0 else options[index]
            self._recompute_filter()
        elif kind is ModalKind.FILE_STATE_PICKER:
            self.filter.file_state_filter = None if index == 0 else options[index]
            self._recompute_filter()
        elif kind is ModalKind.TYPE_PICKER:
            new_kind = UNIT_KINDS[index]
            if new_kind is not self.kind:
                return self._switch_kind(new_kind)
        elif kind is ModalKind.PRIORITY_PICKER:
            ceiling = None if index == 0 else index - 1
            if ceiling != self.logs.filter.priority_ceiling:
                self.logs.set_priority_ceiling(ceiling)
                return self._apply_log_filter()
        elif kind is ModalKind.TIME_RANGE_PICKER:
            time_range = TIME_RANGES[index]
            if time_range is not self.logs.filter.time_range:
                self.logs.set_time_range(time_range)
                return self._apply_log_filter()
        return []

    # -- action flow -------------------------------------------------------------------------------

    def _open_action_picker(self) -> list[Effect]:
        unit = self.selected_unit
        if unit is None:
            return []
        self.focus.action_flow.begin(unit)
        self.focus.open_modal(ModalKind.ACTION_PICKER)
        return []

    def _choose_action(self, action: UnitAction) -> list[Effect]:
        if self.focus.action_flow.choose(action) is not None:
            self.focus.open_modal(ModalKind.CONFIRMATION)
        return []

    def _confirm_action(self) -> list[Effect]:
        pending = self.focus.action_flow.confirm()
        self.focus.close_modal()
        if pending is None:
            return []
        self.busy = pending.action.progress_label
        self.waiting = PerformAction(pending, self.scope)
        return [self.waiting]

    # -- quit -----------------------------------------------------------------------------------------

    def _quit(self) -> list[Effect]:
        self.should_quit = True
        return [*self._stop_follow(), Quit()]

    # -- view -------------------------------------------------------------------------------------------

    def view(self) -> ViewModel:
        mode = self.focus.mode
        return ViewModel(
            kind=self.kind,
            scope=self.scope,
            focus=mode,
            filter=FilterView(self.filter.search_text, self.filter.status_filter, self.filter.file_state_filter),
            units=UnitListView(
                units=tuple(self.visible_units),
                selected=self.selected,
                total=len(self.cache.units),
                match_count=self.match_count,
            ),
            logs=self._log_view() if self.focus.logs_open else None,
            picker=self._picker_view(),
            confirmation=self._confirmation_view(),
            details=self._details_view(),
            status=self.status,
            busy=self.busy,
            error=self.error,
        )

    def _log_view(self) -> LogView:
        f = self.logs.filter
        return LogView(
            unit_name=self.log_unit,
            entries=tuple(self.logs.visible_entries),
            scroll=self.log_scroll,
            searching=self.focus.base == LogPanel(LogSubMode.SEARCH),
            search_text=f.search_text,
            match_count=len(self.logs.matches),
            current_match=f.current_match,
            current_entry=self.logs.current_entry_index,
            current_offset=self.logs.matches[f.current_match][1] if f.current_match is not None else None,
            highlights=self.logs.highlights(),
            priority_ceiling=f.priority_ceiling,
            time_range=f.time_range,
            following=self.following,
        )

    def _picker_view(self) -> PickerView | None:
        kind = self.focus.modal
        if kind is None or kind not in _PICKER_KEYS:
            return None
        options = self._picker_options(kind)
        if kind is ModalKind.STATUS_PICKER:
            title, active = "Status Filter", self._status_index()
        elif kind is ModalKind.FILE_STATE_PICKER:
            current = self.filter.file_state_filter
            title, active = "File State", options.index(current) if current in options else 0
        elif kind is ModalKind.TYPE_PICKER:
            title, active = "Unit Type", UNIT_KINDS.index(self.kind)
        elif kind is ModalKind.PRIORITY_PICKER:
            ceiling = self.logs.filter.priority_ceiling
            title, active = "Priority", 0 if ceiling is None else ceiling + 1
        elif kind is ModalKind.TIME_RANGE_PICKER:
            title, active = "Time Range", TIME_RANGES.index(self.logs.filter.time_range)
        else:
            title, active = f"Actions: {self.focus.action_flow.unit_name}", None
        return PickerView(kind, title, tuple(options), self.focus.picker_index, active)

    def _confirmation_view(self) -> str | None:
        flow = self.focus.action_flow
        if self.focus.modal is not ModalKind.CONFIRMATION or flow.phase is not FlowPhase.CONFIRMING:
            return None
        assert flow.pending is not None
        return flow.pending.confirmation_message

    def _details_view(self) -> DetailsView | None:
        if self.focus.modal is not ModalKind.DETAILS or self.details_unit is None:
            return None
        return DetailsView(self.details_unit.name, tuple(self._detail_sections()), self.detail_scroll)
