"""Rich text for the dashboard widgets, built from the controller's view model."""

from __future__ import annotations

from rich.text import Text

from ..core.controller import DetailsView, LogView, PickerView, ViewModel
from ..core.focus import LogPanel, LogSubMode, UnitSearch
from ..core.models import LogEntry, Unit, UnitKind, priority_label
from ..util import format_log_timestamp, format_relative_time, format_timestamp

STATUS_STYLES = {
    "All": "cyan",
    "running": "green",
    "exited": "yellow",
    "failed": "red",
    "dead": "bright_black",
    "stopped": "bright_black",
    "waiting": "cyan",
    "listening": "green",
    "active": "green",
    "inactive": "bright_black",
    "elapsed": "yellow",
}

FILE_STATE_STYLES = {
    "enabled": "green",
    "disabled": "bright_black",
    "static": "blue",
    "masked": "red",
    "indirect": "magenta",
}

MATCH_STYLE = "black on bright_black"
CURRENT_MATCH_STYLE = "black on yellow"


def status_style(state: str) -> str:
    return STATUS_STYLES.get(state, "white")


def priority_style(priority: int) -> str:
    """0-2 emphasized error, 3 error, 4 warning, 5 highlighted info, 6 default, 7 muted."""
    if priority <= 2:
        return "bold red"
    if priority == 3:
        return "red"
    if priority == 4:
        return "yellow"
    if priority == 5:
        return "cyan"
    if priority == 7:
        return "bright_black"
    return ""


# -- unit table ------------------------------------------------------------------


def unit_columns(kind: UnitKind) -> tuple[str, ...]:
    extra: tuple[str, ...] = ()
    if kind is UnitKind.TIMER:
        extra = ("Next", "Last")
    elif kind is UnitKind.SOCKET:
        extra = ("Listen",)
    return ("Status", "Unit", "File", *extra, "Description")


def unit_row(unit: Unit) -> tuple[Text, ...]:
    state = unit.sub_state or unit.active_state
    cells = [
        Text(state, style=status_style(state)),
        Text(unit.name),
        Text(unit.file_state or "-", style=FILE_STATE_STYLES.get(unit.file_state or "", "bright_black")),
    ]
    if unit.kind is UnitKind.TIMER:
        cells.append(Text(format_relative_time(unit.next_trigger) if unit.next_trigger else "n/a"))
        cells.append(Text(format_timestamp(unit.last_trigger) if unit.last_trigger else "n/a", style="bright_black"))
    elif unit.kind is UnitKind.SOCKET:
        cells.append(Text(unit.listen_address or "-"))
    cells.append(Text(unit.description, style="bright_black"))
    return tuple(cells)


# -- header / status line ----------------------------------------------------------


def header_text(vm: ViewModel) -> Text:
    t = Text()
    t.append(f" {vm.scope.label} ", style="bold black on cyan")
    t.append(" ")
    t.append(vm.kind.label, style="bold")
    t.append(f"  {vm.units.match_count}/{vm.units.total}", style="bright_black")
    f = vm.filter
    if f.search_text:
        t.append(f"  search: {f.search_text}", style="yellow")
    if f.status_filter:
        t.append(f"  status: {f.status_filter}", style=status_style(f.status_filter))
    if f.file_state_filter:
        t.append(f"  file: {f.file_state_filter}", style="magenta")
    return t


def status_line(vm: ViewModel) -> Text:
    if vm.focus == UnitSearch():
        return Text.assemble(("/", "bold yellow"), vm.filter.search_text, ("_", "blink"))
    if vm.focus == LogPanel(LogSubMode.SEARCH) and vm.logs is not None:
        return Text.assemble(("log /", "bold yellow"), vm.logs.search_text, ("_", "blink"))
    if vm.busy:
        return Text(vm.busy, style="cyan")
    if vm.status is not None:
        return Text(vm.status.text, style="bold red" if vm.status.is_error else "green")
    if vm.logs is not None:
        return Text("j/k scroll  / search  n/N match  F follow  p priority  T time  l close  ? help", style="bright_black")
    return Text(
        "j/k move  / search  s status  f file  t type  l logs  i details  a actions  u user/system  ? help  q quit",
        style="bright_black",
    )


# -- log panel -------------------------------------------------------------------------


def log_title(view: LogView) -> Text:
    t = Text()
    t.append(f" Logs: {view.unit_name or '-'} ", style="bold")
    if view.priority_ceiling is not None:
        t.append(f" <= {priority_label(view.priority_ceiling)} ", style="yellow")
    if view.time_range.journalctl_since is not None:
        t.append(f" {view.time_range.label} ", style="cyan")
    if view.following:
        t.append(" following ", style="bold green")
    if view.search_text:
        pos = "-" if view.current_match is None else str(view.current_match + 1)
        t.append(f" [{pos}/{view.match_count}] {view.search_text} ", style="yellow")
    return t


def log_line(
    entry: LogEntry,
    offsets: tuple[int, ...] = (),
    needle_len: int = 0,
    current_offset: int | None = None,
) -> Text:
    t = Text(no_wrap=True, overflow="ellipsis")
    ts = format_log_timestamp(entry.timestamp)
    if ts:
        t.append(ts, style="bright_black")
        t.append(" ")
    if entry.identifier:
        t.append(entry.identifier, style="magenta")
        if entry.pid:
            t.append(f"[{entry.pid}]", style="magenta")
        t.append(": ")
    start = len(t)
    t.append(entry.message, style=priority_style(entry.priority))
    for off in offsets:
        style = CURRENT_MATCH_STYLE if off == current_offset else MATCH_STYLE
        t.stylize(style, start + off, start + off + needle_len)
    return t


def log_window(view: LogView, rows: int) -> Text:
    if not view.entries:
        return Text("No log entries", style="bright_black")
    lines = []
    end = min(len(view.entries), view.scroll + rows)
    for idx in range(view.scroll, end):
        current = view.current_offset if idx == view.current_entry else None
        lines.append(log_line(view.entries[idx], view.highlights.get(idx, ()), len(view.search_text), current))
    return Text("\n").join(lines)


# -- modals -------------------------------------------------------------------------------


def picker_text(picker: PickerView) -> Text:
    t = Text()
    t.append(picker.title, style="bold yellow")
    for i, option in enumerate(picker.options):
        t.append("\n")
        marker = "*" if i == picker.active else " "
        line = Text(f" {marker} {option} ", style=status_style(option) if option in STATUS_STYLES else "")
        if i == picker.cursor:
            line.stylize("reverse")
        t.append_text(line)
    t.append("\n\nj/k move  Enter select  Esc close", style="bright_black")
    return t


def confirmation_text(message: str) -> Text:
    t = Text()
    t.append("Confirm", style="bold yellow")
    t.append(f"\n\n{message}\n\n")
    t.append("y", style="bold green")
    t.append(" yes   ")
    t.append("n", style="bold red")
    t.append(" no", style="")
    return t


def details_text(details: DetailsView, rows: int) -> Text:
    lines: list[Text] = []
    for section in details.sections:
        lines.append(Text(section.title, style="bold yellow"))
        width = max((len(k) for k, _ in section.rows), default=0)
        for key, value in section.rows:
            lines.append(Text.assemble((f"  {key.ljust(width)}  ", "cyan"), value))
        lines.append(Text(""))
    window = lines[details.scroll : details.scroll + rows]
    return Text("\n").join([Text(details.unit_name, style="bold"), Text(""), *window])


HELP_LINES = (
    ("Navigation", None),
    ("j / Down", "Move down"),
    ("k / Up", "Move up"),
    ("g / Home", "Go to top"),
    ("G / End", "Go to bottom"),
    ("PgUp/PgDn", "Scroll list/logs"),
    ("Filtering", None),
    ("/", "Start search"),
    ("s", "Status filter"),
    ("f", "File state filter"),
    ("t", "Unit type"),
    ("Esc", "Clear search/filter"),
    ("Units", None),
    ("i / Enter", "Unit details"),
    ("a", "Actions"),
    ("D", "Daemon reload"),
    ("r", "Refresh"),
    ("u", "Toggle user/system"),
    ("Logs", None),
    ("l", "Toggle logs panel"),
    ("/", "Search within logs"),
    ("n / N", "Next/Prev match"),
    ("Ctrl+u/d", "Half page"),
    ("p / T", "Priority / time range"),
    ("F", "Follow new entries"),
    ("Mouse", None),
    ("Click", "Select unit"),
    ("Scroll", "Navigate list/logs"),
    ("General", None),
    ("?", "Toggle this help"),
    ("q", "Quit"),
)


def help_text() -> Text:
    t = Text("Keys", style="bold yellow")
    for key, desc in HELP_LINES:
        t.append("\n")
        if desc is None:
            t.append(f"\n{key}", style="bold")
        else:
            t.append(f"  {key:<12}", style="cyan")
            t.append(desc)
    return t
