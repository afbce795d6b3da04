"""Section model for the Details view: only sections with data are produced."""

from __future__ import annotations

from ..util import (
    format_bytes,
    format_cpu_time,
    format_relative_time,
    format_timestamp,
    format_usec_span,
)
from .cache import Fetch, PropertiesLookup
from .models import Section, Unit, UnitKind, UnitProperties


def _rows(*pairs: tuple[str, object]) -> tuple[tuple[str, str], ...]:
    return tuple((k, str(v)) for k, v in pairs if v is not None and v != "")


def _yes_no(v: bool | None) -> str | None:
    if v is None:
        return None
    return "yes" if v else "no"


def _overview(unit: Unit, props: UnitProperties | None) -> Section:
    active = unit.active_state
    if unit.sub_state:
        active = f"{active} ({unit.sub_state})"
    file_state = unit.file_state or (props.unit_file_state if props else None)
    return Section(
        "Overview",
        _rows(
            ("Unit", unit.name),
            ("Description", unit.description or (props.description if props else "")),
            ("Loaded", unit.load_state),
            ("Active", active),
            ("File state", file_state),
            ("Fragment", props.fragment_path if props else None),
            ("Since", format_timestamp(props.active_enter_timestamp) if props else None),
        ),
    )


def _process(props: UnitProperties) -> Section:
    return Section(
        "Process",
        _rows(
            ("Main PID", props.main_pid or None),
            ("Started", format_timestamp(props.exec_main_start_timestamp)),
            ("Memory", format_bytes(props.memory_current) if props.memory_current is not None else None),
            ("CPU", format_cpu_time(props.cpu_usage_nsec) if props.cpu_usage_nsec is not None else None),
        ),
    )


def _timer(props: UnitProperties) -> Section:
    next_elapse = None
    if props.next_elapse_realtime:
        next_elapse = (
            f"{format_timestamp(props.next_elapse_realtime)} "
            f"({format_relative_time(props.next_elapse_realtime)})"
        )
    return Section(
        "Timer",
        _rows(
            ("Calendar", ", ".join(props.timers_calendar)),
            ("Monotonic", ", ".join(props.timers_monotonic)),
            ("Next elapse", next_elapse),
            ("Last trigger", format_timestamp(props.last_trigger_usec)),
            ("Persistent", _yes_no(props.persistent)),
            ("Accuracy", format_usec_span(props.accuracy_usec) if props.accuracy_usec else None),
            (
                "Randomized delay",
                format_usec_span(props.randomized_delay_usec) if props.randomized_delay_usec else None,
            ),
            ("Result", props.result),
        ),
    )


def _socket(props: UnitProperties) -> Section:
    return Section(
        "Socket",
        _rows(
            ("Listen", ", ".join(props.listen)),
            ("Accept", _yes_no(props.accept)),
            ("Connections", props.n_connections),
            ("Accepted", props.n_accepted),
        ),
    )


def _path(props: UnitProperties) -> Section:
    return Section("Path", _rows(("Paths", ", ".join(props.paths)), ("Result", props.result)))


def _dependencies(props: UnitProperties) -> Section:
    return Section(
        "Dependencies",
        tuple((name, " ".join(units)) for name, units in props.dependencies() if units),
    )


_KIND_SECTIONS = {
    UnitKind.SERVICE: _process,
    UnitKind.TIMER: _timer,
    UnitKind.SOCKET: _socket,
    UnitKind.PATH: _path,
}


def detail_sections(unit: Unit, lookup: PropertiesLookup) -> list[Section]:
    if lookup is Fetch.MISS or lookup is Fetch.PENDING:
        return [_overview(unit, None), Section("Loading properties...")]
    if lookup is Fetch.UNAVAILABLE:
        return [_overview(unit, None), Section("Properties unavailable")]

    sections = [_overview(unit, lookup)]
    extra = _KIND_SECTIONS.get(unit.kind)
    if extra is not None:
        sections.append(extra(lookup))
    sections.append(_dependencies(lookup))
    return [s for s in sections if s.rows or s is sections[0]]


def line_count(sections: list[Section]) -> int:
    """Rendered height: a title line per section, its rows, and a separator."""
    return sum(1 + len(s.rows) + 1 for s in sections)
