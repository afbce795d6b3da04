"""Derives the visible, ordered subset of units from the active filters."""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from .models import FILE_STATES, FilterState, Unit, UnitKind

StatusPredicate = Callable[[str, str], bool]


def _sub(name: str) -> StatusPredicate:
    return lambda active, sub: sub == name


def _active(name: str) -> StatusPredicate:
    return lambda active, sub: active == name


# status name -> predicate over (active_state, sub_state), per unit kind.
# Dict order is the order the status picker offers.
STATUS_PREDICATES: dict[UnitKind, dict[str, StatusPredicate]] = {
    UnitKind.SERVICE: {
        "running": _sub("running"),
        "exited": _sub("exited"),
        "failed": lambda active, sub: sub == "failed" or active == "failed",
        "dead": _sub("dead"),
    },
    UnitKind.TIMER: {
        "waiting": _sub("waiting"),
        "running": _sub("running"),
        "elapsed": _sub("elapsed"),
    },
    UnitKind.SOCKET: {
        "listening": _sub("listening"),
        "running": _sub("running"),
        "failed": lambda active, sub: sub == "failed" or active == "failed",
    },
    UnitKind.TARGET: {
        "active": _active("active"),
        "inactive": _active("inactive"),
    },
    UnitKind.PATH: {
        "waiting": _sub("waiting"),
        "running": _sub("running"),
        "failed": lambda active, sub: sub == "failed" or active == "failed",
    },
}

ALL_OPTION = "All"


def status_options(kind: UnitKind) -> list[str]:
    """Picker options for the status filter; index 0 means no filter."""
    return [ALL_OPTION, *STATUS_PREDICATES[kind]]


def file_state_options() -> list[str]:
    return [ALL_OPTION, *FILE_STATES]


def matches_search(unit: Unit, search_text: str) -> bool:
    if not search_text:
        return True
    hay = f"{unit.name} {unit.description}".lower()
    return search_text.lower() in hay


def matches_status(unit: Unit, status_filter: str | None) -> bool:
    if status_filter is None:
        return True
    pred = STATUS_PREDICATES.get(unit.kind, {}).get(status_filter)
    if pred is None:
        # Unknown name for this kind: fall back to a plain sub-state comparison
        return unit.sub_state == status_filter
    return pred(unit.active_state, unit.sub_state)


def matches_file_state(unit: Unit, file_state_filter: str | None) -> bool:
    if file_state_filter is None:
        return True
    return unit.file_state is not None and unit.file_state == file_state_filter


def unit_matches(unit: Unit, flt: FilterState) -> bool:
    return (
        matches_search(unit, flt.search_text)
        and matches_status(unit, flt.status_filter)
        and matches_file_state(unit, flt.file_state_filter)
    )


def visible(units: Sequence[Unit], flt: FilterState) -> tuple[list[int], int]:
    """Return (indices into ``units``, match count), in fetch order."""
    indices = [i for i, u in enumerate(units) if unit_matches(u, flt)]
    return indices, len(indices)


def clamp_selection(selected: int | None, length: int) -> int | None:
    """Clamp a selection index into ``[0, length-1]``; None when empty."""
    if length <= 0:
        return None
    if selected is None:
        return 0
    return max(0, min(selected, length - 1))


def reselect(names: Iterable[str], previous: str | None, fallback: int | None) -> int | None:
    """Index of ``previous`` within ``names`` if present, else clamped ``fallback``."""
    names = list(names)
    if previous is not None:
        try:
            return names.index(previous)
        except ValueError:
            pass
    return clamp_selection(fallback, len(names))
