"""Data source boundary: systemd over D-Bus, logs through journalctl.

Every failure leaving this module is a ``SysdashError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

import psutil
from dbus_next.aio import MessageBus
from dbus_next.errors import AuthError, DBusError, InvalidAddressError

from . import systemd_bus as sb
from .core.actions import UnitAction
from .core.models import LogEntry, Scope, TimeRange, Unit, UnitKind, UnitProperties
from .errors import ActionError, DataUnavailable, SysdashError
from .journal import LogFollower, fetch_argv, fetch_entries, follow_argv
from .util import format_usec_span

log = logging.getLogger(__name__)

T = TypeVar("T")

_CONNECTION_ERRORS = (AuthError, InvalidAddressError, OSError, EOFError)
DETAIL_CONCURRENCY = 4


class UnitDataSource(Protocol):
    async def list_units(self, kind: UnitKind, scope: Scope) -> list[Unit]: ...

    async def list_file_states(self, kind: UnitKind, scope: Scope) -> dict[str, str]: ...

    async def fetch_properties(self, name: str, scope: Scope) -> UnitProperties: ...

    async def fetch_log_entries(
        self,
        name: str,
        scope: Scope,
        priority_ceiling: Optional[int],
        time_range: TimeRange,
        limit: int,
    ) -> list[LogEntry]: ...

    async def perform_action(self, name: str, action: UnitAction, scope: Scope) -> str: ...

    def follow(
        self,
        name: str,
        scope: Scope,
        priority_ceiling: Optional[int],
        time_range: TimeRange,
        cursor: Optional[str],
    ) -> LogFollower: ...

    async def close(self) -> None: ...


def _usec(v: Any) -> Optional[int]:
    if v is None:
        return None
    n = int(v)
    return None if n == sb.UINT64_UNSET else n


def _names(v: Any) -> tuple[str, ...]:
    return tuple(v or ())


def _optional_bool(v: Any) -> Optional[bool]:
    return None if v is None else bool(v)


def properties_from_dbus(name: str, st: dict[str, Any]) -> UnitProperties:
    """Build UnitProperties from merged Unit + kind-interface property dicts."""
    calendar = tuple(f"{base}={spec}" for base, spec, *_ in st.get("TimersCalendar") or ())
    monotonic = tuple(
        f"{base}={format_usec_span(int(usec))}" for base, usec, *_ in st.get("TimersMonotonic") or ()
    )
    listen = tuple(f"{addr} ({kind})" for kind, addr in st.get("Listen") or ())
    paths = tuple(f"{kind}={path}" for kind, path in st.get("Paths") or ())
    return UnitProperties(
        name=name,
        fragment_path=st.get("FragmentPath") or "",
        unit_file_state=st.get("UnitFileState") or "",
        active_state=st.get("ActiveState") or "",
        sub_state=st.get("SubState") or "",
        load_state=st.get("LoadState") or "",
        description=st.get("Description") or "",
        main_pid=int(st.get("MainPID") or 0),
        active_enter_timestamp=int(st.get("ActiveEnterTimestamp") or 0),
        exec_main_start_timestamp=int(st.get("ExecMainStartTimestamp") or 0),
        memory_current=_usec(st.get("MemoryCurrent")),
        cpu_usage_nsec=_usec(st.get("CPUUsageNSec")),
        requires=_names(st.get("Requires")),
        wants=_names(st.get("Wants")),
        after=_names(st.get("After")),
        before=_names(st.get("Before")),
        conflicts=_names(st.get("Conflicts")),
        triggered_by=_names(st.get("TriggeredBy")),
        triggers=_names(st.get("Triggers")),
        timers_calendar=calendar,
        timers_monotonic=monotonic,
        last_trigger_usec=int(st.get("LastTriggerUSec") or 0),
        next_elapse_realtime=_usec(st.get("NextElapseUSecRealtime")) or 0,
        persistent=_optional_bool(st.get("Persistent")),
        accuracy_usec=_usec(st.get("AccuracyUSec")),
        randomized_delay_usec=_usec(st.get("RandomizedDelayUSec")),
        result=st.get("Result") or "",
        listen=listen,
        accept=_optional_bool(st.get("Accept")),
        n_connections=st.get("NConnections"),
        n_accepted=st.get("NAccepted"),
        paths=paths,
    )


def with_process_stats(props: UnitProperties) -> UnitProperties:
    """Fill memory/CPU from the main process when systemd does not account them."""
    if props.main_pid <= 0 or (props.memory_current is not None and props.cpu_usage_nsec is not None):
        return props
    try:
        proc = psutil.Process(props.main_pid)
        with proc.oneshot():
            rss = proc.memory_info().rss
            times = proc.cpu_times()
    except psutil.Error as e:
        log.debug("no process stats for pid %d: %s", props.main_pid, e)
        return props
    return replace(
        props,
        memory_current=props.memory_current if props.memory_current is not None else rss,
        cpu_usage_nsec=(
            props.cpu_usage_nsec
            if props.cpu_usage_nsec is not None
            else int((times.user + times.system) * 1_000_000_000)
        ),
    )


def _kind_of(name: str) -> Optional[str]:
    _, _, suffix = name.rpartition(".")
    return suffix or None


class SystemdDataSource:
    def __init__(self, journalctl: str = "journalctl") -> None:
        self.journalctl = journalctl
        self._buses: dict[Scope, MessageBus] = {}

    async def _bus(self, scope: Scope) -> MessageBus:
        bus = self._buses.get(scope)
        if bus is not None and bus.connected:
            return bus
        try:
            bus = await sb.connect_bus(scope)
        except _CONNECTION_ERRORS as e:
            raise DataUnavailable(f"Cannot connect to the {scope.value} bus: {e}") from e
        self._buses[scope] = bus
        return bus

    async def _call(
        self,
        scope: Scope,
        what: str,
        fn: Callable[[MessageBus], Awaitable[T]],
        error: type[SysdashError] = DataUnavailable,
    ) -> T:
        bus = await self._bus(scope)
        try:
            return await fn(bus)
        except DBusError as e:
            raise error(f"{what}: {e.text}") from e
        except _CONNECTION_ERRORS as e:
            self._buses.pop(scope, None)
            raise error(f"{what}: {e}") from e

    async def close(self) -> None:
        for bus in self._buses.values():
            bus.disconnect()
        self._buses.clear()

    # -- units -------------------------------------------------------------------

    async def list_units(self, kind: UnitKind, scope: Scope) -> list[Unit]:
        rows = await self._call(
            scope,
            f"Failed to list {kind.label.lower()}",
            lambda bus: sb.list_units(bus, [f"*{kind.suffix}"]),
        )
        rows = [r for r in rows if r["Name"].endswith(kind.suffix)]
        units = [
            Unit(
                name=r["Name"],
                kind=kind,
                load_state=r["LoadState"],
                active_state=r["ActiveState"],
                sub_state=r["SubState"],
                description=r["Description"],
            )
            for r in rows
        ]
        if kind is UnitKind.TIMER:
            units = await self._merge_details(scope, rows, units, sb.IFACE_TIMER, _timer_detail)
        elif kind is UnitKind.SOCKET:
            units = await self._merge_details(scope, rows, units, sb.IFACE_SOCKET, _socket_detail)
        log.debug("listed %d %s units (%s)", len(units), kind.value, scope.value)
        return units

    async def _merge_details(self, scope, rows, units, interface, apply) -> list[Unit]:
        """Best effort: units whose detail lookup fails are kept unchanged."""
        bus = await self._bus(scope)
        sem = asyncio.Semaphore(DETAIL_CONCURRENCY)

        async def one(row: dict[str, Any], unit: Unit) -> Unit:
            async with sem:
                try:
                    st = await sb.get_all_properties(bus, row["Path"], interface)
                except (DBusError, *_CONNECTION_ERRORS) as e:
                    log.debug("no %s details for %s: %s", interface, unit.name, e)
                    return unit
                return apply(unit, st)

        return list(await asyncio.gather(*(one(r, u) for r, u in zip(rows, units))))

    async def list_file_states(self, kind: UnitKind, scope: Scope) -> dict[str, str]:
        return await self._call(
            scope,
            "Failed to list unit files",
            lambda bus: sb.list_unit_files(bus, [f"*{kind.suffix}"]),
        )

    async def fetch_properties(self, name: str, scope: Scope) -> UnitProperties:
        st = await self._call(
            scope,
            f"Failed to read properties of {name}",
            lambda bus: sb.get_unit_properties(bus, name, _kind_of(name)),
        )
        return with_process_stats(properties_from_dbus(name, st))

    # -- actions -----------------------------------------------------------------

    async def perform_action(self, name: str, action: UnitAction, scope: Scope) -> str:
        label = action.label

        async def _run(bus: MessageBus) -> Optional[str]:
            if action is UnitAction.START:
                return await sb.start_unit(bus, name)
            if action is UnitAction.STOP:
                return await sb.stop_unit(bus, name)
            if action is UnitAction.RESTART:
                return await sb.restart_unit(bus, name)
            if action is UnitAction.RELOAD:
                return await sb.reload_unit(bus, name)
            if action is UnitAction.ENABLE:
                await sb.enable_unit_files(bus, [name])
            elif action is UnitAction.DISABLE:
                await sb.disable_unit_files(bus, [name])
            else:
                await sb.daemon_reload(bus)
            return "done"

        log.info("%s %s (%s)", action.verb, name or "-", scope.value)
        result = await self._call(scope, f"{label} failed", _run, error=ActionError)
        if result is None:
            return f"{label} queued for {name}"
        if result != "done":
            raise ActionError(f"{label} failed: job {result}")
        if not action.needs_target:
            return f"{label} succeeded"
        return f"{label} succeeded for {name}"

    # -- logs --------------------------------------------------------------------

    async def fetch_log_entries(
        self,
        name: str,
        scope: Scope,
        priority_ceiling: Optional[int],
        time_range: TimeRange,
        limit: int,
    ) -> list[LogEntry]:
        argv = fetch_argv(self.journalctl, name, scope, priority_ceiling, time_range, limit)
        return await fetch_entries(argv)

    def follow(
        self,
        name: str,
        scope: Scope,
        priority_ceiling: Optional[int],
        time_range: TimeRange,
        cursor: Optional[str],
    ) -> LogFollower:
        return LogFollower(follow_argv(self.journalctl, name, scope, priority_ceiling, time_range, cursor))


def _timer_detail(unit: Unit, st: dict[str, Any]) -> Unit:
    return replace(
        unit,
        next_trigger=_usec(st.get("NextElapseUSecRealtime")) or None,
        last_trigger=_usec(st.get("LastTriggerUSec")) or None,
    )


def _socket_detail(unit: Unit, st: dict[str, Any]) -> Unit:
    listen = ", ".join(addr for _, addr in st.get("Listen") or ())
    return replace(unit, listen_address=listen or None)
