import asyncio
from typing import Any, Iterable, Optional

from dbus_next import BusType, Variant
from dbus_next.aio import MessageBus

from .core.models import Scope


SYSTEMD_DEST = "org.freedesktop.systemd1"
SYSTEMD_PATH = "/org/freedesktop/systemd1"
IFACE_MANAGER = "org.freedesktop.systemd1.Manager"
IFACE_PROPERTIES = "org.freedesktop.DBus.Properties"
IFACE_UNIT = "org.freedesktop.systemd1.Unit"
IFACE_SERVICE = "org.freedesktop.systemd1.Service"
IFACE_TIMER = "org.freedesktop.systemd1.Timer"
IFACE_SOCKET = "org.freedesktop.systemd1.Socket"
IFACE_PATH = "org.freedesktop.systemd1.Path"

# systemd reports "not set" for counters as the maximum uint64
UINT64_UNSET = 2**64 - 1
JOB_TIMEOUT = 30.0

KIND_INTERFACES = {
    "service": IFACE_SERVICE,
    "timer": IFACE_TIMER,
    "socket": IFACE_SOCKET,
    "path": IFACE_PATH,
}


async def connect_bus(scope: Scope) -> MessageBus:
    bus_type = BusType.SESSION if scope is Scope.USER else BusType.SYSTEM
    bus = await MessageBus(bus_type=bus_type).connect()
    return bus


async def get_manager(bus: MessageBus):
    intro = await bus.introspect(SYSTEMD_DEST, SYSTEMD_PATH)
    obj = bus.get_proxy_object(SYSTEMD_DEST, SYSTEMD_PATH, intro)
    return obj.get_interface(IFACE_MANAGER)


def _val(v):
    return v.value if isinstance(v, Variant) else v


async def list_units(bus: MessageBus, patterns: Iterable[str] = ()) -> list[dict[str, Any]]:
    """All loaded units (any state) whose names match ``patterns``."""
    mgr = await get_manager(bus)
    rows = await mgr.call_list_units_by_patterns([], list(patterns))
    result = []
    for row in rows:
        # name, description, load_state, active_state, sub_state, following, unit_path, job_id, job_type, job_path
        result.append(
            {
                "Name": row[0],
                "Description": row[1],
                "LoadState": row[2],
                "ActiveState": row[3],
                "SubState": row[4],
                "Following": row[5],
                "Path": row[6],
            }
        )
    return result


async def list_unit_files(bus: MessageBus, patterns: Iterable[str] = ()) -> dict[str, str]:
    """Map unit file basename -> enablement state."""
    mgr = await get_manager(bus)
    rows = await mgr.call_list_unit_files_by_patterns([], list(patterns))
    # rows: (path, state); the path may be /usr/lib/systemd/system/foo.service
    return {path.rsplit("/", 1)[-1]: state for path, state in rows}


async def load_unit_path(bus: MessageBus, unit_name: str) -> str:
    mgr = await get_manager(bus)
    return await mgr.call_load_unit(unit_name)


async def get_all_properties(bus: MessageBus, unit_path: str, interface: str) -> dict[str, Any]:
    intro = await bus.introspect(SYSTEMD_DEST, unit_path)
    obj = bus.get_proxy_object(SYSTEMD_DEST, unit_path, intro)
    props = obj.get_interface(IFACE_PROPERTIES)
    raw = await props.call_get_all(interface)
    return {k: _val(v) for k, v in raw.items()}


async def get_unit_properties(bus: MessageBus, unit_name: str, kind: Optional[str] = None) -> dict[str, Any]:
    """Unit-level properties merged with the kind-specific interface's ones, if any."""
    path = await load_unit_path(bus, unit_name)
    st = await get_all_properties(bus, path, IFACE_UNIT)
    iface = KIND_INTERFACES.get(kind or "")
    if iface is not None:
        st.update(await get_all_properties(bus, path, iface))
    return st


async def _run_job(bus: MessageBus, method: str, unit_name: str, mode: str, timeout: float) -> Optional[str]:
    """Enqueue a job and wait for its JobRemoved result ("done", "failed", ...).

    Returns None if the job is still running after ``timeout`` seconds.
    """
    mgr = await get_manager(bus)
    loop = asyncio.get_running_loop()
    finished: dict[str, str] = {}
    waiter: asyncio.Future = loop.create_future()
    job_path: Optional[str] = None

    def _on_job_removed(job_id, path, unit, result):
        finished[path] = result
        if path == job_path and not waiter.done():
            waiter.set_result(result)

    await mgr.call_subscribe()
    mgr.on_job_removed(_on_job_removed)
    try:
        job_path = await getattr(mgr, method)(unit_name, mode)
        if job_path in finished:
            return finished[job_path]
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            return None
    finally:
        mgr.off_job_removed(_on_job_removed)


async def start_unit(bus: MessageBus, unit_name: str, mode: str = "replace", timeout: float = JOB_TIMEOUT):
    return await _run_job(bus, "call_start_unit", unit_name, mode, timeout)


async def stop_unit(bus: MessageBus, unit_name: str, mode: str = "replace", timeout: float = JOB_TIMEOUT):
    return await _run_job(bus, "call_stop_unit", unit_name, mode, timeout)


async def restart_unit(bus: MessageBus, unit_name: str, mode: str = "replace", timeout: float = JOB_TIMEOUT):
    return await _run_job(bus, "call_restart_unit", unit_name, mode, timeout)


async def reload_unit(bus: MessageBus, unit_name: str, mode: str = "replace", timeout: float = JOB_TIMEOUT):
    return await _run_job(bus, "call_reload_unit", unit_name, mode, timeout)


async def enable_unit_files(bus: MessageBus, unit_names: list[str]):
    mgr = await get_manager(bus)
    # (runtime=False, force=False); systemctl reloads the daemon afterwards
    result = await mgr.call_enable_unit_files(unit_names, False, False)
    await mgr.call_reload()
    return result


async def disable_unit_files(bus: MessageBus, unit_names: list[str]):
    mgr = await get_manager(bus)
    result = await mgr.call_disable_unit_files(unit_names, False)
    await mgr.call_reload()
    return result


async def daemon_reload(bus: MessageBus):
    mgr = await get_manager(bus)
    return await mgr.call_reload()
