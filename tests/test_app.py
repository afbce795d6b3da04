"""Dashboard smoke tests against an in-memory data source."""

import asyncio

from sysdash.config import Settings
from sysdash.core.actions import UnitAction
from sysdash.core.focus import Modal, ModalKind, UnitList
from sysdash.core.models import UnitProperties
from sysdash.dash.app import SysdashApp
from sysdash.errors import DataUnavailable

from helpers import make_entry


class FakeSource:
    def __init__(self, units, entries=(), fail_logs=False):
        self.units = list(units)
        self.entries = list(entries)
        self.fail_logs = fail_logs
        self.log_requests = []
        self.actions = []

    async def list_units(self, kind, scope):
        return [u for u in self.units if u.kind is kind]

    async def list_file_states(self, kind, scope):
        return {u.name: u.file_state for u in self.units if u.file_state}

    async def fetch_properties(self, name, scope):
        return UnitProperties(name=name, main_pid=4321, fragment_path=f"/etc/systemd/system/{name}")

    async def fetch_log_entries(self, name, scope, priority_ceiling, time_range, limit):
        self.log_requests.append((name, priority_ceiling, time_range, limit))
        if self.fail_logs:
            raise DataUnavailable("journalctl failed: no journal files")
        return list(self.entries)

    async def perform_action(self, name, action, scope):
        self.actions.append((name, action))
        return f"{action.label} succeeded for {name}"

    def follow(self, name, scope, priority_ceiling, time_range, cursor):
        raise AssertionError("follow not expected")

    async def close(self):
        pass


async def settle(app, pilot):
    for _ in range(3):
        await app.workers.wait_for_complete()
        await pilot.pause()


def run_app(source, script):
    async def run():
        app = SysdashApp(Settings(), source=source)
        async with app.run_test(size=(120, 40)) as pilot:
            await settle(app, pilot)
            await script(app, pilot)
        return app

    return asyncio.run(run())


def test_units_loaded_on_mount(services):
    async def script(app, pilot):
        assert app.table.row_count == 5
        assert app.controller.view().units.total == 5
        assert not app.query_one("#overlay").display

    run_app(FakeSource(services), script)


def test_navigate_and_open_logs(services):
    entries = [make_entry(f"line {i}", minutes_ago=10 - i) for i in range(10)]
    source = FakeSource(services, entries)

    async def script(app, pilot):
        await pilot.press("j", "l")
        await settle(app, pilot)
        assert app.controller.log_unit == "sshd.service"
        assert app.query_one("#logs").display
        assert len(app.controller.view().logs.entries) == 10

        await pilot.press("l")
        await settle(app, pilot)
        assert not app.query_one("#logs").display

    run_app(source, script)
    assert source.log_requests[0][0] == "sshd.service"


def test_log_failure_shows_status(services):
    async def script(app, pilot):
        await pilot.press("l")
        await settle(app, pilot)
        status = app.controller.view().status
        assert status.is_error
        assert "no journal files" in status.text

    run_app(FakeSource(services, fail_logs=True), script)


def test_action_flow(services):
    source = FakeSource(services)

    async def script(app, pilot):
        await pilot.press("a")
        assert app.controller.focus.mode == Modal(ModalKind.ACTION_PICKER)
        assert app.query_one("#overlay").display
        await pilot.press("r", "y")
        await settle(app, pilot)
        assert app.controller.focus.mode == UnitList()
        assert app.controller.view().status.text == "Restart succeeded for nginx.service"

    run_app(source, script)
    assert source.actions == [("nginx.service", UnitAction.RESTART)]


def test_keys_ignored_while_action_runs(services):
    source = FakeSource(services)
    release = asyncio.Event()
    perform = source.perform_action

    async def slow_action(name, action, scope):
        await release.wait()
        return await perform(name, action, scope)

    source.perform_action = slow_action

    async def script(app, pilot):
        await pilot.press("a", "r", "y")
        await pilot.pause()
        assert app.controller.view().busy == "Restarting..."
        await pilot.press("i", "a")
        assert app.controller.focus.mode == UnitList()
        release.set()
        await settle(app, pilot)
        assert app.controller.waiting is None
        assert app.controller.view().status.text == "Restart succeeded for nginx.service"

    run_app(source, script)
    assert source.actions == [("nginx.service", UnitAction.RESTART)]


def test_details_modal(services):
    async def script(app, pilot):
        await pilot.press("i")
        await settle(app, pilot)
        details = app.controller.view().details
        assert details.unit_name == "nginx.service"
        assert "Process" in [s.title for s in details.sections]
        await pilot.press("escape")
        assert not app.query_one("#overlay").display

    run_app(FakeSource(services), script)


def test_status_filter_updates_table(services):
    async def script(app, pilot):
        await pilot.press("s", "j", "enter")
        await pilot.pause()
        assert app.table.row_count == 2

    run_app(FakeSource(services), script)


def test_quit(services):
    async def script(app, pilot):
        await pilot.press("q")

    app = run_app(FakeSource(services), script)
    assert app.controller.should_quit
