from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import Optional

from textual import events, on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.message import Message
from textual.widgets import DataTable, Static

from ..config import Settings
from ..core.controller import (
    ActionFinished,
    Controller,
    Effect,
    Event,
    FetchLogs,
    FetchProperties,
    FollowEntries,
    FollowStopped,
    KeyPress,
    LoadUnits,
    LogsFailed,
    LogsLoaded,
    PerformAction,
    PropertiesLoaded,
    Quit,
    Resize,
    RowClicked,
    Scroll,
    StartFollow,
    StopFollow,
    UnitsFailed,
    UnitsLoaded,
    ViewModel,
)
from ..core.focus import Modal, ModalKind
from ..core.models import Unit, UnitKind
from ..errors import DataUnavailable, SysdashError
from ..journal import LogFollower
from ..source import SystemdDataSource, UnitDataSource
from . import render

log = logging.getLogger(__name__)

FOLLOW_POLL_INTERVAL = 0.25


class Scrolled(Message):
    def __init__(self, target: str, delta: int) -> None:
        super().__init__()
        self.target = target
        self.delta = delta


class UnitTable(DataTable):
    """Unit list; the controller owns the cursor, so wheel events are forwarded."""

    can_focus = False

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        event.prevent_default()
        event.stop()
        self.post_message(Scrolled("units", 1))

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        event.prevent_default()
        event.stop()
        self.post_message(Scrolled("units", -1))


class Panel(Static):
    def __init__(self, target: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.target = target

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        event.stop()
        self.post_message(Scrolled(self.target, 1))

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        event.stop()
        self.post_message(Scrolled(self.target, -1))


class SysdashApp(App):
    CSS_PATH = Path(__file__).with_name("app.tcss")
    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, settings: Settings, source: Optional[UnitDataSource] = None) -> None:
        super().__init__()
        self.settings = settings
        self.source: UnitDataSource = source or SystemdDataSource(journalctl=settings.journalctl)
        self.controller = Controller(kind=settings.kind, scope=settings.scope, log_limit=settings.log_limit)
        self.table: UnitTable | None = None
        self._follower: tuple[int, LogFollower] | None = None
        self._effects_lock = asyncio.Lock()
        self._columns_kind: UnitKind | None = None
        self._rows: tuple[Unit, ...] = ()
        self._sizes: tuple[int, int, int] | None = None

    def compose(self) -> ComposeResult:
        yield Static(id="header")
        self.table = UnitTable(zebra_stripes=True, cursor_type="row", id="units")
        yield self.table
        yield Panel("logs", id="logs")
        yield Static(id="status")
        with Container(id="overlay"):
            yield Panel("details", id="modal")

    async def on_mount(self) -> None:
        self.set_interval(FOLLOW_POLL_INTERVAL, self._drain_follow)
        self._render()
        self.call_after_refresh(self._sync_sizes)
        self._schedule(self.controller.start())

    async def on_unmount(self) -> None:
        await self._stop_follower()
        with suppress(Exception):
            await self.source.close()

    # -- input -------------------------------------------------------------------

    async def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._dispatch(KeyPress(event.key, event.character))

    @on(Scrolled)
    def _on_scrolled(self, event: Scrolled) -> None:
        self._dispatch(Scroll(event.target, event.delta))

    @on(DataTable.RowSelected)
    def _on_row_selected(self, event: DataTable.RowSelected) -> None:
        self._dispatch(RowClicked(event.cursor_row))

    def on_resize(self, event: events.Resize) -> None:
        self.call_after_refresh(self._sync_sizes)

    # -- reducer loop --------------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        effects = self.controller.handle(event)
        self._render()
        self._schedule(effects)

    def _schedule(self, effects: list[Effect]) -> None:
        if effects:
            self.run_worker(self._run_effects(effects), group="effects")

    async def _run_effects(self, effects: list[Effect]) -> None:
        if any(isinstance(e, Quit) for e in effects):
            # quitting does not queue behind a running data-source call
            for effect in effects:
                await self._execute(effect)
            return
        async with self._effects_lock:
            for effect in effects:
                result = await self._execute(effect)
                if result is not None:
                    self._dispatch(result)

    async def _execute(self, effect: Effect) -> Event | None:
        log.debug("effect %s", effect)
        src = self.source
        if isinstance(effect, LoadUnits):
            try:
                units = await src.list_units(effect.kind, effect.scope)
            except SysdashError as e:
                log.warning("%s", e)
                return UnitsFailed(effect.epoch, str(e))
            try:
                states = await src.list_file_states(effect.kind, effect.scope)
            except DataUnavailable as e:
                log.warning("file states unavailable: %s", e)
                states = {}
            return UnitsLoaded(effect.epoch, units, states)

        if isinstance(effect, FetchProperties):
            try:
                props = await src.fetch_properties(effect.name, effect.scope)
            except SysdashError as e:
                log.warning("%s", e)
                props = None
            return PropertiesLoaded(effect.epoch, effect.name, props)

        if isinstance(effect, FetchLogs):
            try:
                entries = await src.fetch_log_entries(
                    effect.unit_name, effect.scope, effect.priority_ceiling, effect.time_range, effect.limit
                )
            except SysdashError as e:
                log.warning("%s", e)
                return LogsFailed(effect.token, str(e))
            return LogsLoaded(effect.token, entries)

        if isinstance(effect, PerformAction):
            pending = effect.pending
            try:
                msg = await src.perform_action(pending.unit_name, pending.action, effect.scope)
            except SysdashError as e:
                return ActionFinished(pending, False, str(e))
            return ActionFinished(pending, True, msg)

        if isinstance(effect, StartFollow):
            await self._stop_follower()
            follower = src.follow(
                effect.unit_name, effect.scope, effect.priority_ceiling, effect.time_range, effect.cursor
            )
            try:
                await follower.start()
            except SysdashError as e:
                log.warning("%s", e)
                return FollowStopped(effect.token, str(e))
            self._follower = (effect.token, follower)
            return None

        if isinstance(effect, StopFollow):
            if self._follower is not None and self._follower[0] == effect.token:
                await self._stop_follower()
            return None

        if isinstance(effect, Quit):
            await self._stop_follower()
            self.exit()
            return None

        log.debug("unknown effect %r", effect)
        return None

    async def _stop_follower(self) -> None:
        if self._follower is None:
            return
        _, follower = self._follower
        self._follower = None
        await follower.stop()

    def _drain_follow(self) -> None:
        if self._follower is None:
            return
        token, follower = self._follower
        entries, ended = follower.drain()
        if entries:
            self._dispatch(FollowEntries(token, entries))
        if ended:
            self._follower = None
            self._dispatch(FollowStopped(token, follower.exit_message))

    # -- rendering -------------------------------------------------------------------

    def _sync_sizes(self) -> None:
        assert self.table
        list_rows = max(1, self.table.content_size.height - 1)
        log_rows = max(1, self.query_one("#logs", Panel).content_size.height)
        detail_rows = max(1, int(self.size.height * 0.8) - 4)
        sizes = (list_rows, log_rows, detail_rows)
        if sizes != self._sizes:
            self._sizes = sizes
            self._dispatch(Resize(*sizes))

    def _render(self) -> None:
        vm = self.controller.view()
        self.query_one("#header", Static).update(render.header_text(vm))
        self._render_units(vm)
        self._render_logs(vm)
        self.query_one("#status", Static).update(render.status_line(vm))
        self._render_modal(vm)

    def _render_units(self, vm: ViewModel) -> None:
        assert self.table
        table = self.table
        if vm.kind is not self._columns_kind:
            table.clear(columns=True)
            table.add_columns(*render.unit_columns(vm.kind))
            self._columns_kind = vm.kind
            self._rows = ()
        if vm.units.units != self._rows:
            table.clear(columns=False)
            for unit in vm.units.units:
                table.add_row(*render.unit_row(unit), key=unit.name)
            self._rows = vm.units.units
        if vm.error and not vm.units.units:
            table.border_title = vm.error
        else:
            table.border_title = None
        if vm.units.selected is not None and table.row_count:
            table.move_cursor(row=vm.units.selected)

    def _render_logs(self, vm: ViewModel) -> None:
        panel = self.query_one("#logs", Panel)
        was_open = panel.display
        panel.display = vm.logs is not None
        if vm.logs is None:
            return
        rows = self._sizes[1] if self._sizes else self.controller.log_rows
        panel.border_title = render.log_title(vm.logs)
        panel.update(render.log_window(vm.logs, rows))
        if not was_open:
            self.call_after_refresh(self._sync_sizes)

    def _render_modal(self, vm: ViewModel) -> None:
        overlay = self.query_one("#overlay", Container)
        modal = self.query_one("#modal", Panel)
        if not isinstance(vm.focus, Modal):
            overlay.display = False
            return
        overlay.display = True
        if vm.picker is not None:
            modal.update(render.picker_text(vm.picker))
        elif vm.confirmation is not None:
            modal.update(render.confirmation_text(vm.confirmation))
        elif vm.details is not None:
            rows = self._sizes[2] if self._sizes else self.controller.detail_rows
            modal.update(render.details_text(vm.details, rows))
        elif vm.focus.kind is ModalKind.HELP:
            modal.update(render.help_text())


def run_dash(settings: Settings) -> None:
    app = SysdashApp(settings)
    app.run()
