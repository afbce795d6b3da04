from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import Unit

RUNNING_LIKE = frozenset({"running", "active", "listening", "waiting"})
DEAD_LIKE = frozenset({"dead", "failed", "inactive", "exited"})


class UnitAction(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    RELOAD = "reload"
    ENABLE = "enable"
    DISABLE = "disable"
    DAEMON_RELOAD = "daemon-reload"

    @property
    def verb(self) -> str:
        """systemctl verb."""
        return self.value

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def shortcut(self) -> str:
        return _SHORTCUTS[self]

    @property
    def progress_label(self) -> str:
        if self is UnitAction.DAEMON_RELOAD:
            return "Reloading daemon..."
        return f"{_GERUNDS[self]}..."

    @property
    def needs_target(self) -> bool:
        return self is not UnitAction.DAEMON_RELOAD

    def confirmation_message(self, unit_name: str) -> str:
        if self is UnitAction.DAEMON_RELOAD:
            return "Reload systemd daemon configuration?"
        return f"{self.label} {unit_name}?"


_LABELS = {
    UnitAction.START: "Start",
    UnitAction.STOP: "Stop",
    UnitAction.RESTART: "Restart",
    UnitAction.RELOAD: "Reload",
    UnitAction.ENABLE: "Enable",
    UnitAction.DISABLE: "Disable",
    UnitAction.DAEMON_RELOAD: "Daemon Reload",
}

_SHORTCUTS = {
    UnitAction.START: "s",
    UnitAction.STOP: "t",
    UnitAction.RESTART: "r",
    UnitAction.RELOAD: "l",
    UnitAction.ENABLE: "e",
    UnitAction.DISABLE: "d",
    UnitAction.DAEMON_RELOAD: "D",
}

_GERUNDS = {
    UnitAction.START: "Starting",
    UnitAction.STOP: "Stopping",
    UnitAction.RESTART: "Restarting",
    UnitAction.RELOAD: "Reloading",
    UnitAction.ENABLE: "Enabling",
    UnitAction.DISABLE: "Disabling",
}


def available_actions(unit: Unit) -> list[UnitAction]:
    """Actions offered for ``unit``, in picker order."""
    if unit.sub_state in RUNNING_LIKE:
        state = "running"
    elif unit.sub_state in DEAD_LIKE:
        state = "dead"
    elif unit.active_state in RUNNING_LIKE:
        state = "running"
    elif unit.active_state in DEAD_LIKE:
        state = "dead"
    else:
        state = "unknown"

    if state == "running":
        actions = [UnitAction.STOP, UnitAction.RESTART, UnitAction.RELOAD]
    elif state == "dead":
        actions = [UnitAction.START]
    else:
        actions = [UnitAction.START, UnitAction.STOP]

    if unit.file_state == "enabled":
        actions.append(UnitAction.DISABLE)
    elif unit.file_state == "disabled":
        actions.append(UnitAction.ENABLE)

    actions.append(UnitAction.DAEMON_RELOAD)
    return actions


@dataclass(frozen=True, slots=True)
class PendingAction:
    action: UnitAction
    unit_name: str  # empty for scope-global actions

    @property
    def confirmation_message(self) -> str:
        return self.action.confirmation_message(self.unit_name)


class FlowPhase(Enum):
    IDLE = "idle"
    PICKING = "picking"
    CONFIRMING = "confirming"
    EXECUTING = "executing"


class ActionFlow:
    """Picking an action for a unit, confirming it, and awaiting its outcome."""

    def __init__(self) -> None:
        self.phase = FlowPhase.IDLE
        self.options: list[UnitAction] = []
        self.unit_name: str = ""
        self.pending: PendingAction | None = None

    def begin(self, unit: Unit) -> list[UnitAction]:
        self.phase = FlowPhase.PICKING
        self.unit_name = unit.name
        self.options = available_actions(unit)
        self.pending = None
        return self.options

    def begin_direct(self, action: UnitAction, unit_name: str = "") -> PendingAction:
        """Skip the picker and go straight to confirmation."""
        self.phase = FlowPhase.CONFIRMING
        self.options = []
        self.unit_name = unit_name
        self.pending = PendingAction(action, unit_name if action.needs_target else "")
        return self.pending

    def choose(self, action: UnitAction) -> PendingAction | None:
        if self.phase is not FlowPhase.PICKING or action not in self.options:
            return None
        self.phase = FlowPhase.CONFIRMING
        self.pending = PendingAction(action, self.unit_name if action.needs_target else "")
        return self.pending

    def confirm(self) -> PendingAction | None:
        if self.phase is not FlowPhase.CONFIRMING or self.pending is None:
            return None
        self.phase = FlowPhase.EXECUTING
        return self.pending

    def finish(self, pending: PendingAction) -> bool:
        """Close the flow if ``pending`` is the action it is executing."""
        if self.phase is not FlowPhase.EXECUTING or self.pending != pending:
            return False
        self.reset()
        return True

    def cancel(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.phase = FlowPhase.IDLE
        self.options = []
        self.unit_name = ""
        self.pending = None
