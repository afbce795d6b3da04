"""Which surface owns keyboard input.

The focus is one tagged value.  Non-modal modes (unit list, unit search, log
panel) live in a base slot; a modal, when open, sits on top of it and the base
is resumed when the modal closes.  There is exactly one modal slot, so two
modals can never be open at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .actions import ActionFlow

log = logging.getLogger(__name__)


class LogSubMode(Enum):
    NORMAL = "normal"
    SEARCH = "search"


class ModalKind(Enum):
    HELP = "help"
    STATUS_PICKER = "status_picker"
    FILE_STATE_PICKER = "file_state_picker"
    TYPE_PICKER = "type_picker"
    PRIORITY_PICKER = "priority_picker"
    TIME_RANGE_PICKER = "time_range_picker"
    ACTION_PICKER = "action_picker"
    CONFIRMATION = "confirmation"
    DETAILS = "details"


PICKERS = frozenset(
    {
        ModalKind.STATUS_PICKER,
        ModalKind.FILE_STATE_PICKER,
        ModalKind.TYPE_PICKER,
        ModalKind.PRIORITY_PICKER,
        ModalKind.TIME_RANGE_PICKER,
        ModalKind.ACTION_PICKER,
    }
)


@dataclass(frozen=True, slots=True)
class UnitList:
    pass


@dataclass(frozen=True, slots=True)
class UnitSearch:
    pass


@dataclass(frozen=True, slots=True)
class LogPanel:
    sub: LogSubMode = LogSubMode.NORMAL


@dataclass(frozen=True, slots=True)
class Modal:
    kind: ModalKind


BaseMode = Union[UnitList, UnitSearch, LogPanel]
FocusMode = Union[UnitList, UnitSearch, LogPanel, Modal]


class FocusStateMachine:
    def __init__(self) -> None:
        self._base: BaseMode = UnitList()
        self._modal: Modal | None = None
        self.picker_index: int = 0
        self.action_flow = ActionFlow()

    @property
    def mode(self) -> FocusMode:
        return self._modal if self._modal is not None else self._base

    @property
    def base(self) -> BaseMode:
        """The non-modal mode, suspended while a modal is open."""
        return self._base

    @property
    def modal(self) -> ModalKind | None:
        return self._modal.kind if self._modal is not None else None

    @property
    def logs_open(self) -> bool:
        return isinstance(self._base, LogPanel)

    def _move(self, target: BaseMode, *, allowed_from: tuple[type, ...]) -> bool:
        if self._modal is not None or not isinstance(self._base, allowed_from):
            log.debug("focus: %s -> %s rejected", self.mode, target)
            return False
        self._base = target
        return True

    # -- unit search -----------------------------------------------------------

    def begin_search(self) -> bool:
        return self._move(UnitSearch(), allowed_from=(UnitList,))

    def end_search(self) -> bool:
        return self._move(UnitList(), allowed_from=(UnitSearch,))

    # -- log panel -------------------------------------------------------------

    def open_logs(self) -> bool:
        return self._move(LogPanel(LogSubMode.NORMAL), allowed_from=(UnitList,))

    def close_logs(self) -> bool:
        return self._move(UnitList(), allowed_from=(LogPanel,))

    def begin_log_search(self) -> bool:
        if self._base != LogPanel(LogSubMode.NORMAL):
            return False
        return self._move(LogPanel(LogSubMode.SEARCH), allowed_from=(LogPanel,))

    def end_log_search(self) -> bool:
        if self._base != LogPanel(LogSubMode.SEARCH):
            return False
        return self._move(LogPanel(LogSubMode.NORMAL), allowed_from=(LogPanel,))

    # -- modals ----------------------------------------------------------------

    def open_modal(self, kind: ModalKind, index: int = 0) -> bool:
        """Open ``kind`` over the current base mode.

        Modals open from the unit list or the log panel in normal mode.  If a
        modal is already open it is replaced, never stacked.
        """
        if self._modal is None and self._base not in (UnitList(), LogPanel(LogSubMode.NORMAL)):
            log.debug("focus: cannot open %s from %s", kind, self._base)
            return False
        self._modal = Modal(kind)
        self.picker_index = index
        return True

    def close_modal(self) -> ModalKind | None:
        closed = self.modal
        self._modal = None
        self.picker_index = 0
        return closed

    def reset_to_unit_list(self) -> None:
        """Drop any modal and suspended mode, landing on the unit list."""
        self._modal = None
        self.picker_index = 0
        self._base = UnitList()

    # -- picker cursor -----------------------------------------------------------

    def picker_next(self, count: int) -> int:
        if count > 0:
            self.picker_index = (self.picker_index + 1) % count
        return self.picker_index

    def picker_previous(self, count: int) -> int:
        if count > 0:
            self.picker_index = (self.picker_index - 1) % count
        return self.picker_index
