"""journalctl invocation and JSON output parsing."""

from __future__ import annotations

import asyncio
import json
import logging
from asyncio.subprocess import DEVNULL, PIPE
from contextlib import suppress
from typing import Any, Optional

from .core.models import LogEntry, Scope, TimeRange
from .errors import DataUnavailable

log = logging.getLogger(__name__)

# journald's default for records without PRIORITY
DEFAULT_PRIORITY = 6
STOP_TIMEOUT = 2.0


def _filter_args(priority_ceiling: Optional[int], time_range: TimeRange) -> list[str]:
    args: list[str] = []
    if priority_ceiling is not None:
        args += ["-p", str(priority_ceiling)]
    since = time_range.journalctl_since
    if since is not None:
        args += ["--since", since]
    return args


def _unit_args(unit_name: str, scope: Scope) -> list[str]:
    return ["--user-unit" if scope is Scope.USER else "-u", unit_name]


def fetch_argv(
    journalctl: str,
    unit_name: str,
    scope: Scope,
    priority_ceiling: Optional[int],
    time_range: TimeRange,
    limit: int,
) -> list[str]:
    return [
        journalctl,
        *_unit_args(unit_name, scope),
        "-n",
        str(limit),
        "--no-pager",
        "--output=json",
        *_filter_args(priority_ceiling, time_range),
    ]


def follow_argv(
    journalctl: str,
    unit_name: str,
    scope: Scope,
    priority_ceiling: Optional[int],
    time_range: TimeRange,
    cursor: Optional[str],
) -> list[str]:
    argv = [journalctl, *_unit_args(unit_name, scope), "-f", "--no-pager", "--output=json"]
    if cursor:
        argv.append(f"--after-cursor={cursor}")
        if priority_ceiling is not None:
            argv += ["-p", str(priority_ceiling)]
    else:
        # nothing fetched yet: only entries written from now on
        argv += ["-n", "0", *_filter_args(priority_ceiling, time_range)]
    return argv


def _str_field(obj: dict[str, Any], key: str) -> Optional[str]:
    v = obj.get(key)
    return v if isinstance(v, str) else None


def _int_field(obj: dict[str, Any], key: str) -> Optional[int]:
    v = obj.get(key)
    if isinstance(v, str):
        try:
            return int(v)
        except ValueError:
            return None
    return None


def _message(value: Any, line: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        # journald emits non-UTF-8 payloads as an array of byte values
        data = bytes(b for b in value if isinstance(b, int) and 0 <= b < 256)
        return data.decode("utf-8", errors="replace")
    return line


def parse_journal_line(line: str) -> LogEntry:
    """One ``journalctl --output=json`` line to a LogEntry; never raises."""
    try:
        obj = json.loads(line)
    except ValueError:
        obj = None
    if not isinstance(obj, dict):
        return LogEntry(timestamp=0, priority=DEFAULT_PRIORITY, message=line)

    priority = _int_field(obj, "PRIORITY")
    if priority is None or not 0 <= priority <= 7:
        priority = DEFAULT_PRIORITY
    return LogEntry(
        timestamp=_int_field(obj, "__REALTIME_TIMESTAMP") or 0,
        priority=priority,
        message=_message(obj.get("MESSAGE"), line),
        pid=_str_field(obj, "_PID"),
        identifier=_str_field(obj, "SYSLOG_IDENTIFIER"),
        cursor=_str_field(obj, "__CURSOR"),
    )


def parse_journal_output(data: bytes) -> list[LogEntry]:
    text = data.decode("utf-8", errors="replace")
    return [parse_journal_line(ln) for ln in text.splitlines() if ln.strip()]


async def fetch_entries(argv: list[str]) -> list[LogEntry]:
    """Run a one-shot journalctl query; entries oldest to newest."""
    log.debug("running %s", " ".join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(*argv, stdin=DEVNULL, stdout=PIPE, stderr=PIPE)
    except FileNotFoundError:
        raise DataUnavailable(f"{argv[0]} not found. Ensure systemd-journald is available.") from None
    except OSError as e:
        raise DataUnavailable(f"Failed to execute {argv[0]}: {e}") from e
    out, err = await proc.communicate()
    entries = parse_journal_output(out)
    if proc.returncode != 0 and not entries:
        msg = err.decode(errors="ignore").strip() or f"exit {proc.returncode}"
        raise DataUnavailable(f"journalctl failed: {msg}")
    return entries


class LogFollower:
    """A ``journalctl -f`` subprocess feeding parsed entries into a queue.

    The reader task is the only producer.  ``None`` is queued once the process
    ends on its own; ``exit_message`` then says why.
    """

    def __init__(self, argv: list[str], queue: Optional[asyncio.Queue] = None) -> None:
        self.argv = argv
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self.exit_message: Optional[str] = None
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        log.debug("following: %s", " ".join(self.argv))
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.argv, stdin=DEVNULL, stdout=PIPE, stderr=PIPE
            )
        except FileNotFoundError:
            raise DataUnavailable(f"{self.argv[0]} not found. Ensure systemd-journald is available.") from None
        except OSError as e:
            raise DataUnavailable(f"Failed to execute {self.argv[0]}: {e}") from e
        self._stderr_task = asyncio.create_task(self._stderr_reader())
        self._task = asyncio.create_task(self._reader())

    async def _stderr_reader(self) -> None:
        """Drain stderr as it arrives; the last line becomes the exit message."""
        assert self._proc is not None and self._proc.stderr is not None
        while True:
            b = await self._proc.stderr.readline()
            if not b:
                break
            line = b.decode("utf-8", errors="replace").strip()
            if line:
                log.debug("journalctl: %s", line)
                self._last_error = line

    async def _reader(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        while True:
            b = await self._proc.stdout.readline()
            if not b:
                break
            line = b.decode("utf-8", errors="replace").rstrip("\n")
            if line.strip():
                self.queue.put_nowait(parse_journal_line(line))
        rc = await self._proc.wait()
        if not self._stopping:
            if self._stderr_task is not None:
                await self._stderr_task
            self.exit_message = self._last_error or f"journalctl exited ({rc})"
            log.warning("follower ended: %s", self.exit_message)
            self.queue.put_nowait(None)

    def drain(self) -> tuple[list[LogEntry], bool]:
        """Everything queued so far, without waiting; second item is True once ended."""
        entries: list[LogEntry] = []
        ended = False
        while True:
            try:
                item = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is None:
                ended = True
            else:
                entries.append(item)
        return entries, ended

    async def stop(self) -> None:
        """Terminate the subprocess (kill after a timeout) and wait for the reader."""
        self._stopping = True
        proc = self._proc
        if proc is not None and proc.returncode is None:
            with suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), STOP_TIMEOUT)
            except asyncio.TimeoutError:
                with suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        for task in (self._task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError, Exception):
                    await task
        self._task = None
        self._stderr_task = None
