import asyncio
import json
import sys

import pytest

from sysdash.core.models import Scope, TimeRange
from sysdash.errors import DataUnavailable
from sysdash.journal import (
    DEFAULT_PRIORITY,
    LogFollower,
    fetch_argv,
    fetch_entries,
    follow_argv,
    parse_journal_line,
    parse_journal_output,
)


def record(**fields):
    base = {
        "__REALTIME_TIMESTAMP": "1714564800000000",
        "PRIORITY": "6",
        "MESSAGE": "hello",
        "_PID": "42",
        "SYSLOG_IDENTIFIER": "nginx",
        "__CURSOR": "s=abc;i=1",
    }
    base.update(fields)
    return json.dumps({k: v for k, v in base.items() if v is not None})


class TestArgv:
    def test_fetch_system(self):
        argv = fetch_argv("journalctl", "nginx.service", Scope.SYSTEM, None, TimeRange.ALL, 500)
        assert argv == ["journalctl", "-u", "nginx.service", "-n", "500", "--no-pager", "--output=json"]

    def test_fetch_user_with_filters(self):
        argv = fetch_argv("/usr/bin/journalctl", "app.service", Scope.USER, 3, TimeRange.ONE_HOUR, 100)
        assert argv[:3] == ["/usr/bin/journalctl", "--user-unit", "app.service"]
        assert argv[-4:] == ["-p", "3", "--since", "1 hour ago"]

    def test_follow_after_cursor(self):
        argv = follow_argv("journalctl", "a.service", Scope.SYSTEM, 4, TimeRange.TODAY, "s=abc")
        assert "-f" in argv
        assert "--after-cursor=s=abc" in argv
        assert argv[-2:] == ["-p", "4"]
        assert "--since" not in argv

    def test_follow_without_cursor_starts_now(self):
        argv = follow_argv("journalctl", "a.service", Scope.SYSTEM, None, TimeRange.TODAY, None)
        assert argv[-4:] == ["-n", "0", "--since", "today"]
        assert not any(a.startswith("--after-cursor") for a in argv)


class TestParse:
    def test_full_record(self):
        e = parse_journal_line(record())
        assert e.timestamp == 1714564800000000
        assert e.priority == 6
        assert e.message == "hello"
        assert e.pid == "42"
        assert e.identifier == "nginx"
        assert e.cursor == "s=abc;i=1"

    def test_byte_array_message(self):
        e = parse_journal_line(record(MESSAGE=[104, 105, 255]))
        assert e.message == "hi\ufffd"

    def test_missing_priority_defaults(self):
        e = parse_journal_line(record(PRIORITY=None))
        assert e.priority == DEFAULT_PRIORITY

    @pytest.mark.parametrize("value", ["9", "-1", "loud"])
    def test_bad_priority_defaults(self, value):
        assert parse_journal_line(record(PRIORITY=value)).priority == DEFAULT_PRIORITY

    def test_missing_optional_fields(self):
        e = parse_journal_line(json.dumps({"MESSAGE": "bare"}))
        assert e.timestamp == 0
        assert e.pid is None
        assert e.identifier is None
        assert e.cursor is None

    def test_invalid_json_kept_as_text(self):
        e = parse_journal_line("-- No entries --")
        assert e.message == "-- No entries --"
        assert e.timestamp == 0
        assert e.priority == DEFAULT_PRIORITY

    def test_output_skips_blank_lines(self):
        data = f"{record(MESSAGE='a')}\n\n{record(MESSAGE='b')}\n".encode()
        assert [e.message for e in parse_journal_output(data)] == ["a", "b"]

    def test_output_tolerates_bad_utf8(self):
        data = record(MESSAGE="ok").encode() + b"\n\xff\xfe\n"
        entries = parse_journal_output(data)
        assert entries[0].message == "ok"
        assert len(entries) == 2


def python_argv(code):
    return [sys.executable, "-c", code]


class TestFetch:
    def test_missing_binary(self):
        with pytest.raises(DataUnavailable, match="not found"):
            asyncio.run(fetch_entries(["/nonexistent/journalctl", "-u", "x"]))

    def test_entries_in_order(self):
        code = f"print({record(MESSAGE='one')!r}); print({record(MESSAGE='two')!r})"
        entries = asyncio.run(fetch_entries(python_argv(code)))
        assert [e.message for e in entries] == ["one", "two"]

    def test_failure_without_output(self):
        code = "import sys; sys.stderr.write('No journal files were found.'); sys.exit(1)"
        with pytest.raises(DataUnavailable, match="No journal files"):
            asyncio.run(fetch_entries(python_argv(code)))


class TestFollower:
    def test_reads_until_exit(self):
        code = f"print({record(MESSAGE='live')!r}, flush=True)"

        async def run():
            follower = LogFollower(python_argv(code))
            await follower.start()
            while follower.running:
                await asyncio.sleep(0.01)
            return follower, follower.drain()

        follower, (entries, ended) = asyncio.run(run())
        assert [e.message for e in entries] == ["live"]
        assert ended
        assert follower.exit_message == "journalctl exited (0)"

    def test_chatty_stderr_does_not_stall(self):
        code = (
            "import sys; sys.stderr.write('Journal file corrupted, ignoring.\\n' * 20000); sys.stderr.flush(); "
            f"print({record(MESSAGE='after')!r}, flush=True)"
        )

        async def run():
            follower = LogFollower(python_argv(code))
            await follower.start()
            while follower.running:
                await asyncio.sleep(0.01)
            return follower, follower.drain()

        follower, (entries, ended) = asyncio.run(asyncio.wait_for(run(), 10))
        assert [e.message for e in entries] == ["after"]
        assert ended
        assert follower.exit_message == "Journal file corrupted, ignoring."

    def test_stop_terminates(self):
        async def run():
            follower = LogFollower(python_argv("import time; time.sleep(30)"))
            await follower.start()
            await follower.stop()
            return follower

        follower = asyncio.run(run())
        assert not follower.running
        assert follower.drain() == ([], False)
        assert follower.exit_message is None

    def test_missing_binary(self):
        follower = LogFollower(["/nonexistent/journalctl", "-f"])
        with pytest.raises(DataUnavailable):
            asyncio.run(follower.start())
