import json
from importlib.metadata import version

import pytest
from typer.testing import CliRunner

from sysdash import __version__, cli
from sysdash.errors import DataUnavailable

runner = CliRunner()


@pytest.fixture
def fake_source(monkeypatch, services):
    class Source:
        def __init__(self, journalctl="journalctl"):
            self.journalctl = journalctl

        async def list_units(self, kind, scope):
            return list(services)

        async def list_file_states(self, kind, scope):
            return {u.name: u.file_state for u in services if u.file_state}

        async def close(self):
            pass

    monkeypatch.setattr(cli, "SystemdDataSource", Source)
    return Source


def test_version():
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_version_from_metadata():
    assert __version__ == version("sysdash")


def test_list_tab_separated(fake_source):
    result = runner.invoke(cli.app, ["list", "--status", "running"])
    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert lines == [
        "nginx.service\trunning\tenabled\tA high performance web server",
        "sshd.service\trunning\tenabled\tOpenSSH Daemon",
    ]


def test_list_json(fake_source):
    result = runner.invoke(cli.app, ["list", "--json", "-f", "disabled"])
    assert result.exit_code == 0
    [obj] = [json.loads(line) for line in result.output.strip().splitlines()]
    assert obj["name"] == "backup.service"
    assert obj["sub"] == "failed"


def test_list_rejects_unknown_status(fake_source):
    result = runner.invoke(cli.app, ["list", "--type", "timer", "--status", "dead"])
    assert result.exit_code == 2


def test_list_reports_unavailable(monkeypatch):
    class Broken:
        def __init__(self, journalctl="journalctl"):
            pass

        async def list_units(self, kind, scope):
            raise DataUnavailable("Cannot connect to the system bus")

        async def close(self):
            pass

    monkeypatch.setattr(cli, "SystemdDataSource", Broken)
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 1


def test_bad_type(fake_source):
    result = runner.invoke(cli.app, ["list", "--type", "mount"])
    assert result.exit_code == 2


def test_dash_needs_terminal(monkeypatch):
    monkeypatch.setattr(cli, "is_tty", lambda: False)
    result = runner.invoke(cli.app, ["dash"])
    assert result.exit_code == 1
