import pytest

from helpers import NOW, make_unit


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def services():
    return [
        make_unit("nginx.service", "running", file_state="enabled", description="A high performance web server"),
        make_unit("sshd.service", "running", file_state="enabled", description="OpenSSH Daemon"),
        make_unit("backup.service", "failed", file_state="disabled", description="Nightly backup"),
        make_unit("setup.service", "exited", file_state="static", description="One-shot setup"),
        make_unit("old.service", "dead", description="Leftover unit"),
    ]
