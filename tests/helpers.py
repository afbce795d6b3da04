import datetime

from sysdash.core.models import LogEntry, Unit, UnitKind

NOW = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


def usec(dt: datetime.datetime) -> int:
    return int(dt.timestamp() * 1_000_000)


def make_unit(name, sub="running", active=None, kind=UnitKind.SERVICE, file_state=None, description=""):
    if active is None:
        active = "active" if sub in ("running", "exited", "waiting", "listening") else "inactive"
        if sub == "failed":
            active = "failed"
    return Unit(
        name=name,
        kind=kind,
        load_state="loaded",
        active_state=active,
        sub_state=sub,
        description=description,
        file_state=file_state,
    )


def make_entry(message, minutes_ago=1, priority=6, cursor=None):
    ts = usec(NOW - datetime.timedelta(minutes=minutes_ago))
    return LogEntry(timestamp=ts, priority=priority, message=message, cursor=cursor)
