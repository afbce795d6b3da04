import datetime
import json
import sys
import time
from typing import Optional


def is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def json_line(obj: dict) -> str:
    return json.dumps(obj, separators=(",", ":"))


def now_usec() -> int:
    return int(time.time() * 1_000_000)


def format_bytes(n: int) -> str:
    kb = 1024
    mb = 1024 * kb
    gb = 1024 * mb
    if n >= gb:
        return f"{n / gb:.1f} GB"
    if n >= mb:
        return f"{n / mb:.1f} MB"
    if n >= kb:
        return f"{n / kb:.1f} KB"
    return f"{n} B"


def format_cpu_time(nsec: int) -> str:
    secs = nsec / 1_000_000_000
    if secs >= 60:
        return f"{secs / 60:.1f}min"
    return f"{secs:.3f}s"


def format_usec_span(usec: int) -> str:
    """Render a microsecond duration the way systemctl does (1min 30s, 500ms)."""
    if usec <= 0:
        return "0"
    parts = []
    secs, rem_us = divmod(usec, 1_000_000)
    days, secs = divmod(secs, 86400)
    hours, secs = divmod(secs, 3600)
    minutes, secs = divmod(secs, 60)
    for value, unit in ((days, "d"), (hours, "h"), (minutes, "min"), (secs, "s")):
        if value:
            parts.append(f"{value}{unit}")
    if rem_us and not parts:
        if rem_us % 1000 == 0:
            parts.append(f"{rem_us // 1000}ms")
        else:
            parts.append(f"{rem_us}us")
    return " ".join(parts)


def format_timestamp(usec: int) -> str:
    """Absolute local time for a microsecond epoch; empty for 0/unset."""
    if not usec:
        return ""
    try:
        dt = datetime.datetime.fromtimestamp(usec / 1_000_000)
    except (OverflowError, OSError, ValueError):
        return ""
    return dt.strftime("%a %Y-%m-%d %H:%M:%S")


def format_log_timestamp(usec: int) -> str:
    if not usec:
        return ""
    try:
        dt = datetime.datetime.fromtimestamp(usec / 1_000_000)
    except (OverflowError, OSError, ValueError):
        return ""
    return dt.strftime("%b %d %H:%M:%S")


def format_relative_time(target_usec: int, now: Optional[int] = None) -> str:
    """Time left until ``target_usec`` ("3h 12m"), or "elapsed" if past."""
    now = now_usec() if now is None else now
    if target_usec <= now:
        return "elapsed"
    diff = (target_usec - now) // 1_000_000
    days, rem = divmod(diff, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
