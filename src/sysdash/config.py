from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .core.models import Scope, UnitKind
from .errors import ConfigError

DEFAULT_LOG_LIMIT = 1000
DEFAULT_LOG_FILE = Path("~/.cache/sysdash/sysdash.log")


@dataclass(frozen=True)
class Settings:
    scope: Scope = Scope.SYSTEM
    kind: UnitKind = UnitKind.SERVICE
    log_limit: int = DEFAULT_LOG_LIMIT
    log_level: int = logging.WARNING
    log_file: Path = DEFAULT_LOG_FILE
    journalctl: str = "journalctl"


def parse_scope(value: str) -> Scope:
    try:
        return Scope(value.strip().lower())
    except ValueError:
        raise ConfigError(f"invalid scope {value!r} (expected system or user)") from None


def parse_kind(value: str) -> UnitKind:
    v = value.strip().lower().lstrip(".")
    for kind in UnitKind:
        if v in (kind.value, kind.label.lower()):
            return kind
    opts = ", ".join(k.value for k in UnitKind)
    raise ConfigError(f"invalid unit type {value!r} (expected one of {opts})")


def parse_log_limit(value: str | int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid log line limit {value!r}") from None
    if n <= 0:
        raise ConfigError(f"log line limit must be positive, got {n}")
    return n


def parse_log_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ConfigError(f"invalid log level {value!r}")
    return level


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    *,
    scope: Optional[Scope] = None,
    kind: Optional[UnitKind] = None,
    log_limit: Optional[int] = None,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> Settings:
    """Build settings from ``SYSDASH_*`` variables; explicit arguments win."""
    env = os.environ if env is None else env
    s = Settings()

    if "SYSDASH_SCOPE" in env:
        s = replace(s, scope=parse_scope(env["SYSDASH_SCOPE"]))
    if "SYSDASH_KIND" in env:
        s = replace(s, kind=parse_kind(env["SYSDASH_KIND"]))
    if "SYSDASH_LOG_LIMIT" in env:
        s = replace(s, log_limit=parse_log_limit(env["SYSDASH_LOG_LIMIT"]))
    if "SYSDASH_LOG_LEVEL" in env:
        s = replace(s, log_level=parse_log_level(env["SYSDASH_LOG_LEVEL"]))
    if env.get("SYSDASH_LOG_FILE"):
        s = replace(s, log_file=Path(env["SYSDASH_LOG_FILE"]))
    if env.get("SYSDASH_JOURNALCTL", "").strip():
        s = replace(s, journalctl=env["SYSDASH_JOURNALCTL"].strip())

    if scope is not None:
        s = replace(s, scope=scope)
    if kind is not None:
        s = replace(s, kind=kind)
    if log_limit is not None:
        s = replace(s, log_limit=parse_log_limit(log_limit))
    if log_level is not None:
        s = replace(s, log_level=parse_log_level(log_level))
    if log_file is not None:
        s = replace(s, log_file=log_file)
    return replace(s, log_file=s.log_file.expanduser())
