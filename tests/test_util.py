from sysdash.util import (
    format_bytes,
    format_cpu_time,
    format_relative_time,
    format_timestamp,
    format_usec_span,
    json_line,
)

SEC = 1_000_000


def test_json_line_is_compact():
    assert json_line({"name": "a.service", "sub": "running"}) == '{"name":"a.service","sub":"running"}'


def test_format_bytes():
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(5 * 1024 * 1024) == "5.0 MB"
    assert format_bytes(3 * 1024**3) == "3.0 GB"


def test_format_cpu_time():
    assert format_cpu_time(1_500_000_000) == "1.500s"
    assert format_cpu_time(90 * 1_000_000_000) == "1.5min"


def test_format_usec_span():
    assert format_usec_span(0) == "0"
    assert format_usec_span(90 * SEC) == "1min 30s"
    assert format_usec_span(86400 * SEC + 3600 * SEC) == "1d 1h"
    assert format_usec_span(500_000) == "500ms"
    assert format_usec_span(250) == "250us"


def test_format_relative_time():
    now = 1_000_000 * SEC
    assert format_relative_time(now - SEC, now) == "elapsed"
    assert format_relative_time(now + 45 * SEC, now) == "45s"
    assert format_relative_time(now + 125 * SEC, now) == "2m 5s"
    assert format_relative_time(now + 3 * 3600 * SEC + 12 * 60 * SEC, now) == "3h 12m"
    assert format_relative_time(now + 2 * 86400 * SEC + 5 * 3600 * SEC, now) == "2d 5h"


def test_format_timestamp_unset():
    assert format_timestamp(0) == ""
    assert format_timestamp(1714564800 * SEC) != ""
