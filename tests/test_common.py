import logging
import re

import pytest

from tetherstream.common import configure_logging, format_uptime, generate_token, log


@pytest.mark.parametrize("seconds, expected", [
    (0, "00:00"),
    (65, "01:05"),
    (3599, "59:59"),
    (3600, "1:00:00"),
    (3725, "1:02:05"),
    (-4, "00:00"),
])
def test_format_uptime(seconds, expected):
    assert format_uptime(seconds) == expected


def test_generate_token_is_sixteen_hex_chars():
    token = generate_token()
    assert re.fullmatch(r"[0-9a-f]{16}", token)
    assert generate_token() != token


def test_configure_logging_sets_package_level():
    configure_logging("debug")
    assert log.level == logging.DEBUG
    configure_logging("WARNING")
    assert log.level == logging.WARNING
