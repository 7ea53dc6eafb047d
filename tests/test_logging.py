"""
Tests for logging setup and redaction helpers.
"""

import logging

import pytest

from neurocal.utils.logging import configure_logging, mask_email


@pytest.mark.parametrize(
    "email,expected",
    [
        ("ada@example.com", "a***@example.com"),
        ("x@y.io", "x***@y.io"),
        ("not-an-email", "***"),
        (None, "***"),
    ],
)
def test_mask_email(email, expected):
    assert mask_email(email) == expected


def test_configure_logging_quiets_httpx():
    configure_logging("debug")

    assert logging.getLogger("httpx").level == logging.WARNING


def test_configure_logging_unknown_level():
    configure_logging("LOUD")

    assert logging.getLogger("httpx").level == logging.WARNING
