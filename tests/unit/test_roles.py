"""Unit tests for the X-User-Role mapping."""

from __future__ import annotations

import pytest

from ragler.api.routes import UserRole, is_elevated, parse_role


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("ML", UserRole.ML),
        ("dev", UserRole.DEV),
        (" Dev ", UserRole.DEV),
        ("L2", UserRole.L2),
        ("admin", UserRole.L2),
        ("", UserRole.L2),
        (None, UserRole.L2),
    ],
)
def test_parse_role(raw: str | None, expected: UserRole) -> None:
    assert parse_role(raw) is expected


def test_only_ml_and_dev_are_elevated() -> None:
    assert is_elevated(UserRole.ML) is True
    assert is_elevated(UserRole.DEV) is True
    assert is_elevated(UserRole.L2) is False
