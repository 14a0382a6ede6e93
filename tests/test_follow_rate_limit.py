from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi import HTTPException

from tague_api.rate_limit import check_follow_rate_limit, check_rate_limit, reset_rate_limits


class _DummyClient:
    host = "203.0.113.10"


class _DummyRequest:
    client = _DummyClient()


@pytest.fixture(autouse=True)
def _enabled(monkeypatch):
    monkeypatch.setenv("TAGUE_RATE_LIMIT_ENABLED", "1")
    reset_rate_limits()
    yield
    reset_rate_limits()


def test_rate_limit_minute_window_resets() -> None:
    now = datetime(2026, 1, 1, 12, 0, 5, tzinfo=UTC)
    check_rate_limit(principal_id="acct_a", action="t", per_minute=1, per_hour=0, now=now)
    with pytest.raises(HTTPException) as exc:
        check_rate_limit(principal_id="acct_a", action="t", per_minute=1, per_hour=0, now=now)
    assert exc.value.status_code == 429
    assert exc.value.detail["retry_after_sec"] == 55
    assert exc.value.headers["Retry-After"] == "55"

    later = datetime(2026, 1, 1, 12, 1, 0, tzinfo=UTC)
    check_rate_limit(principal_id="acct_a", action="t", per_minute=1, per_hour=0, now=later)


def test_follow_rate_limit_enforces_ip_scope_across_accounts(monkeypatch) -> None:
    monkeypatch.setenv("TAGUE_RATE_LIMIT_FOLLOW_PER_MINUTE_IP", "1")
    now = datetime(2026, 1, 1, tzinfo=UTC)

    check_follow_rate_limit(
        principal_id="acct_a",
        request=_DummyRequest(),  # type: ignore[arg-type]
        target_id="acct_t",
        now=now,
    )
    with pytest.raises(HTTPException) as exc:
        check_follow_rate_limit(
            principal_id="acct_b",
            request=_DummyRequest(),  # type: ignore[arg-type]
            target_id="acct_t",
            now=now,
        )
    assert exc.value.status_code == 429
    assert exc.value.detail["scope"] == "ip"
    assert exc.value.detail["target_id"] == "acct_t"


def test_disabled_rate_limit_is_a_noop(monkeypatch) -> None:
    monkeypatch.setenv("TAGUE_RATE_LIMIT_ENABLED", "0")
    now = datetime(2026, 1, 1, tzinfo=UTC)
    for _ in range(5):
        check_rate_limit(principal_id="acct_c", action="t", per_minute=1, per_hour=1, now=now)
