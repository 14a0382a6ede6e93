from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from fastapi import HTTPException, Request

from tague_api.core.config import Settings


@dataclass
class _Window:
    minute_start: int
    minute_count: int
    hour_start: int
    hour_count: int


_LOCK = Lock()
_STATE: dict[tuple[str, str], _Window] = {}


def _epoch_seconds(now: datetime) -> int:
    if getattr(now, "tzinfo", None) is None:
        now = now.replace(tzinfo=UTC)
    return int(now.timestamp())


def ip_hash_from_request(request: Request | None) -> str | None:
    if request is None:
        return None
    ip = str(getattr(getattr(request, "client", None), "host", None) or "").strip()
    if not ip:
        return None
    secret = Settings().auth_jwt_secret
    return hashlib.sha256(f"{ip}|{secret}".encode("utf-8")).hexdigest()


def reset_rate_limits() -> None:
    with _LOCK:
        _STATE.clear()


def _limited(action: str, retry_after: int, extra_detail: dict[str, Any] | None) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail={
            "error": "rate_limited",
            "action": action,
            "retry_after_sec": retry_after,
            **(extra_detail or {}),
        },
        headers={"Retry-After": str(int(retry_after))},
    )


def check_rate_limit(
    *,
    principal_id: str,
    action: str,
    per_minute: int,
    per_hour: int,
    now: datetime | None = None,
    extra_detail: dict[str, Any] | None = None,
) -> None:
    settings = Settings()
    if not settings.rate_limit_enabled:
        return

    if per_minute <= 0 and per_hour <= 0:
        return

    now_s = _epoch_seconds(now or datetime.now(UTC))
    minute_bucket = now_s // 60
    hour_bucket = now_s // 3600
    key = (str(principal_id or "anon"), str(action))

    with _LOCK:
        w = _STATE.get(key)
        if w is None:
            w = _Window(
                minute_start=minute_bucket,
                minute_count=0,
                hour_start=hour_bucket,
                hour_count=0,
            )

        if w.minute_start != minute_bucket:
            w.minute_start = minute_bucket
            w.minute_count = 0
        if w.hour_start != hour_bucket:
            w.hour_start = hour_bucket
            w.hour_count = 0

        if per_minute > 0 and w.minute_count >= int(per_minute):
            raise _limited(action, max(1, 60 - (now_s % 60)), extra_detail)
        if per_hour > 0 and w.hour_count >= int(per_hour):
            raise _limited(action, max(1, 3600 - (now_s % 3600)), extra_detail)

        w.minute_count += 1
        w.hour_count += 1
        _STATE[key] = w


def check_follow_rate_limit(
    *,
    principal_id: str,
    request: Request | None,
    target_id: str,
    now: datetime | None = None,
) -> None:
    """Per-account and per-client-IP budget for follow graph mutations."""
    settings = Settings()
    detail = {"target_id": target_id}
    check_rate_limit(
        principal_id=principal_id,
        action="follow",
        per_minute=int(settings.rate_limit_follow_per_minute),
        per_hour=int(settings.rate_limit_follow_per_hour),
        now=now,
        extra_detail=detail,
    )

    ip_hash = ip_hash_from_request(request)
    if not ip_hash:
        return
    check_rate_limit(
        principal_id=f"ip:{ip_hash[:48]}",
        action="follow",
        per_minute=int(settings.rate_limit_follow_per_minute_ip),
        per_hour=int(settings.rate_limit_follow_per_hour_ip),
        now=now,
        extra_detail={**detail, "scope": "ip"},
    )
