from __future__ import annotations

import enum

from tague_api.schemas import Account


class GateDecision(str, enum.Enum):
    IMMEDIATE = "immediate"
    REQUIRES_REQUEST = "requires_request"


def decide(target: Account) -> GateDecision:
    """Whether a follow on ``target`` completes now or must become a request."""
    if target.is_private:
        return GateDecision.REQUIRES_REQUEST
    return GateDecision.IMMEDIATE


def can_view(viewer_id: str | None, target: Account) -> bool:
    if viewer_id and str(viewer_id) == target.id:
        return True
    if not target.is_private:
        return True
    return bool(viewer_id) and str(viewer_id) in target.followers
