"""
Status translation tables.

Source systems use free-form stage names. They map onto an ordered lifecycle
(draft < pending_approval < approved < active < paused < completed < cancelled),
which collapses to a three-level display status. Lookup is exact after
trimming and lower-casing; anything unknown falls back to the least
privileged value and is reported, because new vocabulary shows up in real
exports without notice.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LifecycleStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)


_ORDER = list(LifecycleStatus)


class DisplayLevel(str, Enum):
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"


DISPLAY_LEVEL: dict[LifecycleStatus, DisplayLevel] = {
    LifecycleStatus.DRAFT: DisplayLevel.L1,
    LifecycleStatus.PENDING_APPROVAL: DisplayLevel.L2,
    LifecycleStatus.APPROVED: DisplayLevel.L2,
    LifecycleStatus.ACTIVE: DisplayLevel.L3,
    LifecycleStatus.PAUSED: DisplayLevel.L3,
    LifecycleStatus.COMPLETED: DisplayLevel.L3,
    LifecycleStatus.CANCELLED: DisplayLevel.L3,
}

STAGE_MAP: dict[str, LifecycleStatus] = {
    # Stage names used by the sales system
    "new": LifecycleStatus.DRAFT,
    "planning": LifecycleStatus.PENDING_APPROVAL,
    "approved": LifecycleStatus.APPROVED,
    "live": LifecycleStatus.ACTIVE,
    "paused": LifecycleStatus.PAUSED,
    "completed": LifecycleStatus.COMPLETED,
    "cancelled": LifecycleStatus.CANCELLED,
    # Synonyms
    "draft": LifecycleStatus.DRAFT,
    "pending": LifecycleStatus.PENDING_APPROVAL,
    "pending approval": LifecycleStatus.PENDING_APPROVAL,
    "pending_approval": LifecycleStatus.PENDING_APPROVAL,
    "in review": LifecycleStatus.PENDING_APPROVAL,
    "proposal": LifecycleStatus.PENDING_APPROVAL,
    "active": LifecycleStatus.ACTIVE,
    "running": LifecycleStatus.ACTIVE,
    "in flight": LifecycleStatus.ACTIVE,
    "on hold": LifecycleStatus.PAUSED,
    "complete": LifecycleStatus.COMPLETED,
    "closed": LifecycleStatus.COMPLETED,
    "ended": LifecycleStatus.COMPLETED,
    "finished": LifecycleStatus.COMPLETED,
    "canceled": LifecycleStatus.CANCELLED,
    "lost": LifecycleStatus.CANCELLED,
}


@dataclass(frozen=True)
class StatusMapping:
    status: LifecycleStatus
    level: DisplayLevel
    mapped: bool  # False when the source value was present but unknown


def map_status(raw: str | None) -> StatusMapping:
    """Translate a source stage/status string. Missing maps to draft without a warning."""
    if raw is None or not str(raw).strip():
        return StatusMapping(LifecycleStatus.DRAFT, DisplayLevel.L1, mapped=True)
    status = STAGE_MAP.get(str(raw).strip().lower())
    if status is None:
        return StatusMapping(LifecycleStatus.DRAFT, DisplayLevel.L1, mapped=False)
    return StatusMapping(status, DISPLAY_LEVEL[status], mapped=True)
