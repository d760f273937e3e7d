"""Retention tier planning for the remote backup bucket.

The bucket holds exactly three archives, one per tier:

- ``day.7z``   replaced when older than 1 day
- ``week.7z``  replaced when older than 7 days
- ``month.7z`` replaced when older than 30 days

The planner looks at the current listing and picks the single tier that has
to be refreshed by this run. Stale tiers win over missing ones; missing tiers
are filled in the order daily, weekly, monthly.

Two tie-break modes are supported for several stale tiers:

- ``priority``: the newest version of each tier decides staleness and the
  first stale tier in daily/weekly/monthly order wins
- ``scan_order``: the first version in listing order whose age exceeds its
  tier threshold wins
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Sequence

from backup_agent.automation.storage.schemas import RemoteObjectVersion


TIE_BREAK_PRIORITY = "priority"
TIE_BREAK_SCAN_ORDER = "scan_order"


class Tier(Enum):
    """Fixed retention tiers, declared in priority order."""

    DAILY = ("daily", "day.7z", timedelta(days=1))
    WEEKLY = ("weekly", "week.7z", timedelta(days=7))
    MONTHLY = ("monthly", "month.7z", timedelta(days=30))

    def __init__(self, label: str, filename: str, max_age: timedelta):
        self.label = label
        self.filename = filename
        self.max_age = max_age

    @classmethod
    def from_filename(cls, filename: str) -> Optional["Tier"]:
        """Return the tier whose canonical name is ``filename``, if any."""

        for tier in cls:
            if tier.filename == filename:
                return tier
        return None


@dataclass(frozen=True)
class RotationDecision:
    """Which tier (if any) must be replaced by the current run.

    Attributes:
        tier: Tier due for replacement, or None when nothing is due.
        reason: "stale", "missing" or None.
    """

    tier: Optional[Tier] = None
    reason: Optional[str] = None

    @property
    def is_due(self) -> bool:
        return self.tier is not None

    @classmethod
    def none_due(cls) -> "RotationDecision":
        return cls()

    @classmethod
    def tier_due(cls, tier: Tier, reason: str) -> "RotationDecision":
        return cls(tier=tier, reason=reason)


def evaluate(
    now: Optional[datetime],
    versions: Sequence[RemoteObjectVersion],
    *,
    tie_break: str = TIE_BREAK_PRIORITY,
) -> RotationDecision:
    """Decide which tier has to be refreshed.

    Args:
        now: Current time. Defaults to ``datetime.now(timezone.utc)``.
        versions: Remote listing, in the order returned by the store.
        tie_break: ``priority`` or ``scan_order``.

    Returns:
        RotationDecision: The tier due now, or a decision with no tier.

    Raises:
        ValueError: When ``tie_break`` is unknown.
    """

    if tie_break not in (TIE_BREAK_PRIORITY, TIE_BREAK_SCAN_ORDER):
        raise ValueError(f"Unknown tie_break: {tie_break}")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    newest: Dict[Tier, RemoteObjectVersion] = {}
    first_stale: Optional[Tier] = None

    for version in versions:
        tier = Tier.from_filename(version.file_name)
        if tier is None:
            continue

        if first_stale is None and now - version.uploaded_at > tier.max_age:
            first_stale = tier

        current = newest.get(tier)
        if current is None or version.upload_timestamp > current.upload_timestamp:
            newest[tier] = version

    if tie_break == TIE_BREAK_SCAN_ORDER:
        if first_stale is not None:
            return RotationDecision.tier_due(first_stale, "stale")
    else:
        for tier in Tier:
            version = newest.get(tier)
            if version is not None and now - version.uploaded_at > tier.max_age:
                return RotationDecision.tier_due(tier, "stale")

    for tier in Tier:
        if tier not in newest:
            return RotationDecision.tier_due(tier, "missing")

    return RotationDecision.none_due()
