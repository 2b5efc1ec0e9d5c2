"""
Rank calculation over the entry ledger.

Both presentations of rank, the exact position and the coarse tier, derive
from the same inclusive position count; the project's show_position flag
only selects which one the caller sees.
"""
from dataclasses import dataclass
from typing import Optional

TOP_10 = "Top 10%"
HIGH_PRIORITY = "High priority"
EARLY_COHORT = "Early cohort"
ON_THE_LIST = "On the list"

# (minimum percentile, tier), best first
TIER_THRESHOLDS = (
    (90, TOP_10),
    (75, HIGH_PRIORITY),
    (50, EARLY_COHORT),
)


@dataclass(frozen=True)
class Rank:
    position: Optional[int] = None
    tier: Optional[str] = None

    @classmethod
    def unknown(cls) -> "Rank":
        return cls()


def percentile(position: int, total: int) -> float:
    """Share of the list at or behind this position, 1-based, in (0, 100]."""
    if total <= 0 or position <= 0:
        raise ValueError(f"position and total must be positive (got {position}/{total})")
    position = min(position, total)
    return (total - position + 1) / total * 100


def tier_for_percentile(value: float) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if value >= threshold:
            return tier
    return ON_THE_LIST


def rank_from_counts(position: int, total: int, show_position: bool) -> Rank:
    """Turn one consistent (position, total) read into the caller-visible rank.

    An entry that vanished between insert and read (position 0) or an empty
    ledger yields an unknown rank rather than an impossible one.
    """
    if position <= 0 or total <= 0:
        return Rank.unknown()
    if show_position:
        return Rank(position=position)
    return Rank(tier=tier_for_percentile(percentile(position, total)))


class RankCalculator:
    def __init__(self, ledger):
        self.ledger = ledger

    def rank_for(self, project_id, joined_at, show_position: bool) -> Rank:
        position, total = self.ledger.rank_counts(project_id, joined_at)
        return rank_from_counts(position, total, show_position)
