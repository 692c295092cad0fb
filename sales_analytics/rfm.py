"""
Customer value (RFM) segmentation.

The thresholds are business policy and come from settings; what this module
guarantees is the shape of the rule: the rules are tried in a fixed order,
the first match wins, and a customer matching none of them is
`New/Occasional`. Nobody is ever left unclassified.
"""

from dataclasses import dataclass
from typing import Any, Optional

from . import settings
from .schemas import Segment
from .utils import zero


@dataclass(frozen=True)
class SegmentPolicy:
    champion_max_recency: int = settings.RFM_CHAMPION_MAX_RECENCY
    champion_min_visits: int = settings.RFM_CHAMPION_MIN_VISITS
    champion_min_spend: float = settings.RFM_CHAMPION_MIN_SPEND
    loyal_max_recency: int = settings.RFM_LOYAL_MAX_RECENCY
    loyal_min_visits: int = settings.RFM_LOYAL_MIN_VISITS
    at_risk_min_recency: int = settings.RFM_AT_RISK_MIN_RECENCY
    at_risk_min_visits: int = settings.RFM_AT_RISK_MIN_VISITS
    lost_min_recency: int = settings.RFM_LOST_MIN_RECENCY

    def __post_init__(self):
        # Recency bands must not overlap: active (champion/loyal) < at risk < lost.
        if not (
            self.champion_max_recency <= self.loyal_max_recency
            < self.at_risk_min_recency
            <= self.lost_min_recency
        ):
            raise ValueError(f"Overlapping recency bands in {self}")


DEFAULT_POLICY = SegmentPolicy()


def classify_customer(
    recency_days: Any,
    visits: Any,
    total_spent: Any,
    policy: Optional[SegmentPolicy] = None,
) -> Segment:
    """Maps (recency in days, visit count, total spend) to a segment. Missing figures count as 0."""
    policy = policy or DEFAULT_POLICY
    recency, frequency, monetary = zero(recency_days), zero(visits), zero(total_spent)

    if (
        recency <= policy.champion_max_recency
        and frequency >= policy.champion_min_visits
        and monetary >= policy.champion_min_spend
    ):
        return Segment.CHAMPION
    if recency <= policy.loyal_max_recency and frequency >= policy.loyal_min_visits:
        return Segment.LOYAL
    if recency >= policy.lost_min_recency:
        return Segment.LOST
    if recency >= policy.at_risk_min_recency and frequency >= policy.at_risk_min_visits:
        return Segment.AT_RISK
    return Segment.NEW_OCCASIONAL
