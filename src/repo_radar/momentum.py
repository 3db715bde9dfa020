"""Momentum scoring from a short window of daily snapshots.

The score blends three bounded components:

- relative growth: week-over-week star percentage on a log2 scale,
  saturating at +50%, so tiny repos cannot max out on a handful of stars;
- absolute growth: week-over-week star delta on a log10 scale,
  saturating at +1000 stars;
- acceleration: recent daily star rate versus the older daily rate,
  centred on 50 (no change).

Weights are 50/30/20 and the result is clamped to [0, 100].
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from repo_radar.models import MomentumResult, TrendLabel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from repo_radar.models import Snapshot

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_WEEK_OFFSET = 7  # positions between week_ago and latest in a daily series
_MID_OFFSET = 4  # mid is the 4th snapshot from the end of a week-long series
_SPARKLINE_LENGTH = 7

_REL_SATURATION = math.log2(51)  # +50% growth
_ABS_SATURATION = math.log10(1001)  # +1000 stars

_REL_WEIGHT = 0.50
_ABS_WEIGHT = 0.30
_ACCEL_WEIGHT = 0.20

_ACCEL_NEUTRAL = 50.0
_ACCEL_FROM_ZERO = 80.0

_HOT_THRESHOLD = 75.0
_RISING_THRESHOLD = 45.0
_STEADY_THRESHOLD = 15.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _round_half_away(value: float, places: int) -> float:
    """Round half away from zero (``round()`` uses banker's rounding)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def label_for(momentum: float) -> TrendLabel:
    """Map a momentum value to its label using fixed thresholds."""
    if momentum >= _HOT_THRESHOLD:
        return TrendLabel.HOT
    if momentum >= _RISING_THRESHOLD:
        return TrendLabel.RISING
    if momentum >= _STEADY_THRESHOLD:
        return TrendLabel.STEADY
    return TrendLabel.DECLINING


def relative_growth_score(stars_pct: float) -> float:
    """Score week-over-week percentage growth on a signed log2 scale."""
    magnitude = min(100.0, math.log2(1 + abs(stars_pct)) / _REL_SATURATION * 100)
    return math.copysign(magnitude, stars_pct) if stars_pct else 0.0


def absolute_growth_score(stars_delta: float) -> float:
    """Score week-over-week star delta on a signed log10 scale."""
    magnitude = min(100.0, math.log10(1 + abs(stars_delta)) / _ABS_SATURATION * 100)
    return math.copysign(magnitude, stars_delta) if stars_delta else 0.0


def acceleration_score(ordered: list[Snapshot], week_ago_index: int) -> float:
    """Compare the recent daily star rate with the older one.

    Args:
        ordered: Snapshots sorted oldest first.
        week_ago_index: Index of the baseline snapshot in ``ordered``.

    Returns:
        50 when there is not enough history or no growth at all, 80 when
        growth appeared from a flat baseline, otherwise
        ``50 + (recent/older - 1) * 50`` clamped to [0, 100].
    """
    count = len(ordered)
    if count < 4:
        return _ACCEL_NEUTRAL

    latest_index = count - 1
    mid_index = count - _MID_OFFSET if count >= _WEEK_OFFSET else count // 2

    latest = ordered[latest_index]
    mid = ordered[mid_index]
    week_ago = ordered[week_ago_index]

    recent_rate = (latest.stars - mid.stars) / max(1, latest_index - mid_index)
    older_rate = (mid.stars - week_ago.stars) / max(1, mid_index - week_ago_index)

    if older_rate > 0:
        return _clamp(_ACCEL_NEUTRAL + (recent_rate / older_rate - 1) * 50)
    if recent_rate > 0:
        return _ACCEL_FROM_ZERO
    return _ACCEL_NEUTRAL


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_momentum(snapshots: Iterable[Snapshot]) -> MomentumResult:
    """Derive trend fields from a project's recent snapshots.

    Args:
        snapshots: Daily snapshots in any order (typically the 8 most
            recent, newest first, as read back from the store).

    Returns:
        A ``MomentumResult``. With fewer than 2 snapshots the result is
        ``momentum=0`` / ``label=new`` and no deltas are computed.
    """
    ordered = sorted(snapshots, key=lambda snap: snap.date)
    if len(ordered) < 2:
        return MomentumResult(momentum=0.0, label=TrendLabel.NEW)

    latest_index = len(ordered) - 1
    week_ago_index = max(0, latest_index - _WEEK_OFFSET)
    latest = ordered[latest_index]
    week_ago = ordered[week_ago_index]

    stars_7d = latest.stars - week_ago.stars
    forks_7d = latest.forks - week_ago.forks
    stars_pct_7d = stars_7d / week_ago.stars * 100 if week_ago.stars > 0 else 0.0

    rel_score = relative_growth_score(stars_pct_7d)
    abs_score = absolute_growth_score(stars_7d)
    accel_score = acceleration_score(ordered, week_ago_index)

    composite = _clamp(
        rel_score * _REL_WEIGHT + abs_score * _ABS_WEIGHT + accel_score * _ACCEL_WEIGHT
    )
    momentum = _round_half_away(composite, 1)

    return MomentumResult(
        stars_7d=stars_7d,
        stars_pct_7d=_round_half_away(stars_pct_7d, 2),
        forks_7d=forks_7d,
        momentum=momentum,
        label=label_for(momentum),
        sparkline=[snap.stars for snap in ordered[-_SPARKLINE_LENGTH:]],
    )
