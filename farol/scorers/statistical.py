"""
Statistical Criteria (peer-group deviation)

Criteria that compare a contract against its peers:
1. Value - contract value vs category (+ year) mean
2. Amendment - amendment count vs category mean, amendment value vs original
3. Concentration - supplier share of the agency's contracts
4. Duration - contract duration vs category mean

Each criterion returns score 0 with stats=None when the peer group is
smaller than `min_contracts_for_stats`. Deviations use the population
standard deviation; a zero standard deviation yields zero deviation.
"""

from typing import Dict, Optional

import pandas as pd

from ..config import Criterion, Thresholds
from ..models import (
    PeerStatistics, ScoreResult,
    ValueStats, AmendmentStats, ConcentrationStats, DurationStats,
)
from ..statistics import contract_duration
from .base import CriterionScorer, linear_ramp, round_half_up


def deviations(x: float, stats: PeerStatistics) -> float:
    """Standard deviations of x from the peer mean (0 when the peers don't vary)."""
    if stats.standard_deviation > 0:
        return (x - stats.mean) / stats.standard_deviation
    return 0.0


# =============================================================================
# Value
# =============================================================================

class ValueScorer(CriterionScorer):
    """
    Flags contracts priced well above similar contracts.

    Peers: same category and signature year, falling back to all years.
    Anomaly: more than `standard_deviation_threshold` (2.0) deviations above
    the mean. Score: 5 + 10 per deviation beyond the threshold, max 25.
    """

    criterion = Criterion.VALUE
    requires_category = True

    def _score(self, contract: Dict) -> ScoreResult:
        category = contract["category"]
        signature = contract["signature_date"]
        year = signature.year if signature is not None else None

        stats, used_year = None, None
        if year is not None:
            stats = self.statistics.category_value_stats(category, year)
            used_year = year
        if stats is None:
            stats = self.statistics.category_value_stats(category, None)
            used_year = None

        if stats is None:
            return self.insufficient(
                f"Insufficient contracts in category {category} for statistical analysis"
            )

        return self.evaluate(float(contract["value"] or 0), category, stats, used_year)

    def evaluate(
        self,
        value: float,
        category: str,
        stats: PeerStatistics,
        year: Optional[int] = None,
    ) -> ScoreResult:
        threshold = self.config.standard_deviation_threshold
        deviation = deviations(value, stats)
        percentage = (value - stats.mean) / stats.mean * 100 if stats.mean > 0 else 0.0

        value_stats = ValueStats(
            category=category,
            year=year,
            mean=stats.mean,
            standard_deviation=stats.standard_deviation,
            contract_count=stats.count,
            contract_value=value,
            deviations_from_mean=deviation,
            percentage_above_mean=percentage,
        )

        is_anomaly = deviation > threshold
        score = 0
        if is_anomaly:
            score = linear_ramp(deviation - threshold, 5, 10, self.max_score)

        if is_anomaly:
            year_info = f" in {year}" if year else ""
            reason = (
                f"Value {round_half_up(percentage)}% above the mean of similar contracts{year_info} "
                f"({stats.count} contracts, {deviation:.1f} standard deviations)"
            )
        elif deviation > 1:
            reason = f"Value above the mean but within the normal range ({deviation:.1f} standard deviations)"
        else:
            reason = f"Value within the normal range for {category} contracts"

        return ScoreResult(score=score, reason=reason, is_anomaly=is_anomaly, stats=value_stats)


# =============================================================================
# Amendment
# =============================================================================

class AmendmentScorer(CriterionScorer):
    """
    Flags contracts with unusually many amendments or large amendment value.

    Count part: more than mean + 1.5 std dev amendments in the category,
    5 + 7 per extra deviation, max 15.
    Value part: sum of |value change| above 50% of the original value,
    ratio x 10, max 15.
    Total capped at 25.
    """

    criterion = Criterion.AMENDMENT
    requires_category = True

    def _score(self, contract: Dict) -> ScoreResult:
        category = contract["category"]
        stats = self.statistics.amendment_count_stats(category)

        if stats is None:
            return self.insufficient(
                f"Insufficient contracts in category {category} for statistical analysis"
            )

        amendments = self.store.get_amendments(contract["id"])
        return self.evaluate(contract, amendments, stats)

    def evaluate(self, contract: Dict, amendments: pd.DataFrame, stats: PeerStatistics) -> ScoreResult:
        category = contract["category"]
        amendment_count = len(amendments)
        original_value = float(contract["value"] or 0)
        total_change = float(amendments["value_change"].fillna(0).abs().sum()) if amendment_count else 0.0
        ratio = total_change / original_value if original_value > 0 else 0.0

        deviation = deviations(amendment_count, stats)
        is_count_anomaly = deviation > Thresholds.AMENDMENT_COUNT_ZSCORE
        is_value_anomaly = ratio > Thresholds.AMENDMENT_VALUE_RATIO
        is_anomaly = is_count_anomaly or is_value_anomaly

        amendment_stats = AmendmentStats(
            category=category,
            mean=stats.mean,
            standard_deviation=stats.standard_deviation,
            contract_count=stats.count,
            amendment_count=amendment_count,
            total_amendment_value=total_change,
            original_contract_value=original_value,
            value_increase_ratio=ratio,
            deviations_from_mean=deviation,
        )

        count_score = 0
        value_score = 0
        if is_count_anomaly:
            count_score = linear_ramp(
                deviation - Thresholds.AMENDMENT_COUNT_ZSCORE, 5, 7, Thresholds.AMENDMENT_PART_MAX
            )
        if is_value_anomaly:
            value_score = linear_ramp(ratio, 0, 10, Thresholds.AMENDMENT_PART_MAX)
        score = self.cap(count_score + value_score)

        if is_anomaly:
            parts = []
            if is_count_anomaly:
                parts.append(f"{amendment_count} amendments (category mean: {stats.mean:.1f})")
            if is_value_anomaly:
                parts.append(f"{round_half_up(ratio * 100)}% value change through amendments")
            reason = "; ".join(parts)
        elif amendment_count > 0:
            reason = (
                f"{amendment_count} amendments within the normal range for {category} "
                f"(mean: {stats.mean:.1f})"
            )
        else:
            reason = "No amendments"

        return ScoreResult(score=score, reason=reason, is_anomaly=is_anomaly, stats=amendment_stats)


# =============================================================================
# Concentration
# =============================================================================

class ConcentrationScorer(CriterionScorer):
    """
    Flags suppliers holding more than 30% of an agency's contracts.

    Share is measured both by contract count and by value; the higher share
    drives the score: 5 + 50 x (share - 0.30), max 25.
    """

    criterion = Criterion.CONCENTRATION
    requires_category = True

    def _score(self, contract: Dict) -> ScoreResult:
        if not contract["agency_id"] or not contract["supplier_id"]:
            return self.insufficient("Missing agency or supplier for concentration analysis")

        stats = self.statistics.supplier_concentration(
            contract["agency_id"],
            contract["supplier_id"],
            contract["agency_name"],
            contract["supplier_name"],
        )
        if stats is None:
            return self.insufficient("Insufficient contracts in agency for statistical analysis")

        return self.evaluate(stats)

    def evaluate(self, stats: ConcentrationStats) -> ScoreResult:
        threshold = Thresholds.SUPPLIER_SHARE
        is_count_anomaly = stats.contract_percentage > threshold
        is_value_anomaly = stats.value_percentage > threshold
        is_anomaly = is_count_anomaly or is_value_anomaly

        score = 0
        if is_anomaly:
            share = max(stats.contract_percentage, stats.value_percentage)
            score = linear_ramp(share - threshold, 5, 50, self.max_score)

        by_count = round_half_up(stats.contract_percentage * 100)
        by_value = round_half_up(stats.value_percentage * 100)

        if is_count_anomaly:
            reason = (
                f"Supplier {stats.supplier_name} holds {by_count}% of the contracts "
                f"of {stats.agency_name}"
            )
            if is_value_anomaly:
                reason += f" ({by_value}% of the value)"
        elif is_value_anomaly:
            reason = (
                f"Supplier {stats.supplier_name} holds {by_value}% of the contract value "
                f"of {stats.agency_name}"
            )
        else:
            reason = f"Supplier holds {by_count}% of the agency's contracts (within the normal range)"

        return ScoreResult(score=score, reason=reason, is_anomaly=is_anomaly, stats=stats)


# =============================================================================
# Duration
# =============================================================================

class DurationScorer(CriterionScorer):
    """
    Flags contracts much shorter or longer than their category.

    Anomaly: |deviation| > 1.5. Score: 5 + 10 per deviation beyond 1.5,
    max 25. Contracts without usable dates score 0.
    """

    criterion = Criterion.DURATION
    requires_category = True

    def _score(self, contract: Dict) -> ScoreResult:
        duration = contract_duration(
            contract["start_date"], contract["end_date"], contract["signature_date"]
        )
        if duration is None:
            return self.insufficient("Missing start or end date for duration calculation")

        category = contract["category"]
        stats = self.statistics.duration_stats(category)
        if stats is None:
            return self.insufficient(
                f"Insufficient contracts in category {category} for statistical analysis"
            )

        return self.evaluate(duration, category, stats)

    def evaluate(self, duration: int, category: str, stats: PeerStatistics) -> ScoreResult:
        threshold = Thresholds.DURATION_ZSCORE
        deviation = deviations(duration, stats)
        is_too_short = deviation < -threshold
        is_too_long = deviation > threshold
        is_anomaly = is_too_short or is_too_long

        duration_stats = DurationStats(
            category=category,
            mean=stats.mean,
            standard_deviation=stats.standard_deviation,
            contract_count=stats.count,
            contract_duration=duration,
            deviations_from_mean=deviation,
            is_too_short=is_too_short,
            is_too_long=is_too_long,
        )

        score = 0
        if is_anomaly:
            score = linear_ramp(abs(deviation) - threshold, 5, 10, self.max_score)

        mean_days = round_half_up(stats.mean)
        if is_anomaly:
            direction = "below" if is_too_short else "above"
            reason = (
                f"Duration of {duration} days for {category}, mean is {mean_days} days "
                f"({abs(deviation):.1f} standard deviations {direction})"
            )
        elif abs(deviation) > 1:
            reason = (
                f"Duration away from the mean but within the normal range "
                f"({abs(deviation):.1f} standard deviations)"
            )
        else:
            reason = (
                f"Duration within the normal range for {category} contracts "
                f"({duration} days, mean: {mean_days} days)"
            )

        return ScoreResult(score=score, reason=reason, is_anomaly=is_anomaly, stats=duration_stats)
