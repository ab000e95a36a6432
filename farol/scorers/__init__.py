"""
Anomaly Criteria for Procurement Contracts.

8 criteria, each scored 0-25 (total 0-200):
Statistical (peer groups, skip OUTROS contracts):
1. ValueScorer: value vs category/year mean
2. AmendmentScorer: amendment count and value
3. ConcentrationScorer: supplier share of the agency
4. DurationScorer: duration vs category mean
Rule-based (red flags):
5. TimingScorer: December, weekend, rushed signature
6. RoundNumberScorer: round values
7. FragmentationScorer: splitting under the dispensa limit
8. DescriptionScorer: vague or targeted object text
"""

from typing import Dict, Type

from ..config import Criterion
from .base import CriterionScorer, round_half_up, linear_ramp

# Statistical
from .statistical import ValueScorer, AmendmentScorer, ConcentrationScorer, DurationScorer

# Rule-based
from .rule_based import (
    TimingScorer, RoundNumberScorer, FragmentationScorer, DescriptionScorer,
    text_similarity, VAGUE_TERMS, BRAND_PATTERNS,
)

SCORERS: Dict[str, Type[CriterionScorer]] = {
    Criterion.VALUE: ValueScorer,
    Criterion.AMENDMENT: AmendmentScorer,
    Criterion.CONCENTRATION: ConcentrationScorer,
    Criterion.DURATION: DurationScorer,
    Criterion.TIMING: TimingScorer,
    Criterion.ROUND_NUMBER: RoundNumberScorer,
    Criterion.FRAGMENTATION: FragmentationScorer,
    Criterion.DESCRIPTION: DescriptionScorer,
}

__all__ = [
    "CriterionScorer",
    "round_half_up",
    "linear_ramp",
    # Statistical
    "ValueScorer",
    "AmendmentScorer",
    "ConcentrationScorer",
    "DurationScorer",
    # Rule-based
    "TimingScorer",
    "RoundNumberScorer",
    "FragmentationScorer",
    "DescriptionScorer",
    "text_similarity",
    "VAGUE_TERMS",
    "BRAND_PATTERNS",
    # Registry
    "SCORERS",
]
