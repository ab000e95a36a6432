"""
Shared scorer machinery: contract lookup, error outcomes and score ramps.
"""

import math
from typing import Dict, Optional

from ..config import AnomalyConfig, AnomalyErrorCode, ContractCategory, DEFAULT_CONFIG
from ..data_loader import ContractStore
from ..models import Result, ScoreResult
from ..statistics import StatisticsEngine


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positive inputs (2.5 -> 3)."""
    return int(math.floor(x + 0.5))


def linear_ramp(excess: float, base: float, slope: float, cap: int) -> int:
    """Map an excess over threshold to `base + slope * excess`, rounded and capped."""
    return max(0, min(cap, round_half_up(base + excess * slope)))


class CriterionScorer:
    """
    Base class for one anomaly criterion.

    Subclasses set `criterion`, optionally `requires_category`, and
    implement `_score(contract)` returning a ScoreResult.

    `score(contract_id)` never raises for domain conditions:
    - unknown contract -> Result failure INVALID_CONTRACT
    - OUTROS contract on a category criterion -> Result failure NO_CATEGORY
    - insufficient peer data -> Result success with score 0

    StoreError raised by statistics queries propagates to the caller.
    """

    criterion: str = ""
    requires_category: bool = False

    def __init__(
        self,
        store: ContractStore,
        statistics: Optional[StatisticsEngine] = None,
        config: Optional[AnomalyConfig] = None,
    ):
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.statistics = statistics or StatisticsEngine(
            store, self.config.min_contracts_for_stats
        )

    @property
    def max_score(self) -> int:
        return self.config.max_score

    def score(self, contract_id: str) -> Result:
        contract = self.store.get_contract(contract_id)

        if contract is None:
            return Result.fail(
                AnomalyErrorCode.INVALID_CONTRACT,
                f"Contract not found: {contract_id}",
            )

        if self.requires_category and contract["category"] not in ContractCategory.SCORABLE:
            return Result.fail(
                AnomalyErrorCode.NO_CATEGORY,
                f"Contract must have a specific category (not {ContractCategory.OUTROS})",
            )

        return Result.ok(self._score(contract))

    def _score(self, contract: Dict) -> ScoreResult:
        raise NotImplementedError

    def cap(self, score: float) -> int:
        return max(0, min(self.max_score, int(score)))

    @staticmethod
    def insufficient(reason: str) -> ScoreResult:
        return ScoreResult(score=0, reason=reason, is_anomaly=False, stats=None)

    @staticmethod
    def from_flags(score: int, flags, clean_reason: str, stats) -> ScoreResult:
        """Result for additive rule criteria: any flag raised = anomaly."""
        is_anomaly = score > 0
        reason = "; ".join(flags) if is_anomaly else clean_reason
        return ScoreResult(score=score, reason=reason, is_anomaly=is_anomaly, stats=stats)
