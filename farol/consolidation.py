"""
Score Consolidation for Contract Anomalies.

Combines the 8 criterion scores (0-25 each) of a contract into:
1. Total score (0-200, plain sum)
2. Category: HIGH (> 100), MEDIUM (> 50), LOW
3. Breakdown per criterion, in fixed order
4. Contributing criteria (score > 0)

Also provides ranked listings and aggregate statistics over all
consolidated scores.
"""

import logging
import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import (
    AnomalyErrorCode, Criterion, ScoreCategory, Thresholds,
    DEFAULT_PAGE_SIZE, score_column, reason_column,
)
from .data_loader import ContractStore, clean_value
from .models import (
    Result, StoreError,
    ScoreBreakdownItem, ConsolidatedScore,
    ContractWithScore, ContractScoreList, ConsolidatedStats,
)

logger = logging.getLogger(__name__)

ORDER_BY_OPTIONS = ["score", "value"]
ORDER_OPTIONS = ["asc", "desc"]


def calculate_category(total_score: int) -> str:
    """Category for a total score: HIGH > 100, MEDIUM > 50, else LOW."""
    if total_score > Thresholds.CATEGORY_HIGH:
        return ScoreCategory.HIGH
    if total_score > Thresholds.CATEGORY_MEDIUM:
        return ScoreCategory.MEDIUM
    return ScoreCategory.LOW


def _criterion_score(value) -> int:
    value = clean_value(value)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise ValueError(f"Score is not numeric: {value!r}")
    return int(value)


def calculate_total(row: Dict) -> int:
    """Sum of the 8 criterion scores; missing scores count as 0."""
    return sum(_criterion_score(row.get(score_column(c))) for c in Criterion.ALL)


def build_breakdown(row: Dict) -> List[ScoreBreakdownItem]:
    """Per-criterion breakdown in fixed criterion order."""
    breakdown = []
    for criterion in Criterion.ALL:
        score = _criterion_score(row.get(score_column(criterion)))
        breakdown.append(ScoreBreakdownItem(
            criterion=criterion,
            score=score,
            reason=clean_value(row.get(reason_column(criterion))),
            is_contributing=score > 0,
        ))
    return breakdown


def contributing_criteria(breakdown: List[ScoreBreakdownItem]) -> List[str]:
    return [item.criterion for item in breakdown if item.is_contributing]


class ConsolidationEngine:
    """
    Consolidates criterion scores stored in a ContractStore.

    Usage:
        engine = ConsolidationEngine(store)
        result = engine.consolidate_and_save("c-1")
        if result.success:
            print(result.data.total_score, result.data.category)
        ranking = engine.get_contracts_by_score(category="HIGH")
    """

    def __init__(self, store: ContractStore):
        self.store = store

    calculate_category = staticmethod(calculate_category)
    calculate_total = staticmethod(calculate_total)
    build_breakdown = staticmethod(build_breakdown)

    # =========================================================================
    # Single Contract
    # =========================================================================

    def _consolidate(self, contract_id: str, row: Dict) -> ConsolidatedScore:
        total = calculate_total(row)
        breakdown = build_breakdown(row)
        return ConsolidatedScore(
            contract_id=contract_id,
            total_score=total,
            category=calculate_category(total),
            breakdown=breakdown,
            contributing_criteria=contributing_criteria(breakdown),
        )

    def get_consolidated_score(self, contract_id: str) -> Result:
        """Consolidated view of a contract's scores, without writing."""
        row = self.store.get_score(contract_id)
        if row is None:
            return Result.fail(
                AnomalyErrorCode.INVALID_CONTRACT,
                f"No anomaly score found for contract: {contract_id}",
            )

        try:
            return Result.ok(self._consolidate(contract_id, row))
        except ValueError as e:
            return Result.fail(AnomalyErrorCode.CALCULATION_FAILED, str(e))

    def consolidate_and_save(self, contract_id: str) -> Result:
        """
        Recompute total/category for one contract and persist them.

        The row is only written when total or category changed, so repeated
        calls are idempotent.
        """
        result = self.get_consolidated_score(contract_id)
        if not result.success:
            return result

        consolidated = result.data
        row = self.store.get_score(contract_id)

        if (row["total_score"] != consolidated.total_score or
                row["category"] != consolidated.category):
            try:
                self.store.upsert_score(contract_id, {
                    "total_score": consolidated.total_score,
                    "category": consolidated.category,
                })
            except StoreError as e:
                return Result.fail(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e)

        logger.info(
            "Consolidated score for %s: %d/200 (%s)",
            contract_id, consolidated.total_score, consolidated.category,
        )
        if consolidated.contributing_criteria:
            logger.info("  Contributing: %s", ", ".join(consolidated.contributing_criteria))

        return Result.ok(consolidated)

    # =========================================================================
    # All Contracts
    # =========================================================================

    def recalculate_all_totals(self) -> Dict[str, int]:
        """Recompute total/category of every stored row, writing only changes."""
        processed = 0
        updated = 0

        for contract_id in self.store.score_ids():
            row = self.store.get_score(contract_id)
            processed += 1

            total = calculate_total(row)
            category = calculate_category(total)

            if total != row["total_score"] or category != row["category"]:
                self.store.upsert_score(contract_id, {"total_score": total, "category": category})
                updated += 1

        return {"processed": processed, "updated": updated}

    def consolidate_all(self) -> Result:
        """Consolidate every stored score row."""
        try:
            counts = self.recalculate_all_totals()
        except ValueError as e:
            return Result.fail(AnomalyErrorCode.CALCULATION_FAILED, str(e))
        except StoreError as e:
            return Result.fail(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e)

        logger.info("Consolidated %d scores, updated %d", counts["processed"], counts["updated"])
        return Result.ok(counts)

    # =========================================================================
    # Listings and Statistics
    # =========================================================================

    def get_contracts_by_score(
        self,
        category: Optional[str] = None,
        min_score: Optional[int] = None,
        order_by: str = "score",
        order: str = "desc",
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ContractScoreList:
        """
        Paginated contracts ranked by total score or by value.

        Args:
            category: Only this score category (LOW / MEDIUM / HIGH)
            min_score: Only totals >= min_score
            order_by: "score" or "value"
            order: "asc" or "desc"
            page: 1-based page number
            page_size: Contracts per page

        Returns:
            ContractScoreList
        """
        if order_by not in ORDER_BY_OPTIONS:
            raise ValueError(f"Unknown order_by: {order_by}. Choose from: {ORDER_BY_OPTIONS}")
        if order not in ORDER_OPTIONS:
            raise ValueError(f"Unknown order: {order}. Choose from: {ORDER_OPTIONS}")
        if category is not None and category not in ScoreCategory.ALL:
            raise ValueError(f"Unknown category: {category}. Choose from: {ScoreCategory.ALL}")
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        scores = self.store.scores_frame()
        if category is not None:
            scores = scores[scores["category"] == category]
        if min_score is not None:
            scores = scores[scores["total_score"] >= min_score]

        contracts = self.store.contracts[["id", "external_id", "object", "value", "category"]]
        contracts = contracts.rename(columns={"category": "contract_category"})
        merged = scores.merge(contracts, left_on="contract_id", right_on="id", how="inner")

        sort_col = "total_score" if order_by == "score" else "value"
        merged = merged.sort_values(
            [sort_col, "contract_id"],
            ascending=[order == "asc", True],
            kind="mergesort",
        )

        total = len(merged)
        start = (page - 1) * page_size
        page_rows = merged.iloc[start:start + page_size]

        items = []
        for record in page_rows.to_dict("records"):
            breakdown = build_breakdown(record)
            items.append(ContractWithScore(
                id=record["contract_id"],
                external_id=clean_value(record["external_id"]),
                object=clean_value(record["object"]),
                value=float(record["value"]),
                category=clean_value(record["contract_category"]),
                total_score=int(record["total_score"]),
                score_category=record["category"],
                breakdown=breakdown,
                contributing_criteria=contributing_criteria(breakdown),
            ))

        return ContractScoreList(
            contracts=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def get_consolidated_stats(self) -> ConsolidatedStats:
        """Aggregate counts over every stored score row."""
        scores = self.store.scores_frame()
        total = len(scores)

        by_category = {c: int((scores["category"] == c).sum()) for c in ScoreCategory.ALL}
        totals = pd.to_numeric(scores["total_score"], errors="coerce").fillna(0)
        average = float(totals.mean()) if total > 0 else 0.0

        by_criterion = {}
        for criterion in Criterion.ALL:
            col = pd.to_numeric(scores[score_column(criterion)], errors="coerce").fillna(0)
            by_criterion[criterion] = int((col > 0).sum())

        return ConsolidatedStats(
            total=total,
            by_category=by_category,
            average_total_score=average,
            with_anomalies=int((totals > 0).sum()),
            by_criterion=by_criterion,
        )
