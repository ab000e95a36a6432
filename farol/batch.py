"""
Anomaly Scoring Service and Batch Runs.

AnomalyService ties scorers, the consolidation engine and the store together:
- calculate: score one contract for one criterion (no write)
- calculate_and_save / recalculate: score and persist, then re-consolidate
- reset: clear one criterion for every contract
- process_batch / process_all: work through the pending contracts

A contract is pending for a criterion until its score row has a reason for
that criterion. Runs are sequential; a score write only succeeds when the
row's `calculated_at` is unchanged since it was read.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Set

from .config import (
    AnomalyConfig, AnomalyErrorCode, Criterion, ScoreCategory, DEFAULT_CONFIG,
    score_column, reason_column,
)
from .consolidation import ConsolidationEngine, calculate_category, calculate_total
from .data_loader import ContractStore, new_score_row
from .models import (
    AnomalyError, Result, StoreError, SavedScore,
    AnomalyStats, AnomalyDatabaseStats,
)
from .scorers import SCORERS, CriterionScorer
from .statistics import StatisticsEngine

logger = logging.getLogger(__name__)


def _check_criterion(criterion: str):
    if criterion not in Criterion.ALL:
        raise ValueError(f"Unknown criterion: {criterion}. Choose from: {Criterion.ALL}")


class AnomalyService:
    """
    Scoring operations for all criteria over one ContractStore.

    Usage:
        store = ContractStore.from_csv("contracts.csv", "amendments.csv")
        service = AnomalyService(store)
        result = service.process_all("value")
        print(result.data.calculated, result.data.anomalies_found)
    """

    def __init__(self, store: ContractStore, config: Optional[AnomalyConfig] = None):
        """
        Initialize service.

        Args:
            store: Contract, amendment and score tables
            config: Scoring parameters (defaults to DEFAULT_CONFIG)
        """
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.statistics = StatisticsEngine(store, self.config.min_contracts_for_stats)
        self.consolidation = ConsolidationEngine(store)
        self.scorers: Dict[str, CriterionScorer] = {
            criterion: scorer_cls(store, self.statistics, self.config)
            for criterion, scorer_cls in SCORERS.items()
        }
        self.batches = BatchProcessor(self)

    def scorer(self, criterion: str) -> CriterionScorer:
        _check_criterion(criterion)
        return self.scorers[criterion]

    # =========================================================================
    # Single Contract
    # =========================================================================

    def calculate(self, criterion: str, contract_id: str) -> Result:
        """Score one contract without saving."""
        scorer = self.scorer(criterion)
        try:
            return scorer.score(contract_id)
        except StoreError as e:
            return Result.fail(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e)

    def persist_score(self, criterion: str, contract_id: str) -> Result:
        """
        Score one contract and save the criterion with the new totals.

        StoreError raised while reading peer statistics propagates; failed
        writes are returned as DATABASE_ERROR.
        """
        scorer = self.scorer(criterion)
        current = self.store.get_score(contract_id)

        result = scorer.score(contract_id)
        if not result.success:
            return result

        if current is None and self.config.require_value_first and criterion != Criterion.VALUE:
            return Result.fail(
                AnomalyErrorCode.CALCULATION_FAILED,
                f"No anomaly score row for contract {contract_id}; calculate the value score first",
            )

        outcome = result.data
        row = dict(current) if current is not None else new_score_row(contract_id)
        row[score_column(criterion)] = outcome.score
        row[reason_column(criterion)] = outcome.reason

        try:
            total = calculate_total(row)
        except ValueError as e:
            return Result.fail(AnomalyErrorCode.CALCULATION_FAILED, str(e))
        category = calculate_category(total)

        expected = current["calculated_at"] if current is not None else None
        try:
            self.store.upsert_score(
                contract_id,
                {
                    score_column(criterion): outcome.score,
                    reason_column(criterion): outcome.reason,
                    "total_score": total,
                    "category": category,
                    "calculated_at": datetime.now(),
                },
                expected_calculated_at=expected,
            )
        except StoreError as e:
            return Result.fail(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e)

        logger.info("%s: %s score %d/%d - %s",
                    contract_id, criterion, outcome.score, self.config.max_score, outcome.reason)

        return Result.ok(SavedScore(
            contract_id=contract_id,
            criterion=criterion,
            score=outcome.score,
            reason=outcome.reason,
            total_score=total,
            category=category,
        ))

    def calculate_and_save(self, criterion: str, contract_id: str) -> Result:
        """Score one contract and save it."""
        try:
            return self.persist_score(criterion, contract_id)
        except StoreError as e:
            return Result.fail(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e)

    def recalculate(self, criterion: str, contract_id: str) -> Result:
        """Score one contract again, overwriting its previous result."""
        return self.calculate_and_save(criterion, contract_id)

    # =========================================================================
    # Bulk Operations
    # =========================================================================

    def process_batch(self, criterion: str) -> Result:
        return self.batches.process_batch(criterion)

    def process_all(self, criterion: str) -> Result:
        return self.batches.process_all(criterion)

    def reset(self, criterion: str) -> int:
        """
        Clear one criterion on every score row and re-consolidate.

        Returns:
            Number of rows reset
        """
        _check_criterion(criterion)
        ids = self.store.score_ids()
        for contract_id in ids:
            self.store.upsert_score(contract_id, {
                score_column(criterion): 0,
                reason_column(criterion): None,
            })
        self.consolidation.recalculate_all_totals()
        logger.info("Reset %s scores for %d contracts", criterion, len(ids))
        return len(ids)

    def reset_all_scores(self) -> int:
        """Delete every score row. Returns the number of rows deleted."""
        count = self.store.delete_all_scores()
        logger.info("Deleted %d anomaly scores", count)
        return count

    def get_stats(self) -> AnomalyDatabaseStats:
        """Pending/calculated counts (pending = value criterion)."""
        scores = self.store.scores_frame()
        pending = self.store.count_pending(Criterion.VALUE)
        calculated = len(scores)

        by_category = {c: int((scores["category"] == c).sum()) for c in ScoreCategory.ALL}
        value_col = score_column(Criterion.VALUE)
        average = float(scores[value_col].fillna(0).astype(float).mean()) if calculated else 0.0

        return AnomalyDatabaseStats(
            pending=pending,
            calculated=calculated,
            total=pending + calculated,
            by_category=by_category,
            average_value_score=average,
        )

    # =========================================================================
    # Consolidation
    # =========================================================================

    def get_consolidated_score(self, contract_id: str) -> Result:
        return self.consolidation.get_consolidated_score(contract_id)

    def consolidate_and_save(self, contract_id: str) -> Result:
        return self.consolidation.consolidate_and_save(contract_id)

    def consolidate_all(self) -> Result:
        return self.consolidation.consolidate_all()

    def get_contracts_by_score(self, **options):
        return self.consolidation.get_contracts_by_score(**options)

    def get_consolidated_stats(self):
        return self.consolidation.get_consolidated_stats()


class BatchProcessor:
    """
    Works through the pending contracts of one criterion.

    Per-contract failures are counted in AnomalyStats and the batch goes on.
    A StoreError while scoring (statistics reads) aborts the batch with
    DATABASE_ERROR.
    """

    def __init__(self, service: AnomalyService):
        self.service = service

    @property
    def store(self) -> ContractStore:
        return self.service.store

    @property
    def config(self) -> AnomalyConfig:
        return self.service.config

    def process_batch(self, criterion: str, failed: Optional[Set[str]] = None) -> Result:
        """
        Score and save up to `batch_size` pending contracts, oldest first.

        Args:
            criterion: Criterion to score
            failed: Contract ids to skip; ids that fail in this batch are
                added to it
        """
        _check_criterion(criterion)
        stats = AnomalyStats()

        logger.info("Starting %s score batch (batch size: %d)", criterion, self.config.batch_size)
        contract_ids = self.store.pending_contract_ids(
            criterion, limit=self.config.batch_size, exclude=failed
        )

        if not contract_ids:
            logger.info("No contracts pending %s score calculation", criterion)
            stats.finished_at = datetime.now()
            return Result.ok(stats)

        logger.info("Found %d contracts to process", len(contract_ids))

        for contract_id in contract_ids:
            try:
                result = self.service.persist_score(criterion, contract_id)
            except StoreError as e:
                stats.errors += 1
                stats.last_error = str(e)
                stats.finished_at = datetime.now()
                logger.error("Store failure during %s batch: %s", criterion, e)
                return Result(
                    success=False,
                    data=stats,
                    error=AnomalyError(AnomalyErrorCode.DATABASE_ERROR, str(e), details=e),
                )

            stats.processed += 1
            if result.success:
                stats.calculated += 1
                if result.data.score > 0:
                    stats.anomalies_found += 1
            else:
                stats.errors += 1
                stats.last_error = result.error.message
                if failed is not None:
                    failed.add(contract_id)
                logger.error("Error calculating %s score for %s: %s",
                             criterion, contract_id, result.error.message)

        stats.finished_at = datetime.now()

        logger.info("Batch completed:")
        logger.info("  - Processed: %d", stats.processed)
        logger.info("  - Calculated: %d", stats.calculated)
        logger.info("  - Anomalies found: %d", stats.anomalies_found)
        logger.info("  - Errors: %d", stats.errors)

        return Result.ok(stats)

    def process_all(self, criterion: str) -> Result:
        """
        Run batches until every pending contract has been tried once.

        Contracts that fail stay pending but are not picked up again in the
        same run, so each failure is counted once.
        """
        _check_criterion(criterion)
        stats = AnomalyStats()
        failed: Set[str] = set()
        logger.info("Starting full %s score processing run", criterion)

        while True:
            batch_result = self.process_batch(criterion, failed)

            if not batch_result.success:
                if batch_result.data is not None:
                    stats.merge(batch_result.data)
                stats.last_error = batch_result.error.message
                stats.finished_at = datetime.now()
                return Result(success=False, data=stats, error=batch_result.error)

            batch_stats = batch_result.data
            stats.merge(batch_stats)

            remaining = self.store.count_pending(criterion, exclude=failed)
            if remaining == 0 or batch_stats.processed == 0:
                break

            logger.info("%d contracts remaining", remaining)

        stats.finished_at = datetime.now()

        if failed:
            logger.warning("%d contracts failed and are still pending %s score",
                           len(failed), criterion)

        logger.info("Full processing completed:")
        logger.info("  - Total processed: %d", stats.processed)
        logger.info("  - Total calculated: %d", stats.calculated)
        logger.info("  - Total anomalies found: %d", stats.anomalies_found)
        logger.info("  - Total errors: %d", stats.errors)

        return Result.ok(stats)
