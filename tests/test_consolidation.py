"""Tests for score consolidation, ranked listings and aggregate statistics."""

import pytest

from farol.config import AnomalyErrorCode, Criterion, ScoreCategory
from farol.consolidation import (
    ConsolidationEngine,
    build_breakdown,
    calculate_category,
    calculate_total,
)


@pytest.fixture
def scored_store(make_store, make_contract):
    """Three contracts with criterion scores already stored (totals stale)."""
    store = make_store([
        make_contract("c1", value=1000.0),
        make_contract("c2", value=5000.0),
        make_contract("c3", value=3000.0),
        make_contract("c4", value=2000.0),
    ])
    store.upsert_score("c1", {"value_score": 25, "value_reason": "high", "timing_score": 25,
                              "timing_reason": "dec", "round_number_score": 10,
                              "round_number_reason": "round"})
    store.upsert_score("c2", {"value_score": 25, "amendment_score": 25, "concentration_score": 25,
                              "duration_score": 25, "timing_score": 20})
    store.upsert_score("c3", {"description_score": 10, "description_reason": "short"})
    return store


# =============================================================================
# Pure functions
# =============================================================================


class TestCategory:
    @pytest.mark.parametrize("total,expected", [
        (0, ScoreCategory.LOW),
        (50, ScoreCategory.LOW),
        (51, ScoreCategory.MEDIUM),
        (100, ScoreCategory.MEDIUM),
        (101, ScoreCategory.HIGH),
        (200, ScoreCategory.HIGH),
    ])
    def test_thresholds(self, total, expected):
        assert calculate_category(total) == expected


class TestTotal:
    def test_missing_scores_count_as_zero(self):
        row = {"value_score": 10, "timing_score": None, "description_score": 5}
        assert calculate_total(row) == 15

    def test_non_numeric_score(self):
        with pytest.raises(ValueError):
            calculate_total({"value_score": "ten"})

    def test_breakdown_order(self):
        breakdown = build_breakdown({"timing_score": 5, "timing_reason": "weekend"})
        assert [item.criterion for item in breakdown] == Criterion.ALL
        timing = breakdown[Criterion.ALL.index(Criterion.TIMING)]
        assert timing.is_contributing
        assert timing.reason == "weekend"
        assert not breakdown[0].is_contributing


# =============================================================================
# ConsolidationEngine
# =============================================================================


class TestConsolidationEngine:
    def test_get_consolidated_score_is_read_only(self, scored_store):
        writes = scored_store.writes
        result = ConsolidationEngine(scored_store).get_consolidated_score("c1")
        assert result.success
        assert result.data.total_score == 60
        assert result.data.category == ScoreCategory.MEDIUM
        assert result.data.contributing_criteria == ["value", "timing", "round_number"]
        assert scored_store.writes == writes

    def test_missing_row(self, scored_store):
        result = ConsolidationEngine(scored_store).get_consolidated_score("c4")
        assert not result.success
        assert result.error.code == AnomalyErrorCode.INVALID_CONTRACT

    def test_consolidate_and_save_is_idempotent(self, scored_store):
        engine = ConsolidationEngine(scored_store)
        first = engine.consolidate_and_save("c2")
        assert first.data.total_score == 120
        assert scored_store.get_score("c2")["category"] == ScoreCategory.HIGH

        writes = scored_store.writes
        second = engine.consolidate_and_save("c2")
        assert second.data.total_score == 120
        assert scored_store.writes == writes

    def test_consolidate_all(self, scored_store):
        engine = ConsolidationEngine(scored_store)
        result = engine.consolidate_all()
        assert result.data == {"processed": 3, "updated": 3}
        assert engine.consolidate_all().data == {"processed": 3, "updated": 0}

    def test_consolidate_all_bad_score(self, scored_store):
        scored_store.upsert_score("c3", {"timing_score": "bad"})
        result = ConsolidationEngine(scored_store).consolidate_all()
        assert result.error.code == AnomalyErrorCode.CALCULATION_FAILED

    def test_stats(self, scored_store):
        engine = ConsolidationEngine(scored_store)
        engine.consolidate_all()
        stats = engine.get_consolidated_stats()
        assert stats.total == 3
        assert stats.by_category == {"LOW": 1, "MEDIUM": 1, "HIGH": 1}
        assert stats.average_total_score == pytest.approx((60 + 120 + 10) / 3)
        assert stats.with_anomalies == 3
        assert stats.by_criterion[Criterion.VALUE] == 2
        assert stats.by_criterion[Criterion.FRAGMENTATION] == 0


class TestContractsByScore:
    @pytest.fixture
    def engine(self, scored_store):
        engine = ConsolidationEngine(scored_store)
        engine.consolidate_all()
        return engine

    def test_default_order(self, engine):
        listing = engine.get_contracts_by_score()
        assert [c.id for c in listing.contracts] == ["c2", "c1", "c3"]
        assert listing.total == 3
        assert listing.total_pages == 1
        assert listing.contracts[0].score_category == ScoreCategory.HIGH
        assert listing.contracts[0].category == "TI"

    def test_filters(self, engine):
        assert [c.id for c in engine.get_contracts_by_score(category="HIGH").contracts] == ["c2"]
        assert engine.get_contracts_by_score(min_score=50).total == 2

    def test_order_by_value(self, engine):
        listing = engine.get_contracts_by_score(order_by="value", order="asc")
        assert [c.id for c in listing.contracts] == ["c1", "c3", "c2"]

    def test_pagination(self, engine):
        listing = engine.get_contracts_by_score(page=2, page_size=2)
        assert listing.total_pages == 2
        assert [c.id for c in listing.contracts] == ["c3"]

    def test_invalid_arguments(self, engine):
        with pytest.raises(ValueError):
            engine.get_contracts_by_score(order_by="date")
        with pytest.raises(ValueError):
            engine.get_contracts_by_score(order="up")
        with pytest.raises(ValueError):
            engine.get_contracts_by_score(page=0)
