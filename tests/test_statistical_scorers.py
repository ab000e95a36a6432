"""Tests for the peer-statistics criteria: value, amendment, concentration, duration."""

import pandas as pd
import pytest

from farol.config import AnomalyErrorCode
from farol.models import ConcentrationStats, PeerStatistics
from farol.scorers import (
    AmendmentScorer,
    ConcentrationScorer,
    DurationScorer,
    ValueScorer,
    linear_ramp,
    round_half_up,
)


def _amendments(*changes):
    return pd.DataFrame({"value_change": list(changes)})


class TestScoreRamps:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2
        assert round_half_up(0.5) == 1

    def test_linear_ramp_caps(self):
        assert linear_ramp(0.5, 5, 10, 25) == 10
        assert linear_ramp(10, 5, 10, 25) == 25


# =============================================================================
# Value
# =============================================================================


class TestValueScorer:
    def test_evaluate_anomaly(self, ti_store):
        scorer = ValueScorer(ti_store)
        result = scorer.evaluate(125.0, "TI", PeerStatistics(100.0, 10.0, 10), year=2024)
        assert result.is_anomaly
        assert result.score == 10
        assert result.reason == (
            "Value 25% above the mean of similar contracts in 2024 "
            "(10 contracts, 2.5 standard deviations)"
        )

    def test_evaluate_clamped_to_max(self, ti_store):
        result = ValueScorer(ti_store).evaluate(145.0, "TI", PeerStatistics(100.0, 10.0, 10))
        assert result.score == 25

    def test_evaluate_elevated_but_normal(self, ti_store):
        result = ValueScorer(ti_store).evaluate(115.0, "TI", PeerStatistics(100.0, 10.0, 10))
        assert not result.is_anomaly
        assert result.score == 0
        assert "within the normal range (1.5 standard deviations)" in result.reason

    def test_evaluate_zero_std_dev(self, ti_store):
        result = ValueScorer(ti_store).evaluate(500.0, "TI", PeerStatistics(100.0, 0.0, 10))
        assert result.score == 0
        assert result.stats.deviations_from_mean == 0.0
        assert result.reason == "Value within the normal range for TI contracts"

    def test_score_from_store(self, ti_store):
        result = ValueScorer(ti_store).score("c6")
        assert result.success
        assert result.data.is_anomaly
        assert result.data.score == 7
        assert "300% above the mean" in result.data.reason
        assert result.data.stats.year == 2024

    def test_falls_back_to_all_years(self, make_store, make_contract):
        contracts = [make_contract(f"a{i}", signature_date="2023-05-10") for i in range(3)]
        contracts += [make_contract(f"b{i}", signature_date="2024-05-10") for i in range(3)]
        result = ValueScorer(make_store(contracts)).score("b0")
        assert result.success
        assert result.data.stats.year is None
        assert result.data.stats.contract_count == 6

    def test_insufficient_data(self, make_store, make_contract):
        store = make_store([make_contract(f"c{i}") for i in range(4)])
        result = ValueScorer(store).score("c0")
        assert result.success
        assert result.data.score == 0
        assert result.data.stats is None
        assert result.data.reason.startswith("Insufficient contracts in category TI")

    def test_outros_contract(self, ti_store):
        result = ValueScorer(ti_store).score("o1")
        assert not result.success
        assert result.error.code == AnomalyErrorCode.NO_CATEGORY

    def test_unknown_contract(self, ti_store):
        result = ValueScorer(ti_store).score("missing")
        assert not result.success
        assert result.error.code == AnomalyErrorCode.INVALID_CONTRACT


# =============================================================================
# Amendment
# =============================================================================


class TestAmendmentScorer:
    def test_count_and_value_anomaly(self, ti_store, make_contract):
        contract = make_contract("x", value=1000.0)
        result = AmendmentScorer(ti_store).evaluate(
            contract, _amendments(100.0, 100.0, 100.0, 300.0), PeerStatistics(1.0, 1.0, 10)
        )
        # count part 5 + 7 * 1.5 -> capped at 15, value part 0.6 * 10 = 6
        assert result.score == 21
        assert result.is_anomaly
        assert result.reason == (
            "4 amendments (category mean: 1.0); 60% value change through amendments"
        )

    def test_negative_changes_count_as_absolute(self, ti_store, make_contract):
        contract = make_contract("x", value=1000.0)
        result = AmendmentScorer(ti_store).evaluate(
            contract, _amendments(-800.0), PeerStatistics(1.0, 1.0, 10)
        )
        assert result.stats.value_increase_ratio == pytest.approx(0.8)
        assert result.score == 8

    def test_within_normal_range(self, ti_store, make_contract):
        contract = make_contract("x", value=1000.0)
        result = AmendmentScorer(ti_store).evaluate(
            contract, _amendments(10.0), PeerStatistics(1.0, 1.0, 10)
        )
        assert result.score == 0
        assert result.reason == "1 amendments within the normal range for TI (mean: 1.0)"

    def test_no_amendments(self, ti_store, make_contract):
        contract = make_contract("x", value=1000.0)
        result = AmendmentScorer(ti_store).evaluate(
            contract, _amendments(), PeerStatistics(0.5, 0.5, 10)
        )
        assert result.score == 0
        assert result.reason == "No amendments"

    def test_zero_value_contract_has_zero_ratio(self, ti_store, make_contract):
        contract = make_contract("x", value=0.0)
        result = AmendmentScorer(ti_store).evaluate(
            contract, _amendments(500.0), PeerStatistics(1.0, 1.0, 10)
        )
        assert result.stats.value_increase_ratio == 0.0

    def test_score_from_store(self, make_store, make_contract):
        contracts = [make_contract(f"c{i}") for i in range(1, 7)]
        amendments = [
            {"contract_id": "c1", "number": n, "value_change": 50.0, "duration_change": 0}
            for n in range(1, 6)
        ]
        result = AmendmentScorer(make_store(contracts, amendments)).score("c1")
        assert result.success
        assert result.data.stats.amendment_count == 5
        assert result.data.is_anomaly

    def test_insufficient_data(self, make_store, make_contract):
        store = make_store([make_contract(f"c{i}") for i in range(4)])
        result = AmendmentScorer(store).score("c0")
        assert result.success
        assert result.data.score == 0
        assert not result.data.is_anomaly
        assert result.data.stats is None
        assert result.data.reason.startswith("Insufficient contracts in category TI")


# =============================================================================
# Concentration
# =============================================================================


def _concentration(count_share, value_share):
    return ConcentrationStats(
        agency_id="a1",
        agency_name="Prefeitura",
        supplier_id="s1",
        supplier_name="Acme",
        contract_count=5,
        total_agency_contracts=10,
        contract_percentage=count_share,
        supplier_value=0.0,
        total_agency_value=0.0,
        value_percentage=value_share,
    )


class TestConcentrationScorer:
    def test_count_share(self, ti_store):
        result = ConcentrationScorer(ti_store).evaluate(_concentration(0.5, 0.2))
        assert result.score == 15
        assert result.reason == "Supplier Acme holds 50% of the contracts of Prefeitura"

    def test_both_shares(self, ti_store):
        result = ConcentrationScorer(ti_store).evaluate(_concentration(0.4, 0.6))
        assert result.score == 20
        assert result.reason.endswith("(60% of the value)")

    def test_value_share_only(self, ti_store):
        result = ConcentrationScorer(ti_store).evaluate(_concentration(0.1, 0.5))
        assert result.is_anomaly
        assert "50% of the contract value" in result.reason

    def test_within_normal_range(self, ti_store):
        result = ConcentrationScorer(ti_store).evaluate(_concentration(0.2, 0.3))
        assert result.score == 0
        assert not result.is_anomaly

    def test_score_from_store(self, ti_store):
        result = ConcentrationScorer(ti_store).score("c1")
        assert result.success
        assert result.data.score == 25
        assert result.data.stats.total_agency_contracts == 6

    def test_missing_supplier(self, make_store, make_contract):
        contracts = [make_contract(f"c{i}") for i in range(5)]
        contracts.append(make_contract("x", supplier_id=None))
        result = ConcentrationScorer(make_store(contracts)).score("x")
        assert result.success
        assert result.data.score == 0
        assert result.data.stats is None

    def test_insufficient_data(self, make_store, make_contract):
        contracts = [make_contract(f"c{i}") for i in range(4)]
        # other agencies do not count towards a1
        contracts += [make_contract(f"b{i}", agency_id="a2") for i in range(5)]
        result = ConcentrationScorer(make_store(contracts)).score("c0")
        assert result.success
        assert result.data.score == 0
        assert not result.data.is_anomaly
        assert result.data.stats is None
        assert result.data.reason.startswith("Insufficient contracts in agency")


# =============================================================================
# Duration
# =============================================================================


class TestDurationScorer:
    def test_too_long(self, ti_store):
        result = DurationScorer(ti_store).evaluate(130, "TI", PeerStatistics(100.0, 10.0, 10))
        assert result.score == 20
        assert result.stats.is_too_long
        assert result.reason == (
            "Duration of 130 days for TI, mean is 100 days (3.0 standard deviations above)"
        )

    def test_too_short(self, ti_store):
        result = DurationScorer(ti_store).evaluate(70, "TI", PeerStatistics(100.0, 10.0, 10))
        assert result.score == 20
        assert result.stats.is_too_short
        assert "below" in result.reason

    def test_within_normal_range(self, ti_store):
        result = DurationScorer(ti_store).evaluate(105, "TI", PeerStatistics(100.0, 10.0, 10))
        assert result.score == 0
        assert not result.is_anomaly

    def test_missing_dates(self, ti_store):
        result = DurationScorer(ti_store).score("c1")
        assert result.success
        assert result.data.score == 0
        assert result.data.reason.startswith("Missing start or end date")

    def test_score_from_store(self, make_store, make_contract):
        contracts = [
            make_contract(f"c{i}", start_date="2024-01-01", end_date="2024-01-31")
            for i in range(1, 6)
        ]
        contracts.append(make_contract("long", start_date="2024-01-01", end_date="2025-01-01"))
        result = DurationScorer(make_store(contracts)).score("long")
        assert result.success
        assert result.data.stats.contract_duration == 366
        assert result.data.is_anomaly

    def test_insufficient_data(self, make_store, make_contract):
        # only four contracts have a positive duration
        contracts = [
            make_contract(f"c{i}", start_date="2024-01-01", end_date="2024-01-31")
            for i in range(4)
        ]
        contracts.append(make_contract("open", start_date="2024-01-01"))
        contracts.append(make_contract("reversed", start_date="2024-02-01", end_date="2024-01-01"))
        result = DurationScorer(make_store(contracts)).score("c0")
        assert result.success
        assert result.data.score == 0
        assert not result.data.is_anomaly
        assert result.data.stats is None
        assert result.data.reason.startswith("Insufficient contracts in category TI")
