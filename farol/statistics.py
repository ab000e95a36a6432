"""
Peer-group statistics for anomaly scoring.

Every lookup is recomputed from the store on each call, so scores always
reflect the current contents of the contract table.

Peer groups:
- category (optionally restricted to a signature year): contract values
- category: amendments per contract
- category: contract duration in days
- agency: supplier share of contracts and value
- supplier + agency + signature window: nearby contracts
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .config import ContractCategory, Thresholds, DEFAULT_CONFIG
from .data_loader import ContractStore
from .models import PeerStatistics, ConcentrationStats


def peer_statistics(values: Iterable[float], min_count: int) -> Optional[PeerStatistics]:
    """
    Mean and population standard deviation of a sample.

    Args:
        values: Numeric sample (missing values are dropped)
        min_count: Minimum sample size

    Returns:
        PeerStatistics, or None when the sample is smaller than min_count
    """
    sample = pd.Series(list(values), dtype=float).dropna()
    if len(sample) < min_count:
        return None

    arr = sample.to_numpy()
    return PeerStatistics(
        mean=float(arr.mean()),
        standard_deviation=float(np.std(arr)),  # ddof=0
        count=int(len(arr)),
    )


def contract_duration(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    signature_date: Optional[datetime] = None,
) -> Optional[int]:
    """
    Contract duration in whole days, rounded up.

    Falls back to the signature date when there is no start date.
    Returns None when dates are missing or the duration is not positive.
    """
    start = start_date if start_date is not None else signature_date
    if start is None or end_date is None:
        return None

    days = math.ceil((end_date - start).total_seconds() / 86400)
    return days if days > 0 else None


def duration_series(contracts: pd.DataFrame) -> pd.Series:
    """Vectorized contract_duration over a contracts frame (NaN = no duration)."""
    start = contracts["start_date"].fillna(contracts["signature_date"])
    days = np.ceil((contracts["end_date"] - start) / pd.Timedelta(days=1))
    return days.where(days > 0)


class StatisticsEngine:
    """
    Computes peer statistics from a ContractStore.

    Usage:
        engine = StatisticsEngine(store)
        stats = engine.category_value_stats("TI", year=2024)
        if stats is None:
            ...  # insufficient data
    """

    def __init__(self, store: ContractStore, min_contracts_for_stats: Optional[int] = None):
        self.store = store
        self.min_contracts_for_stats = (
            min_contracts_for_stats
            if min_contracts_for_stats is not None
            else DEFAULT_CONFIG.min_contracts_for_stats
        )

    def _category_contracts(self, category: str) -> pd.DataFrame:
        contracts = self.store.contracts
        return contracts[contracts["category"] == category]

    # =========================================================================
    # Category Peer Groups
    # =========================================================================

    def category_value_stats(self, category: str, year: Optional[int] = None) -> Optional[PeerStatistics]:
        """Contract values in a category, optionally for one signature year."""
        contracts = self._category_contracts(category)
        if year is not None:
            contracts = contracts[contracts["signature_date"].dt.year == year]
        return peer_statistics(contracts["value"], self.min_contracts_for_stats)

    def amendment_count_stats(self, category: str) -> Optional[PeerStatistics]:
        """Amendments per contract in a category."""
        contracts = self._category_contracts(category)
        counts = self.store.amendment_counts().reindex(contracts.index, fill_value=0)
        return peer_statistics(counts, self.min_contracts_for_stats)

    def duration_stats(self, category: str) -> Optional[PeerStatistics]:
        """Positive contract durations (days) in a category."""
        contracts = self._category_contracts(category)
        return peer_statistics(duration_series(contracts), self.min_contracts_for_stats)

    # =========================================================================
    # Agency / Supplier Peer Groups
    # =========================================================================

    def supplier_concentration(
        self,
        agency_id: str,
        supplier_id: str,
        agency_name: Optional[str] = None,
        supplier_name: Optional[str] = None,
    ) -> Optional[ConcentrationStats]:
        """
        Share of an agency's contracts (count and value) won by one supplier.

        Only scorable categories count towards the agency totals.
        """
        contracts = self.store.contracts
        agency = contracts[
            (contracts["agency_id"] == agency_id) &
            (contracts["category"] != ContractCategory.OUTROS)
        ]

        if len(agency) < self.min_contracts_for_stats:
            return None

        total_contracts = len(agency)
        total_value = float(agency["value"].sum())

        supplier = agency[agency["supplier_id"] == supplier_id]
        contract_count = len(supplier)
        supplier_value = float(supplier["value"].sum())

        return ConcentrationStats(
            agency_id=agency_id,
            agency_name=agency_name or agency_id,
            supplier_id=supplier_id,
            supplier_name=supplier_name or supplier_id,
            contract_count=contract_count,
            total_agency_contracts=total_contracts,
            contract_percentage=contract_count / total_contracts if total_contracts > 0 else 0.0,
            supplier_value=supplier_value,
            total_agency_value=total_value,
            value_percentage=supplier_value / total_value if total_value > 0 else 0.0,
        )

    def nearby_contracts(
        self,
        contract_id: str,
        supplier_id: str,
        agency_id: str,
        signature_date: datetime,
        window_days: int = Thresholds.FRAGMENTATION_WINDOW_DAYS,
    ) -> pd.DataFrame:
        """Other contracts of the same supplier and agency signed within ±window_days."""
        contracts = self.store.contracts
        window = timedelta(days=window_days)
        signature = pd.Timestamp(signature_date)

        mask = (
            (contracts["id"] != contract_id) &
            (contracts["supplier_id"] == supplier_id) &
            (contracts["agency_id"] == agency_id) &
            (contracts["signature_date"] >= signature - window) &
            (contracts["signature_date"] <= signature + window)
        )
        return contracts.loc[mask, ["id", "object", "value", "signature_date"]]
