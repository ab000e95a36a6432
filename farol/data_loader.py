"""
Data loading and storage for contracts, amendments and anomaly scores.

CSV files are read with Polars and handed over as Pandas DataFrames.
ContractStore keeps the contract and amendment tables read-mostly and the
anomaly score table keyed by contract id.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import polars as pl

from .config import (
    CONTRACTS_FILE, AMENDMENTS_FILE, SCORES_FILE,
    ContractCategory, Criterion, ScoreCategory,
    SCORE_COLUMNS, REASON_COLUMNS, reason_column,
)
from .models import StoreError, ConcurrentUpdateError

logger = logging.getLogger(__name__)


# === Schema definitions for Polars ===
CONTRACT_SCHEMA = {
    "id": pl.Utf8,
    "external_id": pl.Utf8,
    "object": pl.Utf8,
    "value": pl.Float64,
    "category": pl.Utf8,
    "supplier_id": pl.Utf8,
    "supplier_name": pl.Utf8,
    "agency_id": pl.Utf8,
    "agency_name": pl.Utf8,
    "signature_date": pl.Utf8,
    "start_date": pl.Utf8,
    "end_date": pl.Utf8,
    "publication_date": pl.Utf8,
    "created_at": pl.Utf8,
}

AMENDMENT_SCHEMA = {
    "contract_id": pl.Utf8,
    "number": pl.Int32,
    "value_change": pl.Float64,
    "duration_change": pl.Float64,
}

SCORE_SCHEMA = {
    "contract_id": pl.Utf8,
    "total_score": pl.Int32,
    "category": pl.Utf8,
    "calculated_at": pl.Utf8,
    **{col: pl.Int32 for col in SCORE_COLUMNS},
    **{col: pl.Utf8 for col in REASON_COLUMNS},
}

DATE_COLUMNS = ["signature_date", "start_date", "end_date", "publication_date", "created_at"]

SCORE_FIELDS = (
    ["contract_id"] + SCORE_COLUMNS + REASON_COLUMNS
    + ["total_score", "category", "calculated_at"]
)

_UNCHECKED = object()


# =============================================================================
# CSV Loading
# =============================================================================

def _read_csv(path: Union[str, Path], schema: Dict, return_polars: bool):
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    df = pl.read_csv(path, schema_overrides=schema, ignore_errors=True)
    logger.info("Loaded %s records from %s", f"{len(df):,}", path.name)

    if return_polars:
        return df
    return df.to_pandas()


def load_contracts(
    path: Union[str, Path] = CONTRACTS_FILE,
    return_polars: bool = False,
) -> Union[pl.DataFrame, pd.DataFrame]:
    """
    Load contracts from CSV.

    Args:
        path: CSV file with one row per contract.
        return_polars: If True, return Polars DataFrame. Default False (Pandas).

    Returns:
        DataFrame with contract data. Date columns stay as strings here;
        ContractStore parses them.
    """
    return _read_csv(path, CONTRACT_SCHEMA, return_polars)


def load_amendments(
    path: Union[str, Path] = AMENDMENTS_FILE,
    return_polars: bool = False,
) -> Union[pl.DataFrame, pd.DataFrame]:
    """Load amendments (aditivos) from CSV."""
    return _read_csv(path, AMENDMENT_SCHEMA, return_polars)


def load_scores(
    path: Union[str, Path] = SCORES_FILE,
    return_polars: bool = False,
) -> Union[pl.DataFrame, pd.DataFrame]:
    """Load previously saved anomaly scores from CSV."""
    return _read_csv(path, SCORE_SCHEMA, return_polars)


# =============================================================================
# Normalization
# =============================================================================

def _normalize_contracts(df: pd.DataFrame) -> pd.DataFrame:
    """Fill optional columns, parse dates and index by contract id."""
    if "id" not in df.columns:
        raise ValueError("Contracts table must have an 'id' column")

    result = df.copy()
    result["id"] = result["id"].astype(str)

    duplicated = result.loc[result["id"].duplicated(), "id"].unique().tolist()
    if duplicated:
        raise ValueError(f"Duplicate contract ids: {duplicated}")

    for col in CONTRACT_SCHEMA:
        if col not in result.columns:
            result[col] = None

    for col in DATE_COLUMNS:
        result[col] = pd.to_datetime(result[col], errors="coerce", format="ISO8601")

    result["value"] = pd.to_numeric(result["value"], errors="coerce").fillna(0.0)
    result["category"] = result["category"].fillna(ContractCategory.OUTROS)

    # Stable tie-breaker for batch ordering
    result["_row"] = np.arange(len(result))

    result.index = pd.Index(result["id"].tolist())
    return result


def _normalize_amendments(df: Optional[pd.DataFrame]) -> pd.DataFrame:
    if df is None:
        df = pd.DataFrame(columns=list(AMENDMENT_SCHEMA))

    result = df.copy()
    for col in AMENDMENT_SCHEMA:
        if col not in result.columns:
            result[col] = None

    result["contract_id"] = result["contract_id"].astype(str)
    result["value_change"] = pd.to_numeric(result["value_change"], errors="coerce")
    result["duration_change"] = pd.to_numeric(result["duration_change"], errors="coerce")
    return result.reset_index(drop=True)


def clean_value(value):
    """Convert pandas missing markers to None."""
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def new_score_row(contract_id: str) -> Dict:
    """Anomaly score row with every criterion unset."""
    row = {"contract_id": contract_id}
    row.update({col: 0 for col in SCORE_COLUMNS})
    row.update({col: None for col in REASON_COLUMNS})
    row.update({"total_score": 0, "category": ScoreCategory.LOW, "calculated_at": None})
    return row


def _score_row_from_record(record: Dict) -> Dict:
    row = new_score_row(str(record["contract_id"]))
    for col in SCORE_COLUMNS + ["total_score"]:
        value = clean_value(record.get(col))
        row[col] = int(value) if value is not None else 0
    for col in REASON_COLUMNS + ["category"]:
        value = clean_value(record.get(col))
        if value is not None:
            row[col] = str(value)
    stamp = clean_value(record.get("calculated_at"))
    if stamp is not None:
        stamp = pd.to_datetime(stamp, errors="coerce")
        row["calculated_at"] = None if pd.isna(stamp) else stamp.to_pydatetime()
    return row


# =============================================================================
# Contract Store
# =============================================================================

class ContractStore:
    """
    In-memory relational store for the scoring engine.

    Tables:
    - contracts: read-mostly, indexed by contract id
    - amendments: read-only, one row per amendment
    - scores: one anomaly score row per contract, created on first write

    Score writes can be made conditional on the row's `calculated_at`
    value seen at read time. A mismatch raises ConcurrentUpdateError.

    Usage:
        store = ContractStore.from_csv("contracts.csv", "amendments.csv")
        contract = store.get_contract("c-1")
    """

    def __init__(
        self,
        contracts: pd.DataFrame,
        amendments: Optional[pd.DataFrame] = None,
        scores: Optional[pd.DataFrame] = None,
    ):
        """
        Initialize store.

        Args:
            contracts: Contracts table (requires 'id'; other columns optional)
            amendments: Amendments table keyed by 'contract_id'
            scores: Previously persisted anomaly scores
        """
        self.contracts = _normalize_contracts(contracts)
        self.amendments = _normalize_amendments(amendments)
        self._scores: Dict[str, Dict] = {}
        self.writes = 0

        if scores is not None:
            for record in scores.to_dict("records"):
                row = _score_row_from_record(record)
                self._scores[row["contract_id"]] = row

    @classmethod
    def from_csv(
        cls,
        contracts_path: Union[str, Path] = CONTRACTS_FILE,
        amendments_path: Optional[Union[str, Path]] = None,
        scores_path: Optional[Union[str, Path]] = None,
    ) -> "ContractStore":
        """Build a store from CSV files. Missing score file = empty score table."""
        contracts = load_contracts(contracts_path)
        amendments = load_amendments(amendments_path) if amendments_path else None

        scores = None
        if scores_path is not None and Path(scores_path).exists():
            scores = load_scores(scores_path)

        return cls(contracts, amendments, scores)

    # =========================================================================
    # Contracts and Amendments
    # =========================================================================

    def get_contract(self, contract_id: str) -> Optional[Dict]:
        """Contract row as a dict, or None if unknown."""
        if contract_id not in self.contracts.index:
            return None
        row = self.contracts.loc[contract_id]
        return {col: clean_value(row[col]) for col in CONTRACT_SCHEMA}

    def get_amendments(self, contract_id: str) -> pd.DataFrame:
        """Amendments for a contract, ordered by number."""
        amendments = self.amendments[self.amendments["contract_id"] == contract_id]
        return amendments.sort_values("number")

    def amendment_counts(self) -> pd.Series:
        """Number of amendments per contract id (contracts without any = 0)."""
        counts = self.amendments.groupby("contract_id").size()
        return counts.reindex(self.contracts.index, fill_value=0)

    # =========================================================================
    # Anomaly Scores
    # =========================================================================

    def get_score(self, contract_id: str) -> Optional[Dict]:
        """Copy of the score row, or None if not created yet."""
        row = self._scores.get(contract_id)
        return dict(row) if row is not None else None

    def score_ids(self) -> List[str]:
        return list(self._scores)

    def upsert_score(
        self,
        contract_id: str,
        fields: Dict,
        expected_calculated_at=_UNCHECKED,
    ) -> Dict:
        """
        Create or update a score row.

        Args:
            contract_id: Contract the row belongs to
            fields: Columns to set
            expected_calculated_at: If given, the write only happens when the
                stored `calculated_at` still equals this value (None = row
                must not have been scored yet).

        Returns:
            Copy of the stored row
        """
        unknown = set(fields) - set(SCORE_FIELDS)
        if unknown:
            raise StoreError(f"Unknown score columns: {sorted(unknown)}")

        current = self._scores.get(contract_id)

        if expected_calculated_at is not _UNCHECKED:
            stored = current["calculated_at"] if current is not None else None
            if stored != expected_calculated_at:
                raise ConcurrentUpdateError(
                    f"Anomaly score for {contract_id} changed since it was read"
                )

        if current is None:
            if contract_id not in self.contracts.index:
                raise StoreError(f"Cannot create score for unknown contract: {contract_id}")
            current = new_score_row(contract_id)
            self._scores[contract_id] = current

        current.update(fields)
        self.writes += 1
        return dict(current)

    def delete_all_scores(self) -> int:
        count = len(self._scores)
        self._scores.clear()
        self.writes += 1
        return count

    def scores_frame(self) -> pd.DataFrame:
        """All score rows as a DataFrame (empty frame keeps the columns)."""
        return pd.DataFrame(list(self._scores.values()), columns=SCORE_FIELDS)

    # =========================================================================
    # Pending Work
    # =========================================================================

    def _pending_frame(self, criterion: str, exclude: Optional[Iterable[str]] = None) -> pd.DataFrame:
        if criterion not in Criterion.ALL:
            raise ValueError(f"Unknown criterion: {criterion}. Choose from: {Criterion.ALL}")

        contracts = self.contracts
        if criterion in Criterion.REQUIRES_CATEGORY:
            contracts = contracts[contracts["category"].isin(ContractCategory.SCORABLE)]
        if criterion == Criterion.DESCRIPTION:
            contracts = contracts[contracts["object"].fillna("").str.len() > 0]

        col = reason_column(criterion)
        done = [cid for cid, row in self._scores.items() if row.get(col) is not None]
        if exclude:
            done.extend(exclude)

        pending = contracts[~contracts["id"].isin(done)]
        return pending.sort_values(["created_at", "_row"], na_position="last")

    def pending_contract_ids(
        self,
        criterion: str,
        limit: Optional[int] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """
        Contracts still waiting for a criterion, oldest first.

        A contract is pending when it has no score row yet or its row has no
        reason for the criterion. Ids in `exclude` are left out.
        """
        ids = self._pending_frame(criterion, exclude)["id"].tolist()
        if limit is not None:
            ids = ids[:limit]
        return ids

    def count_pending(self, criterion: str, exclude: Optional[Iterable[str]] = None) -> int:
        return len(self._pending_frame(criterion, exclude))

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_scores(self, path: Union[str, Path] = SCORES_FILE) -> Path:
        """Write the score table to CSV."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        frame = self.scores_frame()
        frame["calculated_at"] = frame["calculated_at"].map(
            lambda x: None if pd.isna(x) else x.isoformat()
        )
        pl.from_pandas(frame).write_csv(path)
        logger.info("Saved %d anomaly scores to %s", len(frame), path)
        return path
