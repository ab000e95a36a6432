"""
Result and statistics types shared by scorers, consolidation and batch runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


# =============================================================================
# Errors and Results
# =============================================================================

@dataclass
class AnomalyError:
    """Tagged failure returned by scoring operations."""
    code: str
    message: str
    details: Any = None


@dataclass
class Result:
    """Success/failure wrapper. Expected domain conditions never raise."""
    success: bool
    data: Any = None
    error: Optional[AnomalyError] = None

    @classmethod
    def ok(cls, data: Any) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Any = None) -> "Result":
        return cls(success=False, error=AnomalyError(code, message, details))


class StoreError(Exception):
    """Raised by the contract store when a read or write cannot complete."""


class ConcurrentUpdateError(StoreError):
    """Score row changed between read and conditional write."""


# =============================================================================
# Peer Statistics
# =============================================================================

@dataclass
class PeerStatistics:
    """Mean and population standard deviation of a peer group."""
    mean: float
    standard_deviation: float
    count: int


# =============================================================================
# Per-criterion Statistics
# =============================================================================

@dataclass
class ValueStats:
    category: str
    year: Optional[int]
    mean: float
    standard_deviation: float
    contract_count: int
    contract_value: float = 0.0
    deviations_from_mean: float = 0.0
    percentage_above_mean: float = 0.0


@dataclass
class AmendmentStats:
    category: str
    mean: float
    standard_deviation: float
    contract_count: int
    amendment_count: int
    total_amendment_value: float
    original_contract_value: float
    value_increase_ratio: float
    deviations_from_mean: float


@dataclass
class ConcentrationStats:
    agency_id: str
    agency_name: str
    supplier_id: str
    supplier_name: str
    contract_count: int
    total_agency_contracts: int
    contract_percentage: float
    supplier_value: float
    total_agency_value: float
    value_percentage: float


@dataclass
class DurationStats:
    category: str
    mean: float
    standard_deviation: float
    contract_count: int
    contract_duration: int
    deviations_from_mean: float
    is_too_short: bool
    is_too_long: bool


@dataclass
class TimingStats:
    signature_date: Optional[datetime]
    publication_date: Optional[datetime]
    is_december: bool
    is_last_week_of_december: bool
    is_weekend: bool
    days_from_publication_to_signature: Optional[int]
    timing_flags: List[str] = field(default_factory=list)


@dataclass
class RoundNumberStats:
    value: float
    is_multiple_of_100k: bool
    is_multiple_of_10k: bool
    is_multiple_of_1k: bool
    has_no_cents: bool
    roundness_flags: List[str] = field(default_factory=list)


@dataclass
class FragmentationStats:
    supplier_id: Optional[str]
    agency_id: Optional[str]
    contracts_in_30_days: int
    is_near_dispensa_limit: bool
    similar_contracts: int
    fragmentation_flags: List[str] = field(default_factory=list)


@dataclass
class DescriptionStats:
    object_length: int
    is_too_generic: bool
    has_specific_brand: bool
    has_vague_terms: bool
    is_overly_specific: bool
    description_flags: List[str] = field(default_factory=list)


@dataclass
class ScoreResult:
    """Outcome of one criterion for one contract."""
    score: int
    reason: str
    is_anomaly: bool
    stats: Any = None


@dataclass
class SavedScore:
    """Criterion score as persisted, with the consolidated totals."""
    contract_id: str
    criterion: str
    score: int
    reason: str
    total_score: int
    category: str


# =============================================================================
# Consolidation
# =============================================================================

@dataclass
class ScoreBreakdownItem:
    criterion: str
    score: int
    reason: Optional[str]
    is_contributing: bool


@dataclass
class ConsolidatedScore:
    contract_id: str
    total_score: int
    category: str
    breakdown: List[ScoreBreakdownItem]
    contributing_criteria: List[str]


@dataclass
class ContractWithScore:
    id: str
    external_id: Optional[str]
    object: Optional[str]
    value: float
    category: Optional[str]
    total_score: int
    score_category: str
    breakdown: List[ScoreBreakdownItem]
    contributing_criteria: List[str]


@dataclass
class ContractScoreList:
    contracts: List[ContractWithScore]
    total: int
    page: int
    page_size: int
    total_pages: int


@dataclass
class ConsolidatedStats:
    total: int
    by_category: Dict[str, int]
    average_total_score: float
    with_anomalies: int
    by_criterion: Dict[str, int]


# =============================================================================
# Batch Runs
# =============================================================================

@dataclass
class AnomalyStats:
    """Statistics for a batch or process-all run."""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    processed: int = 0
    calculated: int = 0
    anomalies_found: int = 0
    errors: int = 0
    last_error: Optional[str] = None

    def merge(self, other: "AnomalyStats"):
        """Accumulate counters from a finished batch."""
        self.processed += other.processed
        self.calculated += other.calculated
        self.anomalies_found += other.anomalies_found
        self.errors += other.errors
        if other.last_error:
            self.last_error = other.last_error


@dataclass
class AnomalyDatabaseStats:
    pending: int
    calculated: int
    total: int
    by_category: Dict[str, int]
    average_value_score: float
