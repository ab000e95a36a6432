"""
Configuration and constants for contract anomaly scoring.
"""

from dataclasses import dataclass
from pathlib import Path

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"

CONTRACTS_FILE = DATA_DIR / "contracts.csv"
AMENDMENTS_FILE = DATA_DIR / "amendments.csv"
SCORES_FILE = DATA_DIR / "anomaly_scores.csv"


# === Contract Categories ===
class ContractCategory:
    OBRAS = "OBRAS"          # obras e engenharia
    SERVICOS = "SERVICOS"    # serviços gerais
    TI = "TI"                # tecnologia da informação
    SAUDE = "SAUDE"          # saúde
    EDUCACAO = "EDUCACAO"    # educação
    OUTROS = "OUTROS"        # residual, not scorable by peer statistics

    ALL = [OBRAS, SERVICOS, TI, SAUDE, EDUCACAO, OUTROS]
    SCORABLE = [OBRAS, SERVICOS, TI, SAUDE, EDUCACAO]


# === Score Categories ===
class ScoreCategory:
    LOW = "LOW"          # total <= 50
    MEDIUM = "MEDIUM"    # 51-100
    HIGH = "HIGH"        # > 100

    ALL = [LOW, MEDIUM, HIGH]


# === Criteria ===
class Criterion:
    VALUE = "value"
    AMENDMENT = "amendment"
    CONCENTRATION = "concentration"
    DURATION = "duration"
    TIMING = "timing"
    ROUND_NUMBER = "round_number"
    FRAGMENTATION = "fragmentation"
    DESCRIPTION = "description"

    # Fixed breakdown order
    ALL = [
        VALUE,
        AMENDMENT,
        CONCENTRATION,
        DURATION,
        TIMING,
        ROUND_NUMBER,
        FRAGMENTATION,
        DESCRIPTION,
    ]

    # Compared against a category peer group, so OUTROS contracts are skipped
    REQUIRES_CATEGORY = [VALUE, AMENDMENT, CONCENTRATION, DURATION]


def score_column(criterion: str) -> str:
    """Name of the score column for a criterion."""
    return f"{criterion}_score"


def reason_column(criterion: str) -> str:
    """Name of the reason column for a criterion."""
    return f"{criterion}_reason"


SCORE_COLUMNS = [score_column(c) for c in Criterion.ALL]
REASON_COLUMNS = [reason_column(c) for c in Criterion.ALL]


# === Error Codes ===
class AnomalyErrorCode:
    INVALID_CONTRACT = "INVALID_CONTRACT"
    NO_CATEGORY = "NO_CATEGORY"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    DATABASE_ERROR = "DATABASE_ERROR"
    CALCULATION_FAILED = "CALCULATION_FAILED"


# === Thresholds ===
class Thresholds:
    # Value
    VALUE_ZSCORE = 2.0                     # desvios padrão acima da média

    # Amendment
    AMENDMENT_COUNT_ZSCORE = 1.5
    AMENDMENT_VALUE_RATIO = 0.5            # 50% of original value
    AMENDMENT_PART_MAX = 15                # cap for each of count/value parts

    # Concentration
    SUPPLIER_SHARE = 0.3                   # 30% of agency contracts or value

    # Duration
    DURATION_ZSCORE = 1.5

    # Timing
    LAST_WEEK_OF_DECEMBER_DAY = 25
    MIN_DAYS_PUBLICATION_TO_SIGNATURE = 3

    # Round numbers
    ROUND_TIERS = [(100000, 15), (10000, 10), (1000, 5)]
    NO_CENTS_MIN_VALUE = 100000

    # Fragmentation
    DISPENSA_LIMIT = 50000
    DISPENSA_NEAR_MIN = 40000
    FRAGMENTATION_WINDOW_DAYS = 30
    FRAGMENTATION_MIN_NEARBY = 3
    TEXT_SIMILARITY = 0.7
    SIMILARITY_MIN_WORD_LENGTH = 4         # words longer than 3 chars

    # Description
    DESCRIPTION_MIN_LENGTH = 50
    DESCRIPTION_MAX_LENGTH = 2000

    # Consolidation (8 criteria, max 200)
    CATEGORY_HIGH = 100
    CATEGORY_MEDIUM = 50


# === Scoring Configuration ===
@dataclass
class AnomalyConfig:
    """Tunable parameters for scoring runs."""
    batch_size: int = 50
    min_contracts_for_stats: int = 5
    standard_deviation_threshold: float = Thresholds.VALUE_ZSCORE
    max_score: int = 25
    # Legacy ordering: only the value criterion may create a score row
    require_value_first: bool = False


DEFAULT_CONFIG = AnomalyConfig()

# Default page size for ranked listings
DEFAULT_PAGE_SIZE = 20
