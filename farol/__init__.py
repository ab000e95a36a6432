"""
Farol: anomaly scoring for public procurement contracts.

Scores every contract on 8 criteria (0-25 each) and consolidates them into
a 0-200 total with a LOW / MEDIUM / HIGH category.
"""

from .config import AnomalyConfig, Criterion, ContractCategory, ScoreCategory, DEFAULT_CONFIG
from .data_loader import ContractStore, load_contracts, load_amendments, load_scores
from .statistics import StatisticsEngine
from .consolidation import ConsolidationEngine
from .batch import AnomalyService, BatchProcessor

__version__ = "0.1.0"

__all__ = [
    "AnomalyConfig",
    "Criterion",
    "ContractCategory",
    "ScoreCategory",
    "DEFAULT_CONFIG",
    "ContractStore",
    "load_contracts",
    "load_amendments",
    "load_scores",
    "StatisticsEngine",
    "ConsolidationEngine",
    "AnomalyService",
    "BatchProcessor",
]
