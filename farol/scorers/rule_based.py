"""
Rule-Based Criteria (red flags)

Criteria that add fixed points per red flag, capped at 25:
1. Timing - December / end-of-year / weekend signature, rushed signature
2. Round Number - suspiciously round contract values
3. Fragmentation - splitting purchases to stay under the dispensa limit
4. Description - generic, vague, brand-directed or overly detailed objects

None of these depend on the contract category, so OUTROS contracts are
scored as well.
"""

import math
import re
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from ..config import Criterion, Thresholds
from ..models import (
    ScoreResult,
    TimingStats, RoundNumberStats, FragmentationStats, DescriptionStats,
)
from .base import CriterionScorer


# Phrases that leave the contract object open-ended
VAGUE_TERMS = [
    "conforme proposta",
    "diversos",
    "vários",
    "serviços diversos",
    "materiais diversos",
    "conforme anexo",
    "conforme edital",
    "conforme contrato",
    "a definir",
    "outros",
]

# Brand / model mentions (possible supplier targeting)
BRAND_PATTERNS = [
    re.compile(r"marca\s+\w+", re.IGNORECASE),
    re.compile(r"modelo\s+\w+", re.IGNORECASE),
    re.compile(r"fabricante\s+\w+", re.IGNORECASE),
    re.compile(r"\b(dell|hp|lenovo|apple|samsung|microsoft|oracle|sap)\b", re.IGNORECASE),
]


def days_between(first: datetime, second: datetime) -> int:
    """Absolute distance in days, rounded up."""
    return math.ceil(abs((second - first).total_seconds()) / 86400)


def _significant_words(text: Optional[str]) -> set:
    if not text:
        return set()
    return {
        w for w in text.lower().split()
        if len(w) >= Thresholds.SIMILARITY_MIN_WORD_LENGTH
    }


def text_similarity(text1: Optional[str], text2: Optional[str]) -> float:
    """
    Jaccard similarity of the words longer than 3 characters.

    Returns 0.0 when either text has no such words.
    """
    words1 = _significant_words(text1)
    words2 = _significant_words(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def format_brl(value: float) -> str:
    """Format a value as R$ with two decimals."""
    return f"R$ {value:,.2f}"


# =============================================================================
# Timing
# =============================================================================

class TimingScorer(CriterionScorer):
    """
    Red flags on when the contract was signed.

    - December signature: +10 (last week, 25-31: another +5)
    - Weekend signature: +5
    - Less than 3 days between publication and signature: +5

    Contracts without a signature date score 0.
    """

    criterion = Criterion.TIMING

    def _score(self, contract: Dict) -> ScoreResult:
        return self.evaluate(contract["signature_date"], contract["publication_date"])

    def evaluate(
        self,
        signature_date: Optional[datetime],
        publication_date: Optional[datetime] = None,
    ) -> ScoreResult:
        flags: List[str] = []
        score = 0
        is_december = False
        is_last_week = False
        is_weekend = False
        days_to_signature = None

        if signature_date is not None:
            if signature_date.month == 12:
                score += 10
                is_december = True
                flags.append("Contract signed in December")

                if signature_date.day >= Thresholds.LAST_WEEK_OF_DECEMBER_DAY:
                    score += 5
                    is_last_week = True
                    flags.append("Last week of December")

            if signature_date.weekday() >= 5:
                score += 5
                is_weekend = True
                flags.append("Signed on a weekend")

            if publication_date is not None:
                days_to_signature = days_between(publication_date, signature_date)
                if days_to_signature < Thresholds.MIN_DAYS_PUBLICATION_TO_SIGNATURE:
                    score += 5
                    flags.append(
                        f"Only {days_to_signature} day(s) between publication and signature"
                    )

        stats = TimingStats(
            signature_date=signature_date,
            publication_date=publication_date,
            is_december=is_december,
            is_last_week_of_december=is_last_week,
            is_weekend=is_weekend,
            days_from_publication_to_signature=days_to_signature,
            timing_flags=flags,
        )
        return self.from_flags(self.cap(score), flags, "No suspicious timing patterns", stats)


# =============================================================================
# Round Number
# =============================================================================

class RoundNumberScorer(CriterionScorer):
    """
    Red flags on suspiciously round values.

    - Exact multiple of 100k / 10k / 1k (value at least the multiple):
      15 / 10 / 5, highest tier only
    - Value above 100k without cents and not a multiple of 1k: +5
    """

    criterion = Criterion.ROUND_NUMBER

    def _score(self, contract: Dict) -> ScoreResult:
        return self.evaluate(float(contract["value"] or 0))

    def evaluate(self, value: float) -> ScoreResult:
        multiples = {
            tier: value >= tier and value % tier == 0
            for tier, _ in Thresholds.ROUND_TIERS
        }
        has_no_cents = value > Thresholds.NO_CENTS_MIN_VALUE and value == math.floor(value)

        flags: List[str] = []
        score = 0

        for tier, points in Thresholds.ROUND_TIERS:
            if multiples[tier]:
                score += points
                flags.append(f"Exact multiple of {format_brl(tier)}")
                break

        if has_no_cents and not multiples[1000]:
            score += 5
            flags.append(f"No cents in a value above {format_brl(Thresholds.NO_CENTS_MIN_VALUE)}")

        stats = RoundNumberStats(
            value=value,
            is_multiple_of_100k=multiples[100000],
            is_multiple_of_10k=multiples[10000],
            is_multiple_of_1k=multiples[1000],
            has_no_cents=has_no_cents,
            roundness_flags=flags,
        )
        return self.from_flags(
            self.cap(score), flags, "Value shows no suspicious rounding patterns", stats
        )


# =============================================================================
# Fragmentation
# =============================================================================

class FragmentationScorer(CriterionScorer):
    """
    Red flags for contract splitting (fracionamento).

    - Value between R$ 40,000 and R$ 50,000 (dispensa limit): +10
    - 3+ other contracts, same supplier and agency, within ±30 days: +10
    - Any of those with a >70% similar object: +10
    """

    criterion = Criterion.FRAGMENTATION

    def _score(self, contract: Dict) -> ScoreResult:
        nearby = None
        if contract["signature_date"] is not None and contract["supplier_id"] and contract["agency_id"]:
            nearby = self.statistics.nearby_contracts(
                contract["id"],
                contract["supplier_id"],
                contract["agency_id"],
                contract["signature_date"],
            )
        return self.evaluate(contract, nearby)

    def evaluate(self, contract: Dict, nearby: Optional[pd.DataFrame]) -> ScoreResult:
        value = float(contract["value"] or 0)
        flags: List[str] = []
        score = 0

        is_near_limit = Thresholds.DISPENSA_NEAR_MIN <= value <= Thresholds.DISPENSA_LIMIT
        if is_near_limit:
            score += 10
            flags.append(f"Value close to the dispensa limit ({format_brl(value)})")

        contracts_in_window = 0
        similar_contracts = 0

        if nearby is not None:
            contracts_in_window = len(nearby)
            if contracts_in_window >= Thresholds.FRAGMENTATION_MIN_NEARBY:
                score += 10
                flags.append(
                    f"{contracts_in_window + 1} contracts with same supplier/agency "
                    f"within {Thresholds.FRAGMENTATION_WINDOW_DAYS} days"
                )

            similar_contracts = sum(
                1 for obj in nearby["object"]
                if text_similarity(contract["object"], obj) > Thresholds.TEXT_SIMILARITY
            )
            if similar_contracts > 0:
                score += 10
                flags.append(
                    f"{similar_contracts} contract(s) with a similar object "
                    f"(>{int(Thresholds.TEXT_SIMILARITY * 100)}% similarity)"
                )

        stats = FragmentationStats(
            supplier_id=contract["supplier_id"],
            agency_id=contract["agency_id"],
            contracts_in_30_days=contracts_in_window,
            is_near_dispensa_limit=is_near_limit,
            similar_contracts=similar_contracts,
            fragmentation_flags=flags,
        )
        return self.from_flags(self.cap(score), flags, "No signs of fragmentation", stats)


# =============================================================================
# Description
# =============================================================================

class DescriptionScorer(CriterionScorer):
    """
    Red flags in the contract object text.

    - Shorter than 50 characters: +10
    - Contains a vague term ("conforme proposta", "diversos", ...): +5
    - Mentions a brand, model or manufacturer: +10
    - Longer than 2000 characters: +5
    """

    criterion = Criterion.DESCRIPTION

    def _score(self, contract: Dict) -> ScoreResult:
        return self.evaluate(contract["object"] or "")

    def evaluate(self, text: str) -> ScoreResult:
        flags: List[str] = []
        score = 0
        length = len(text)

        is_too_generic = length < Thresholds.DESCRIPTION_MIN_LENGTH
        if is_too_generic:
            score += 10
            flags.append(f"Description too short ({length} characters)")

        lowered = text.lower()
        has_vague_terms = any(term in lowered for term in VAGUE_TERMS)
        if has_vague_terms:
            score += 5
            flags.append("Contains vague terms")

        has_brand = any(pattern.search(text) for pattern in BRAND_PATTERNS)
        if has_brand:
            score += 10
            flags.append("Mentions a specific brand (possible targeting)")

        is_overly_specific = length > Thresholds.DESCRIPTION_MAX_LENGTH
        if is_overly_specific:
            score += 5
            flags.append("Overly detailed description (possible targeting)")

        stats = DescriptionStats(
            object_length=length,
            is_too_generic=is_too_generic,
            has_specific_brand=has_brand,
            has_vague_terms=has_vague_terms,
            is_overly_specific=is_overly_specific,
            description_flags=flags,
        )
        return self.from_flags(self.cap(score), flags, "Adequate description", stats)
