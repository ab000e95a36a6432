"""
Command line runner for contract anomaly scoring.

Usage:
    python -m farol.run all --criterion value
    python -m farol.run batch --criterion timing
    python -m farol.run single --criterion value --id c-1
    python -m farol.run recalculate --criterion amendment --id c-1
    python -m farol.run reset --criterion duration
    python -m farol.run reset-all
    python -m farol.run stats
    python -m farol.run consolidate [--id c-1]
    python -m farol.run list --category HIGH --page 1
    python -m farol.run summary

Scores are read from and written back to the --scores CSV.
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .batch import AnomalyService
from .config import (
    CONTRACTS_FILE, AMENDMENTS_FILE, SCORES_FILE,
    Criterion, ScoreCategory, DEFAULT_CONFIG, DEFAULT_PAGE_SIZE,
)
from .consolidation import ORDER_BY_OPTIONS, ORDER_OPTIONS
from .data_loader import ContractStore

logger = logging.getLogger(__name__)

COMMANDS = [
    "all", "batch", "single", "recalculate", "reset", "reset-all",
    "stats", "consolidate", "list", "summary",
]
NEEDS_CRITERION = ["all", "batch", "single", "recalculate", "reset"]
NEEDS_ID = ["single", "recalculate"]
# Commands that change the score table
MUTATING = ["all", "batch", "recalculate", "reset", "reset-all", "consolidate"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Anomaly scoring for procurement contracts")

    parser.add_argument("command", choices=COMMANDS, help="Operation to run")
    parser.add_argument("--criterion", choices=Criterion.ALL, help="Anomaly criterion")
    parser.add_argument("--id", dest="contract_id", help="Contract id (single, recalculate, consolidate)")

    parser.add_argument("--contracts", default=str(CONTRACTS_FILE), help="Contracts CSV")
    parser.add_argument("--amendments", default=str(AMENDMENTS_FILE), help="Amendments CSV")
    parser.add_argument("--scores", default=str(SCORES_FILE), help="Anomaly scores CSV")

    parser.add_argument("--batch-size", type=int, default=DEFAULT_CONFIG.batch_size,
                        help="Contracts per batch")
    parser.add_argument("--require-value-first", action="store_true",
                        help="Only the value criterion may create a score row")

    # Listing
    parser.add_argument("--category", choices=ScoreCategory.ALL, help="Filter by score category")
    parser.add_argument("--min-score", type=int, help="Minimum total score")
    parser.add_argument("--order-by", choices=ORDER_BY_OPTIONS, default="score")
    parser.add_argument("--order", choices=ORDER_OPTIONS, default="desc")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE)

    args = parser.parse_args(argv)

    if args.command in NEEDS_CRITERION and not args.criterion:
        parser.error(f"'{args.command}' requires --criterion")
    if args.command in NEEDS_ID and not args.contract_id:
        parser.error(f"'{args.command}' requires --id")

    return args


def _load_store(args: argparse.Namespace) -> ContractStore:
    amendments = args.amendments
    try:
        return ContractStore.from_csv(args.contracts, amendments, args.scores)
    except FileNotFoundError:
        if amendments == str(AMENDMENTS_FILE):
            # Default amendments file is optional
            return ContractStore.from_csv(args.contracts, None, args.scores)
        raise


def _print_run(title: str, result) -> int:
    stats = result.data
    print(f"\n{title}")
    if stats is not None:
        print(f"  Processed:       {stats.processed}")
        print(f"  Calculated:      {stats.calculated}")
        print(f"  Anomalies found: {stats.anomalies_found}")
        print(f"  Errors:          {stats.errors}")
    if not result.success:
        print(f"  Failed: [{result.error.code}] {result.error.message}")
        return 1
    return 0


def _print_result(result) -> int:
    if not result.success:
        print(f"Error [{result.error.code}]: {result.error.message}")
        return 1

    data = result.data
    print(f"  Score:  {data.score}/{DEFAULT_CONFIG.max_score}")
    print(f"  Reason: {data.reason}")
    if hasattr(data, "is_anomaly"):
        print(f"  Anomaly: {data.is_anomaly}")
    if hasattr(data, "total_score"):
        print(f"  Total:  {data.total_score} ({data.category})")
    return 0


def run_command(service: AnomalyService, args: argparse.Namespace) -> int:
    """Execute one command against a service. Returns an exit code."""
    command = args.command
    criterion = args.criterion

    if command == "all":
        return _print_run(f"Processed all pending contracts for {criterion} score:",
                          service.process_all(criterion))

    if command == "batch":
        return _print_run(f"Processed one batch for {criterion} score:",
                          service.process_batch(criterion))

    if command == "single":
        print(f"Calculating {criterion} score for contract {args.contract_id} (not saved)...")
        return _print_result(service.calculate(criterion, args.contract_id))

    if command == "recalculate":
        print(f"Recalculating {criterion} score for contract {args.contract_id}...")
        return _print_result(service.recalculate(criterion, args.contract_id))

    if command == "reset":
        count = service.reset(criterion)
        print(f"Reset {criterion} scores for {count} contracts")
        return 0

    if command == "reset-all":
        count = service.reset_all_scores()
        print(f"Deleted {count} anomaly scores")
        return 0

    if command == "stats":
        stats = service.get_stats()
        print("\nAnomaly score statistics:")
        print(f"  Pending:    {stats.pending}")
        print(f"  Calculated: {stats.calculated}")
        print(f"  Total:      {stats.total}")
        for category, count in stats.by_category.items():
            print(f"  {category:<10}  {count}")
        print(f"  Average value score: {stats.average_value_score:.2f}")
        return 0

    if command == "consolidate":
        if args.contract_id:
            result = service.consolidate_and_save(args.contract_id)
            if not result.success:
                print(f"Error [{result.error.code}]: {result.error.message}")
                return 1
            score = result.data
            print(f"\nContract {score.contract_id}: {score.total_score}/200 ({score.category})")
            for item in score.breakdown:
                print(f"  {item.criterion:<14} {item.score:>3}  {item.reason or '-'}")
            return 0

        result = service.consolidate_all()
        if not result.success:
            print(f"Error [{result.error.code}]: {result.error.message}")
            return 1
        print(f"Consolidated {result.data['processed']} scores, updated {result.data['updated']}")
        return 0

    if command == "list":
        listing = service.get_contracts_by_score(
            category=args.category,
            min_score=args.min_score,
            order_by=args.order_by,
            order=args.order,
            page=args.page,
            page_size=args.page_size,
        )
        print(f"\nPage {listing.page}/{listing.total_pages} ({listing.total} contracts)")
        for contract in listing.contracts:
            criteria = ", ".join(contract.contributing_criteria) or "-"
            print(f"  {contract.id:<20} {contract.total_score:>3} {contract.score_category:<6} "
                  f"R$ {contract.value:>15,.2f}  [{criteria}]")
        return 0

    if command == "summary":
        stats = service.get_consolidated_stats()
        print("\nConsolidated score summary:")
        print(f"  Total scored:        {stats.total}")
        print(f"  With anomalies:      {stats.with_anomalies}")
        print(f"  Average total score: {stats.average_total_score:.2f}")
        print("  By category:")
        for category, count in stats.by_category.items():
            print(f"    {category:<8} {count}")
        print("  By criterion:")
        for criterion_name, count in stats.by_criterion.items():
            print(f"    {criterion_name:<14} {count}")
        return 0

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
    args = parse_args(argv)

    config = replace(
        DEFAULT_CONFIG,
        batch_size=args.batch_size,
        require_value_first=args.require_value_first,
    )

    try:
        store = _load_store(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1

    service = AnomalyService(store, config)
    code = run_command(service, args)

    if args.command in MUTATING:
        store.save_scores(args.scores)

    return code


if __name__ == "__main__":
    sys.exit(main())
