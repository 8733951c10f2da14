#!/usr/bin/env python3
"""
Run the engagement engine on local table files or a synthetic client list.

Usage:
    python scripts/run_engagement_report.py [--data-dir DATA_DIR | --synthetic N] [--verbose]

Example:
    python scripts/run_engagement_report.py --synthetic 200 --trend-unit month -o report.json
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings, load_price_table
from src.data.local_loader import LocalDataLoader
from src.data.schemas import TrendUnit
from src.data.synthetic_generator import generate_sample_snapshots
from src.engine import (
    EngineConfig,
    export_result_to_dict,
    format_engine_summary,
    run_engine,
)
from src.exceptions import EngagementEngineError


def main():
    parser = argparse.ArgumentParser(
        description="Compute client engagement, retention, churn risk and revenue views"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--data-dir",
        type=str,
        default="data/samples",
        help="Directory containing clients/events/goals CSV or parquet files (default: data/samples)",
    )
    source.add_argument(
        "--synthetic",
        type=int,
        metavar="N",
        help="Generate N synthetic clients instead of loading files",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Seed for synthetic data (default: 42)",
    )
    parser.add_argument(
        "--as-of",
        type=str,
        help="Reference time as ISO-8601 (default: now)",
    )
    parser.add_argument(
        "--lookback-days",
        type=int,
        help="Lookback period in days (default: from settings)",
    )
    parser.add_argument(
        "--trend-unit",
        choices=[u.value for u in TrendUnit],
        help="Bucket unit for engagement trends (default: from settings)",
    )
    parser.add_argument(
        "--price-table",
        type=str,
        help="YAML file with a tier_prices mapping",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print verbose output",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file for results JSON (optional)",
    )

    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    now = datetime.now(timezone.utc)
    if args.as_of:
        now = datetime.fromisoformat(args.as_of.replace("Z", "+00:00"))
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    overrides = {"reference_date": now, "verbose": args.verbose}
    if args.lookback_days:
        overrides["lookback_days"] = args.lookback_days
    if args.trend_unit:
        overrides["trend_unit"] = TrendUnit(args.trend_unit)
    if args.price_table:
        overrides["price_table"] = load_price_table(args.price_table)
    config = EngineConfig.from_settings(settings, **overrides)

    # Load data
    print("=" * 60)
    print("LOADING CLIENT DATA")
    print("=" * 60)

    try:
        if args.synthetic:
            snapshots = generate_sample_snapshots(seed=args.seed, n_clients=args.synthetic, now=now)
            print(f"Generated {len(snapshots):,} synthetic clients (seed {args.seed})")
        else:
            data_dir = Path(args.data_dir)
            load_result = LocalDataLoader(data_dir).load()
            snapshots = load_result.snapshots
            print(f"Loaded {load_result.n_clients:,} clients from {', '.join(load_result.tables_loaded)}")
            for error in load_result.errors:
                print(f"  ! {error}")

        result = run_engine(snapshots, config)
    except EngagementEngineError as e:
        print(f"\nENGINE FAILED: {e.message} {e.context}")
        sys.exit(1)

    print("\n" + format_engine_summary(result))

    if result.at_risk:
        print("\n" + "=" * 60)
        print("CLIENTS NEEDING ATTENTION")
        print("=" * 60)

        for assessment in result.at_risk[:10]:
            details = result.get_client_details(assessment.client_id)
            print(f"\n{assessment.client_id}: {assessment.score} ({assessment.tier.value})")
            if details:
                if details["risk_factors"]:
                    print(f"  Factors: {', '.join(details['risk_factors'])}")
                for action in details["recommendations"]:
                    print(f"  → {action}")

    # Save results if output specified
    if args.output:
        output_path = Path(args.output)
        results_dict = export_result_to_dict(result, include_timings=args.verbose)
        results_dict["metadata"] = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "source": "synthetic" if args.synthetic else str(args.data_dir),
            "config": {
                "lookback_days": config.lookback_days,
                "trend_unit": config.trend_unit.value,
                "cohort_months": config.cohort_months,
            },
        }

        with open(output_path, "w") as f:
            json.dump(results_dict, f, indent=2, default=str)

        print(f"\nResults saved to: {output_path}")


if __name__ == "__main__":
    main()
