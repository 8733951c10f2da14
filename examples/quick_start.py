#!/usr/bin/env python3
"""Quick start example for the Client Engagement Engine.

Run this script to see the engine in action with synthetic clients.

Usage:
    python examples/quick_start.py
"""

from datetime import datetime, timezone

from src.analysis.risk import describe_risk_factors
from src.data.synthetic_generator import generate_sample_snapshots
from src.engine import EngineConfig, format_engine_summary, run_engine


def main() -> None:
    """Run a quick engagement demo."""
    print("=" * 60)
    print("Client Engagement Engine - Quick Start Demo")
    print("=" * 60)

    now = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)

    print("\nScoring 200 synthetic clients...")
    snapshots = generate_sample_snapshots(seed=42, n_clients=200, now=now)
    result = run_engine(snapshots, EngineConfig(reference_date=now))

    # Print summary
    print("\n" + format_engine_summary(result))

    # Highest-risk clients
    print("\n" + "=" * 60)
    print("HIGHEST-RISK CLIENTS")
    print("=" * 60)

    for assessment in result.at_risk[:5]:
        print(f"\n{assessment.client_id}")
        print("-" * 40)
        print(f"  Score: {assessment.score} ({assessment.tier.value})")
        print(f"  Factors: {', '.join(describe_risk_factors(assessment)) or 'none'}")
        for action in result.recommendations.get(assessment.client_id, []):
            print(f"  -> {action}")

    # Top clients by value
    print("\n" + "=" * 60)
    print("TOP CLIENTS BY LIFETIME VALUE")
    print("=" * 60)

    for row in result.revenue.top_clients[:5]:
        print(f"  {row.full_name or row.client_id}: ${row.lifetime_value:,.2f} ({row.tier.value})")


if __name__ == "__main__":
    main()
