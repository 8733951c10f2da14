"""
Module: revenue

Purpose: Per-client and aggregate revenue from subscription tiers.

Key Functions:
- TierPriceTable: Validated tier -> monthly price mapping
- client_revenue: Monetary value of one client
- calculate_revenue: RevenueSnapshot with tier breakdown, top-N and trend
- RevenueCalculator: Configured wrapper used by the engine

Architecture Notes:
- Uses each client's current tier for every month (tier history is not tracked)
- All money is Decimal, quantized to cents
- Needs only tier and join date, so it runs independently of activity data
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from src.data.schemas import (
    ClientRecord,
    ClientRevenue,
    RevenueSnapshot,
    RevenueTrendPoint,
    SubscriptionTier,
    TierRevenue,
    TrendUnit,
)
from src.exceptions import ConfigurationError, InvalidRecordError
from src.features.activity import days_since
from src.features.bucketing import bucket_label, shift_months

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DAYS_PER_BILLING_MONTH = 30
DEFAULT_LOOKBACK_DAYS = 90
DEFAULT_TOP_N = 10

DEFAULT_TIER_PRICES: dict[SubscriptionTier, Decimal] = {
    SubscriptionTier.BASE: Decimal("0.00"),
    SubscriptionTier.PREMIUM: Decimal("9.99"),
    SubscriptionTier.PRO: Decimal("19.99"),
    SubscriptionTier.ELITE: Decimal("29.99"),
}


def to_money(value: Any) -> Decimal:
    """Quantize a number to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# PRICE TABLE
# =============================================================================


@dataclass(frozen=True)
class TierPriceTable:
    """Monthly price per subscription tier.

    A table may omit tiers; clients on an omitted tier cannot be valued and
    raise InvalidRecordError.
    """

    prices: dict[SubscriptionTier, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_TIER_PRICES)
    )

    def __post_init__(self) -> None:
        ordered = [(tier, self.prices[tier]) for tier in SubscriptionTier if tier in self.prices]
        if not ordered:
            raise ConfigurationError("Tier price table is empty", setting="tier_prices")
        for tier, price in ordered:
            if price < 0:
                raise ConfigurationError(
                    f"Negative price for tier {tier.value}: {price}",
                    setting="tier_prices",
                )
        base_price = self.prices.get(SubscriptionTier.BASE)
        if base_price is not None and base_price != 0:
            raise ConfigurationError(
                f"Base tier must be free, got {base_price}",
                setting="tier_prices",
            )
        for (lower, lower_price), (upper, upper_price) in zip(ordered, ordered[1:]):
            if upper_price <= lower_price:
                raise ConfigurationError(
                    f"Tier prices must ascend: {upper.value} ({upper_price}) "
                    f"<= {lower.value} ({lower_price})",
                    setting="tier_prices",
                )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TierPriceTable":
        """
        Build a table from plain ``{"premium": 9.99, ...}`` data.

        Raises:
            ConfigurationError: If a key is not a tier or a price is not numeric
        """
        prices: dict[SubscriptionTier, Decimal] = {}
        for key, value in mapping.items():
            try:
                tier = SubscriptionTier(str(key).strip().lower())
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown tier in price table: {key!r}", setting="tier_prices"
                ) from e
            try:
                prices[tier] = to_money(value)
            except (ArithmeticError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid price for tier {key!r}: {value!r}", setting="tier_prices"
                ) from e
        return cls(prices=prices)

    def price_for(self, tier: SubscriptionTier, *, client_id: str | None = None) -> Decimal:
        """
        Monthly price of a tier.

        Raises:
            InvalidRecordError: If the tier is not in the table
        """
        try:
            return self.prices[tier]
        except KeyError:
            raise InvalidRecordError(
                f"Tier {tier.value!r} is not in the price table",
                field="tier",
                value=tier.value,
                client_id=client_id,
            ) from None


# =============================================================================
# PER-CLIENT REVENUE
# =============================================================================


def billing_months(joined_at: datetime, now: datetime) -> int:
    """Whole 30-day months since joining, at least 1."""
    days = max(0, days_since(joined_at, now) or 0)
    return max(1, days // DAYS_PER_BILLING_MONTH)


def months_subscribed(joined_at: datetime, now: datetime, *, lookback_days: int) -> int:
    """
    Billing months counted within a lookback period.

    Clients who joined before the period are capped at the period's month count.
    """
    months = billing_months(joined_at, now)
    if joined_at < now - timedelta(days=lookback_days):
        window_months = max(1, lookback_days // DAYS_PER_BILLING_MONTH)
        months = min(months, window_months)
    return months


def client_revenue(
    client: ClientRecord,
    now: datetime,
    *,
    price_table: TierPriceTable,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> ClientRevenue:
    """
    Value of a single client.

    ``period_revenue`` counts months within the lookback; ``lifetime_value``
    counts every month since joining.
    """
    price = price_table.price_for(client.tier, client_id=client.client_id)
    period_months = months_subscribed(client.created_at, now, lookback_days=lookback_days)

    return ClientRevenue(
        client_id=client.client_id,
        full_name=client.full_name,
        tier=client.tier,
        joined_at=client.created_at,
        monthly_value=price,
        months_subscribed=period_months,
        period_revenue=to_money(price * period_months),
        lifetime_value=to_money(price * billing_months(client.created_at, now)),
    )


# =============================================================================
# AGGREGATES
# =============================================================================


def tier_breakdown(rows: list[ClientRevenue]) -> list[TierRevenue]:
    """Count, revenue and average revenue per client for each tier present."""
    total = len(rows)
    breakdown: list[TierRevenue] = []
    for tier in SubscriptionTier:
        in_tier = [r for r in rows if r.tier == tier]
        if not in_tier:
            continue
        revenue = sum((r.period_revenue for r in in_tier), ZERO)
        breakdown.append(
            TierRevenue(
                tier=tier,
                count=len(in_tier),
                revenue=to_money(revenue),
                avg_rpc=to_money(revenue / len(in_tier)),
                share_of_clients=len(in_tier) / total * 100 if total else 0.0,
            )
        )
    return breakdown


def top_clients(rows: list[ClientRevenue], *, n: int = DEFAULT_TOP_N) -> list[ClientRevenue]:
    """Highest lifetime value first; ties go to the earlier join, then client ID."""
    ranked = sorted(rows, key=lambda r: (-r.lifetime_value, r.joined_at, r.client_id))
    return ranked[:n]


def revenue_trend(
    clients: list[ClientRecord],
    now: datetime,
    *,
    price_table: TierPriceTable,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> list[RevenueTrendPoint]:
    """
    Monthly recurring revenue from clients who had joined by each month's end.

    ``ceil(lookback_days / 30)`` months, each starting a whole number of
    calendar months before ``now`` and lasting one month; the last point is
    the month starting at ``now``.
    """
    n_months = max(1, math.ceil(lookback_days / DAYS_PER_BILLING_MONTH))

    points: list[RevenueTrendPoint] = []
    for offset in range(n_months - 1, -1, -1):
        start = shift_months(now, -offset)
        end = shift_months(now, 1 - offset)
        joined = [c for c in clients if c.created_at <= end]
        revenue = sum(
            (price_table.price_for(c.tier, client_id=c.client_id) for c in joined),
            ZERO,
        )
        points.append(
            RevenueTrendPoint(
                label=bucket_label(start, TrendUnit.MONTH),
                start=start,
                end=end,
                clients=len(joined),
                revenue=to_money(revenue),
                rpc=to_money(revenue / len(joined)) if joined else ZERO,
            )
        )
    return points


def calculate_revenue(
    clients: Iterable[ClientRecord],
    now: datetime,
    *,
    price_table: TierPriceTable | None = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    top_n: int = DEFAULT_TOP_N,
) -> RevenueSnapshot:
    """
    Aggregate revenue over a lookback period.

    Args:
        clients: Client records (tier and join date are all that is used)
        now: Reference time
        price_table: Tier prices (defaults to the standard table)
        lookback_days: Period length in days
        top_n: Size of the top-clients ranking

    Returns:
        RevenueSnapshot; average RPC is 0 when there are no clients

    Raises:
        InvalidRecordError: If a client's tier is missing from the price table
    """
    price_table = price_table or TierPriceTable()
    records = list(clients)

    rows = [
        client_revenue(c, now, price_table=price_table, lookback_days=lookback_days)
        for c in records
    ]

    total_revenue = to_money(sum((r.period_revenue for r in rows), ZERO))
    mrr = to_money(sum((r.monthly_value for r in rows), ZERO))
    average_rpc = to_money(total_revenue / len(rows)) if rows else ZERO

    logger.info(
        f"Revenue for {len(rows)} clients over {lookback_days} days: "
        f"total ${total_revenue}, MRR ${mrr}"
    )

    return RevenueSnapshot(
        lookback_days=lookback_days,
        total_clients=len(rows),
        paying_clients=sum(1 for r in rows if r.tier != SubscriptionTier.BASE),
        total_revenue=total_revenue,
        average_rpc=average_rpc,
        mrr=mrr,
        projected_arr=to_money(mrr * 12),
        by_tier=tier_breakdown(rows),
        clients=rows,
        top_clients=top_clients(rows, n=top_n),
        trend=revenue_trend(records, now, price_table=price_table, lookback_days=lookback_days),
    )


class RevenueCalculator:
    """
    Revenue calculator bound to a price table and period.

    Usage:
        calculator = RevenueCalculator(lookback_days=90)
        snapshot = calculator.calculate(clients, now)
    """

    def __init__(
        self,
        *,
        price_table: TierPriceTable | None = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self.price_table = price_table or TierPriceTable()
        self.lookback_days = lookback_days
        self.top_n = top_n

    def calculate(self, clients: Iterable[ClientRecord], now: datetime) -> RevenueSnapshot:
        return calculate_revenue(
            clients,
            now,
            price_table=self.price_table,
            lookback_days=self.lookback_days,
            top_n=self.top_n,
        )
