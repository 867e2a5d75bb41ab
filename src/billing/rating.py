"""
Rating Engine

Prices every unit of a pricing plan for one tenant and one period:

1. Walk menus, then units, in plan order (line items keep this order)
2. Fetch the aggregated usage count of each metering unit once per call
3. Price the unit with its model (fixed / usage / tiered / tiered_usage)
4. Sum amounts per currency

Money is Decimal throughout; the engine performs no I/O of its own and
reads usage through the injected UsageSource.
"""

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Dict, Iterator, List, Optional, Tuple
import structlog

from .accumulator import CurrencyAccumulator, CurrencyTotal
from .cancellation import CancellationToken
from .config import BillingConfig
from .metering import UsageCache, UsageSource, aggregate_usage, fetch_usage
from .pricing import (
    FixedUnit,
    MeteredUnit,
    PricingMenu,
    PricingPlan,
    PricingUnit,
    RecurringInterval,
    Tier,
    TieredUnit,
    TieredUsageUnit,
    UnitType,
    UsageUnit,
)

logger = structlog.get_logger()

_POLL_INTERVAL_SECONDS = 0.05


@dataclass(frozen=True)
class RatingLineItem:
    """Charge for one pricing unit over the rated period."""
    metering_unit_name: str
    metering_unit_type: str
    function_menu_name: str
    period_count: int
    currency: str
    period_amount: Decimal
    pricing_unit_display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metering_unit_name": self.metering_unit_name,
            "metering_unit_type": self.metering_unit_type,
            "function_menu_name": self.function_menu_name,
            "period_count": self.period_count,
            "currency": self.currency,
            "period_amount": self.period_amount,
            "pricing_unit_display_name": self.pricing_unit_display_name,
        }


@dataclass
class RatingResult:
    """Line items in plan order plus totals sorted by currency code."""
    line_items: List[RatingLineItem] = field(default_factory=list)
    totals: List[CurrencyTotal] = field(default_factory=list)

    def __iter__(self) -> Iterator[Any]:
        yield self.line_items
        yield self.totals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metering_unit_billings": [i.to_dict() for i in self.line_items],
            "total_by_currency": [t.to_dict() for t in self.totals],
        }


# ============================================================================
# Pricing models
# ============================================================================

def calc_tiered(count: int, tiers: List[Tier]) -> Decimal:
    """
    Flat-rate-by-bracket pricing.

    The first tier that is infinite or whose bound covers the count prices
    the WHOLE count. Tiers are taken in the order given.
    """
    for tier in tiers or []:
        if tier.inf or not tier.is_bounded or count <= tier.up_to:
            return tier.flat_amount + count * tier.unit_amount
    return Decimal("0")


def calc_tiered_usage(count: int, tiers: List[Tier]) -> Decimal:
    """
    Graduated pricing: each tier bills the usage that falls inside it.

    A tier that is consumed at all also charges its flat amount.
    """
    total = Decimal("0")
    consumed = 0

    for tier in tiers or []:
        if count <= consumed:
            break

        open_ended = tier.inf or not tier.is_bounded
        usage = count - consumed if open_ended else min(count, tier.up_to) - consumed
        total += tier.flat_amount + usage * tier.unit_amount

        if open_ended:
            break
        consumed = tier.up_to

    return total


def calculate_amount(unit: PricingUnit, count: int) -> Decimal:
    """Price one unit for an aggregated usage count."""
    if isinstance(unit, FixedUnit):
        return unit.amount
    if isinstance(unit, UsageUnit):
        return unit.unit_amount * count
    # TieredUsageUnit subclasses TieredUnit, check it first
    if isinstance(unit, TieredUsageUnit):
        return calc_tiered_usage(count, unit.tiers)
    if isinstance(unit, TieredUnit):
        return calc_tiered(count, unit.tiers)
    return Decimal("0")


def plan_has_yearly_unit(plan: PricingPlan) -> bool:
    """True if any unit of the plan recurs yearly. Unknown intervals count as monthly."""
    for _, unit in plan.iter_units():
        interval = getattr(unit, "recurring_interval", RecurringInterval.MONTH)
        if interval == RecurringInterval.YEAR:
            return True
    return False


# ============================================================================
# Engine
# ============================================================================

class RatingEngine:
    """
    Rates pricing plans against metered usage.

    A usage-type unit without a metering unit name is skipped: it produces
    no line item and contributes nothing to the totals.
    """

    def __init__(
        self,
        usage_source: UsageSource,
        config: Optional[BillingConfig] = None,
    ):
        self.usage_source = usage_source
        self.config = config or BillingConfig()

    def plan_has_yearly_unit(self, plan: PricingPlan) -> bool:
        return plan_has_yearly_unit(plan)

    def rate(
        self,
        tenant_id: str,
        period_start: int,
        period_end: int,
        plan: PricingPlan,
        token: Optional[CancellationToken] = None,
    ) -> RatingResult:
        """
        Rate every unit of a plan for [period_start, period_end].

        Raises RemoteLookupError if the usage source fails and
        CancellationRequestedError if the token fires.
        """
        token = token or CancellationToken(self.config.lookup_timeout_seconds)
        token.raise_if_cancelled()

        cache = UsageCache()
        accumulator = CurrencyAccumulator()
        units = self._rateable_units(plan)

        if self.config.usage_lookup_workers > 1:
            self._prefetch_usage(tenant_id, period_start, period_end, units, cache, token)

        line_items: List[RatingLineItem] = []
        for menu, unit in units:
            count = 0
            if isinstance(unit, MeteredUnit):
                count = cache.get_or_compute(
                    unit.metering_unit_name,
                    partial(self._lookup_count, tenant_id, period_start, period_end, unit, token),
                )

            amount = calculate_amount(unit, count)
            currency = unit.currency or self.config.default_currency
            accumulator.add(currency, amount)

            line_items.append(RatingLineItem(
                metering_unit_name=unit.metering_unit_name or "",
                metering_unit_type=unit.unit_type.value,
                function_menu_name=menu.display_name or "",
                period_count=count,
                currency=currency,
                period_amount=amount,
                pricing_unit_display_name=unit.display_name or "",
            ))

        result = RatingResult(line_items=line_items, totals=accumulator.totals())

        logger.info(
            "rating_completed",
            tenant_id=tenant_id,
            plan_id=plan.id,
            period_start=period_start,
            period_end=period_end,
            line_items=len(line_items),
            usage_lookups=cache.lookups,
            currencies=[t.currency for t in result.totals],
        )

        return result

    def _rateable_units(self, plan: PricingPlan) -> List[Tuple[PricingMenu, PricingUnit]]:
        units = []
        for menu, unit in plan.iter_units():
            if unit.unit_type != UnitType.FIXED and not unit.metering_unit_name:
                logger.warning(
                    "plan_unit_skipped",
                    plan_id=plan.id,
                    menu=menu.display_name,
                    unit=unit.display_name,
                    unit_type=unit.unit_type.value,
                    reason="missing_metering_unit_name",
                )
                continue
            units.append((menu, unit))
        return units

    def _lookup_count(
        self,
        tenant_id: str,
        period_start: int,
        period_end: int,
        unit: MeteredUnit,
        token: CancellationToken,
    ) -> int:
        token.raise_if_cancelled()
        counts = fetch_usage(
            self.usage_source,
            tenant_id,
            unit.metering_unit_name,
            period_start,
            period_end,
        )
        return aggregate_usage(counts, unit.aggregate_usage)

    def _prefetch_usage(
        self,
        tenant_id: str,
        period_start: int,
        period_end: int,
        units: List[Tuple[PricingMenu, PricingUnit]],
        cache: UsageCache,
        token: CancellationToken,
    ) -> None:
        """Fan usage lookups out, one per distinct metering unit name."""
        first_by_name: Dict[str, MeteredUnit] = {}
        for _, unit in units:
            if isinstance(unit, MeteredUnit):
                first_by_name.setdefault(unit.metering_unit_name, unit)

        if not first_by_name:
            return

        executor = ThreadPoolExecutor(
            max_workers=min(self.config.usage_lookup_workers, len(first_by_name)),
            thread_name_prefix="usage-lookup",
        )
        pending = {
            executor.submit(
                cache.get_or_compute,
                name,
                partial(self._lookup_count, tenant_id, period_start, period_end, unit, token),
            )
            for name, unit in first_by_name.items()
        }

        try:
            while pending:
                token.raise_if_cancelled()
                timeout = _POLL_INTERVAL_SECONDS
                remaining = token.remaining()
                if remaining is not None:
                    timeout = min(timeout, remaining)
                done, pending = wait(
                    pending,
                    timeout=timeout,
                    return_when=FIRST_EXCEPTION,
                )
                for future in done:
                    future.result()
        except Exception:
            for future in pending:
                future.cancel()
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
