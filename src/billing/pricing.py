"""
Pricing Plan Value Types

Snapshots of the SaaS pricing API: plans, menus, pricing units and tiers,
plus the tenant-side records (plan history, tax rates) the billing engine
reads. All types are transient and rebuilt per request.

A pricing unit is one of four variants:
- FixedUnit       - flat recurring charge, no usage
- UsageUnit       - unit_amount x aggregated count
- TieredUnit      - whole count priced at the bracket it falls into
- TieredUsageUnit - graduated pricing across brackets
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidPlanDefinitionError

DEFAULT_CURRENCY = "JPY"


class UnitType(Enum):
    """Pricing unit variants."""
    FIXED = "fixed"
    USAGE = "usage"
    TIERED = "tiered"
    TIERED_USAGE = "tiered_usage"


class AggregateUsage(Enum):
    """How daily usage buckets are folded into one count."""
    SUM = "sum"
    MAX = "max"


class RecurringInterval(Enum):
    """Billing interval of a pricing unit."""
    MONTH = "month"
    YEAR = "year"


def to_decimal(value: Any) -> Decimal:
    """Convert an API number to Decimal without going through binary float."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _enum_or_default(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        return default


@dataclass(frozen=True)
class Tier:
    """
    One pricing bracket.

    up_to <= 0 (or absent) means the bracket is unbounded.
    """
    up_to: int = 0
    inf: bool = False
    flat_amount: Decimal = Decimal("0")
    unit_amount: Decimal = Decimal("0")

    @property
    def is_bounded(self) -> bool:
        return self.up_to > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "up_to": self.up_to,
            "inf": self.inf,
            "flat_amount": self.flat_amount,
            "unit_amount": self.unit_amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tier":
        return cls(
            up_to=int(data.get("up_to") or 0),
            inf=bool(data.get("inf", False)),
            flat_amount=to_decimal(data.get("flat_amount")),
            unit_amount=to_decimal(data.get("unit_amount")),
        )


@dataclass(frozen=True)
class PricingUnit:
    """Fields shared by every pricing unit variant."""
    display_name: str = ""
    currency: str = DEFAULT_CURRENCY
    recurring_interval: RecurringInterval = RecurringInterval.MONTH
    metering_unit_name: Optional[str] = None

    unit_type = UnitType.FIXED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.unit_type.value,
            "display_name": self.display_name,
            "currency": self.currency,
            "recurring_interval": self.recurring_interval.value,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PricingUnit":
        """Build the variant named by the payload's ``type`` field."""
        raw_type = data.get("type")
        try:
            unit_type = UnitType(str(raw_type).lower())
        except ValueError:
            raise InvalidPlanDefinitionError(f"Unknown pricing unit type: {raw_type!r}")

        common = {
            "display_name": data.get("display_name") or "",
            "currency": data.get("currency") or DEFAULT_CURRENCY,
            "recurring_interval": _enum_or_default(
                RecurringInterval, data.get("recurring_interval"), RecurringInterval.MONTH
            ),
        }

        if unit_type == UnitType.FIXED:
            return FixedUnit(amount=to_decimal(data.get("unit_amount")), **common)

        metered = dict(
            common,
            metering_unit_name=data.get("metering_unit_name") or None,
            aggregate_usage=_enum_or_default(
                AggregateUsage, data.get("aggregate_usage"), AggregateUsage.SUM
            ),
        )

        if unit_type == UnitType.USAGE:
            return UsageUnit(unit_amount=to_decimal(data.get("unit_amount")), **metered)

        tiers = [Tier.from_dict(t) for t in data.get("tiers") or []]
        if unit_type == UnitType.TIERED:
            return TieredUnit(tiers=tiers, **metered)
        return TieredUsageUnit(tiers=tiers, **metered)


@dataclass(frozen=True)
class FixedUnit(PricingUnit):
    """Flat recurring charge. Never looked up by metering_unit_name."""
    amount: Decimal = Decimal("0")

    unit_type = UnitType.FIXED

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["unit_amount"] = self.amount
        return data


@dataclass(frozen=True)
class MeteredUnit(PricingUnit):
    """A unit whose charge depends on a metering counter."""
    aggregate_usage: AggregateUsage = AggregateUsage.SUM

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["metering_unit_name"] = self.metering_unit_name
        data["aggregate_usage"] = self.aggregate_usage.value
        return data


@dataclass(frozen=True)
class UsageUnit(MeteredUnit):
    unit_amount: Decimal = Decimal("0")

    unit_type = UnitType.USAGE

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["unit_amount"] = self.unit_amount
        return data


@dataclass(frozen=True)
class TieredUnit(MeteredUnit):
    tiers: List[Tier] = field(default_factory=list)

    unit_type = UnitType.TIERED

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["tiers"] = [t.to_dict() for t in self.tiers]
        return data


@dataclass(frozen=True)
class TieredUsageUnit(TieredUnit):
    unit_type = UnitType.TIERED_USAGE


@dataclass
class PricingMenu:
    display_name: str = ""
    units: List[PricingUnit] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingMenu":
        return cls(
            display_name=data.get("display_name") or "",
            units=[PricingUnit.from_dict(u) for u in data.get("units") or []],
        )


@dataclass
class PricingPlan:
    """A pricing plan as returned by the pricing API."""
    id: str
    display_name: str = ""
    description: str = ""
    menus: List[PricingMenu] = field(default_factory=list)

    def iter_units(self):
        """Yield (menu, unit) pairs in plan order."""
        for menu in self.menus or []:
            for unit in menu.units or []:
                yield menu, unit

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingPlan":
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "",
            description=data.get("description") or "",
            menus=[PricingMenu.from_dict(m) for m in data.get("pricing_menus") or []],
        )


@dataclass(frozen=True)
class PlanHistoryEntry:
    """One plan change applied to a tenant."""
    plan_id: str
    plan_applied_at: int
    tax_rate_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanHistoryEntry":
        return cls(
            plan_id=data.get("plan_id") or "",
            plan_applied_at=int(data.get("plan_applied_at") or 0),
            tax_rate_id=data.get("tax_rate_id") or None,
        )


@dataclass
class Tenant:
    """
    Tenant record as far as billing is concerned.

    current_plan_period_end <= 0 means the current plan is open-ended.
    """
    id: str
    name: str = ""
    plan_id: Optional[str] = None
    plan_histories: List[PlanHistoryEntry] = field(default_factory=list)
    current_plan_period_end: int = 0
    next_plan_id: Optional[str] = None
    using_next_plan_from: int = 0
    next_plan_tax_rate_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tenant":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            plan_id=data.get("plan_id") or None,
            plan_histories=[
                PlanHistoryEntry.from_dict(h) for h in data.get("plan_histories") or []
            ],
            current_plan_period_end=int(data.get("current_plan_period_end") or 0),
            next_plan_id=data.get("next_plan_id") or None,
            using_next_plan_from=int(data.get("using_next_plan_from") or 0),
            next_plan_tax_rate_id=data.get("next_plan_tax_rate_id") or None,
        )


@dataclass(frozen=True)
class TaxRate:
    id: str
    name: str = ""
    display_name: str = ""
    percentage: Decimal = Decimal("0")
    inclusive: bool = False
    country: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "percentage": self.percentage,
            "inclusive": self.inclusive,
            "country": self.country,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaxRate":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            display_name=data.get("display_name") or "",
            percentage=to_decimal(data.get("percentage")),
            inclusive=bool(data.get("inclusive", False)),
            country=data.get("country") or "",
            description=data.get("description") or "",
        )
