"""
Tenant Billing Engine

Usage rating and billing-period segmentation for SaaS tenants:
- RatingEngine prices a plan's units against metered usage, per currency
- PeriodSegmenter turns plan history into month/year billing segments
- Dashboard helpers compose both with plan, tenant and tax-rate sources
"""

from .accumulator import CurrencyAccumulator, CurrencyTotal
from .cancellation import CancellationToken
from .config import BillingConfig
from .dashboard import build_billing_dashboard, build_plan_periods, build_tenant_plan_info
from .errors import (
    BillingError,
    CancellationRequestedError,
    InvalidPlanDefinitionError,
    NotFoundError,
    PlanNotFoundError,
    RemoteLookupError,
    TenantNotFoundError,
)
from .metering import (
    UsageCount,
    UsageSource,
    aggregate_usage,
    record_metering_count,
    update_tenant_plan,
)
from .periods import BillingSegment, PeriodSegmenter, TenantBillingContext
from .pricing import (
    AggregateUsage,
    FixedUnit,
    PlanHistoryEntry,
    PricingMenu,
    PricingPlan,
    PricingUnit,
    RecurringInterval,
    TaxRate,
    Tenant,
    Tier,
    TieredUnit,
    TieredUsageUnit,
    UnitType,
    UsageUnit,
)
from .rating import RatingEngine, RatingLineItem, RatingResult, plan_has_yearly_unit
from .schemas import UpdateMeteringCountRequest, UpdateTenantPlanRequest

__all__ = [
    "CurrencyAccumulator",
    "CurrencyTotal",
    "CancellationToken",
    "BillingConfig",
    "build_billing_dashboard",
    "build_plan_periods",
    "build_tenant_plan_info",
    "BillingError",
    "CancellationRequestedError",
    "InvalidPlanDefinitionError",
    "NotFoundError",
    "PlanNotFoundError",
    "RemoteLookupError",
    "TenantNotFoundError",
    "UsageCount",
    "UsageSource",
    "aggregate_usage",
    "record_metering_count",
    "update_tenant_plan",
    "BillingSegment",
    "PeriodSegmenter",
    "TenantBillingContext",
    "AggregateUsage",
    "FixedUnit",
    "PlanHistoryEntry",
    "PricingMenu",
    "PricingPlan",
    "PricingUnit",
    "RecurringInterval",
    "TaxRate",
    "Tenant",
    "Tier",
    "TieredUnit",
    "TieredUsageUnit",
    "UnitType",
    "UsageUnit",
    "RatingEngine",
    "RatingLineItem",
    "RatingResult",
    "plan_has_yearly_unit",
    "UpdateMeteringCountRequest",
    "UpdateTenantPlanRequest",
]
