"""
Billing Views

Composes the rating engine and the period segmenter with the plan, tenant
and tax-rate sources into the payloads the web layer serves:
- billing dashboard for one plan and period
- plan periods (billing segment timeline) for a tenant
- current plan / reservation info for a tenant
"""

from typing import Any, Dict, List, Optional
import structlog

from .cancellation import CancellationToken
from .errors import call_collaborator
from .periods import BillingSegment, PeriodSegmenter, TenantBillingContext
from .pricing import PlanHistoryEntry, TaxRate, Tenant
from .rating import RatingEngine
from .sources import PlanSource, TaxRateSource, TenantSource

logger = structlog.get_logger()


def find_history_for_period(
    histories: List[PlanHistoryEntry],
    plan_id: str,
    period_start: int,
) -> Optional[PlanHistoryEntry]:
    """Latest history entry for plan_id applied at or before period_start."""
    candidates = sorted(histories or [], key=lambda h: h.plan_applied_at, reverse=True)
    for history in candidates:
        if history.plan_id == plan_id and history.plan_applied_at <= period_start:
            return history
    return None


def find_tax_rate(tax_rates: List[TaxRate], tax_rate_id: str) -> Optional[TaxRate]:
    for tax_rate in tax_rates or []:
        if tax_rate.id == tax_rate_id:
            return tax_rate
    return None


def build_billing_dashboard(
    tenant_id: str,
    plan_id: str,
    period_start: int,
    period_end: int,
    engine: RatingEngine,
    plans: PlanSource,
    tenants: TenantSource,
    tax_rates: TaxRateSource,
    token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """
    Dashboard payload: itemized charges, currency totals, plan info and the
    tax rate that applied to the plan at the start of the period.
    """
    plan = call_collaborator("plan_lookup", plans.get_plan, plan_id, plan_id=plan_id)
    tenant = call_collaborator("tenant_lookup", tenants.get_tenant, tenant_id, tenant_id=tenant_id)

    matched_tax: Optional[TaxRate] = None
    history = find_history_for_period(tenant.plan_histories, plan_id, period_start)
    if history is not None and history.tax_rate_id:
        rates = call_collaborator("tax_rate_lookup", tax_rates.get_tax_rates)
        matched_tax = find_tax_rate(rates, history.tax_rate_id)
        if matched_tax is None:
            logger.warning(
                "tax_rate_not_found",
                tenant_id=tenant_id,
                tax_rate_id=history.tax_rate_id,
            )

    result = engine.rate(tenant_id, period_start, period_end, plan, token=token)

    return {
        "summary": {
            "total_by_currency": [t.to_dict() for t in result.totals],
            "total_metering_units": len(result.line_items),
        },
        "metering_unit_billings": [i.to_dict() for i in result.line_items],
        "pricing_plan_info": {
            "plan_id": plan_id,
            "display_name": plan.display_name,
            "description": plan.description,
        },
        "tax_rate": matched_tax.to_dict() if matched_tax else None,
    }


def build_plan_periods(
    tenant_id: str,
    segmenter: PeriodSegmenter,
    plans: PlanSource,
    tenants: TenantSource,
    token: Optional[CancellationToken] = None,
) -> List[BillingSegment]:
    """The tenant's billing segments, most recent first."""
    tenant = call_collaborator("tenant_lookup", tenants.get_tenant, tenant_id, tenant_id=tenant_id)
    return segmenter.segment(
        tenant_id,
        tenant.plan_histories,
        TenantBillingContext(current_plan_period_end=tenant.current_plan_period_end),
        plans.get_plan,
        token=token,
    )


def build_tenant_plan_info(tenant: Tenant) -> Dict[str, Any]:
    """
    Current plan, its tax rate and any pending plan reservation.

    The tax rate comes from the most recently recorded history entry.
    """
    tax_rate_id = None
    if tenant.plan_histories:
        latest = tenant.plan_histories[-1]
        if latest.tax_rate_id:
            tax_rate_id = latest.tax_rate_id

    reservation = None
    if tenant.using_next_plan_from > 0:
        reservation = {
            "next_plan_id": tenant.next_plan_id,
            "using_next_plan_from": tenant.using_next_plan_from,
            "next_plan_tax_rate_id": tenant.next_plan_tax_rate_id,
        }

    return {
        "id": tenant.id,
        "name": tenant.name,
        "plan_id": tenant.plan_id,
        "tax_rate_id": tax_rate_id,
        "plan_reservation": reservation,
    }
