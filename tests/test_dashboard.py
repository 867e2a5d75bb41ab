"""
Tests for Billing Views

Dashboard composition, tax rate matching, plan periods and plan info.
"""

from decimal import Decimal

import pytest

from billing.dashboard import (
    build_billing_dashboard,
    build_plan_periods,
    build_tenant_plan_info,
    find_history_for_period,
)
from billing.errors import RemoteLookupError, TenantNotFoundError
from billing.periods import PeriodSegmenter
from billing.pricing import PlanHistoryEntry, TaxRate, Tenant
from billing.rating import RatingEngine
from billing.sources import InMemoryTaxRateSource, InMemoryTenantSource

from conftest import jst_epoch


@pytest.fixture
def tenant():
    return Tenant(
        id="tenant-1",
        name="Acme",
        plan_id="plan-standard",
        plan_histories=[
            PlanHistoryEntry("plan-monthly", jst_epoch(2023, 11, 1), tax_rate_id="tax-8"),
            PlanHistoryEntry("plan-standard", jst_epoch(2023, 12, 1), tax_rate_id="tax-10"),
        ],
        current_plan_period_end=jst_epoch(2024, 1, 31, 23, 59, 59),
    )


@pytest.fixture
def tenant_source(tenant):
    return InMemoryTenantSource([tenant])


@pytest.fixture
def tax_source():
    return InMemoryTaxRateSource([
        TaxRate(id="tax-8", name="reduced", display_name="8%", percentage=Decimal("8")),
        TaxRate(id="tax-10", name="standard", display_name="10%", percentage=Decimal("10")),
    ])


class TestBillingDashboard:
    """Dashboard payload composition."""

    def test_dashboard_payload(self, usage_source, plan_source, tenant_source, tax_source, period):
        start, end = period

        dashboard = build_billing_dashboard(
            "tenant-1",
            "plan-standard",
            start,
            end,
            RatingEngine(usage_source),
            plan_source,
            tenant_source,
            tax_source,
        )

        assert dashboard["summary"] == {
            "total_by_currency": [
                {"currency": "JPY", "total_amount": Decimal("1365")},
                {"currency": "USD", "total_amount": Decimal("45")},
            ],
            "total_metering_units": 4,
        }
        assert len(dashboard["metering_unit_billings"]) == 4
        assert dashboard["pricing_plan_info"] == {
            "plan_id": "plan-standard",
            "display_name": "Standard",
            "description": "Standard monthly plan",
        }
        assert dashboard["tax_rate"]["id"] == "tax-10"

    def test_no_tax_rate_before_plan_applied(
        self, usage_source, plan_source, tenant_source, tax_source
    ):
        start = jst_epoch(2023, 11, 15)

        dashboard = build_billing_dashboard(
            "tenant-1",
            "plan-standard",
            start,
            start + 86400,
            RatingEngine(usage_source),
            plan_source,
            tenant_source,
            tax_source,
        )

        assert dashboard["tax_rate"] is None

    def test_unknown_tenant(self, usage_source, plan_source, tax_source, period):
        with pytest.raises(TenantNotFoundError):
            build_billing_dashboard(
                "nobody",
                "plan-standard",
                *period,
                RatingEngine(usage_source),
                plan_source,
                InMemoryTenantSource(),
                tax_source,
            )

    def test_tax_source_failure(self, usage_source, plan_source, tenant_source, period):
        class BrokenTaxRates:
            def get_tax_rates(self):
                raise OSError("connection reset")

        with pytest.raises(RemoteLookupError):
            build_billing_dashboard(
                "tenant-1",
                "plan-standard",
                *period,
                RatingEngine(usage_source),
                plan_source,
                tenant_source,
                BrokenTaxRates(),
            )


class TestHistoryMatching:

    def test_latest_matching_entry_wins(self):
        histories = [
            PlanHistoryEntry("p1", 100, tax_rate_id="old"),
            PlanHistoryEntry("p2", 200),
            PlanHistoryEntry("p1", 300, tax_rate_id="new"),
        ]

        assert find_history_for_period(histories, "p1", 350).tax_rate_id == "new"
        assert find_history_for_period(histories, "p1", 250).tax_rate_id == "old"
        assert find_history_for_period(histories, "p1", 50) is None
        assert find_history_for_period(histories, "p3", 500) is None


class TestPlanPeriods:

    def test_periods_from_tenant_history(self, plan_source, tenant_source):
        segments = build_plan_periods("tenant-1", PeriodSegmenter(), plan_source, tenant_source)

        assert [(s.plan_id, s.start) for s in segments] == [
            ("plan-standard", jst_epoch(2024, 1, 1)),
            ("plan-standard", jst_epoch(2023, 12, 1)),
            ("plan-monthly", jst_epoch(2023, 11, 1)),
        ]
        assert segments[0].end == jst_epoch(2024, 1, 31, 23, 59, 59)


class TestTenantPlanInfo:

    def test_plan_info_without_reservation(self, tenant):
        assert build_tenant_plan_info(tenant) == {
            "id": "tenant-1",
            "name": "Acme",
            "plan_id": "plan-standard",
            "tax_rate_id": "tax-10",
            "plan_reservation": None,
        }

    def test_plan_info_with_reservation(self, tenant):
        tenant.next_plan_id = "plan-yearly"
        tenant.using_next_plan_from = jst_epoch(2024, 2, 1)
        tenant.next_plan_tax_rate_id = "tax-10"

        info = build_tenant_plan_info(tenant)

        assert info["plan_reservation"] == {
            "next_plan_id": "plan-yearly",
            "using_next_plan_from": jst_epoch(2024, 2, 1),
            "next_plan_tax_rate_id": "tax-10",
        }

    def test_tax_rate_from_last_recorded_entry(self):
        tenant = Tenant(
            id="t",
            plan_histories=[
                PlanHistoryEntry("p1", 100, tax_rate_id="a"),
                PlanHistoryEntry("p2", 50),
            ],
        )

        assert build_tenant_plan_info(tenant)["tax_rate_id"] is None
