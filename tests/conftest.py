"""
Pytest Configuration and Fixtures
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
import structlog

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from billing.config import BillingConfig
from billing.pricing import PricingPlan
from billing.sources import InMemoryPlanSource, InMemoryUsageSource

JST = timezone(timedelta(hours=9))


def jst_epoch(*args) -> int:
    """Epoch seconds for a wall-clock time in JST."""
    return int(datetime(*args, tzinfo=JST).timestamp())


@pytest.fixture(autouse=True)
def reset_structlog():
    """The CLI reconfigures structlog; undo it between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config():
    return BillingConfig()


@pytest.fixture
def sample_tiers():
    """Two brackets: up to 10 units, then everything above."""
    return [
        {"up_to": 10, "inf": False, "flat_amount": 100, "unit_amount": 5},
        {"up_to": 0, "inf": True, "flat_amount": 0, "unit_amount": 3},
    ]


@pytest.fixture
def sample_plan_dict(sample_tiers):
    """Pricing plan as returned by the pricing API."""
    return {
        "id": "plan-standard",
        "display_name": "Standard",
        "description": "Standard monthly plan",
        "pricing_menus": [
            {
                "display_name": "Base",
                "units": [
                    {
                        "type": "fixed",
                        "display_name": "Base fee",
                        "unit_amount": 1000,
                        "currency": "JPY",
                        "recurring_interval": "month",
                    },
                ],
            },
            {
                "display_name": "API",
                "units": [
                    {
                        "type": "usage",
                        "display_name": "API calls",
                        "metering_unit_name": "api_calls",
                        "unit_amount": 2,
                        "aggregate_usage": "sum",
                        "currency": "JPY",
                        "recurring_interval": "month",
                    },
                    {
                        "type": "tiered",
                        "display_name": "Seats",
                        "metering_unit_name": "seats",
                        "aggregate_usage": "max",
                        "currency": "USD",
                        "recurring_interval": "month",
                        "tiers": sample_tiers,
                    },
                    {
                        "type": "tiered_usage",
                        "display_name": "Storage",
                        "metering_unit_name": "storage_gb",
                        "aggregate_usage": "sum",
                        "currency": "JPY",
                        "recurring_interval": "month",
                        "tiers": sample_tiers,
                    },
                ],
            },
        ],
    }


@pytest.fixture
def sample_plan(sample_plan_dict):
    return PricingPlan.from_dict(sample_plan_dict)


@pytest.fixture
def yearly_plan():
    return PricingPlan.from_dict({
        "id": "plan-yearly",
        "display_name": "Annual",
        "pricing_menus": [
            {
                "display_name": "Base",
                "units": [
                    {
                        "type": "fixed",
                        "display_name": "Annual fee",
                        "unit_amount": 120000,
                        "currency": "JPY",
                        "recurring_interval": "year",
                    },
                ],
            },
        ],
    })


@pytest.fixture
def monthly_plan():
    return PricingPlan.from_dict({
        "id": "plan-monthly",
        "display_name": "Monthly",
        "pricing_menus": [
            {
                "display_name": "Base",
                "units": [
                    {
                        "type": "fixed",
                        "display_name": "Monthly fee",
                        "unit_amount": 10000,
                        "currency": "JPY",
                        "recurring_interval": "month",
                    },
                ],
            },
        ],
    })


@pytest.fixture
def plan_source(sample_plan, monthly_plan, yearly_plan):
    return InMemoryPlanSource([sample_plan, monthly_plan, yearly_plan])


@pytest.fixture
def period():
    """January 2024 in JST."""
    return jst_epoch(2024, 1, 1), jst_epoch(2024, 1, 31, 23, 59, 59)


@pytest.fixture
def usage_source(period):
    """Usage for tenant-1 spread over a few January days."""
    start, _ = period
    source = InMemoryUsageSource(tz=JST)
    day = 86400
    source.add("tenant-1", "api_calls", start + 3600, 40)
    source.add("tenant-1", "api_calls", start + day + 3600, 60)
    source.add("tenant-1", "seats", start + 3600, 4)
    source.add("tenant-1", "seats", start + 2 * day, 15)
    source.add("tenant-1", "storage_gb", start + 5 * day, 15)
    # Outside the period
    source.add("tenant-1", "api_calls", start - 10, 999)
    return source
