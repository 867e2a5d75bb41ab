"""
Data Source Collaborators

Read-only accessors for plans, tenants and tax rates, plus in-memory
implementations of every collaborator. The in-memory sources back the CLI
(loaded from a JSON snapshot) and the tests.

Snapshot layout:
    {
      "plans": [<pricing plan>, ...],
      "tenants": [<tenant>, ...],
      "tax_rates": [<tax rate>, ...],
      "usage": [{"tenant_id", "metering_unit_name", "timestamp", "count"}, ...]
    }
"""

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol, Union
import structlog

from .errors import PlanNotFoundError, TenantNotFoundError
from .metering import UsageCount
from .pricing import PricingPlan, TaxRate, Tenant

logger = structlog.get_logger()


class PlanSource(Protocol):
    def get_plan(self, plan_id: str) -> PricingPlan: ...


class TenantSource(Protocol):
    def get_tenant(self, tenant_id: str) -> Tenant: ...


class TaxRateSource(Protocol):
    def get_tax_rates(self) -> List[TaxRate]: ...


class InMemoryPlanSource:
    def __init__(self, plans: Optional[List[PricingPlan]] = None):
        self._plans: Dict[str, PricingPlan] = {p.id: p for p in plans or []}
        self.calls: List[str] = []

    def add(self, plan: PricingPlan) -> None:
        self._plans[plan.id] = plan

    def get_plan(self, plan_id: str) -> PricingPlan:
        self.calls.append(plan_id)
        plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan


class InMemoryTenantSource:
    def __init__(self, tenants: Optional[List[Tenant]] = None):
        self._tenants: Dict[str, Tenant] = {t.id: t for t in tenants or []}
        self._lock = Lock()

    def add(self, tenant: Tenant) -> None:
        self._tenants[tenant.id] = tenant

    def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def update_tenant_plan(self, tenant_id: str, reservation: Dict[str, Any]) -> Tenant:
        """
        Store a next-plan reservation.

        A reservation without next_plan_id cancels the existing one.
        """
        with self._lock:
            tenant = self.get_tenant(tenant_id)
            if reservation.get("next_plan_id"):
                updated = replace(
                    tenant,
                    next_plan_id=reservation["next_plan_id"],
                    next_plan_tax_rate_id=reservation.get("next_plan_tax_rate_id"),
                    using_next_plan_from=int(reservation.get("using_next_plan_from") or 0),
                )
            else:
                updated = replace(
                    tenant,
                    next_plan_id=None,
                    next_plan_tax_rate_id=None,
                    using_next_plan_from=0,
                )
            self._tenants[tenant_id] = updated
        return updated


class InMemoryTaxRateSource:
    def __init__(self, tax_rates: Optional[List[TaxRate]] = None):
        self._tax_rates = list(tax_rates or [])

    def get_tax_rates(self) -> List[TaxRate]:
        return list(self._tax_rates)


@dataclass
class _UsageSample:
    timestamp: int
    count: int


class InMemoryUsageSource:
    """
    Metering counters held in memory.

    Samples are bucketed by calendar day in the given timezone, the way the
    pricing API reports date counts. Also accepts counter updates.
    """

    def __init__(self, tz: timezone = timezone.utc):
        self.tz = tz
        self._samples: Dict[tuple, List[_UsageSample]] = {}
        self._lock = Lock()
        self.calls: List[tuple] = []

    def add(self, tenant_id: str, metering_unit_name: str, timestamp: int, count: int) -> None:
        with self._lock:
            self._samples.setdefault((tenant_id, metering_unit_name), []).append(
                _UsageSample(timestamp=timestamp, count=count)
            )

    def get_usage_counts(
        self,
        tenant_id: str,
        metering_unit_name: str,
        period_start: int,
        period_end: int,
    ) -> List[UsageCount]:
        with self._lock:
            self.calls.append((tenant_id, metering_unit_name, period_start, period_end))
            samples = list(self._samples.get((tenant_id, metering_unit_name), []))

        buckets: Dict[str, int] = {}
        for sample in samples:
            if period_start <= sample.timestamp <= period_end:
                day = datetime.fromtimestamp(sample.timestamp, self.tz).strftime("%Y-%m-%d")
                buckets[day] = buckets.get(day, 0) + sample.count

        return [UsageCount(date_bucket=day, count=count) for day, count in sorted(buckets.items())]

    def update_metering_count(
        self,
        tenant_id: str,
        metering_unit_name: str,
        timestamp: int,
        method: str,
        count: int,
    ) -> Dict[str, Any]:
        """Apply add/sub/direct to the counter at one timestamp."""
        with self._lock:
            samples = self._samples.setdefault((tenant_id, metering_unit_name), [])
            current = sum(s.count for s in samples if s.timestamp == timestamp)

            if method == "add":
                new_value = current + count
            elif method == "sub":
                new_value = current - count
            elif method == "direct":
                new_value = count
            else:
                raise ValueError(f"Unknown update method: {method}")

            samples[:] = [s for s in samples if s.timestamp != timestamp]
            samples.append(_UsageSample(timestamp=timestamp, count=new_value))

        return {
            "metering_unit_name": metering_unit_name,
            "timestamp": timestamp,
            "count": new_value,
        }


@dataclass
class Snapshot:
    """All collaborators loaded from one snapshot document."""
    plans: InMemoryPlanSource
    tenants: InMemoryTenantSource
    tax_rates: InMemoryTaxRateSource
    usage: InMemoryUsageSource

    @classmethod
    def from_dict(cls, data: Dict[str, Any], tz: timezone = timezone.utc) -> "Snapshot":
        usage = InMemoryUsageSource(tz=tz)
        for sample in data.get("usage") or []:
            usage.add(
                sample["tenant_id"],
                sample["metering_unit_name"],
                int(sample["timestamp"]),
                int(sample["count"]),
            )

        return cls(
            plans=InMemoryPlanSource([PricingPlan.from_dict(p) for p in data.get("plans") or []]),
            tenants=InMemoryTenantSource([Tenant.from_dict(t) for t in data.get("tenants") or []]),
            tax_rates=InMemoryTaxRateSource([TaxRate.from_dict(t) for t in data.get("tax_rates") or []]),
            usage=usage,
        )


def load_snapshot(path: Union[str, Path], tz: timezone = timezone.utc) -> Snapshot:
    """Load collaborators from a JSON snapshot file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    snapshot = Snapshot.from_dict(data, tz=tz)
    logger.debug("snapshot_loaded", path=str(path))
    return snapshot
