"""
Metering Counters

Usage counts come from the pricing API's metering endpoints as daily
buckets per (tenant, metering unit). This module folds those buckets into
the single count a pricing unit is rated on, and caches the result per
metering unit name for the duration of one rating call. The write side
(counter updates and next-plan reservations) is forwarded to collaborators.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Protocol
import structlog

from .errors import call_collaborator
from .pricing import AggregateUsage, Tenant
from .schemas import UpdateMeteringCountRequest, UpdateTenantPlanRequest

logger = structlog.get_logger()


@dataclass(frozen=True)
class UsageCount:
    """A raw metering sample: the count recorded for one date bucket."""
    date_bucket: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date_bucket, "count": self.count}


class UsageSource(Protocol):
    """Read access to metering counters."""

    def get_usage_counts(
        self,
        tenant_id: str,
        metering_unit_name: str,
        period_start: int,
        period_end: int,
    ) -> List[UsageCount]: ...


class MeteringWriter(Protocol):
    """Write access to metering counters."""

    def update_metering_count(
        self,
        tenant_id: str,
        metering_unit_name: str,
        timestamp: int,
        method: str,
        count: int,
    ) -> Dict[str, Any]: ...


class TenantWriter(Protocol):
    """Write access to a tenant's next-plan reservation."""

    def update_tenant_plan(self, tenant_id: str, reservation: Dict[str, Any]) -> Tenant: ...


def aggregate_usage(counts: List[UsageCount], aggregation: AggregateUsage) -> int:
    """
    Fold daily buckets into one count.

    No buckets means no usage: both SUM and MAX yield 0.
    """
    if not counts:
        return 0
    if aggregation == AggregateUsage.MAX:
        return max(c.count for c in counts)
    return sum(c.count for c in counts)


def fetch_usage(
    source: UsageSource,
    tenant_id: str,
    metering_unit_name: str,
    period_start: int,
    period_end: int,
) -> List[UsageCount]:
    """
    Query the usage source.

    Collaborator failures surface as RemoteLookupError; billing errors
    raised by the source pass through unchanged.
    """
    counts = call_collaborator(
        "usage_lookup",
        source.get_usage_counts,
        tenant_id,
        metering_unit_name,
        period_start,
        period_end,
        tenant_id=tenant_id,
        metering_unit_name=metering_unit_name,
    )

    logger.debug(
        "usage_lookup",
        tenant_id=tenant_id,
        metering_unit_name=metering_unit_name,
        buckets=len(counts or []),
    )
    return list(counts or [])


class UsageCache:
    """
    Write-once-per-key map of metering unit name -> aggregated count.

    Concurrent computations for the same key may both run; the first
    stored value wins and is returned to every caller.
    """

    def __init__(self):
        self._values: Dict[str, int] = {}
        self._lock = Lock()
        self.lookups = 0

    def get_or_compute(self, name: str, compute: Callable[[], int]) -> int:
        with self._lock:
            if name in self._values:
                return self._values[name]

        value = compute()

        with self._lock:
            self.lookups += 1
            return self._values.setdefault(name, value)


def record_metering_count(
    writer: MeteringWriter,
    tenant_id: str,
    metering_unit_name: str,
    request: UpdateMeteringCountRequest,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Apply an add/sub/direct update to a metering counter.

    Without an explicit timestamp the current UTC time is used.
    """
    if timestamp is None:
        timestamp = int(datetime.now(timezone.utc).timestamp())

    result = call_collaborator(
        "metering_update",
        writer.update_metering_count,
        tenant_id,
        metering_unit_name,
        timestamp,
        request.method,
        request.count,
        tenant_id=tenant_id,
        metering_unit_name=metering_unit_name,
    )

    logger.info(
        "metering_count_updated",
        tenant_id=tenant_id,
        metering_unit_name=metering_unit_name,
        timestamp=timestamp,
        method=request.method,
        count=request.count,
    )
    return result


def update_tenant_plan(
    writer: TenantWriter,
    tenant_id: str,
    request: UpdateTenantPlanRequest,
) -> Tenant:
    """
    Reserve the tenant's next plan, or cancel the reservation.

    An empty next_plan_id in the request clears any existing reservation.
    """
    reservation = request.to_reservation()

    tenant = call_collaborator(
        "tenant_plan_update",
        writer.update_tenant_plan,
        tenant_id,
        reservation,
        tenant_id=tenant_id,
    )

    logger.info(
        "tenant_plan_updated",
        tenant_id=tenant_id,
        next_plan_id=reservation.get("next_plan_id"),
        using_next_plan_from=reservation.get("using_next_plan_from"),
        cancelled="next_plan_id" not in reservation,
    )
    return tenant
