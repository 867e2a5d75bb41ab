"""
Billing Period Segmentation

Turns a tenant's plan history into the list of billing periods the tenant
has been on. Each history entry covers the time until the next entry
(the last one until the current plan period end, or now), and that span
is cut into month or year steps in the reference timezone's calendar.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import structlog
from dateutil.relativedelta import relativedelta

from .cancellation import CancellationToken
from .config import LABEL_SEPARATOR, BillingConfig
from .errors import call_collaborator
from .pricing import PlanHistoryEntry, PricingPlan
from .rating import plan_has_yearly_unit

logger = structlog.get_logger()

PlanLookup = Callable[[str], PricingPlan]

_ONE_SECOND = timedelta(seconds=1)


@dataclass(frozen=True)
class TenantBillingContext:
    """current_plan_period_end <= 0 leaves the last period open until now."""
    current_plan_period_end: int = 0


@dataclass(frozen=True)
class BillingSegment:
    label: str
    plan_id: str
    start: int
    end: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "plan_id": self.plan_id,
            "start": self.start,
            "end": self.end,
        }


class PeriodSegmenter:
    """
    Builds billing segments from plan history.

    Segments never cross a plan change, never have zero or negative length,
    and are returned most recent first.
    """

    def __init__(
        self,
        config: Optional[BillingConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or BillingConfig()
        self.clock = clock or time.time

    def segment(
        self,
        tenant_id: str,
        plan_history: List[PlanHistoryEntry],
        context: TenantBillingContext,
        plan_lookup: PlanLookup,
        token: Optional[CancellationToken] = None,
    ) -> List[BillingSegment]:
        token = token or CancellationToken(self.config.lookup_timeout_seconds)

        entries = sorted(plan_history or [], key=lambda h: h.plan_applied_at)
        if not entries:
            return []

        if context.current_plan_period_end and context.current_plan_period_end > 0:
            final_boundary = context.current_plan_period_end
        else:
            final_boundary = int(self.clock())

        segments: List[BillingSegment] = []
        for i, entry in enumerate(entries):
            if not entry.plan_id:
                continue

            token.raise_if_cancelled()
            plan = self._lookup_plan(plan_lookup, entry.plan_id)

            start_epoch = max(entry.plan_applied_at, 0)
            if i + 1 < len(entries):
                end_epoch = max(entries[i + 1].plan_applied_at, 0) - 1
            else:
                end_epoch = final_boundary

            segments.extend(self._split(
                entry.plan_id,
                start_epoch,
                end_epoch,
                yearly=plan_has_yearly_unit(plan),
            ))

        segments.sort(key=lambda s: s.start, reverse=True)

        logger.info(
            "segments_built",
            tenant_id=tenant_id,
            history_entries=len(entries),
            segments=len(segments),
        )

        return segments

    def _lookup_plan(self, plan_lookup: PlanLookup, plan_id: str) -> PricingPlan:
        return call_collaborator("plan_lookup", plan_lookup, plan_id, plan_id=plan_id)

    def _split(
        self,
        plan_id: str,
        start_epoch: int,
        end_epoch: int,
        yearly: bool,
    ) -> List[BillingSegment]:
        """Cut [start_epoch, end_epoch] into calendar steps in the reference timezone."""
        tz = self.config.reference_timezone
        period_start = datetime.fromtimestamp(start_epoch, tz)
        period_end = datetime.fromtimestamp(end_epoch, tz)
        step = relativedelta(years=1) if yearly else relativedelta(months=1)

        segments = []
        current = period_start
        while current <= period_end:
            seg_end = current + step - _ONE_SECOND
            if seg_end > period_end:
                seg_end = period_end
            if seg_end <= current:
                break

            segments.append(BillingSegment(
                label=self._label(current, seg_end),
                plan_id=plan_id,
                start=int(current.timestamp()),
                end=int(seg_end.timestamp()),
            ))

            if seg_end == period_end:
                break
            current = seg_end + _ONE_SECOND

        return segments

    def _label(self, start: datetime, end: datetime) -> str:
        fmt = self.config.label_format
        return f"{start.strftime(fmt)}{LABEL_SEPARATOR}{end.strftime(fmt)}"
