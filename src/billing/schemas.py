"""
Request Schemas

Pydantic models for the write-side requests that accompany the billing
views: metering counter updates and plan reservations.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class UpdateMeteringCountRequest(BaseModel):
    """Update a metering counter."""
    method: Literal["add", "sub", "direct"] = Field(
        ..., description="add, sub or direct (overwrite)"
    )
    count: int = Field(..., ge=0, description="Count to apply")


class UpdateTenantPlanRequest(BaseModel):
    """Reserve (or cancel) the tenant's next plan."""
    next_plan_id: Optional[str] = Field(None, description="Empty to cancel the reservation")
    tax_rate_id: Optional[str] = None
    using_next_plan_from: Optional[int] = Field(None, description="Epoch seconds")

    def to_reservation(self) -> Dict[str, Any]:
        """Only the fields that were actually provided."""
        reservation: Dict[str, Any] = {}
        if self.next_plan_id:
            reservation["next_plan_id"] = self.next_plan_id
        if self.tax_rate_id:
            reservation["next_plan_tax_rate_id"] = self.tax_rate_id
        if self.using_next_plan_from and self.using_next_plan_from > 0:
            reservation["using_next_plan_from"] = self.using_next_plan_from
        return reservation
