"""
Billing Error Taxonomy

Callers distinguish failures by type:
- InvalidPlanDefinitionError - a plan payload cannot be interpreted
- RemoteLookupError          - a collaborator (usage/plan/tenant/tax) failed; retryable
- NotFoundError              - a referenced record does not exist
- CancellationRequestedError - the caller cancelled or the deadline passed
"""

from typing import Any, Callable, Dict, Optional, TypeVar
import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class BillingError(Exception):
    """Base class for billing engine failures."""
    pass


class InvalidPlanDefinitionError(BillingError):
    """Raised when a pricing plan payload is malformed."""
    pass


class RemoteLookupError(BillingError):
    """
    Raised when an upstream data source fails.

    Carries the upstream status/code where the collaborator reported one.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "status": self.status,
            "code": self.code,
            "retryable": self.retryable,
        }


class NotFoundError(BillingError):
    """Raised when a referenced record does not exist."""
    pass


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_id: str):
        super().__init__(f"Pricing plan not found: {plan_id}")
        self.plan_id = plan_id


class TenantNotFoundError(NotFoundError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class CancellationRequestedError(BillingError):
    """Raised when a call is cancelled or runs past its deadline."""
    pass


def call_collaborator(operation: str, fn: Callable[..., T], *args: Any, **context: Any) -> T:
    """
    Invoke an external collaborator.

    BillingErrors raised by the collaborator pass through unchanged; any other
    exception is logged and re-raised as RemoteLookupError.
    """
    try:
        return fn(*args)
    except BillingError:
        raise
    except Exception as e:
        logger.error(f"{operation}_failed", error=str(e), **context)
        raise RemoteLookupError(
            f"{operation} failed: {e}",
            status=getattr(e, "status", None),
            code=getattr(e, "code", None),
        ) from e
