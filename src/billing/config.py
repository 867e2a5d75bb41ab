"""
Billing Engine Configuration

Read from the environment by default:
  BILLING_DEFAULT_CURRENCY            - currency for units that carry none (JPY)
  BILLING_REFERENCE_UTC_OFFSET_HOURS  - calendar used for period boundaries (9, JST)
  BILLING_PERIOD_LABEL_FORMAT         - strftime format for period labels
  BILLING_USAGE_LOOKUP_WORKERS        - >1 fans usage lookups out over threads
  BILLING_LOOKUP_TIMEOUT_SECONDS      - per-call deadline for collaborator lookups
"""

import os
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Optional

DEFAULT_LABEL_FORMAT = "%Y-%m-%d %H:%M:%S"
JAPANESE_LABEL_FORMAT = "%Y年%m月%d日 %H:%M:%S"
LABEL_SEPARATOR = " ～ "


@dataclass
class BillingConfig:
    """Configuration for rating and period segmentation."""
    default_currency: str = "JPY"
    reference_utc_offset_hours: int = 9
    label_format: str = DEFAULT_LABEL_FORMAT
    usage_lookup_workers: int = 1
    lookup_timeout_seconds: Optional[float] = None

    @property
    def reference_timezone(self) -> timezone:
        return timezone(timedelta(hours=self.reference_utc_offset_hours))

    @classmethod
    def from_env(cls) -> "BillingConfig":
        timeout = os.environ.get("BILLING_LOOKUP_TIMEOUT_SECONDS")
        return cls(
            default_currency=os.environ.get("BILLING_DEFAULT_CURRENCY", "JPY"),
            reference_utc_offset_hours=int(
                os.environ.get("BILLING_REFERENCE_UTC_OFFSET_HOURS", 9)
            ),
            label_format=os.environ.get("BILLING_PERIOD_LABEL_FORMAT", DEFAULT_LABEL_FORMAT),
            usage_lookup_workers=max(1, int(os.environ.get("BILLING_USAGE_LOOKUP_WORKERS", 1))),
            lookup_timeout_seconds=float(timeout) if timeout else None,
        )
