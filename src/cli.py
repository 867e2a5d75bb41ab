"""
Tenant Billing CLI

Commands (all read a JSON snapshot of plans, tenants, tax rates and usage):
  rate       - Rate a plan for a tenant and period (billing dashboard)
  periods    - List a tenant's billing periods, most recent first
  plan-info  - Show a tenant's current plan and reservation
"""

import argparse
import json
import sys
from decimal import Decimal
import structlog

from billing.config import BillingConfig, JAPANESE_LABEL_FORMAT
from billing.dashboard import build_billing_dashboard, build_plan_periods, build_tenant_plan_info
from billing.errors import BillingError
from billing.periods import PeriodSegmenter
from billing.rating import RatingEngine
from billing.sources import load_snapshot


def _configure_logging():
    """Send structured logs to stderr so stdout stays valid JSON."""
    structlog.configure(
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default))


def _load(args, config):
    return load_snapshot(args.snapshot, tz=config.reference_timezone)


def cmd_rate(args, config):
    """Rate a plan for a tenant and period."""
    snapshot = _load(args, config)
    engine = RatingEngine(snapshot.usage, config)

    dashboard = build_billing_dashboard(
        args.tenant,
        args.plan,
        args.start,
        args.end,
        engine,
        snapshot.plans,
        snapshot.tenants,
        snapshot.tax_rates,
    )
    _print_json(dashboard)


def cmd_periods(args, config):
    """List billing periods for a tenant."""
    snapshot = _load(args, config)
    segmenter = PeriodSegmenter(config)

    segments = build_plan_periods(args.tenant, segmenter, snapshot.plans, snapshot.tenants)
    _print_json([s.to_dict() for s in segments])


def cmd_plan_info(args, config):
    """Show current plan info for a tenant."""
    snapshot = _load(args, config)
    tenant = snapshot.tenants.get_tenant(args.tenant)
    _print_json(build_tenant_plan_info(tenant))


def build_parser():
    parser = argparse.ArgumentParser(
        description="Tenant Billing - usage rating and billing periods",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--workers", type=int, help="Parallel usage lookups")
    parser.add_argument("--japanese-labels", action="store_true", help="Label periods as YYYY年MM月DD日")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # rate
    rate_parser = subparsers.add_parser("rate", help="Rate a plan for a period")
    rate_parser.add_argument("--snapshot", required=True, help="Snapshot JSON file")
    rate_parser.add_argument("--tenant", required=True, help="Tenant ID")
    rate_parser.add_argument("--plan", required=True, help="Pricing plan ID")
    rate_parser.add_argument("--start", type=int, required=True, help="Period start (epoch seconds)")
    rate_parser.add_argument("--end", type=int, required=True, help="Period end (epoch seconds)")

    # periods
    periods_parser = subparsers.add_parser("periods", help="List billing periods")
    periods_parser.add_argument("--snapshot", required=True, help="Snapshot JSON file")
    periods_parser.add_argument("--tenant", required=True, help="Tenant ID")

    # plan-info
    info_parser = subparsers.add_parser("plan-info", help="Show tenant plan info")
    info_parser.add_argument("--snapshot", required=True, help="Snapshot JSON file")
    info_parser.add_argument("--tenant", required=True, help="Tenant ID")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging()

    config = BillingConfig.from_env()
    if args.workers:
        config.usage_lookup_workers = max(1, args.workers)
    if args.japanese_labels:
        config.label_format = JAPANESE_LABEL_FORMAT

    commands = {
        "rate": cmd_rate,
        "periods": cmd_periods,
        "plan-info": cmd_plan_info,
    }

    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        command(args, config)
    except BillingError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
