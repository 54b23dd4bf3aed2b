"""
Command line entry point.

Usage:
    AWS_SECURITY_GROUP_ID=sg-0123456789abcdef0 cf-sg-sync [--dry-run]

Exits 0 once both address families are converged, 1 on any fatal error.
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Dict, List, Optional

from cf_sg_sync.cidr import AddressFamily
from cf_sg_sync.config import SyncConfig
from cf_sg_sync.errors import SyncError
from cf_sg_sync.metrics import publish_metrics
from cf_sg_sync.provider import build_http_client, fetch_cloudflare_ranges
from cf_sg_sync.reconciler import Reconciler, ReconcileResult
from cf_sg_sync.security_group import (
    SecurityGroupClient,
    create_cloudwatch_client,
    create_ec2_client,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout
    )


def run(config: SyncConfig, ec2=None, http=None, cloudwatch=None) -> Dict[AddressFamily, ReconcileResult]:
    """
    One reconciliation pass: fetch the desired ranges, then converge IPv4
    and IPv6 in turn.

    Raises:
        SyncError: on any fatal condition. No EC2 call is made if the
            provider fetch fails.
    """
    logger.info(f"Starting sync of security group {config.security_group_id}")
    if config.metrics_namespace and cloudwatch is None:
        cloudwatch = create_cloudwatch_client(config)

    results = {}
    try:
        if http is None:
            http = build_http_client(config.timeout_seconds)
        desired = fetch_cloudflare_ranges(http, config.provider_url)

        if ec2 is None:
            ec2 = create_ec2_client(config)
        reconciler = Reconciler(
            SecurityGroupClient(ec2, config.security_group_id),
            ports=config.ports,
            description=config.rule_description,
            dry_run=config.dry_run
        )
        reconciler.reconcile_all(desired, results)
    except SyncError:
        if config.metrics_namespace:
            publish_metrics(cloudwatch, config.metrics_namespace, config.security_group_id, results, False)
        raise

    if config.metrics_namespace and not config.dry_run:
        publish_metrics(cloudwatch, config.metrics_namespace, config.security_group_id, results, True)

    changed = sum(len(r.added) + len(r.removed) for r in results.values())
    if config.dry_run:
        logger.info(f"Dry run complete, {changed} changes planned")
    else:
        logger.info(f"Security group rules updated successfully ({changed} changes)")
    return results


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='cf-sg-sync',
        description='Sync an EC2 security group with the Cloudflare IP ranges.'
    )
    parser.add_argument('--dry-run', action='store_true',
                        help='log the planned changes without applying them')
    parser.add_argument('--log-level', default=None,
                        help='logging level (default: LOG_LEVEL or INFO)')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = SyncConfig.from_env()
    except SyncError as e:
        setup_logging(args.log_level or 'INFO')
        logger.error(str(e))
        return 1

    setup_logging(args.log_level or config.log_level)
    if args.dry_run:
        config = replace(config, dry_run=True)

    try:
        run(config)
    except SyncError as e:
        logger.error(f"Sync aborted: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
