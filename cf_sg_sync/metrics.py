"""Publishes sync results to CloudWatch."""

import logging
from typing import Dict

from cf_sg_sync.cidr import AddressFamily
from cf_sg_sync.reconciler import ReconcileResult

logger = logging.getLogger(__name__)


def publish_metrics(
    cloudwatch,
    namespace: str,
    group_id: str,
    results: Dict[AddressFamily, ReconcileResult],
    success: bool
) -> None:
    """
    Publish per-family change counts and the overall outcome.

    Failures are logged and otherwise ignored; metrics never fail a run.
    """
    group_dimension = {'Name': 'SecurityGroupId', 'Value': group_id}
    metrics = []

    for family, result in results.items():
        dimensions = [group_dimension, {'Name': 'AddressFamily', 'Value': family.label}]
        metrics.append({
            'MetricName': 'RangesAdded',
            'Dimensions': dimensions,
            'Value': len(result.added),
            'Unit': 'Count'
        })
        metrics.append({
            'MetricName': 'RangesRemoved',
            'Dimensions': dimensions,
            'Value': len(result.removed),
            'Unit': 'Count'
        })

    metrics.append({
        'MetricName': 'SyncSuccess',
        'Dimensions': [group_dimension],
        'Value': 1 if success else 0,
        'Unit': 'Count'
    })

    try:
        cloudwatch.put_metric_data(Namespace=namespace, MetricData=metrics)
    except Exception as e:
        logger.error(f"Failed to publish metrics: {e}")
