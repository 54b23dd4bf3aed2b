"""
Lambda entry point.

Schedule it with an EventBridge rule; each invocation is one sync pass.
Configuration comes from the function's environment variables. The event
may carry {"dry_run": true} to only log the planned changes.
"""

import json
import logging
from dataclasses import replace

from cf_sg_sync.config import SyncConfig
from cf_sg_sync.errors import SyncError
from cf_sg_sync.main import run

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)


def lambda_handler(event, context):
    event = event or {}

    try:
        config = SyncConfig.from_env()
        logger.setLevel(getattr(logging, config.log_level, logging.INFO))
        if event.get('dry_run'):
            config = replace(config, dry_run=True)

        results = run(config)
    except SyncError as e:
        logger.error(f"Sync failed: {e}")
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Security group sync failed',
                'error': str(e)
            })
        }
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Internal error',
                'error': str(e)
            })
        }

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Security group sync completed',
            'security_group_id': config.security_group_id,
            'results': [result.summary() for result in results.values()]
        })
    }
