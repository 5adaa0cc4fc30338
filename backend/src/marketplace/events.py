"""
EventBridge publication of finalized moderation outcomes.
"""
import json
import boto3
from decimal import Decimal
from .config import config
from .logging import logger

EVENT_SOURCE = 'marketplace.moderation'

_events_client = None


def get_events_client():
    """Get or create EventBridge client."""
    global _events_client
    if _events_client is None:
        _events_client = boto3.client('events', region_name=config.AWS_REGION)
    return _events_client


def publish_submission_finalized(
    submission_id: str,
    task_id: str,
    worker_id: str,
    status: str,
    payment: Decimal
) -> bool:
    """Send a SubmissionFinalized event. No-op when no bus is configured."""
    if not config.EVENT_BUS_NAME:
        return False

    try:
        get_events_client().put_events(
            Entries=[{
                'Source': EVENT_SOURCE,
                'DetailType': 'SubmissionFinalized',
                'EventBusName': config.EVENT_BUS_NAME,
                'Detail': json.dumps({
                    'submissionId': submission_id,
                    'taskId': task_id,
                    'workerId': worker_id,
                    'status': status,
                    'payment': str(payment)
                })
            }]
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send EventBridge event for {submission_id}: {e}")
        return False
