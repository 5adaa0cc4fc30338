"""
Moderation timeout hook.
Reports submissions that have waited longer than moderationTimeoutHours for a
verdict. It takes no action on them; it only surfaces them in the logs.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from boto3.dynamodb.conditions import Attr
from .config import config
from .dynamo import scan_all
from .logging import logger
from .models import SubmissionStatus
from .settings import PlatformSettings


def find_stale_submissions(settings: PlatformSettings, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=settings.moderation_timeout_hours)
    stale = scan_all(
        config.SUBMISSIONS_TABLE,
        Attr('status').is_in(list(SubmissionStatus.AWAITING_MODERATION))
        & Attr('appealPending').eq(False)
        & Attr('submittedAt').lt(cutoff.isoformat())
    )
    return sorted(stale, key=lambda s: s.get('submittedAt', ''))


def report_moderation_timeouts(settings: PlatformSettings, now: Optional[datetime] = None) -> Dict[str, Any]:
    stale = find_stale_submissions(settings, now)
    for submission in stale:
        logger.warning(
            f"Submission {submission['submissionId']} has been awaiting moderation since "
            f"{submission.get('submittedAt')} ({submission.get('totalVotes', 0)} votes)"
        )
    logger.info(f"Moderation timeout check found {len(stale)} stale submissions")
    return {
        'stale': len(stale),
        'submissionIds': [s['submissionId'] for s in stale]
    }
