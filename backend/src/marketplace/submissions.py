"""
Submission intake.
Creates submissions in PendingModeration and attaches optional bonus content
before moderation resolves them.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from botocore.exceptions import ClientError
from .config import config
from .dynamo import get_item, put_action, transact_write, table
from .errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from .logging import logger
from .models import AccountStatus, SubmissionStatus
from .tasks import require_task, task_delta_action
from .users import require_user


def get_submission(submission_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.SUBMISSIONS_TABLE, {'submissionId': submission_id})


def require_submission(submission_id: str) -> Dict[str, Any]:
    submission = get_submission(submission_id)
    if not submission:
        raise NotFoundError('Submission not found', {'submissionId': submission_id})
    return submission


def require_owner(submission: Dict[str, Any], worker_id: str) -> None:
    if submission.get('workerId') != worker_id:
        raise ForbiddenError('This submission does not belong to you')


def new_submission_item(
    submission_id: str,
    task_id: str,
    worker_id: str,
    content: str,
    now: datetime
) -> Dict[str, Any]:
    return {
        'submissionId': submission_id,
        'taskId': task_id,
        'workerId': worker_id,
        'content': content,
        'status': SubmissionStatus.PENDING_MODERATION,
        'totalVotes': 0,
        'approveVotes': 0,
        'rejectVotes': 0,
        'needsAdditionalVotes': False,
        'isBonusSubmission': False,
        'appealPending': False,
        'basePaymentAwarded': False,
        'bonusPaymentAwarded': False,
        'totalPayment': Decimal('0'),
        'submittedAt': now.isoformat(),
        'tallyVersion': 0
    }


def create_submission(task_id: str, worker_id: str, content: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Record a worker's attempt at a task, ready for moderation.

    Raises:
        NotFoundError: Unknown task or worker
        ForbiddenError: Worker account is not active
    """
    worker = require_user(worker_id)
    if worker.get('accountStatus') != AccountStatus.ACTIVE:
        raise ForbiddenError('Only active accounts can submit work')
    require_task(task_id)

    now = now or datetime.now(timezone.utc)
    submission_id = str(uuid.uuid4())
    item = new_submission_item(submission_id, task_id, worker_id, content, now)

    transact_write([
        put_action(config.SUBMISSIONS_TABLE, item, condition='attribute_not_exists(submissionId)'),
        task_delta_action(task_id, {'completedCount': 1}),
    ])
    logger.info(f"Submission {submission_id} created for task {task_id} by worker {worker_id}")
    return item


def attach_bonus(submission_id: str, worker_id: str, bonus_content: str) -> Dict[str, Any]:
    """
    Attach bonus content to a submission still awaiting moderation, so an
    approval pays the task's base and bonus amounts together.
    """
    submission = require_submission(submission_id)
    require_owner(submission, worker_id)

    if submission.get('status') not in SubmissionStatus.AWAITING_MODERATION or submission.get('appealPending'):
        raise InvalidStateError('Bonus content can only be added while the submission awaits moderation')
    if submission.get('isBonusSubmission'):
        raise ConflictError('Bonus submission already exists for this task')

    try:
        response = table(config.SUBMISSIONS_TABLE).update_item(
            Key={'submissionId': submission_id},
            UpdateExpression='SET isBonusSubmission = :true, bonusContent = :content, bonusSubmittedAt = :ts',
            ConditionExpression=(
                '(#status = :pending OR #status = :review) AND isBonusSubmission = :false'
            ),
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':true': True,
                ':false': False,
                ':content': bonus_content,
                ':ts': datetime.now(timezone.utc).isoformat(),
                ':pending': SubmissionStatus.PENDING_MODERATION,
                ':review': SubmissionStatus.UNDER_REVIEW
            },
            ReturnValues='ALL_NEW'
        )
    except ClientError as e:
        if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
            raise InvalidStateError('Submission was finalized before the bonus could be attached')
        raise

    logger.info(f"Bonus content attached to submission {submission_id}")
    return response['Attributes']
