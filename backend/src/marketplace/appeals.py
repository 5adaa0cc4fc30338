"""
Submission appeals.
A rejected submission can be appealed once; the appeal parks it in
UnderReview, out of reach of the automated resolver, until an Admin or
Manager resolves it by hand.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from .audit import AppealResolved, AppealSubmitted, activity_action
from .config import config
from .dynamo import condition_failed_at, scan_all, transact_write, update_action, is_transaction_cancelled
from .errors import ConflictError, InvalidStateError
from .events import publish_submission_finalized
from .logging import logger
from .models import NotificationType, SubmissionStatus, UserRole
from .notifications import Notification, deliver, notify
from .policy import approval_rate
from .settlement import compute_payment, submission_link
from .submissions import require_owner, require_submission
from .tasks import require_task, statuses_after, task_delta_action
from .users import require_staff, user_delta_action


def submit_appeal(submission_id: str, worker_id: str, reason: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Appeal a rejected submission.

    Raises:
        NotFoundError: Unknown submission
        ForbiddenError: Caller does not own the submission
        InvalidStateError: Submission is not Rejected
    """
    submission = require_submission(submission_id)
    require_owner(submission, worker_id)
    if submission.get('status') != SubmissionStatus.REJECTED:
        raise InvalidStateError('Only rejected submissions can be appealed')

    now = now or datetime.now(timezone.utc)
    try:
        transact_write([
            update_action(
                config.SUBMISSIONS_TABLE,
                {'submissionId': submission_id},
                'SET #status = :review, appealPending = :true, appealReason = :reason, appealedAt = :ts',
                {
                    ':review': SubmissionStatus.UNDER_REVIEW,
                    ':rejected': SubmissionStatus.REJECTED,
                    ':true': True,
                    ':reason': reason,
                    ':ts': now.isoformat()
                },
                names={'#status': 'status'},
                condition='#status = :rejected'
            ),
            activity_action(worker_id, AppealSubmitted(submission_id=submission_id, reason=reason), now),
        ])
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise InvalidStateError('Only rejected submissions can be appealed')
        raise

    logger.info(f"Appeal submitted for submission {submission_id} by worker {worker_id}")

    admins = scan_all(config.USERS_TABLE, Attr('role').eq(UserRole.ADMIN))
    deliver(
        Notification(
            admin['userId'],
            NotificationType.APPEAL_UPDATE,
            'New Submission Appeal',
            'A user has appealed a rejected submission. Review required.',
            submission_link(submission_id)
        )
        for admin in admins
    )

    return {'message': 'Appeal submitted successfully. An admin will review your submission.'}


def resolve_appeal(
    submission_id: str,
    reviewer_id: str,
    approved: bool,
    notes: str = '',
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Resolve an open appeal (Admin/Manager only).

    Approval pays the submission and moves one task from the worker's and the
    task's rejected counters to their approved counters. Denial restores the
    rejection. Vote correctness flags keep the values set at settlement.
    """
    require_staff(reviewer_id, 'Only admins and managers can review appeals')
    submission = require_submission(submission_id)
    if submission.get('status') != SubmissionStatus.UNDER_REVIEW or not submission.get('appealPending'):
        raise InvalidStateError('No open appeal for this submission')

    now = now or datetime.now(timezone.utc)
    task_id = submission['taskId']
    worker_id = submission['workerId']
    names = {'#status': 'status'}
    condition = '#status = :review AND appealPending = :true'
    values = {
        ':review': SubmissionStatus.UNDER_REVIEW,
        ':true': True,
        ':false': False,
        ':notes': notes,
        ':ts': now.isoformat()
    }

    actions = [activity_action(
        reviewer_id,
        AppealResolved(submission_id=submission_id, approved=approved, notes=notes),
        now
    )]
    payment = None

    if approved:
        task = require_task(task_id)
        payment, base_awarded, bonus_awarded = compute_payment(submission, task)
        rate = approval_rate(statuses_after(task_id, {submission_id: SubmissionStatus.APPROVED}))
        values.update({
            ':approved': SubmissionStatus.APPROVED,
            ':base': base_awarded,
            ':bonus': bonus_awarded,
            ':payment': payment,
            ':one': 1
        })
        actions += [
            update_action(
                config.SUBMISSIONS_TABLE,
                {'submissionId': submission_id},
                (
                    'SET #status = :approved, appealPending = :false, appealNotes = :notes, '
                    'appealResolvedAt = :ts, finalizedAt = :ts, basePaymentAwarded = :base, '
                    'bonusPaymentAwarded = :bonus, totalPayment = :payment ADD tallyVersion :one'
                ),
                values,
                names=names,
                condition=condition
            ),
            user_delta_action(worker_id, {
                'pendingEarnings': payment,
                'totalEarnings': payment,
                'tasksCompleted': 1,
                'tasksRejected': -1,
            }),
            task_delta_action(
                task_id,
                {'approvedCount': 1, 'rejectedCount': -1},
                {'approvalRate': rate} if rate is not None else None,
                seen=task
            ),
        ]
        message = f"Your appeal was approved! You earned ${payment:.2f}"
    else:
        values[':rejected'] = SubmissionStatus.REJECTED
        actions.append(update_action(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            'SET #status = :rejected, appealPending = :false, appealNotes = :notes, appealResolvedAt = :ts',
            values,
            names=names,
            condition=condition
        ))
        message = f"Your appeal was denied. {notes}".strip()

    try:
        transact_write(actions)
    except ClientError as e:
        if not is_transaction_cancelled(e):
            raise
        if condition_failed_at(e, 1):
            raise InvalidStateError('Appeal was already resolved')
        raise ConflictError('Appeal could not be resolved while the task was being settled, please retry')

    logger.info(f"Appeal on submission {submission_id} {'approved' if approved else 'denied'} by {reviewer_id}")
    notify(worker_id, NotificationType.APPEAL_UPDATE, 'Appeal Reviewed', message, submission_link(submission_id))
    if approved:
        publish_submission_finalized(submission_id, task_id, worker_id, SubmissionStatus.APPROVED, payment)

    return {
        'submissionId': submission_id,
        'status': SubmissionStatus.APPROVED if approved else SubmissionStatus.REJECTED,
        'payment': payment
    }
