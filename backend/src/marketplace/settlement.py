"""
Settlement engine.
One-time, all-or-nothing finalization of a resolved submission: pays the
worker, updates worker and task counters, recomputes the task approval rate,
scores every vote and recomputes each voter's accuracy, and applies the
suspension policy on rejection. Everything is a single DynamoDB transaction
guarded by a compare-and-swap on the submission's status and version, so
racing finalizations settle exactly once.

Every write whose value was derived from a read (approval rate, suspension,
accuracy) is also conditioned on the counters that read saw. A transaction
cancelled by one of those guards is planned again from fresh reads.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from botocore.exceptions import ClientError
from .config import config
from .dynamo import (
    cancellation_codes, condition_failed_at, put_action, transact_write, update_action, is_transaction_cancelled
)
from .errors import ConflictError, NotFoundError
from .events import publish_submission_finalized
from .logging import logger
from .models import AccountStatus, NotificationType, SubmissionStatus, SuspensionType, SYSTEM_ACTOR
from .notifications import Notification, deliver
from .policy import (
    AccuracyReview,
    SuspensionAction,
    SuspensionDecision,
    approval_rate,
    evaluate_suspension,
    format_rate,
    review_moderator_accuracy,
    vote_was_correct,
)
from .settings import PlatformSettings
from .submissions import get_submission
from .tasks import require_task, statuses_after, task_delta_action
from .users import get_user, guarded_user_delta_action, require_user, suspension_record, user_delta_action
from .votes import get_votes, list_scored_votes, mark_correctness_action

# Attempts before a settlement that keeps conflicting is reported as a conflict
MAX_SETTLEMENT_ATTEMPTS = 5

# Worker counters the suspension decision is computed from
WORKER_COUNTERS = ('tasksCompleted', 'tasksRejected')

# Moderator state the accuracy review is computed from
MODERATOR_GUARDED = ('scoredVotes', 'canModerate')


@dataclass
class SettlementResult:
    submission_id: str
    task_id: str
    worker_id: str
    status: str
    payment: Decimal
    base_awarded: bool
    bonus_awarded: bool
    approval_rate: Optional[Decimal]
    suspension: SuspensionDecision
    accuracy_reviews: Dict[str, AccuracyReview] = field(default_factory=dict)
    revoked_moderators: List[str] = field(default_factory=list)


def compute_payment(submission: Dict[str, Any], task: Dict[str, Any]) -> Tuple[Decimal, bool, bool]:
    """
    Payment for an approved submission.

    Returns:
        tuple: (amount, base_awarded, bonus_awarded)
    """
    payment = Decimal(str(task.get('basePayment', 0)))
    bonus_awarded = False
    if submission.get('isBonusSubmission') and submission.get('bonusContent'):
        payment += Decimal(str(task.get('bonusPayment', 0)))
        bonus_awarded = True
    return payment, True, bonus_awarded


def submission_link(submission_id: str) -> str:
    return f"/submissions/{submission_id}"


def finalize_submission_action(
    submission_id: str,
    new_status: str,
    payment: Decimal,
    base_awarded: bool,
    bonus_awarded: bool,
    expected_version: int,
    now: datetime
) -> Dict[str, Any]:
    """
    Terminal status update, conditional on the submission still awaiting
    moderation at exactly the version the decision was taken on.
    """
    return update_action(
        config.SUBMISSIONS_TABLE,
        {'submissionId': submission_id},
        (
            'SET #status = :status, basePaymentAwarded = :base, bonusPaymentAwarded = :bonus, '
            'totalPayment = :payment, finalizedAt = :ts, needsAdditionalVotes = :false '
            'ADD tallyVersion :one'
        ),
        {
            ':status': new_status,
            ':base': base_awarded,
            ':bonus': bonus_awarded,
            ':payment': payment,
            ':ts': now.isoformat(),
            ':false': False,
            ':one': 1,
            ':pending': SubmissionStatus.PENDING_MODERATION,
            ':review': SubmissionStatus.UNDER_REVIEW,
            ':version': expected_version
        },
        names={'#status': 'status'},
        condition=(
            '(#status = :pending OR #status = :review) '
            'AND appealPending = :false AND tallyVersion = :version'
        )
    )


def _worker_actions(
    submission: Dict[str, Any],
    task: Dict[str, Any],
    worker: Dict[str, Any],
    approved: bool,
    settings: PlatformSettings,
    now: datetime
) -> Tuple[List[Dict[str, Any]], List[Notification], Decimal, bool, bool, SuspensionDecision]:
    """Worker ledger writes and notifications for an approval or a rejection."""
    submission_id = submission['submissionId']
    worker_id = submission['workerId']
    link = submission_link(submission_id)

    if approved:
        payment, base_awarded, bonus_awarded = compute_payment(submission, task)
        actions = [user_delta_action(worker_id, {
            'pendingEarnings': payment,
            'totalEarnings': payment,
            'tasksCompleted': 1,
        })]
        notifications = [Notification(
            worker_id,
            NotificationType.TASK_APPROVED,
            'Submission Approved!',
            f"Your submission was approved! You earned ${payment:.2f}",
            link
        )]
        return actions, notifications, payment, base_awarded, bonus_awarded, SuspensionDecision(SuspensionAction.NONE)

    notifications = [Notification(
        worker_id,
        NotificationType.TASK_REJECTED,
        'Submission Rejected',
        'Your submission was rejected by moderators. You can appeal this decision.',
        link
    )]
    decision = evaluate_suspension(
        int(worker.get('tasksCompleted', 0)),
        int(worker.get('tasksRejected', 0)) + 1,
        settings.suspension_threshold,
        now
    )

    deltas = {'tasksRejected': 1}
    sets = {}
    actions = []
    if decision.action == SuspensionAction.SUSPEND:
        deltas['warningsCount'] = 1
        sets = {
            'accountStatus': AccountStatus.SUSPENDED,
            'suspensionEndDate': decision.ends_at.isoformat(),
            'suspensionReason': decision.reason,
        }
        actions.append(put_action(
            config.SUSPENSIONS_TABLE,
            suspension_record(worker_id, decision.reason, SYSTEM_ACTOR, SuspensionType.AUTO, decision.ends_at, now)
        ))
        notifications.append(Notification(
            worker_id,
            NotificationType.SUSPENSION_NOTICE,
            'Account Suspended',
            (
                f"Your account has been suspended due to a high rejection rate "
                f"({format_rate(decision.rejection_rate)}). "
                f"Suspension ends on {decision.ends_at.date().isoformat()}."
            )
        ))
    elif decision.action == SuspensionAction.WARN:
        deltas['warningsCount'] = 1
        notifications.append(Notification(
            worker_id,
            NotificationType.SUSPENSION_WARNING,
            'Rejection Rate Warning',
            (
                f"Your rejection rate ({format_rate(decision.rejection_rate)}) is close to the "
                f"suspension threshold ({format_rate(settings.suspension_threshold)})."
            )
        ))

    actions.insert(0, guarded_user_delta_action(worker, WORKER_COUNTERS, deltas, sets or None))
    return actions, notifications, Decimal('0'), False, False, decision


def _accuracy_actions(
    votes: List[Dict[str, Any]],
    approved: bool,
    settings: PlatformSettings
) -> Tuple[List[Dict[str, Any]], List[Notification], Dict[str, AccuracyReview], List[str]]:
    """
    Score every vote on the submission and recompute each voter's accuracy
    over their whole scored history, this vote included.
    """
    actions = []
    notifications = []
    reviews = {}
    revoked = []

    for vote in votes:
        moderator_id = vote['moderatorId']
        correct = vote_was_correct(vote['decision'], approved)
        actions.append(mark_correctness_action(vote['voteId'], correct))

        # The moderator is read before the history so the scoredVotes guard covers it
        moderator = get_user(moderator_id) or {'userId': moderator_id}
        history = [
            bool(v['wasCorrect']) for v in list_scored_votes(moderator_id)
            if v['voteId'] != vote['voteId']
        ]
        review = review_moderator_accuracy(history + [correct], settings.moderator_accuracy_min)
        reviews[moderator_id] = review

        sets = {'moderatorAccuracy': review.accuracy}
        deltas = {'scoredVotes': 1}
        if review.revoke and moderator.get('canModerate'):
            sets['canModerate'] = False
            deltas['warningsCount'] = 1
            revoked.append(moderator_id)
            notifications.append(Notification(
                moderator_id,
                NotificationType.SUSPENSION_WARNING,
                'Moderation Access Suspended',
                (
                    f"Your moderation accuracy ({format_rate(review.accuracy)}) is below the required "
                    f"threshold. Moderation access has been revoked."
                )
            ))
        actions.append(guarded_user_delta_action(moderator, MODERATOR_GUARDED, deltas, sets))

    return actions, notifications, reviews, revoked


@dataclass
class _SettlementPlan:
    actions: List[Dict[str, Any]]
    finalize_index: int
    notifications: List[Notification]
    result: SettlementResult


def _plan_settlement(
    submission_id: str,
    approved: bool,
    settings: PlatformSettings,
    expected_version: Optional[int],
    now: datetime
) -> Optional[_SettlementPlan]:
    """Read current state and build the settlement transaction, or None when there is nothing to settle."""
    submission = get_submission(submission_id)
    if not submission:
        raise NotFoundError('Submission not found', {'submissionId': submission_id})

    status = submission.get('status')
    if status not in SubmissionStatus.AWAITING_MODERATION or submission.get('appealPending'):
        logger.info(f"Submission {submission_id} is {status}, settlement skipped")
        return None

    version = int(submission.get('tallyVersion', 0))
    if expected_version is not None and version != expected_version:
        logger.warning(
            f"Submission {submission_id} moved from version {expected_version} to {version}, settlement skipped"
        )
        return None

    task_id = submission['taskId']
    worker_id = submission['workerId']
    task = require_task(task_id)
    worker = require_user(worker_id)
    votes = get_votes(submission_id, submission.get('voterIds') or set())
    if len(votes) != int(submission.get('totalVotes', 0)):
        logger.error(
            f"Submission {submission_id} has {len(votes)} readable votes but totalVotes={submission.get('totalVotes')}"
        )
    new_status = SubmissionStatus.APPROVED if approved else SubmissionStatus.REJECTED

    # 1-2: worker ledger, notifications, suspension policy
    actions, notifications, payment, base_awarded, bonus_awarded, suspension = _worker_actions(
        submission, task, worker, approved, settings, now
    )

    # 4: task counters plus approval rate recomputed over every terminal submission.
    # The task was read first, so its counters guard the statuses read after it.
    rate = approval_rate(statuses_after(task_id, {submission_id: new_status}))
    actions.append(task_delta_action(
        task_id,
        {'approvedCount' if approved else 'rejectedCount': 1},
        {'approvalRate': rate} if rate is not None else None,
        seen=task
    ))

    # 3: the compare-and-swap that makes the whole transaction run at most once
    finalize_index = len(actions)
    actions.append(finalize_submission_action(
        submission_id, new_status, payment, base_awarded, bonus_awarded, version, now
    ))

    # 5: vote correctness and moderator accuracy
    vote_actions, vote_notifications, reviews, revoked = _accuracy_actions(votes, approved, settings)
    actions.extend(vote_actions)
    notifications.extend(vote_notifications)

    result = SettlementResult(
        submission_id=submission_id,
        task_id=task_id,
        worker_id=worker_id,
        status=new_status,
        payment=payment,
        base_awarded=base_awarded,
        bonus_awarded=bonus_awarded,
        approval_rate=rate,
        suspension=suspension,
        accuracy_reviews=reviews,
        revoked_moderators=revoked
    )
    return _SettlementPlan(actions, finalize_index, notifications, result)


def settle_submission(
    submission_id: str,
    approved: bool,
    settings: PlatformSettings,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None
) -> Optional[SettlementResult]:
    """
    Finalize a resolved submission.

    Args:
        submission_id: Submission to finalize
        approved: Resolved outcome
        settings: Policy values for this call
        expected_version: Version the resolution was computed on; when the
            stored version has moved on, another vote owns the decision
        now: Settlement time

    Returns:
        SettlementResult, or None when the submission was already finalized
        or another settlement won the race

    Raises:
        NotFoundError: Unknown submission, task or worker
        ConflictError: Concurrent settlements kept invalidating this one
    """
    now = now or datetime.now(timezone.utc)

    for attempt in range(1, MAX_SETTLEMENT_ATTEMPTS + 1):
        plan = _plan_settlement(submission_id, approved, settings, expected_version, now)
        if plan is None:
            return None

        try:
            transact_write(plan.actions)
            break
        except ClientError as e:
            if not is_transaction_cancelled(e):
                raise
            if condition_failed_at(e, plan.finalize_index):
                logger.warning(f"Settlement of submission {submission_id} lost a race and was not applied")
                return None
            logger.warning(
                f"Settlement of submission {submission_id} cancelled on attempt {attempt} "
                f"({', '.join(cancellation_codes(e)) or 'no reasons'}), planning again"
            )
    else:
        raise ConflictError(
            'Submission could not be settled, please retry',
            {'submissionId': submission_id, 'attempts': MAX_SETTLEMENT_ATTEMPTS}
        )

    result = plan.result
    logger.info(
        f"Submission {submission_id} settled as {result.status}: payment=${result.payment}, "
        f"votes={len(result.accuracy_reviews)}, approvalRate={result.approval_rate}, "
        f"suspension={result.suspension.action}"
    )
    for moderator_id in result.revoked_moderators:
        logger.warning(
            f"Moderator {moderator_id} lost moderation access: accuracy {result.accuracy_reviews[moderator_id].accuracy}"
        )

    deliver(plan.notifications)
    publish_submission_finalized(submission_id, result.task_id, result.worker_id, result.status, result.payment)
    return result
