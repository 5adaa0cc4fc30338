"""
Peer moderation: vote casting, consensus evaluation and moderation queues.

Casting a vote is two atomic stages. First the vote row, the tally increment
and the moderator's fee credit commit together. Then the submission is
re-read and evaluated; a final resolution hands over to the settlement engine.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from .config import config
from .consensus import Outcome, Resolution, Tally, resolve
from .dynamo import scan_all, table, transact_write, update_action, is_transaction_cancelled
from .errors import BadRequestError, ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from .logging import logger
from .models import SubmissionStatus, VoteDecision, vote_id
from .settings import PlatformSettings
from .settlement import SettlementResult, settle_submission
from .submissions import get_submission, require_submission
from .users import get_user, require_staff, user_delta_action
from .votes import get_vote, insert_vote_action, list_votes_by_moderator


@dataclass
class EvaluationResult:
    resolution: Resolution
    settlement: Optional[SettlementResult] = None


def _check_vote_preconditions(submission_id: str, moderator_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Ordered vote preconditions, each failing with its own error.

    Returns:
        tuple: (moderator, submission)
    """
    moderator = get_user(moderator_id)
    if not moderator or not moderator.get('canModerate'):
        raise ForbiddenError('You do not have moderation access')

    submission = get_submission(submission_id)
    if not submission:
        raise NotFoundError('Submission not found', {'submissionId': submission_id})

    if submission.get('status') not in SubmissionStatus.AWAITING_MODERATION or submission.get('appealPending'):
        raise InvalidStateError('This submission is not pending moderation', {'status': submission.get('status')})

    if get_vote(submission_id, moderator_id):
        raise ConflictError('You have already voted on this submission')

    if submission.get('workerId') == moderator_id:
        raise ForbiddenError('You cannot moderate your own submission')

    return moderator, submission


def record_vote(
    submission_id: str,
    moderator_id: str,
    decision: str,
    comment: Optional[str],
    settings: PlatformSettings,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Persist one vote, bump the tally and pay the moderation fee, atomically.
    The moderator is added to the submission's voterIds set in the same
    write, so settlement can read every vote by key without an index.

    The vote key is unique per (submission, moderator) and the tally update is
    conditional on the submission still awaiting moderation, so concurrent
    duplicates and votes racing a finalization are refused by storage.

    Raises:
        BadRequestError: Unknown decision
        ForbiddenError: Not an eligible moderator, or own submission
        NotFoundError: Unknown submission
        InvalidStateError: Submission not pending moderation
        ConflictError: Already voted
    """
    if decision not in VoteDecision.ALL:
        raise BadRequestError(f'Invalid decision: {decision}')

    _check_vote_preconditions(submission_id, moderator_id)

    now = now or datetime.now(timezone.utc)
    fee = settings.moderation_fee_per_vote
    side = 'approveVotes' if decision == VoteDecision.APPROVE else 'rejectVotes'

    try:
        transact_write([
            insert_vote_action(submission_id, moderator_id, decision, comment, now),
            update_action(
                config.SUBMISSIONS_TABLE,
                {'submissionId': submission_id},
                f'ADD totalVotes :one, {side} :one, tallyVersion :one, voterIds :voter',
                {
                    ':one': 1,
                    ':voter': {moderator_id},
                    ':pending': SubmissionStatus.PENDING_MODERATION,
                    ':review': SubmissionStatus.UNDER_REVIEW,
                    ':false': False,
                    ':moderator': moderator_id
                },
                names={'#status': 'status'},
                condition=(
                    '(#status = :pending OR #status = :review) '
                    'AND appealPending = :false AND workerId <> :moderator'
                )
            ),
            user_delta_action(
                moderator_id,
                {'moderatorVotes': 1, 'pendingEarnings': fee, 'totalEarnings': fee},
                condition='#cm = :true',
                condition_names={'#cm': 'canModerate'},
                condition_values={':true': True}
            ),
        ])
    except ClientError as e:
        if not is_transaction_cancelled(e):
            raise
        # State changed between the checks and the write; report what changed
        _check_vote_preconditions(submission_id, moderator_id)
        raise ConflictError('Vote could not be recorded, please retry')

    logger.info(f"Vote {decision} recorded on submission {submission_id} by moderator {moderator_id}")
    return {
        'voteId': vote_id(submission_id, moderator_id),
        'submissionId': submission_id,
        'moderatorId': moderator_id,
        'decision': decision,
        'moderationFee': fee
    }


def _request_additional_votes(submission_id: str) -> None:
    try:
        table(config.SUBMISSIONS_TABLE).update_item(
            Key={'submissionId': submission_id},
            UpdateExpression='SET #status = :review, needsAdditionalVotes = :true',
            ConditionExpression='(#status = :pending OR #status = :review) AND appealPending = :false',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':pending': SubmissionStatus.PENDING_MODERATION,
                ':review': SubmissionStatus.UNDER_REVIEW,
                ':true': True,
                ':false': False
            }
        )
        logger.info(f"Submission {submission_id} tied, marked UnderReview for additional votes")
    except ClientError as e:
        if e.response['Error']['Code'] != 'ConditionalCheckFailedException':
            raise
        logger.info(f"Submission {submission_id} left moderation before it could be marked UnderReview")


def evaluate_submission(
    submission_id: str,
    settings: PlatformSettings,
    now: Optional[datetime] = None
) -> EvaluationResult:
    """
    Run the consensus resolver on the submission's current tally and act on it.
    Safe to call any number of times; only one call can settle a submission.
    """
    submission = require_submission(submission_id)
    if submission.get('status') not in SubmissionStatus.AWAITING_MODERATION or submission.get('appealPending'):
        return EvaluationResult(Resolution(Outcome.CONTINUE, 'Submission is not awaiting moderation'))

    tally = Tally.from_item(submission)
    if int(submission.get('totalVotes', 0)) != tally.total_votes:
        logger.error(
            f"Tally mismatch on submission {submission_id}: totalVotes={submission.get('totalVotes')} "
            f"approve={tally.approve_votes} reject={tally.reject_votes}"
        )

    resolution = resolve(
        tally,
        settings.min_votes_required,
        settings.max_votes_required,
        settings.ceiling_tie_decision
    )
    logger.info(f"Submission {submission_id}: {resolution.outcome} ({resolution.reason})")

    if resolution.is_final:
        settlement = settle_submission(
            submission_id,
            resolution.approved,
            settings,
            expected_version=int(submission.get('tallyVersion', 0)),
            now=now
        )
        return EvaluationResult(resolution, settlement)

    if resolution.outcome == Outcome.NEEDS_MORE_VOTES:
        _request_additional_votes(submission_id)

    return EvaluationResult(resolution)


def cast_vote(
    submission_id: str,
    moderator_id: str,
    decision: str,
    settings: PlatformSettings,
    comment: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Record a moderator's vote, then evaluate and possibly settle the submission."""
    vote = record_vote(submission_id, moderator_id, decision, comment, settings, now)
    evaluation = evaluate_submission(submission_id, settings, now)

    result = {
        'message': 'Vote submitted successfully',
        'vote': vote,
        'moderationFee': vote['moderationFee'],
        'outcome': evaluation.resolution.outcome
    }
    if evaluation.settlement:
        result['settlement'] = {
            'status': evaluation.settlement.status,
            'payment': evaluation.settlement.payment
        }
    return result


# =============================================================================
# QUEUES AND REPORTING
# =============================================================================

def list_pending_for_moderator(moderator_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """
    Oldest-first submissions a moderator may still vote on: awaiting
    moderation, not under appeal, not their own and not already voted.
    """
    moderator = get_user(moderator_id)
    if not moderator or not moderator.get('canModerate'):
        raise ForbiddenError('You do not have moderation access')

    voted = {v['submissionId'] for v in list_votes_by_moderator(moderator_id)}

    # Scan is acceptable at current volume; a status GSI would replace it
    candidates = scan_all(
        config.SUBMISSIONS_TABLE,
        Attr('status').is_in(list(SubmissionStatus.AWAITING_MODERATION))
        & Attr('appealPending').eq(False)
        & Attr('workerId').ne(moderator_id)
    )
    queue = [s for s in candidates if s['submissionId'] not in voted]
    queue.sort(key=lambda s: s.get('submittedAt', ''))
    return queue[:max(1, min(limit, 200))]


def get_moderation_stats(user_id: str) -> Dict[str, Any]:
    """Platform-wide moderation statistics (Admin/Manager only)."""
    require_staff(user_id, 'Only admins and managers can view moderation statistics')

    moderators = scan_all(config.USERS_TABLE, Attr('canModerate').eq(True))
    votes = scan_all(config.VOTES_TABLE)
    submissions = scan_all(config.SUBMISSIONS_TABLE)

    finalized = [s for s in submissions if s.get('status') in SubmissionStatus.TERMINAL]
    average = Decimal('0')
    if finalized:
        average = (Decimal(sum(int(s.get('totalVotes', 0)) for s in finalized)) / len(finalized)).quantize(Decimal('0.01'))

    return {
        'totalModerators': len(moderators),
        'activeModerators': sum(1 for m in moderators if int(m.get('moderatorVotes', 0)) > 0),
        'totalVotes': len(votes),
        'pendingSubmissions': sum(1 for s in submissions if s.get('status') == SubmissionStatus.PENDING_MODERATION),
        'underReviewSubmissions': sum(1 for s in submissions if s.get('status') == SubmissionStatus.UNDER_REVIEW),
        'averageVotesPerSubmission': average
    }


def get_moderation_history(moderator_id: str) -> Dict[str, Any]:
    """A moderator's own votes, newest first, with their running stats."""
    moderator = get_user(moderator_id)
    if not moderator or not moderator.get('canModerate'):
        raise ForbiddenError('You do not have moderation access')

    return {
        'votes': list_votes_by_moderator(moderator_id),
        'moderatorStats': {
            'totalVotes': int(moderator.get('moderatorVotes', 0)),
            'accuracy': moderator.get('moderatorAccuracy', Decimal('0'))
        }
    }
