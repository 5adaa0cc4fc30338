"""
User directory.
Lookups and authorization gates over the Users table, plus the manual admin
actions that change suspension state and moderation eligibility.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from .audit import (
    activity_action, ModeratorAccessChanged, SuspensionAppealReviewed, SuspensionAppealSubmitted, UserSuspended
)
from .config import config
from .dynamo import (
    get_item, increment_action, put_action, query_all, scan_all, transact_write, update_action,
    unchanged_guard, is_transaction_cancelled
)
from .errors import BadRequestError, ForbiddenError, InvalidStateError, NotFoundError
from .logging import logger
from .models import AccountStatus, NotificationType, SuspensionType, UserRole
from .notifications import notify
from .policy import SUSPENSION_PERIOD, rejection_rate

# Flagged-user review thresholds
FLAG_REJECTION_RATE = Decimal('0.2')
FLAG_ACCURACY_BELOW = Decimal('0.75')
FLAG_MIN_MODERATOR_VOTES = 10
FLAGGED_LIST_LIMIT = 20


def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.USERS_TABLE, {'userId': user_id})


def require_user(user_id: str) -> Dict[str, Any]:
    user = get_user(user_id)
    if not user:
        raise NotFoundError('User not found', {'userId': user_id})
    return user


def is_staff(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get('role') in UserRole.STAFF


def require_staff(user_id: str, message: str) -> Dict[str, Any]:
    """Return the user if they are an Admin or Manager, else raise ForbiddenError."""
    user = get_user(user_id)
    if not is_staff(user):
        raise ForbiddenError(message)
    return user


def require_admin(user_id: str, message: str) -> Dict[str, Any]:
    user = get_user(user_id)
    if not user or user.get('role') != UserRole.ADMIN:
        raise ForbiddenError(message)
    return user


def user_delta_action(
    user_id: str,
    deltas: Optional[Dict[str, Any]] = None,
    sets: Optional[Dict[str, Any]] = None,
    **condition
) -> Dict[str, Any]:
    """Transaction Update applying counter/balance increments to one user."""
    return increment_action(config.USERS_TABLE, {'userId': user_id}, deltas, sets, **condition)


def guarded_user_delta_action(
    user: Dict[str, Any],
    attributes: Iterable[str],
    deltas: Optional[Dict[str, Any]] = None,
    sets: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """user_delta_action that only applies while `attributes` still hold the values read in `user`."""
    condition, names, values = unchanged_guard(user, attributes)
    return user_delta_action(
        user['userId'], deltas, sets, condition=condition, condition_names=names, condition_values=values
    )


def new_user_item(
    user_id: str,
    role: str = UserRole.USER,
    account_status: str = AccountStatus.ACTIVE,
    **overrides
) -> Dict[str, Any]:
    """A user record with every ledger counter present and zeroed."""
    item = {
        'userId': user_id,
        'role': role,
        'accountStatus': account_status,
        'canModerate': False,
        'moderatorVotes': 0,
        'scoredVotes': 0,
        'moderatorAccuracy': Decimal('0'),
        'pendingEarnings': Decimal('0'),
        'totalEarnings': Decimal('0'),
        'withdrawnAmount': Decimal('0'),
        'tasksCompleted': 0,
        'tasksRejected': 0,
        'warningsCount': 0,
        'createdAt': datetime.now(timezone.utc).isoformat()
    }
    item.update(overrides)
    return item


def suspension_record(
    user_id: str,
    reason: str,
    suspended_by: str,
    suspension_type: str,
    ends_at: Optional[datetime],
    now: datetime
) -> Dict[str, Any]:
    return {
        'suspensionId': str(uuid.uuid4()),
        'userId': user_id,
        'reason': reason,
        'suspendedBy': suspended_by,
        'suspensionType': suspension_type,
        'suspendedAt': now.isoformat(),
        'endsAt': ends_at.isoformat() if ends_at else None
    }


def suspend_user(
    admin_id: str,
    user_id: str,
    status: str,
    reason: str,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Manually change a user's account status (Admin only).

    Suspended and Banned statuses write a Manual suspension-history record.
    Setting Active lifts a suspension.
    """
    require_admin(admin_id, 'Only admins can suspend users')
    target = require_user(user_id)

    if target.get('role') == UserRole.ADMIN:
        raise BadRequestError('Cannot suspend admin users')
    if status not in AccountStatus.ALL:
        raise BadRequestError(f'Unknown account status: {status}')

    now = now or datetime.now(timezone.utc)
    ends_at = None
    if status == AccountStatus.SUSPENDED:
        ends_at = end_date or now + SUSPENSION_PERIOD

    items = [
        user_delta_action(user_id, sets={
            'accountStatus': status,
            'suspensionReason': reason if status != AccountStatus.ACTIVE else None,
            'suspensionEndDate': ends_at.isoformat() if ends_at else None,
        }),
        activity_action(admin_id, UserSuspended(target_user_id=user_id, status=status, reason=reason), now),
    ]
    if status in (AccountStatus.SUSPENDED, AccountStatus.BANNED):
        items.append(put_action(
            config.SUSPENSIONS_TABLE,
            suspension_record(user_id, reason, admin_id, SuspensionType.MANUAL, ends_at, now)
        ))
    transact_write(items)
    logger.info(f"User {user_id} set to {status} by {admin_id}")

    if status == AccountStatus.SUSPENDED:
        message = f"Your account has been suspended until {ends_at.date().isoformat()}. Reason: {reason}"
    elif status == AccountStatus.BANNED:
        message = f"Your account has been permanently banned. Reason: {reason}"
    else:
        message = f"Your account status has been updated to {status}."
    notify(user_id, NotificationType.SUSPENSION_NOTICE, 'Account Status Updated', message)

    return {
        'userId': user_id,
        'accountStatus': status,
        'suspensionEndDate': ends_at.isoformat() if ends_at else None
    }


def set_moderator_access(admin_id: str, user_id: str, can_moderate: bool, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Grant or revoke moderation eligibility by hand (Admin only)."""
    require_admin(admin_id, 'Only admins can manage moderator access')
    target = require_user(user_id)
    now = now or datetime.now(timezone.utc)

    if bool(target.get('canModerate')) == can_moderate:
        raise InvalidStateError(
            'User already has moderator access' if can_moderate else 'User does not have moderator access'
        )

    try:
        transact_write([
            user_delta_action(
                user_id,
                sets={
                    'canModerate': can_moderate,
                    'moderatorSince': now.isoformat() if can_moderate else None,
                },
                condition='#cm = :current',
                condition_names={'#cm': 'canModerate'},
                condition_values={':current': not can_moderate}
            ),
            activity_action(admin_id, ModeratorAccessChanged(target_user_id=user_id, can_moderate=can_moderate), now),
        ])
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise InvalidStateError('Moderator access changed concurrently, retry')
        raise

    logger.info(f"Moderator access for {user_id} set to {can_moderate} by {admin_id}")
    notify(
        user_id,
        NotificationType.MODERATOR_ACCESS,
        'Moderator Access Granted' if can_moderate else 'Moderator Access Revoked',
        'You can now review submissions and earn moderation fees.' if can_moderate
        else 'Your moderation access has been revoked by an administrator.'
    )
    return {'userId': user_id, 'canModerate': can_moderate}


# =============================================================================
# SUSPENSION REVIEW
# =============================================================================

def get_suspension(suspension_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.SUSPENSIONS_TABLE, {'suspensionId': suspension_id})


def require_suspension(suspension_id: str) -> Dict[str, Any]:
    suspension = get_suspension(suspension_id)
    if not suspension:
        raise NotFoundError('Suspension record not found', {'suspensionId': suspension_id})
    return suspension


def get_suspension_history(
    requester_id: str,
    user_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20
) -> Dict[str, Any]:
    """
    Suspension records, newest first, one page at a time (Admin/Manager only).

    Args:
        requester_id: Caller
        user_id: Only this user's records when given, else every record
        page: 1-based page number
        limit: Page size, clamped to 1..100
    """
    require_staff(requester_id, 'Only admins and managers can view suspension history')

    page = max(1, page)
    limit = min(max(limit, 1), 100)
    if user_id:
        records = query_all(config.SUSPENSIONS_TABLE, Key('userId').eq(user_id), index_name=config.BY_USER_INDEX)
    else:
        records = scan_all(config.SUSPENSIONS_TABLE)
    records.sort(key=lambda r: r.get('suspendedAt', ''), reverse=True)

    start = (page - 1) * limit
    return {
        'suspensions': records[start:start + limit],
        'totalCount': len(records),
        'page': page,
        'limit': limit
    }


def _worker_summary(user: Dict[str, Any], rate: Decimal) -> Dict[str, Any]:
    return {
        'userId': user['userId'],
        'totalEarnings': user.get('totalEarnings', Decimal('0')),
        'tasksCompleted': int(user.get('tasksCompleted', 0)),
        'tasksRejected': int(user.get('tasksRejected', 0)),
        'rejectionRate': rate.quantize(Decimal('0.0001')),
        'accountStatus': user.get('accountStatus')
    }


def get_flagged_users(requester_id: str) -> Dict[str, List[Dict[str, Any]]]:
    """
    Accounts that need a closer look (Admin/Manager only): workers rejected
    more than 20% of the time, moderators under 75% accuracy after more than
    10 votes, and withdrawals flagged during review. Each list holds at most
    20 entries, worst first.
    """
    require_staff(requester_id, 'Only admins and managers can view flagged users')

    high_rejection = []
    for user in scan_all(config.USERS_TABLE, Attr('role').eq(UserRole.USER)):
        rate = rejection_rate(int(user.get('tasksCompleted', 0)), int(user.get('tasksRejected', 0)))
        if rate is not None and rate > FLAG_REJECTION_RATE:
            high_rejection.append(_worker_summary(user, rate))
    high_rejection.sort(key=lambda u: u['rejectionRate'], reverse=True)

    moderators = scan_all(
        config.USERS_TABLE,
        Attr('canModerate').eq(True)
        & Attr('moderatorAccuracy').lt(FLAG_ACCURACY_BELOW)
        & Attr('moderatorVotes').gt(FLAG_MIN_MODERATOR_VOTES)
    )
    moderators.sort(key=lambda m: m.get('moderatorAccuracy', Decimal('0')))
    low_accuracy = [{
        'userId': m['userId'],
        'moderatorVotes': int(m.get('moderatorVotes', 0)),
        'moderatorAccuracy': m.get('moderatorAccuracy', Decimal('0')),
        'canModerate': m.get('canModerate')
    } for m in moderators]

    payments = scan_all(config.PAYMENTS_TABLE, Attr('flagged').eq(True))
    payments.sort(key=lambda p: p.get('amount', Decimal('0')), reverse=True)

    return {
        'highRejectionUsers': high_rejection[:FLAGGED_LIST_LIMIT],
        'lowAccuracyModerators': low_accuracy[:FLAGGED_LIST_LIMIT],
        'flaggedPayments': payments[:FLAGGED_LIST_LIMIT]
    }


def submit_suspension_appeal(
    user_id: str,
    suspension_id: str,
    reason: str,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Appeal one of the caller's own suspensions. Each suspension can be
    appealed once.

    Raises:
        NotFoundError: Unknown suspension
        ForbiddenError: The suspension belongs to someone else
        InvalidStateError: Already appealed
    """
    suspension = require_suspension(suspension_id)
    if suspension.get('userId') != user_id:
        raise ForbiddenError('You can only appeal your own suspensions')
    if suspension.get('appealSubmitted'):
        raise InvalidStateError('An appeal has already been submitted for this suspension')

    now = now or datetime.now(timezone.utc)
    try:
        transact_write([
            update_action(
                config.SUSPENSIONS_TABLE,
                {'suspensionId': suspension_id},
                'SET appealSubmitted = :true, appealReason = :reason, appealSubmittedAt = :ts',
                {':true': True, ':reason': reason, ':ts': now.isoformat()},
                condition='attribute_exists(suspensionId) AND attribute_not_exists(appealSubmitted)'
            ),
            activity_action(user_id, SuspensionAppealSubmitted(suspension_id=suspension_id, reason=reason), now),
        ])
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise InvalidStateError('An appeal has already been submitted for this suspension')
        raise

    logger.info(f"Suspension appeal submitted for {suspension_id} by {user_id}")
    for admin in scan_all(config.USERS_TABLE, Attr('role').eq(UserRole.ADMIN)):
        notify(
            admin['userId'],
            NotificationType.APPEAL_UPDATE,
            'New Suspension Appeal',
            'A user has appealed their suspension. Review required.'
        )

    return {'message': 'Appeal submitted successfully. An admin will review your suspension.'}


def review_suspension_appeal(
    reviewer_id: str,
    suspension_id: str,
    approved: bool,
    notes: str = '',
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Approve or deny a suspension appeal (Admin/Manager only).
    Approval reactivates the account and clears its suspension fields.

    Raises:
        ForbiddenError: Caller is not staff
        NotFoundError: Unknown suspension
        BadRequestError: No appeal was submitted
        InvalidStateError: The appeal was already reviewed
    """
    require_staff(reviewer_id, 'Only admins and managers can review appeals')
    suspension = require_suspension(suspension_id)
    if not suspension.get('appealSubmitted'):
        raise BadRequestError('No appeal has been submitted for this suspension')
    if suspension.get('appealReviewedAt'):
        raise InvalidStateError('This appeal has already been reviewed')

    now = now or datetime.now(timezone.utc)
    user_id = suspension['userId']
    actions = [
        update_action(
            config.SUSPENSIONS_TABLE,
            {'suspensionId': suspension_id},
            'SET appealApproved = :approved, appealReviewedBy = :reviewer, appealReviewedAt = :ts, appealReviewNotes = :notes',
            {':approved': approved, ':reviewer': reviewer_id, ':ts': now.isoformat(), ':notes': notes, ':true': True},
            condition='appealSubmitted = :true AND attribute_not_exists(appealReviewedAt)'
        ),
        activity_action(
            reviewer_id,
            SuspensionAppealReviewed(suspension_id=suspension_id, target_user_id=user_id, approved=approved, notes=notes),
            now
        ),
    ]
    if approved:
        actions.append(user_delta_action(user_id, sets={
            'accountStatus': AccountStatus.ACTIVE,
            'suspensionEndDate': None,
            'suspensionReason': None,
        }))

    try:
        transact_write(actions)
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise InvalidStateError('This appeal has already been reviewed')
        raise

    outcome = 'approved' if approved else 'denied'
    logger.info(f"Suspension appeal {suspension_id} {outcome} by {reviewer_id}")
    if approved:
        message = f"Your suspension appeal has been approved. Your account is now active. {notes}"
    else:
        message = f"Your suspension appeal has been denied. {notes}"
    notify(user_id, NotificationType.SUSPENSION_NOTICE, 'Appeal Reviewed', message.strip())

    return {
        'message': f'Appeal {outcome} successfully',
        'suspensionId': suspension_id,
        'userId': user_id,
        'approved': approved
    }
