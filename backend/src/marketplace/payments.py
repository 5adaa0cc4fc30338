"""
Moderator withdrawals.
A withdrawal moves money out of pendingEarnings into a Pending payment record;
staff then mark it Completed (money leaves the platform) or Failed (money is
returned to pendingEarnings).
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from .audit import PaymentRequested, PaymentReviewed, activity_action
from .config import config
from .dynamo import get_item, put_action, query_all, transact_write, update_action, is_transaction_cancelled
from .errors import BadRequestError, InvalidStateError, NotFoundError
from .logging import logger
from .models import AccountStatus, NotificationType, PaymentStatus
from .notifications import notify
from .settings import PlatformSettings
from .users import require_staff, require_user, user_delta_action


def parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BadRequestError('Invalid amount format')
    if not amount.is_finite() or amount <= 0:
        raise BadRequestError('Amount must be a positive number')
    return amount


def get_payment(payment_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.PAYMENTS_TABLE, {'paymentId': payment_id})


def list_payments(user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Payments for a user, newest first, optionally filtered by status."""
    return query_all(
        config.PAYMENTS_TABLE,
        Key('userId').eq(user_id),
        index_name=config.BY_USER_INDEX,
        filter_expression=Attr('status').eq(status) if status else None,
        scan_forward=False
    )


def request_withdrawal(
    user_id: str,
    amount: Any,
    settings: PlatformSettings,
    notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Request a payout of pending earnings.

    Raises:
        BadRequestError: Amount invalid, below the minimum, above the balance,
            account not active, or another request is still pending
    """
    amount = parse_amount(amount)
    user = require_user(user_id)

    if user.get('accountStatus') != AccountStatus.ACTIVE:
        raise BadRequestError('Only active accounts can request withdrawals')
    if amount < settings.minimum_withdrawal:
        raise BadRequestError(f'Minimum withdrawal is ${settings.minimum_withdrawal:.2f}')

    available = Decimal(str(user.get('pendingEarnings', 0)))
    if amount > available:
        raise BadRequestError('Insufficient balance', {'available': str(available)})
    if list_payments(user_id, PaymentStatus.PENDING):
        raise BadRequestError('You already have a pending withdrawal request')

    now = now or datetime.now(timezone.utc)
    payment_id = str(uuid.uuid4())
    payment = {
        'paymentId': payment_id,
        'userId': user_id,
        'amount': amount,
        'status': PaymentStatus.PENDING,
        'createdAt': now.isoformat()
    }
    if notes:
        payment['notes'] = notes

    try:
        transact_write([
            # Deduct from pending earnings (with balance check)
            user_delta_action(
                user_id,
                {'pendingEarnings': -amount},
                condition='pendingEarnings >= :amount',
                condition_values={':amount': amount}
            ),
            put_action(config.PAYMENTS_TABLE, payment),
            activity_action(user_id, PaymentRequested(payment_id=payment_id, amount=amount), now),
        ])
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise BadRequestError('Insufficient balance')
        raise

    logger.info(f"Withdrawal {payment_id} of {amount} requested by {user_id}")
    notify(
        user_id,
        NotificationType.PAYMENT_PROCESSED,
        'Withdrawal Requested',
        f'Your withdrawal request of ${amount:.2f} is being processed.'
    )
    return payment


def review_payment(
    payment_id: str,
    reviewer_id: str,
    status: str,
    notes: Optional[str] = None,
    flag: bool = False,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Complete or fail a pending withdrawal (Admin/Manager only).

    Completed adds the amount to the user's withdrawnAmount. Failed refunds it
    to pendingEarnings. Flagging marks the request for follow-up either way.
    """
    require_staff(reviewer_id, 'Only admins and managers can review payments')
    if status not in PaymentStatus.REVIEW_OUTCOMES:
        raise BadRequestError(f'Status must be one of: {", ".join(PaymentStatus.REVIEW_OUTCOMES)}')

    payment = get_payment(payment_id)
    if not payment:
        raise NotFoundError('Payment not found', {'paymentId': payment_id})
    if payment.get('status') != PaymentStatus.PENDING:
        raise InvalidStateError('Payment has already been reviewed')

    now = now or datetime.now(timezone.utc)
    user_id = payment['userId']
    amount = Decimal(str(payment['amount']))

    values = {
        ':status': status,
        ':pending': PaymentStatus.PENDING,
        ':reviewer': reviewer_id,
        ':ts': now.isoformat(),
        ':flagged': flag
    }
    expression = 'SET #status = :status, reviewedBy = :reviewer, reviewedAt = :ts, flagged = :flagged'
    if notes:
        values[':notes'] = notes
        expression += ', reviewNotes = :notes'

    if status == PaymentStatus.COMPLETED:
        ledger = user_delta_action(user_id, {'withdrawnAmount': amount})
        message = f'Your withdrawal of ${amount:.2f} has been completed.'
    else:
        ledger = user_delta_action(user_id, {'pendingEarnings': amount})
        message = f'Your withdrawal of ${amount:.2f} failed and was returned to your balance.'
        if notes:
            message += f' {notes}'

    try:
        transact_write([
            update_action(
                config.PAYMENTS_TABLE,
                {'paymentId': payment_id},
                expression,
                values,
                names={'#status': 'status'},
                condition='#status = :pending'
            ),
            ledger,
            activity_action(reviewer_id, PaymentReviewed(payment_id=payment_id, status=status, flagged=flag), now),
        ])
    except ClientError as e:
        if is_transaction_cancelled(e):
            raise InvalidStateError('Payment has already been reviewed')
        raise

    logger.info(f"Payment {payment_id} marked {status} by {reviewer_id}")
    notify(user_id, NotificationType.PAYMENT_PROCESSED, f'Withdrawal {status}', message)

    return {'paymentId': payment_id, 'userId': user_id, 'amount': amount, 'status': status, 'flagged': flag}
