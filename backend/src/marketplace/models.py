"""
Data models and status constants for the moderation marketplace.
Submission lifecycle: PendingModeration → (UnderReview) → Approved/Rejected,
with appeals moving Rejected back to UnderReview for manual re-resolution.
"""


class SubmissionStatus:
    """Submission moderation statuses."""
    PENDING_MODERATION = 'PendingModeration'
    UNDER_REVIEW = 'UnderReview'  # Tied tally awaiting more votes, or an open appeal
    APPROVED = 'Approved'
    REJECTED = 'Rejected'

    AWAITING_MODERATION = (PENDING_MODERATION, UNDER_REVIEW)
    TERMINAL = (APPROVED, REJECTED)


class VoteDecision:
    """Moderator vote decisions."""
    APPROVE = 'Approve'
    REJECT = 'Reject'

    ALL = (APPROVE, REJECT)


class UserRole:
    """Platform roles."""
    USER = 'User'
    MANAGER = 'Manager'
    ADMIN = 'Admin'

    STAFF = (ADMIN, MANAGER)


class AccountStatus:
    """Account statuses."""
    ACTIVE = 'Active'
    SUSPENDED = 'Suspended'
    BANNED = 'Banned'

    ALL = (ACTIVE, SUSPENDED, BANNED)


class SuspensionType:
    """Who put a suspension in place."""
    AUTO = 'Auto'
    MANUAL = 'Manual'


class PaymentStatus:
    """Withdrawal request statuses."""
    PENDING = 'Pending'
    COMPLETED = 'Completed'
    FAILED = 'Failed'

    REVIEW_OUTCOMES = (COMPLETED, FAILED)


class NotificationType:
    """User-facing notification kinds."""
    TASK_APPROVED = 'TaskApproved'
    TASK_REJECTED = 'TaskRejected'
    SUSPENSION_NOTICE = 'SuspensionNotice'
    SUSPENSION_WARNING = 'SuspensionWarning'
    MODERATOR_ACCESS = 'ModeratorAccess'
    PAYMENT_PROCESSED = 'PaymentProcessed'
    APPEAL_UPDATE = 'AppealUpdate'


# Identifier written as the actor of automatic suspensions
SYSTEM_ACTOR = 'SYSTEM'


def vote_id(submission_id: str, moderator_id: str) -> str:
    """
    Deterministic vote key. One item per (submission, moderator) pair, so a
    conditional put on this key is the storage-level uniqueness constraint.
    """
    return f"{submission_id}#{moderator_id}"
