"""
Suspension, moderator-accuracy and approval-rate policy.
Pure functions over counters and vote history; the settlement engine turns
their decisions into writes.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from dateutil.relativedelta import relativedelta
from .models import SubmissionStatus, VoteDecision

# Rejection rates above this share of the threshold earn a warning
WARNING_BAND_RATIO = Decimal('0.8')

# Accuracy is only enforced once a moderator has this many scored votes
MIN_SCORED_VOTES_FOR_REVOCATION = 10

SUSPENSION_PERIOD = relativedelta(months=1)

RATE_PRECISION = Decimal('0.0001')


class SuspensionAction:
    NONE = 'None'
    WARN = 'Warn'
    SUSPEND = 'Suspend'


@dataclass(frozen=True)
class SuspensionDecision:
    action: str
    rejection_rate: Optional[Decimal] = None
    reason: Optional[str] = None
    ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class AccuracyReview:
    accuracy: Decimal
    scored_votes: int
    correct_votes: int
    revoke: bool


def rejection_rate(tasks_completed: int, tasks_rejected: int) -> Optional[Decimal]:
    """tasksRejected / (tasksCompleted + tasksRejected), or None with no finished tasks."""
    total = tasks_completed + tasks_rejected
    if total <= 0:
        return None
    return Decimal(tasks_rejected) / Decimal(total)


def format_rate(rate: Decimal) -> str:
    return f"{rate * 100:.2f}%"


def evaluate_suspension(
    tasks_completed: int,
    tasks_rejected: int,
    threshold: Decimal,
    now: datetime
) -> SuspensionDecision:
    """
    Decide what happens to a worker whose submission was just rejected.

    The counters passed in must already include the rejection being settled.
    Not idempotent: every rejection above the threshold yields a fresh
    suspension ending one month from now.

    Args:
        tasks_completed: Worker's approved task count
        tasks_rejected: Worker's rejected task count, including this rejection
        threshold: PlatformSettings.suspension_threshold
        now: Settlement time

    Returns:
        SuspensionDecision (SUSPEND, WARN or NONE)
    """
    rate = rejection_rate(tasks_completed, tasks_rejected)
    if rate is None:
        return SuspensionDecision(SuspensionAction.NONE)

    if rate > threshold:
        return SuspensionDecision(
            SuspensionAction.SUSPEND,
            rejection_rate=rate,
            reason=f"High rejection rate: {format_rate(rate)}",
            ends_at=now + SUSPENSION_PERIOD
        )
    if rate > threshold * WARNING_BAND_RATIO:
        return SuspensionDecision(
            SuspensionAction.WARN,
            rejection_rate=rate,
            reason=f"Rejection rate approaching suspension threshold: {format_rate(rate)}"
        )
    return SuspensionDecision(SuspensionAction.NONE, rejection_rate=rate)


def vote_was_correct(vote_decision: str, approved: bool) -> bool:
    if approved:
        return vote_decision == VoteDecision.APPROVE
    return vote_decision == VoteDecision.REJECT


def review_moderator_accuracy(scored_flags: Iterable[bool], accuracy_min: Decimal) -> AccuracyReview:
    """
    Recompute a moderator's accuracy from every scored vote they ever cast.

    Args:
        scored_flags: wasCorrect of each scored vote, this settlement included
        accuracy_min: PlatformSettings.moderator_accuracy_min

    Returns:
        AccuracyReview; revoke is True once there are enough scored votes
        and accuracy has fallen below the minimum
    """
    flags = list(scored_flags)
    scored = len(flags)
    correct = sum(1 for flag in flags if flag)
    accuracy = Decimal(correct) / Decimal(scored) if scored else Decimal('0')
    revoke = scored >= MIN_SCORED_VOTES_FOR_REVOCATION and accuracy < accuracy_min
    return AccuracyReview(
        accuracy=accuracy.quantize(RATE_PRECISION),
        scored_votes=scored,
        correct_votes=correct,
        revoke=revoke
    )


def approval_rate(statuses: Iterable[str]) -> Optional[Decimal]:
    """
    Task approval rate in percent over terminal submissions only.
    Returns None when the task has no terminal submissions yet.
    """
    approved = rejected = 0
    for status in statuses:
        if status == SubmissionStatus.APPROVED:
            approved += 1
        elif status == SubmissionStatus.REJECTED:
            rejected += 1
    total = approved + rejected
    if total == 0:
        return None
    return (Decimal(approved) * 100 / Decimal(total)).quantize(RATE_PRECISION)
