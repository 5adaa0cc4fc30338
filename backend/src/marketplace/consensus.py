"""
Consensus resolver for peer moderation.
Decides, from the current vote tally and the quorum policy, whether a
submission stays pending, needs additional votes, or resolves.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict
from .models import VoteDecision


class Outcome:
    """Resolver outcomes."""
    CONTINUE = 'Continue'
    NEEDS_MORE_VOTES = 'NeedsMoreVotes'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'


@dataclass(frozen=True)
class Tally:
    """Approve/reject counts of one submission. Total is always derived."""
    approve_votes: int = 0
    reject_votes: int = 0

    @property
    def total_votes(self) -> int:
        return self.approve_votes + self.reject_votes

    def add(self, decision: str) -> 'Tally':
        if decision == VoteDecision.APPROVE:
            return Tally(self.approve_votes + 1, self.reject_votes)
        return Tally(self.approve_votes, self.reject_votes + 1)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Tally':
        return cls(
            approve_votes=int(item.get('approveVotes', 0)),
            reject_votes=int(item.get('rejectVotes', 0))
        )


@dataclass(frozen=True)
class Resolution:
    outcome: str
    reason: str

    @property
    def is_final(self) -> bool:
        return self.outcome in (Outcome.APPROVED, Outcome.REJECTED)

    @property
    def approved(self) -> bool:
        return self.outcome == Outcome.APPROVED


def resolve(
    tally: Tally,
    min_votes: int,
    max_votes: int,
    ceiling_tie_decision: str = VoteDecision.REJECT
) -> Resolution:
    """
    Evaluate a tally against the quorum policy.

    Rules, in order:
    - Fewer than min_votes: keep waiting.
    - Majority: a side with strictly more votes that also holds at least
      ceil(total / 2) of them resolves the submission.
    - Tie below max_votes: ask for additional votes.
    - At or above max_votes: the larger side wins; an exact tie at the
      ceiling resolves to ceiling_tie_decision.

    Args:
        tally: Current approve/reject counts
        min_votes: Votes required before any decision
        max_votes: Vote ceiling that forces a decision
        ceiling_tie_decision: VoteDecision applied to a tie at the ceiling

    Returns:
        Resolution with the outcome and a human-readable reason
    """
    total = tally.total_votes
    approve = tally.approve_votes
    reject = tally.reject_votes

    if total < min_votes:
        return Resolution(Outcome.CONTINUE, f"Quorum not reached: {total}/{min_votes} votes")

    half = math.ceil(total / 2)
    if approve > reject and approve >= half:
        return Resolution(Outcome.APPROVED, f"Approval majority {approve}/{total}")
    if reject > approve and reject >= half:
        return Resolution(Outcome.REJECTED, f"Rejection majority {reject}/{total}")

    if approve == reject and total < max_votes:
        return Resolution(Outcome.NEEDS_MORE_VOTES, f"Tied at {approve}-{reject}, additional votes requested")

    if total >= max_votes:
        if approve > reject:
            return Resolution(Outcome.APPROVED, f"Vote ceiling reached, approve leads {approve}-{reject}")
        if reject > approve:
            return Resolution(Outcome.REJECTED, f"Vote ceiling reached, reject leads {reject}-{approve}")
        outcome = Outcome.APPROVED if ceiling_tie_decision == VoteDecision.APPROVE else Outcome.REJECTED
        return Resolution(outcome, f"Vote ceiling reached on a {approve}-{reject} tie, resolved as {ceiling_tie_decision}")

    return Resolution(Outcome.CONTINUE, f"No decision at {approve}-{reject}")
