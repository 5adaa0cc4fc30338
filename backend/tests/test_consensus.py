"""
Tests for the consensus resolver.
"""
import pytest

from marketplace.consensus import Outcome, Tally, resolve
from marketplace.models import VoteDecision


def tally(approve, reject):
    return Tally(approve_votes=approve, reject_votes=reject)


class TestQuorum:
    """Nothing is decided before minVotesRequired votes."""

    def test_below_minimum_continues(self):
        assert resolve(tally(2, 0), 3, 5).outcome == Outcome.CONTINUE

    def test_no_votes_continues(self):
        assert resolve(tally(0, 0), 3, 5).outcome == Outcome.CONTINUE

    def test_min_votes_of_one_resolves_first_vote(self):
        assert resolve(tally(0, 1), 1, 1).outcome == Outcome.REJECTED


class TestMajority:

    def test_three_approve_one_reject_approves(self):
        resolution = resolve(tally(3, 1), 3, 5)
        assert resolution.outcome == Outcome.APPROVED
        assert resolution.is_final
        assert resolution.approved

    def test_two_approve_three_reject_rejects(self):
        resolution = resolve(tally(2, 3), 3, 5)
        assert resolution.outcome == Outcome.REJECTED
        assert resolution.is_final
        assert not resolution.approved

    def test_unanimous_quorum_approves(self):
        assert resolve(tally(3, 0), 3, 5).outcome == Outcome.APPROVED

    def test_two_to_one_reaches_ceil_half(self):
        # half = ceil(3 / 2) = 2
        assert resolve(tally(2, 1), 3, 5).outcome == Outcome.APPROVED
        assert resolve(tally(1, 2), 3, 5).outcome == Outcome.REJECTED


class TestTies:

    def test_two_two_requests_more_votes(self):
        resolution = resolve(tally(2, 2), 3, 5)
        assert resolution.outcome == Outcome.NEEDS_MORE_VOTES
        assert not resolution.is_final

    def test_tie_at_ceiling_defaults_to_reject(self):
        assert resolve(tally(2, 2), 3, 4).outcome == Outcome.REJECTED

    def test_tie_at_ceiling_follows_configured_decision(self):
        resolution = resolve(tally(3, 3), 3, 6, ceiling_tie_decision=VoteDecision.APPROVE)
        assert resolution.outcome == Outcome.APPROVED
        assert 'tie' in resolution.reason

    @pytest.mark.parametrize('approve,reject,expected', [
        (3, 2, Outcome.APPROVED),
        (2, 3, Outcome.REJECTED),
        (4, 1, Outcome.APPROVED),
    ])
    def test_ceiling_resolves_to_larger_side(self, approve, reject, expected):
        assert resolve(tally(approve, reject), 3, 5).outcome == expected


class TestTally:

    def test_total_is_derived(self):
        t = Tally().add(VoteDecision.APPROVE).add(VoteDecision.REJECT).add(VoteDecision.APPROVE)
        assert (t.approve_votes, t.reject_votes, t.total_votes) == (2, 1, 3)

    def test_from_item_reads_counters(self):
        t = Tally.from_item({'approveVotes': 3, 'rejectVotes': 1, 'totalVotes': 4})
        assert t.total_votes == 4
