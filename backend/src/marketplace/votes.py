"""
Vote ledger.
Append-only record of one vote per (submission, moderator). The only field
ever written after insertion is the correctness flag, exactly once.

Index reads are eventually consistent, so anything that decides money or
accuracy reads votes by their deterministic key with ConsistentRead.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from boto3.dynamodb.conditions import Key
from .config import config
from .dynamo import batch_get, get_item, put_action, query_all, update_action
from .models import vote_id


def get_vote(submission_id: str, moderator_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.VOTES_TABLE, {'voteId': vote_id(submission_id, moderator_id)})


def get_votes(submission_id: str, voter_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """
    Consistent read of the votes cast on a submission by the given moderators,
    ordered by moderator id. `voter_ids` comes from the submission's voterIds
    set, which is written in the same transaction as each vote.
    """
    votes = batch_get(
        config.VOTES_TABLE,
        'voteId',
        [vote_id(submission_id, moderator_id) for moderator_id in sorted(voter_ids)]
    )
    return sorted(votes, key=lambda v: v['moderatorId'])


def list_votes_by_moderator(moderator_id: str, newest_first: bool = True) -> List[Dict[str, Any]]:
    return query_all(
        config.VOTES_TABLE,
        Key('moderatorId').eq(moderator_id),
        index_name=config.VOTES_BY_MODERATOR_INDEX,
        scan_forward=not newest_first
    )


def list_scored_votes(moderator_id: str) -> List[Dict[str, Any]]:
    """
    Every vote of a moderator whose correctness has been decided.
    The index only supplies the keys; the flags are read consistently.
    """
    keys = [v['voteId'] for v in list_votes_by_moderator(moderator_id, newest_first=False)]
    return [v for v in batch_get(config.VOTES_TABLE, 'voteId', keys) if v.get('wasCorrect') is not None]


def insert_vote_action(
    submission_id: str,
    moderator_id: str,
    decision: str,
    comment: Optional[str],
    now: datetime
) -> Dict[str, Any]:
    """Conditional Put that fails if this moderator already voted on this submission."""
    item = {
        'voteId': vote_id(submission_id, moderator_id),
        'submissionId': submission_id,
        'moderatorId': moderator_id,
        'decision': decision,
        'votedAt': now.isoformat()
    }
    if comment:
        item['comment'] = comment
    return put_action(
        config.VOTES_TABLE,
        item,
        condition='attribute_not_exists(voteId)'
    )


def mark_correctness_action(vote_key: str, was_correct: bool) -> Dict[str, Any]:
    """Write-once update of a vote's correctness flag."""
    return update_action(
        config.VOTES_TABLE,
        {'voteId': vote_key},
        'SET wasCorrect = :correct',
        {':correct': was_correct},
        condition='attribute_exists(voteId) AND attribute_not_exists(wasCorrect)'
    )
