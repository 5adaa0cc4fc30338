"""
Task store.
Payment amounts and aggregate outcome counters per task.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from boto3.dynamodb.conditions import Key
from .config import config
from .dynamo import batch_get, get_item, increment_action, query_all, unchanged_guard
from .errors import NotFoundError

# Every settlement or appeal resolution moves one of these
OUTCOME_COUNTERS = ('approvedCount', 'rejectedCount')


def get_task(task_id: str) -> Optional[Dict[str, Any]]:
    return get_item(config.TASKS_TABLE, {'taskId': task_id})


def require_task(task_id: str) -> Dict[str, Any]:
    task = get_task(task_id)
    if not task:
        raise NotFoundError('Task not found', {'taskId': task_id})
    return task


def new_task_item(
    task_id: str,
    base_payment: Decimal,
    bonus_payment: Decimal = Decimal('0'),
    **overrides
) -> Dict[str, Any]:
    item = {
        'taskId': task_id,
        'basePayment': base_payment,
        'bonusPayment': bonus_payment,
        'completedCount': 0,
        'approvedCount': 0,
        'rejectedCount': 0,
        'createdAt': datetime.now(timezone.utc).isoformat()
    }
    item.update(overrides)
    return item


def task_delta_action(
    task_id: str,
    deltas: Optional[Dict[str, Any]] = None,
    sets: Optional[Dict[str, Any]] = None,
    seen: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Transaction Update applying counter increments to one task.
    With `seen`, the update only applies while the outcome counters still hold
    the values of that snapshot, so an approval rate computed from it is current.
    """
    condition = names = values = None
    if seen is not None:
        condition, names, values = unchanged_guard(seen, OUTCOME_COUNTERS)
    return increment_action(config.TASKS_TABLE, {'taskId': task_id}, deltas, sets, condition, names, values)


def submission_statuses(task_id: str) -> Dict[str, str]:
    """
    Current status of every submission for a task, keyed by submission id.
    The byTask index lists the ids; statuses are read consistently from the table.
    """
    listed = query_all(
        config.SUBMISSIONS_TABLE,
        Key('taskId').eq(task_id),
        index_name=config.SUBMISSIONS_BY_TASK_INDEX
    )
    items = batch_get(config.SUBMISSIONS_TABLE, 'submissionId', [item['submissionId'] for item in listed])
    return {item['submissionId']: item.get('status') for item in items}


def statuses_after(task_id: str, changes: Dict[str, str]) -> List[str]:
    """
    Task submission statuses as they will be once `changes` commit.
    Lets the approval rate be recomputed from the full history inside the
    same transaction that finalizes a submission.
    """
    statuses = submission_statuses(task_id)
    statuses.update(changes)
    return list(statuses.values())
