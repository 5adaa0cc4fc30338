"""
DynamoDB utility functions.
Lazily creates the boto3 resource and low-level client, and builds TransactWriteItems entries from
plain Python values, so every atomic unit of work is one transact_write call.
"""
import boto3
from typing import List, Dict, Any, Iterable, Optional, Tuple
from botocore.exceptions import ClientError
from boto3.dynamodb.types import TypeSerializer
from .config import config
from .logging import logger

# Transactions accept at most 100 actions
MAX_TRANSACTION_ITEMS = 100

# BatchGetItem accepts at most 100 keys per request
BATCH_GET_LIMIT = 100

_dynamodb = None
_client = None
_serializer = TypeSerializer()


def get_dynamodb():
    """Get or create the DynamoDB resource."""
    global _dynamodb
    if _dynamodb is None:
        _dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)
    return _dynamodb


def get_client():
    """
    Get or create the low-level DynamoDB client. Transactions are built from
    TypeSerializer output, which only the low-level client accepts as is.
    """
    global _client
    if _client is None:
        _client = boto3.client('dynamodb', region_name=config.AWS_REGION)
    return _client


def table(table_name: str):
    return get_dynamodb().Table(table_name)


def get_item(table_name: str, key: Dict[str, Any], consistent: bool = True) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB. Storage errors propagate to the caller."""
    try:
        response = table(table_name).get_item(Key=key, ConsistentRead=consistent)
        return response.get('Item')
    except ClientError as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise


def query_all(
    table_name: str,
    key_condition: Any,
    index_name: Optional[str] = None,
    filter_expression: Optional[Any] = None,
    scan_forward: bool = True
) -> List[Dict[str, Any]]:
    """
    Query a DynamoDB table or index, following pagination to the end.

    Args:
        table_name: Name of the DynamoDB table
        key_condition: Key condition expression
        index_name: Optional GSI name
        filter_expression: Optional filter expression
        scan_forward: True for ascending, False for descending

    Returns:
        All items matching the query
    """
    query_params = {
        'KeyConditionExpression': key_condition,
        'ScanIndexForward': scan_forward
    }
    if index_name:
        query_params['IndexName'] = index_name
    if filter_expression is not None:
        query_params['FilterExpression'] = filter_expression

    items = []
    try:
        while True:
            response = table(table_name).query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            query_params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.error(f"Error querying {table_name}: {e}")
        raise


def scan_all(table_name: str, filter_expression: Optional[Any] = None) -> List[Dict[str, Any]]:
    """Scan a whole table, optionally filtered, following pagination."""
    scan_params = {}
    if filter_expression is not None:
        scan_params['FilterExpression'] = filter_expression

    items = []
    try:
        while True:
            response = table(table_name).scan(**scan_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            scan_params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.error(f"Error scanning {table_name}: {e}")
        raise


def batch_get(table_name: str, key_name: str, ids: Iterable[str], consistent: bool = True) -> List[Dict[str, Any]]:
    """
    Fetch items by primary key, 100 keys per request, retrying unprocessed
    keys. Missing items are left out of the result.
    """
    unique_ids = list(dict.fromkeys(ids))
    items = []
    try:
        for start in range(0, len(unique_ids), BATCH_GET_LIMIT):
            request = {table_name: {
                'Keys': [{key_name: i} for i in unique_ids[start:start + BATCH_GET_LIMIT]],
                'ConsistentRead': consistent
            }}
            while request:
                response = get_dynamodb().batch_get_item(RequestItems=request)
                items.extend(response.get('Responses', {}).get(table_name, []))
                request = response.get('UnprocessedKeys') or None
    except ClientError as e:
        logger.error(f"Error batch reading {table_name}: {e}")
        raise
    return items


def serialize(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert plain Python values into DynamoDB attribute values."""
    return {k: _serializer.serialize(v) for k, v in values.items()}


def put_action(
    table_name: str,
    item: Dict[str, Any],
    condition: Optional[str] = None,
    names: Optional[Dict[str, str]] = None,
    values: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Build a Put entry for transact_write_items."""
    action = {
        'TableName': table_name,
        'Item': serialize(item)
    }
    if condition:
        action['ConditionExpression'] = condition
    if names:
        action['ExpressionAttributeNames'] = names
    if values:
        action['ExpressionAttributeValues'] = serialize(values)
    return {'Put': action}


def update_action(
    table_name: str,
    key: Dict[str, Any],
    update_expression: str,
    values: Dict[str, Any],
    names: Optional[Dict[str, str]] = None,
    condition: Optional[str] = None
) -> Dict[str, Any]:
    """Build an Update entry for transact_write_items."""
    action = {
        'TableName': table_name,
        'Key': serialize(key),
        'UpdateExpression': update_expression,
        'ExpressionAttributeValues': serialize(values)
    }
    if names:
        action['ExpressionAttributeNames'] = names
    if condition:
        action['ConditionExpression'] = condition
    return {'Update': action}


def transact_write(items: List[Dict[str, Any]]) -> None:
    """
    Apply all actions atomically. Either every action commits or none does.

    Raises:
        ClientError: TransactionCanceledException when any condition fails,
            or any other storage error.
    """
    if len(items) > MAX_TRANSACTION_ITEMS:
        raise ValueError(f"Transaction has {len(items)} actions, limit is {MAX_TRANSACTION_ITEMS}")
    get_client().transact_write_items(TransactItems=items)


def is_transaction_cancelled(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'TransactionCanceledException'


def is_conditional_check_failed(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def cancellation_codes(error: ClientError) -> List[str]:
    """Per-action reason codes of a cancelled transaction, in action order ('None' for actions that passed)."""
    return [reason.get('Code', 'None') for reason in error.response.get('CancellationReasons', [])]


def condition_failed_at(error: ClientError, index: int) -> bool:
    """True when the action at `index` is the one whose condition cancelled the transaction."""
    codes = cancellation_codes(error)
    return index < len(codes) and codes[index] == 'ConditionalCheckFailed'


def unchanged_guard(item: Dict[str, Any], attributes: Iterable[str]) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """
    Condition that holds only while each attribute still has the value seen
    in `item`, or is still absent if it was absent.

    Returns:
        tuple: (condition, names, values) using #g/:g placeholders
    """
    parts, names, values = [], {}, {}
    for i, attribute in enumerate(attributes):
        names[f'#g{i}'] = attribute
        if item.get(attribute) is None:
            parts.append(f'attribute_not_exists(#g{i})')
        else:
            values[f':g{i}'] = item[attribute]
            parts.append(f'#g{i} = :g{i}')
    return ' AND '.join(parts), names, values


def increment_action(
    table_name: str,
    key: Dict[str, Any],
    deltas: Optional[Dict[str, Any]] = None,
    sets: Optional[Dict[str, Any]] = None,
    condition: Optional[str] = None,
    condition_names: Optional[Dict[str, str]] = None,
    condition_values: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build an Update that applies `attr = attr + delta` for every delta via ADD
    and plain assignments for every entry of `sets`, in one action.

    Condition placeholders must not start with #a/:a, which are reserved for
    the generated update expression.
    """
    names = dict(condition_names or {})
    values = dict(condition_values or {})
    add_parts, set_parts = [], []

    for i, (attribute, delta) in enumerate((deltas or {}).items()):
        names[f'#a{i}'] = attribute
        values[f':a{i}'] = delta
        add_parts.append(f'#a{i} :a{i}')

    offset = len(deltas or {})
    for j, (attribute, value) in enumerate((sets or {}).items(), start=offset):
        names[f'#a{j}'] = attribute
        values[f':a{j}'] = value
        set_parts.append(f'#a{j} = :a{j}')

    clauses = []
    if set_parts:
        clauses.append('SET ' + ', '.join(set_parts))
    if add_parts:
        clauses.append('ADD ' + ', '.join(add_parts))
    if not clauses:
        raise ValueError('increment_action needs at least one delta or assignment')

    return update_action(
        table_name,
        key,
        ' '.join(clauses),
        values,
        names=names,
        condition=condition
    )
