"""
Request parsing and response building shared by the Lambda handlers.
"""
import json
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from .errors import BadRequestError, MarketplaceError
from .logging import log_failure

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,Authorization',
    'Content-Type': 'application/json'
}


class DecimalEncoder(json.JSONEncoder):
    """Serializes DynamoDB numbers (integral values as int, the rest as float) and string sets as sorted lists."""

    def default(self, o):
        if isinstance(o, Decimal):
            return int(o) if o == o.to_integral_value() else float(o)
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


def format_response(status_code: int, body: Any, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response.

    Args:
        status_code: HTTP status
        body: Any JSON-serializable value; Decimals are converted
        headers: Extra headers merged over the CORS defaults

    Returns:
        Lambda proxy integration response
    """
    return {
        'statusCode': status_code,
        'headers': {**CORS_HEADERS, **(headers or {})},
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(operation: str, error: Exception) -> Dict[str, Any]:
    """Map an exception raised by the core onto an API Gateway response."""
    log_failure(operation, error)
    if isinstance(error, MarketplaceError):
        return format_response(error.status_code, error.to_dict())
    return format_response(500, {'error': 'Internal server error', 'code': 'INTERNAL_ERROR'})


def parse_body(event: dict) -> dict:
    """
    Decode the JSON object in an API Gateway event body.

    Raises:
        BadRequestError: Body is not a JSON object
    """
    raw = event.get('body') or '{}'
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise BadRequestError('Request body is not valid JSON')
    if not isinstance(raw, dict):
        raise BadRequestError('Request body must be a JSON object')
    return raw


def require_field(body: dict, name: str, cast: Callable = None) -> Any:
    """Return a required body field, optionally converted, or raise BadRequestError."""
    value = body.get(name)
    if value is None or value == '':
        raise BadRequestError(f'Missing {name}')
    return cast(value) if cast else value


def require_path_param(event: dict, name: str) -> str:
    value = (event.get('pathParameters') or {}).get(name)
    if not value:
        raise BadRequestError(f'Missing {name} path parameter')
    return value


def get_query_param(event: dict, name: str, default: str = None) -> str:
    return (event.get('queryStringParameters') or {}).get(name, default)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise BadRequestError(f'Expected a boolean, got {value!r}')
