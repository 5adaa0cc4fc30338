"""
Suspension History Handler (Admin/Manager).
GET /admin/suspensions?userId=...&page=1&limit=20
"""
from marketplace.auth import require_user_sub
from marketplace.errors import BadRequestError
from marketplace.logging import log_event
from marketplace.users import get_suspension_history
from marketplace.utils import error_response, format_response, get_query_param


def _int_param(event, name, default):
    value = get_query_param(event, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise BadRequestError(f'{name} must be an integer')


def handler(event, context):
    log_event(event)
    try:
        requester_id = require_user_sub(event)
        result = get_suspension_history(
            requester_id,
            user_id=get_query_param(event, 'userId'),
            page=_int_param(event, 'page', 1),
            limit=_int_param(event, 'limit', 20)
        )
        return format_response(200, result)

    except Exception as e:
        return error_response('Suspension history', e)
