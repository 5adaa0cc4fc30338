"""
Flagged Users Handler (Admin/Manager).
GET /admin/flagged-users
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.users import get_flagged_users
from marketplace.utils import error_response, format_response


def handler(event, context):
    log_event(event)
    try:
        return format_response(200, get_flagged_users(require_user_sub(event)))

    except Exception as e:
        return error_response('Flagged users', e)
