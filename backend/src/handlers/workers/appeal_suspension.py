"""
Appeal Suspension Handler.
POST /suspensions/{suspensionId}/appeal
Body: { "reason": "..." }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.users import submit_suspension_appeal
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        user_id = require_user_sub(event)
        suspension_id = require_path_param(event, 'suspensionId')
        reason = require_field(parse_body(event), 'reason')

        return format_response(200, submit_suspension_appeal(user_id, suspension_id, reason))

    except Exception as e:
        return error_response('Appeal suspension', e)
