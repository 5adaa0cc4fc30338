"""
Review Suspension Appeal Handler (Admin/Manager).
POST /admin/suspensions/{suspensionId}/appeal
Body: { "approved": true, "reviewNotes": "..." }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.users import review_suspension_appeal
from marketplace.utils import (
    error_response, format_response, parse_body, parse_bool, require_field, require_path_param
)


def handler(event, context):
    log_event(event)
    try:
        reviewer_id = require_user_sub(event)
        suspension_id = require_path_param(event, 'suspensionId')
        body = parse_body(event)
        approved = require_field(body, 'approved', parse_bool)

        result = review_suspension_appeal(reviewer_id, suspension_id, approved, body.get('reviewNotes') or '')
        return format_response(200, result)

    except Exception as e:
        return error_response('Review suspension appeal', e)
