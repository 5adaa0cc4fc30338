"""
Resolve Appeal Handler (Admin/Manager).
POST /admin/submissions/{submissionId}/appeal
Body: { "approved": true, "notes": "..." }
"""
from marketplace.appeals import resolve_appeal
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.utils import (
    error_response, format_response, parse_body, parse_bool, require_field, require_path_param
)


def handler(event, context):
    log_event(event)
    try:
        reviewer_id = require_user_sub(event)
        submission_id = require_path_param(event, 'submissionId')
        body = parse_body(event)
        approved = require_field(body, 'approved', parse_bool)

        result = resolve_appeal(submission_id, reviewer_id, approved, body.get('notes') or '')
        return format_response(200, result)

    except Exception as e:
        return error_response('Resolve appeal', e)
