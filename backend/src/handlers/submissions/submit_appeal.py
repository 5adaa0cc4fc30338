"""
Submit Appeal Handler.
POST /submissions/{submissionId}/appeal
Body: { "reason": "..." }
"""
from marketplace.appeals import submit_appeal
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        worker_id = require_user_sub(event)
        submission_id = require_path_param(event, 'submissionId')
        reason = require_field(parse_body(event), 'reason')

        return format_response(200, submit_appeal(submission_id, worker_id, reason))

    except Exception as e:
        return error_response('Submit appeal', e)
