"""
Suspend User Handler (Admin).
PUT /admin/users/{userId}/status
Body: { "status": "Active" | "Suspended" | "Banned", "reason": "...", "endDate": "2026-01-31T00:00:00+00:00" }
"""
from dateutil import parser as date_parser
from marketplace.auth import require_user_sub
from marketplace.errors import BadRequestError
from marketplace.logging import log_event
from marketplace.users import suspend_user
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        admin_id = require_user_sub(event)
        user_id = require_path_param(event, 'userId')
        body = parse_body(event)
        status = require_field(body, 'status')
        reason = require_field(body, 'reason')

        end_date = None
        if body.get('endDate'):
            try:
                end_date = date_parser.isoparse(body['endDate'])
            except ValueError:
                raise BadRequestError('endDate must be an ISO-8601 timestamp')

        return format_response(200, suspend_user(admin_id, user_id, status, reason, end_date))

    except Exception as e:
        return error_response('Suspend user', e)
