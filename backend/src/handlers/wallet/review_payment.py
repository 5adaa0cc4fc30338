"""
Review Payment Handler (Admin/Manager).
PUT /admin/payments/{paymentId}
Body: { "status": "Completed" | "Failed", "notes": "...", "flag": false }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.payments import review_payment
from marketplace.utils import (
    error_response, format_response, parse_body, parse_bool, require_field, require_path_param
)


def handler(event, context):
    log_event(event)
    try:
        reviewer_id = require_user_sub(event)
        payment_id = require_path_param(event, 'paymentId')
        body = parse_body(event)
        status = require_field(body, 'status')
        flag = parse_bool(body.get('flag', False))

        return format_response(200, review_payment(payment_id, reviewer_id, status, body.get('notes'), flag))

    except Exception as e:
        return error_response('Review payment', e)
