"""
Request Withdrawal Handler.
POST /wallet/withdraw
Body: { "amount": 50.00, "notes": "..." }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.payments import request_withdrawal
from marketplace.settings import load_settings
from marketplace.utils import error_response, format_response, parse_body, require_field


def handler(event, context):
    log_event(event)
    try:
        user_id = require_user_sub(event)
        body = parse_body(event)
        amount = require_field(body, 'amount')

        payment = request_withdrawal(user_id, amount, load_settings(), notes=body.get('notes'))
        return format_response(200, {
            'message': 'Withdrawal requested successfully',
            'payment': payment
        })

    except Exception as e:
        return error_response('Request withdrawal', e)
