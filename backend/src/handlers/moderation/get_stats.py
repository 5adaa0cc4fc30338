"""
Moderation Statistics Handler.
GET /moderation/stats     - platform statistics (Admin/Manager)
GET /moderation/history   - the caller's own votes and accuracy
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.moderation import get_moderation_history, get_moderation_stats
from marketplace.utils import error_response, format_response


def handler(event, context):
    log_event(event)
    try:
        user_id = require_user_sub(event)
        if event.get('resource', '').endswith('/history'):
            return format_response(200, get_moderation_history(user_id))
        return format_response(200, get_moderation_stats(user_id))

    except Exception as e:
        return error_response('Moderation stats', e)
