"""
List Pending Submissions Handler.
GET /moderation/pending?limit=50
"""
from marketplace.auth import require_user_sub
from marketplace.errors import BadRequestError
from marketplace.logging import log_event
from marketplace.moderation import list_pending_for_moderator
from marketplace.utils import error_response, format_response, get_query_param


def handler(event, context):
    log_event(event)
    try:
        moderator_id = require_user_sub(event)
        try:
            limit = int(get_query_param(event, 'limit', '50'))
        except ValueError:
            raise BadRequestError('limit must be an integer')

        submissions = list_pending_for_moderator(moderator_id, limit)
        return format_response(200, {'submissions': submissions, 'count': len(submissions)})

    except Exception as e:
        return error_response('List pending submissions', e)
