"""
Moderator Access Handler (Admin).
PUT /admin/users/{userId}/moderator
Body: { "canModerate": true }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.users import set_moderator_access
from marketplace.utils import (
    error_response, format_response, parse_body, parse_bool, require_field, require_path_param
)


def handler(event, context):
    log_event(event)
    try:
        admin_id = require_user_sub(event)
        user_id = require_path_param(event, 'userId')
        can_moderate = require_field(parse_body(event), 'canModerate', parse_bool)

        return format_response(200, set_moderator_access(admin_id, user_id, can_moderate))

    except Exception as e:
        return error_response('Moderator access', e)
