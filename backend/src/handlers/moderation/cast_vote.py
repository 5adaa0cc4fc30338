"""
Cast Vote Handler.
POST /moderation/submissions/{submissionId}/vote
Body: { "decision": "Approve" | "Reject", "comment": "..." }

Records the vote, pays the moderation fee and, when the tally is decisive,
settles the submission in the same request.
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.moderation import cast_vote
from marketplace.settings import load_settings
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        moderator_id = require_user_sub(event)
        submission_id = require_path_param(event, 'submissionId')
        body = parse_body(event)
        decision = require_field(body, 'decision')

        result = cast_vote(
            submission_id,
            moderator_id,
            decision,
            load_settings(),
            comment=body.get('comment')
        )
        return format_response(200, result)

    except Exception as e:
        return error_response('Cast vote', e)
