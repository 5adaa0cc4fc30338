"""
Submit Bonus Handler.
POST /submissions/{submissionId}/bonus
Body: { "bonusContent": "..." }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.submissions import attach_bonus
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        worker_id = require_user_sub(event)
        submission_id = require_path_param(event, 'submissionId')
        bonus_content = require_field(parse_body(event), 'bonusContent')

        submission = attach_bonus(submission_id, worker_id, bonus_content)
        return format_response(200, {
            'message': 'Bonus content added. It will be paid if the submission is approved.',
            'submission': submission
        })

    except Exception as e:
        return error_response('Submit bonus', e)
