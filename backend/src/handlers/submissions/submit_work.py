"""
Submit Work Handler.
POST /tasks/{taskId}/submissions
Body: { "content": "..." }
"""
from marketplace.auth import require_user_sub
from marketplace.logging import log_event
from marketplace.submissions import create_submission
from marketplace.utils import error_response, format_response, parse_body, require_field, require_path_param


def handler(event, context):
    log_event(event)
    try:
        worker_id = require_user_sub(event)
        task_id = require_path_param(event, 'taskId')
        content = require_field(parse_body(event), 'content')

        submission = create_submission(task_id, worker_id, content)
        return format_response(201, {
            'message': 'Submission received and queued for moderation',
            'submission': submission
        })

    except Exception as e:
        return error_response('Submit work', e)
