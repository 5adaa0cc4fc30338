"""
Moderation Timeout Handler.
Triggered hourly by EventBridge scheduler. Reports submissions that have been
awaiting a verdict longer than moderationTimeoutHours; takes no action.
"""
from marketplace.logging import logger
from marketplace.settings import load_settings
from marketplace.timeouts import report_moderation_timeouts


def handler(event, context):
    logger.info("Running moderation timeout check...")
    return report_moderation_timeouts(load_settings())
