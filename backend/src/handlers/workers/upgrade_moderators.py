"""
Upgrade Moderators Handler.
Triggered daily by EventBridge scheduler to grant moderation access to users
whose total earnings reached the configured minimum.
"""
from marketplace.eligibility import upgrade_moderators
from marketplace.logging import logger
from marketplace.settings import load_settings


def handler(event, context):
    logger.info("Running moderator eligibility check...")
    result = upgrade_moderators(load_settings())
    logger.info(f"Moderator upgrade complete: {result}")
    return result
