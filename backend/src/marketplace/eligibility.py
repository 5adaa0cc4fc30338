"""
Moderator eligibility.
Run on a schedule: users whose lifetime earnings reach the configured minimum
are granted moderation access.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from .config import config
from .dynamo import scan_all, table, is_conditional_check_failed
from .logging import logger
from .models import AccountStatus, NotificationType, UserRole
from .notifications import notify
from .settings import PlatformSettings


def find_eligible_users(settings: PlatformSettings):
    """
    Active non-moderators (role User) whose total earnings meet the minimum.
    A user with no canModerate attribute counts as a non-moderator.
    """
    return scan_all(
        config.USERS_TABLE,
        Attr('role').eq(UserRole.USER)
        & Attr('canModerate').ne(True)
        & Attr('accountStatus').eq(AccountStatus.ACTIVE)
        & Attr('totalEarnings').gte(settings.moderator_minimum_earnings)
    )


def upgrade_moderators(settings: PlatformSettings, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Grant canModerate to every eligible user.

    The grant is conditional on the user still being eligible, so a user whose
    state changed since the scan is skipped rather than upgraded.
    """
    now = now or datetime.now(timezone.utc)
    candidates = find_eligible_users(settings)
    logger.info(f"Found {len(candidates)} users eligible for moderator access")

    upgraded = 0
    skipped = 0
    for user in candidates:
        user_id = user['userId']
        try:
            table(config.USERS_TABLE).update_item(
                Key={'userId': user_id},
                UpdateExpression='SET canModerate = :true, moderatorSince = :ts',
                ConditionExpression=(
                    '(attribute_not_exists(canModerate) OR canModerate = :false) '
                    'AND accountStatus = :active AND totalEarnings >= :minimum'
                ),
                ExpressionAttributeValues={
                    ':true': True,
                    ':false': False,
                    ':active': AccountStatus.ACTIVE,
                    ':minimum': Decimal(str(settings.moderator_minimum_earnings)),
                    ':ts': now.isoformat()
                }
            )
        except ClientError as e:
            if is_conditional_check_failed(e):
                skipped += 1
                continue
            raise

        upgraded += 1
        logger.info(f"Granted moderator access to user {user_id}")
        notify(
            user_id,
            NotificationType.MODERATOR_ACCESS,
            'Moderator Access Granted',
            'Congratulations! You can now review submissions and earn moderation fees.'
        )

    return {'eligible': len(candidates), 'upgraded': upgraded, 'skipped': skipped}
