"""
Notification sink.
Fire-and-forget delivery of user-facing notifications. Delivery failures are
logged and swallowed; they never undo the operation that produced them.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional
from .config import config
from .dynamo import table
from .logging import logger


@dataclass(frozen=True)
class Notification:
    user_id: str
    kind: str
    title: str
    message: str
    link: Optional[str] = None


def notify(user_id: str, kind: str, title: str, message: str, link: Optional[str] = None) -> Optional[str]:
    """
    Store a notification for a user.

    Returns:
        The notification id, or None if delivery failed
    """
    notification_id = str(uuid.uuid4())
    item = {
        'notificationId': notification_id,
        'userId': user_id,
        'type': kind,
        'title': title,
        'message': message,
        'isRead': False,
        'createdAt': datetime.now(timezone.utc).isoformat()
    }
    if link:
        item['link'] = link

    try:
        table(config.NOTIFICATIONS_TABLE).put_item(Item=item)
        logger.info(f"Notification {kind} sent to user {user_id}")
        return notification_id
    except Exception as e:
        logger.error(f"Notification error (non-critical) for user {user_id}: {e}")
        return None


def deliver(notifications: Iterable[Notification]) -> int:
    """Send a batch of notifications collected during a transaction. Returns the delivered count."""
    delivered = 0
    for n in notifications:
        if notify(n.user_id, n.kind, n.title, n.message, n.link):
            delivered += 1
    return delivered
