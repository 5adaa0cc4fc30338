"""
Activity log.
Every audited action is one of a fixed set of event kinds, each with an
explicit payload shape, stored with a `kind` discriminator.
"""
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Union
from .config import config
from .dynamo import put_action


@dataclass(frozen=True)
class AppealSubmitted:
    kind: ClassVar[str] = 'AppealSubmitted'
    submission_id: str
    reason: str


@dataclass(frozen=True)
class AppealResolved:
    kind: ClassVar[str] = 'AppealResolved'
    submission_id: str
    approved: bool
    notes: str = ''


@dataclass(frozen=True)
class PaymentRequested:
    kind: ClassVar[str] = 'PaymentRequested'
    payment_id: str
    amount: Decimal


@dataclass(frozen=True)
class PaymentReviewed:
    kind: ClassVar[str] = 'PaymentReviewed'
    payment_id: str
    status: str
    flagged: bool = False


@dataclass(frozen=True)
class UserSuspended:
    kind: ClassVar[str] = 'UserSuspended'
    target_user_id: str
    status: str
    reason: str


@dataclass(frozen=True)
class ModeratorAccessChanged:
    kind: ClassVar[str] = 'ModeratorAccessChanged'
    target_user_id: str
    can_moderate: bool


@dataclass(frozen=True)
class SuspensionAppealSubmitted:
    kind: ClassVar[str] = 'SuspensionAppealSubmitted'
    suspension_id: str
    reason: str


@dataclass(frozen=True)
class SuspensionAppealReviewed:
    kind: ClassVar[str] = 'SuspensionAppealReviewed'
    suspension_id: str
    target_user_id: str
    approved: bool
    notes: str = ''


ActivityEvent = Union[
    AppealSubmitted,
    AppealResolved,
    PaymentRequested,
    PaymentReviewed,
    UserSuspended,
    ModeratorAccessChanged,
    SuspensionAppealSubmitted,
    SuspensionAppealReviewed,
]

EVENT_KINDS = {cls.kind: cls for cls in (
    AppealSubmitted, AppealResolved, PaymentRequested,
    PaymentReviewed, UserSuspended, ModeratorAccessChanged,
    SuspensionAppealSubmitted, SuspensionAppealReviewed,
)}


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def event_payload(event: ActivityEvent) -> Dict[str, Any]:
    return {_camel(f.name): getattr(event, f.name) for f in fields(event)}


def event_from_item(item: Dict[str, Any]) -> ActivityEvent:
    """Rebuild the typed event from a stored activity item."""
    cls = EVENT_KINDS.get(item.get('kind'))
    if cls is None:
        raise ValueError(f"Unknown activity kind: {item.get('kind')}")
    payload = item.get('payload', {})
    return cls(**{f.name: payload[_camel(f.name)] for f in fields(cls) if _camel(f.name) in payload})


def activity_item(actor_id: str, event: ActivityEvent, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        'activityId': str(uuid.uuid4()),
        'userId': actor_id,
        'kind': event.kind,
        'payload': event_payload(event),
        'createdAt': now.isoformat()
    }


def activity_action(actor_id: str, event: ActivityEvent, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build the transaction Put that records this event."""
    return put_action(config.ACTIVITY_TABLE, activity_item(actor_id, event, now))
