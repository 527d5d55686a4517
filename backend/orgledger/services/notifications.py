"""Notification dispatcher adapter.

Hands membership emails to the Celery worker after the orchestrator's
transaction has committed. Fire-and-forget: a broker outage is logged and
swallowed, the committed membership change stands.
"""

import enum
import logging
from dataclasses import dataclass, field

from orgledger.workers.notification_tasks import send_membership_email

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    INVITE = "invite"
    WELCOME = "welcome"
    ROLE_CHANGED = "role_changed"
    REMOVED = "removed"
    OWNERSHIP_RECEIVED = "ownership_received"
    OWNERSHIP_RELINQUISHED = "ownership_relinquished"


@dataclass
class Notification:
    kind: NotificationKind
    to_email: str
    context: dict = field(default_factory=dict)


def dispatch(notifications: list[Notification]) -> None:
    for notification in notifications:
        try:
            send_membership_email.delay(
                notification.kind.value,
                notification.to_email,
                notification.context,
            )
        except Exception as e:
            logger.warning(
                f"Could not enqueue {notification.kind.value} email to {notification.to_email}: {e}"
            )
