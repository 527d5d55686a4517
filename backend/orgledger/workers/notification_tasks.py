"""Membership email delivery.

The orchestrator enqueues these after commit. Each task renders a short
plain-text message and posts it to the Resend API. Network-level errors are
retried; anything else is logged and dropped. HTML templates belong to the
email collaborator and are not rendered here.
"""

import asyncio
import logging

import httpx
from celery.exceptions import SoftTimeLimitExceeded

from orgledger.config import HTTP_TIMEOUT, settings
from orgledger.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def render_message(kind: str, context: dict) -> tuple[str, str]:
    """Return ``(subject, text)`` for a notification kind."""
    org = context.get("organization_name", "your organization")
    role = context.get("role", "")
    name = context.get("user_name") or "there"

    if kind == "invite":
        return (
            f"You're invited to join {org}",
            f"Hi,\n\n{context.get('inviter_name') or 'A teammate'} invited you to join {org} as {role}.\n"
            f"Accept the invitation: {context.get('invite_url', '')}\n"
            f"This invitation expires on {context.get('expires_at', '')}.",
        )
    if kind == "welcome":
        lines = [f"Hi {name},", "", f"You've been added to {org} as {role}."]
        if context.get("is_new_user"):
            lines.append("Check your inbox for a separate email to set your password.")
        return f"Welcome to {org}", "\n".join(lines)
    if kind == "role_changed":
        return (
            f"Your role in {org} has changed",
            f"Hi {name},\n\nYour role in {org} changed from {context.get('old_role', '')} to {role}.",
        )
    if kind == "removed":
        return (
            f"You've been removed from {org}",
            f"Hi {name},\n\nYou no longer have access to {org}.",
        )
    if kind == "ownership_received":
        return (
            f"You are now the owner of {org}",
            f"Hi {name},\n\nOwnership of {org} has been transferred to you.",
        )
    if kind == "ownership_relinquished":
        return (
            f"Ownership of {org} was transferred",
            f"Hi {name},\n\nOwnership of {org} has been transferred to "
            f"{context.get('new_owner_name') or 'another member'}. Your role is now ADMIN.",
        )
    raise ValueError(f"Unknown notification kind: {kind}")


@celery_app.task(
    name="orgledger.workers.notification_tasks.send_membership_email",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    soft_time_limit=30,
    time_limit=60,
)
def send_membership_email(self, kind: str, to_email: str, context: dict):
    """Deliver one membership notification email."""
    try:
        asyncio.run(_send(kind, to_email, context))
    except (httpx.TimeoutException, httpx.ConnectError, SoftTimeLimitExceeded) as e:
        logger.warning(f"Retrying {kind} email to {to_email}: {e}")
        raise self.retry(exc=e) from e
    except Exception as e:
        logger.error(f"Dropping {kind} email to {to_email}: {e}", exc_info=True)


async def _send(kind: str, to_email: str, context: dict) -> None:
    subject, text = render_message(kind, context)

    if not settings.resend_api_key:
        logger.info(f"RESEND_API_KEY not set, skipping {kind} email to {to_email}")
        return

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        response = await client.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            json={
                "from": settings.email_from,
                "to": [to_email],
                "subject": subject,
                "text": text,
            },
        )

    if response.status_code >= 400:
        raise RuntimeError(f"Resend rejected email: {response.status_code} {response.text}")

    logger.info(f"Sent {kind} email to {to_email}")
