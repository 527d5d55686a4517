"""Tests for membership email rendering and delivery."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from orgledger.services import notifications
from orgledger.services.notifications import Notification, NotificationKind
from orgledger.workers import notification_tasks
from orgledger.workers.notification_tasks import render_message


class TestRenderMessage:
    def test_invite(self):
        subject, text = render_message(
            "invite",
            {
                "organization_name": "Acme",
                "role": "MEMBER",
                "inviter_name": "Wile",
                "invite_url": "http://localhost:3000/invite/abc",
                "expires_at": "2026-10-26T00:00:00+00:00",
            },
        )
        assert subject == "You're invited to join Acme"
        assert "Wile invited you to join Acme as MEMBER" in text
        assert "http://localhost:3000/invite/abc" in text

    def test_welcome_for_new_user_mentions_password(self):
        _, text = render_message("welcome", {"organization_name": "Acme", "role": "MEMBER", "is_new_user": True})
        assert "set your password" in text

    def test_welcome_for_existing_user(self):
        _, text = render_message("welcome", {"organization_name": "Acme", "role": "ADMIN", "user_name": "Road"})
        assert text.startswith("Hi Road,")
        assert "password" not in text

    def test_role_changed(self):
        _, text = render_message(
            "role_changed", {"organization_name": "Acme", "old_role": "MEMBER", "role": "ADMIN"}
        )
        assert "from MEMBER to ADMIN" in text

    def test_relinquished_without_new_owner_name(self):
        _, text = render_message("ownership_relinquished", {"organization_name": "Acme", "new_owner_name": None})
        assert "another member" in text

    @pytest.mark.parametrize("kind", [k.value for k in NotificationKind])
    def test_every_kind_renders(self, kind):
        subject, text = render_message(kind, {"organization_name": "Acme"})
        assert "Acme" in subject
        assert text

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            render_message("carrier_pigeon", {})


class TestDispatch:
    def test_enqueues_each_notification(self, mock_email):
        notifications.dispatch(
            [
                Notification(NotificationKind.WELCOME, "a@example.com", {"organization_name": "Acme"}),
                Notification(NotificationKind.REMOVED, "b@example.com"),
            ]
        )
        assert mock_email.delay.call_count == 2
        mock_email.delay.assert_any_call("removed", "b@example.com", {})

    def test_broker_error_is_swallowed(self, mock_email):
        mock_email.delay.side_effect = OSError("connection refused")
        notifications.dispatch([Notification(NotificationKind.REMOVED, "b@example.com")])
        mock_email.delay.assert_called_once()


class TestSend:
    @pytest.mark.asyncio
    @patch("orgledger.workers.notification_tasks.settings")
    async def test_skips_without_api_key(self, mock_settings):
        mock_settings.resend_api_key = ""
        with patch("orgledger.workers.notification_tasks.httpx.AsyncClient") as mock_client:
            await notification_tasks._send("removed", "b@example.com", {})
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    @patch("orgledger.workers.notification_tasks.settings")
    async def test_posts_to_resend(self, mock_settings):
        mock_settings.resend_api_key = "re_test"
        mock_settings.email_from = "OrgLedger <no-reply@example.com>"

        response = MagicMock(status_code=200)
        client = AsyncMock()
        client.post.return_value = response
        with patch("orgledger.workers.notification_tasks.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value = client
            await notification_tasks._send("removed", "b@example.com", {"organization_name": "Acme"})

        client.post.assert_awaited_once()
        _, kwargs = client.post.call_args
        assert kwargs["headers"] == {"Authorization": "Bearer re_test"}
        assert kwargs["json"]["to"] == ["b@example.com"]
        assert kwargs["json"]["subject"] == "You've been removed from Acme"

    @pytest.mark.asyncio
    @patch("orgledger.workers.notification_tasks.settings")
    async def test_rejected_request_raises(self, mock_settings):
        mock_settings.resend_api_key = "re_test"

        client = AsyncMock()
        client.post.return_value = MagicMock(status_code=422, text="bad from")
        with patch("orgledger.workers.notification_tasks.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value = client
            with pytest.raises(RuntimeError):
                await notification_tasks._send("removed", "b@example.com", {})


class TestTask:
    def test_network_error_retries(self):
        with patch(
            "orgledger.workers.notification_tasks._send",
            side_effect=httpx.ConnectError("down"),
        ), patch.object(
            notification_tasks.send_membership_email, "retry", side_effect=RuntimeError("retry")
        ) as mock_retry:
            with pytest.raises(RuntimeError, match="retry"):
                notification_tasks.send_membership_email.run("removed", "b@example.com", {})
        mock_retry.assert_called_once()

    def test_other_errors_are_dropped(self):
        with patch(
            "orgledger.workers.notification_tasks._send",
            side_effect=ValueError("Unknown notification kind"),
        ):
            notification_tasks.send_membership_email.run("nope", "b@example.com", {})
