"""Tests for the role authority table."""

import pytest

from orgledger.core.errors import ErrorCode, Forbidden
from orgledger.core.permissions import Action, authorize, require
from orgledger.models.member import MemberRole


class TestAuthorize:
    @pytest.mark.parametrize("action", list(Action))
    def test_owner_may_do_everything(self, action):
        assert authorize(MemberRole.OWNER, action)

    def test_admin_cannot_transfer_ownership(self):
        assert not authorize(MemberRole.ADMIN, Action.TRANSFER_OWNERSHIP)

    @pytest.mark.parametrize("action", [Action.MANAGE_SEATS, Action.DELETE_ORGANIZATION])
    def test_admin_cannot_buy_seats_or_delete(self, action):
        assert not authorize(MemberRole.ADMIN, action)

    @pytest.mark.parametrize(
        "action",
        [
            Action.INVITE_MEMBER,
            Action.ADD_USER_DIRECT,
            Action.REMOVE_MEMBER,
            Action.CHANGE_ROLE,
            Action.VIEW_AUDIT_LOG,
            Action.UPDATE_ORGANIZATION,
        ],
    )
    def test_admin_manages_members(self, action):
        assert authorize(MemberRole.ADMIN, action)

    @pytest.mark.parametrize("action", [a for a in Action if a is not Action.VIEW_MEMBERS])
    def test_member_is_read_only(self, action):
        assert not authorize(MemberRole.MEMBER, action)

    def test_member_may_view_members(self):
        assert authorize(MemberRole.MEMBER, Action.VIEW_MEMBERS)

    def test_non_member_denied(self):
        assert not authorize(None, Action.VIEW_MEMBERS)

    def test_super_admin_bypasses_table(self):
        assert authorize(None, Action.TRANSFER_OWNERSHIP, is_super_admin=True)
        assert authorize(MemberRole.MEMBER, Action.REMOVE_MEMBER, True, touches_owner=True)

    def test_admin_cannot_touch_owner_role(self):
        assert not authorize(MemberRole.ADMIN, Action.CHANGE_ROLE, touches_owner=True)
        assert not authorize(MemberRole.ADMIN, Action.INVITE_MEMBER, touches_owner=True)

    def test_owner_can_touch_owner_role(self):
        assert authorize(MemberRole.OWNER, Action.REMOVE_MEMBER, touches_owner=True)


class TestRequire:
    def test_allowed_returns_none(self):
        assert require(MemberRole.ADMIN, Action.INVITE_MEMBER) is None

    def test_denied_raises_forbidden(self):
        with pytest.raises(Forbidden) as exc_info:
            require(MemberRole.MEMBER, Action.INVITE_MEMBER)
        assert exc_info.value.code is ErrorCode.FORBIDDEN
        assert exc_info.value.status_code == 403

    def test_transfer_message(self):
        with pytest.raises(Forbidden, match="Only the owner can transfer ownership"):
            require(MemberRole.ADMIN, Action.TRANSFER_OWNERSHIP)

    def test_delete_message(self):
        with pytest.raises(Forbidden, match="Only owners can delete organizations"):
            require(MemberRole.ADMIN, Action.DELETE_ORGANIZATION)

    def test_owner_role_message(self):
        with pytest.raises(Forbidden, match="OWNER role"):
            require(MemberRole.ADMIN, Action.CHANGE_ROLE, touches_owner=True)
