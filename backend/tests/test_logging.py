"""Tests for request-scoped log context and invite token masking."""

import json
import logging

import pytest
from httpx import AsyncClient

from orgledger.logging_config import (
    InviteTokenFilter,
    JSONFormatter,
    RequestContextFilter,
    clear_request_context,
    mask_invite_tokens,
    set_request_context,
)


def _record(msg: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("orgledger.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMaskInviteTokens:
    def test_masks_token_in_path(self):
        token = "Zx9kQ3v_Lm2pR8tY-aB4cD6eF0gH"
        assert mask_invite_tokens(f"GET /api/invites/{token}/accept") == "GET /api/invites/Zx9k***/accept"

    def test_leaves_short_segments_alone(self):
        assert mask_invite_tokens("GET /api/invites/mine") == "GET /api/invites/mine"

    def test_filter_masks_args(self):
        record = _record("Unhandled exception on %s", "/invite/Zx9kQ3v_Lm2pR8tY-aB4cD6eF0gH")
        InviteTokenFilter().filter(record)
        assert record.getMessage() == "Unhandled exception on /invite/Zx9k***"


class TestRequestContext:
    def teardown_method(self):
        clear_request_context()

    def test_context_is_attached(self):
        set_request_context(request_id="req-1", user_id="user-1")
        record = _record("hello")
        RequestContextFilter().filter(record)
        assert record.request_id == "req-1"
        assert record.user_id == "user-1"

    def test_explicit_user_id_wins(self):
        set_request_context(user_id="caller")
        record = _record("hello", user_id="target")
        RequestContextFilter().filter(record)
        assert record.user_id == "target"

    def test_json_formatter_includes_membership_extras(self):
        set_request_context(request_id="req-2")
        record = _record("Seats updated", org_id="org-9")
        RequestContextFilter().filter(record)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Seats updated"
        assert entry["request_id"] == "req-2"
        assert entry["user_id"] == "-"
        assert entry["org_id"] == "org-9"
        assert "invite_id" not in entry


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"

    response = await client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 32
