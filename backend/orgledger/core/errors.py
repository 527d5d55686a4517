"""Membership error taxonomy.

Every rejection carries a machine-readable ``code`` so a billing admin can
tell "buy more seats" apart from "invite already pending" or "can't remove
the last owner". Errors are raised inside the orchestrator's transaction,
which rolls back before the error reaches the HTTP layer.
"""

import enum


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    EMAIL_MISMATCH = "EMAIL_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    SEATS_EXHAUSTED = "SEATS_EXHAUSTED"
    SEATS_BELOW_USAGE = "SEATS_BELOW_USAGE"
    DUPLICATE_INVITE = "DUPLICATE_INVITE"
    ALREADY_MEMBER = "ALREADY_MEMBER"
    ALREADY_ACCEPTED = "ALREADY_ACCEPTED"
    ALREADY_OWNER = "ALREADY_OWNER"
    LAST_OWNER = "LAST_OWNER"
    INTERNAL = "INTERNAL"


class MembershipError(Exception):
    status_code = 500
    default_code = ErrorCode.INTERNAL
    default_message = "Membership operation failed"

    def __init__(self, message: str | None = None, code: ErrorCode | None = None):
        self.code = code or self.default_code
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class Unauthorized(MembershipError):
    status_code = 401
    default_code = ErrorCode.UNAUTHORIZED
    default_message = "Not authenticated"


class Forbidden(MembershipError):
    status_code = 403
    default_code = ErrorCode.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(MembershipError):
    status_code = 404
    default_code = ErrorCode.NOT_FOUND
    default_message = "Not found"


class Conflict(MembershipError):
    status_code = 409
    default_code = ErrorCode.SEATS_EXHAUSTED

    _MESSAGES = {
        ErrorCode.SEATS_EXHAUSTED: "No available seats in this organization",
        ErrorCode.SEATS_BELOW_USAGE: "Cannot reduce seats below current usage",
        ErrorCode.DUPLICATE_INVITE: "An invitation is already pending for this email",
        ErrorCode.ALREADY_MEMBER: "User is already a member of this organization",
        ErrorCode.ALREADY_ACCEPTED: "This invitation has already been accepted",
        ErrorCode.ALREADY_OWNER: "User is already an owner of this organization",
        ErrorCode.LAST_OWNER: "Cannot remove or demote the last owner",
    }

    def __init__(self, code: ErrorCode, message: str | None = None):
        super().__init__(message or self._MESSAGES.get(code), code)


class Expired(MembershipError):
    status_code = 400
    default_code = ErrorCode.EXPIRED
    default_message = "This invitation has expired"


class Internal(MembershipError):
    status_code = 500
    default_code = ErrorCode.INTERNAL
    default_message = "Membership storage failure"
