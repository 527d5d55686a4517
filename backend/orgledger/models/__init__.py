from orgledger.models.audit import AuditLog
from orgledger.models.invite import InviteStatus, OrganizationInvite
from orgledger.models.member import MemberRole, OrganizationMember
from orgledger.models.org import Organization
from orgledger.models.user import User

__all__ = [
    "Organization",
    "OrganizationMember",
    "MemberRole",
    "OrganizationInvite",
    "InviteStatus",
    "User",
    "AuditLog",
]
