import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgledger.core.timeutils import ensure_utc, utc_now
from orgledger.database import Base
from orgledger.models.member import MemberRole, member_role_enum


class InviteStatus(str, enum.Enum):
    """Derived lifecycle state. Only ``accepted_at`` is ever written."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class OrganizationInvite(Base):
    __tablename__ = "organization_invites"
    __table_args__ = (
        Index("ix_organization_invites_org_email", "organization_id", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[MemberRole] = mapped_column(
        member_role_enum,
        nullable=False,
        default=MemberRole.MEMBER,
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    organization: Mapped["Organization"] = relationship()  # noqa: F821

    def status_at(self, now: datetime | None = None) -> InviteStatus:
        if self.accepted_at is not None:
            return InviteStatus.ACCEPTED
        if (now or utc_now()) >= ensure_utc(self.expires_at):
            return InviteStatus.EXPIRED
        return InviteStatus.PENDING

    @property
    def status(self) -> InviteStatus:
        return self.status_at()
