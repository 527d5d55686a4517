import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgledger.core.timeutils import utc_now
from orgledger.database import Base


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint("seats >= 1", name="ck_organizations_seats_positive"),
        CheckConstraint(
            "seats_used >= 0 AND seats_used <= seats", name="ck_organizations_seats_used_bounds"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="FREE")
    # seats / seats_used are only written by orgledger.services.seat_accountant
    seats: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    seats_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    billing_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )

    # Relationships
    members: Mapped[list["OrganizationMember"]] = relationship(  # noqa: F821
        back_populates="organization", passive_deletes=True
    )

    @property
    def seats_available(self) -> int:
        return max(self.seats - self.seats_used, 0)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, seats={self.seats_used}/{self.seats})>"
