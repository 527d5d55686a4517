"""membership schema: organizations, users, organization_members, organization_invites

Revision ID: 001_membership
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001_membership"
down_revision = None
branch_labels = None
depends_on = None

memberrole_enum = postgresql.ENUM("OWNER", "ADMIN", "MEMBER", name="memberrole", create_type=False)


def upgrade() -> None:
    memberrole_enum.create(op.get_bind(), checkfirst=True)

    # --- organizations ---
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("plan", sa.String(50), nullable=False, server_default="FREE"),
        sa.Column("seats", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("seats_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("billing_email", sa.String(320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("seats >= 1", name="ck_organizations_seats_positive"),
        sa.CheckConstraint(
            "seats_used >= 0 AND seats_used <= seats", name="ck_organizations_seats_used_bounds"
        ),
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- organization_members ---
    op.create_table(
        "organization_members",
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role", memberrole_enum, nullable=False, server_default="MEMBER"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])
    op.create_index("ix_organization_members_role", "organization_members", ["role"])

    # --- organization_invites ---
    op.create_table(
        "organization_invites",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", memberrole_enum, nullable=False, server_default="MEMBER"),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column(
            "invited_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_organization_invites_token", "organization_invites", ["token"], unique=True)
    op.create_index(
        "ix_organization_invites_org_email", "organization_invites", ["organization_id", "email"]
    )


def downgrade() -> None:
    op.drop_index("ix_organization_invites_org_email", table_name="organization_invites")
    op.drop_index("ix_organization_invites_token", table_name="organization_invites")
    op.drop_table("organization_invites")
    op.drop_index("ix_organization_members_role", table_name="organization_members")
    op.drop_index("ix_organization_members_user_id", table_name="organization_members")
    op.drop_table("organization_members")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("organizations")
    memberrole_enum.drop(op.get_bind(), checkfirst=True)
