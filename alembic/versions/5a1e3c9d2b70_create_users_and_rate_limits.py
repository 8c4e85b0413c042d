"""Create users and rate_limits tables

Revision ID: 5a1e3c9d2b70
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5a1e3c9d2b70"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("authenticated", sa.Boolean(), nullable=False),
        sa.Column("otp", sa.String(), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_authenticated"), "users", ["authenticated"], unique=False)
    op.create_index(op.f("ix_users_otp_expires_at"), "users", ["otp_expires_at"], unique=False)

    op.create_table(
        "rate_limits",
        sa.Column("operation", sa.String(), nullable=False),
        sa.Column("counter", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("counter >= 0", name="ck_rate_limits_counter_non_negative"),
        sa.PrimaryKeyConstraint("operation"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("rate_limits")
    op.drop_index(op.f("ix_users_otp_expires_at"), table_name="users")
    op.drop_index(op.f("ix_users_authenticated"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
