"""initial schema: users, websites, script templates, website logs

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-18 09:12:41.120554

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, websites, script_templates and website_logs tables."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(64), nullable=False, unique=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("first_name", sa.String(128), nullable=False),
            sa.Column("last_name", sa.String(128), nullable=False),
            sa.Column("profile_image_url", sa.String(512), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "websites" not in existing_tables:
        op.create_table(
            "websites",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("subdomain", sa.String(63), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("current_script", sa.String(255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("subdomain", name="uq_websites_subdomain"),
            sa.UniqueConstraint("user_id", name="uq_websites_user_id"),
        )

    if "script_templates" not in existing_tables:
        op.create_table(
            "script_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("display_name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("version", sa.String(32), nullable=False, server_default="1.0.0"),
            sa.Column("file_name", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_script_templates_display_name", "script_templates", ["display_name"])

    if "website_logs" not in existing_tables:
        op.create_table(
            "website_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("website_id", sa.Integer(), sa.ForeignKey("websites.id", ondelete="CASCADE"), nullable=False),
            sa.Column("action", sa.String(64), nullable=False),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_website_logs_website_created", "website_logs", ["website_id", "created_at"])


def downgrade() -> None:
    """Drop all tables created in upgrade."""
    op.drop_index("idx_website_logs_website_created", table_name="website_logs")
    op.drop_table("website_logs")
    op.drop_index("idx_script_templates_display_name", table_name="script_templates")
    op.drop_table("script_templates")
    op.drop_table("websites")
    op.drop_table("users")
