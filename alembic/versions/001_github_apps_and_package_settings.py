"""GitHub app connections and package settings

Revision ID: 001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_github_apps_and_package_settings"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "github_apps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, server_default=""),
        sa.Column("app_id", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("installation_id", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("private_key_encrypted", sa.Text, nullable=False, server_default=""),
        sa.Column("webhook_secret_encrypted", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("managed_repositories", sa.JSON, nullable=False),
        sa.Column("position", sa.BigInteger, nullable=False, server_default="0", index=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "package_settings",
        sa.Column("repo_slug", sa.String(255), primary_key=True),
        sa.Column("kind", sa.String(16), primary_key=True),
        sa.Column("channel", sa.String(16), nullable=False, server_default="stable"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("package_settings")
    op.drop_table("github_apps")
