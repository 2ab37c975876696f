"""users, notebooks, stages, change requests, warnings, clickstreams

Revision ID: 4d2e91a7c0b3
Revises:
Create Date: 2026-10-12 09:14:03.118402
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "4d2e91a7c0b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(bind, name: str) -> bool:
    return name in sa.inspect(bind).get_table_names()


def upgrade() -> None:
    """Create the schema; tables created earlier by create_all() are left alone."""
    bind = op.get_bind()

    # ---- USERS ----
    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_name", sa.String(length=64), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("org", sa.String(length=200), nullable=True),
            sa.Column("admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("terms_accepted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_users_id"), "users", ["id"])
        op.create_index(op.f("ix_users_user_name"), "users", ["user_name"], unique=True)
        op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # ---- NOTEBOOKS ----
    if not _table_exists(bind, "notebooks"):
        op.create_table(
            "notebooks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("uuid", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("updater_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("lang", sa.String(length=64), nullable=False, server_default="unknown"),
            sa.Column("lang_version", sa.String(length=64), nullable=True),
            sa.Column("commit_id", sa.String(length=64), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("license", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_notebooks_id"), "notebooks", ["id"])
        op.create_index(op.f("ix_notebooks_uuid"), "notebooks", ["uuid"], unique=True)
        op.create_index(op.f("ix_notebooks_owner_id"), "notebooks", ["owner_id"])

    # ---- STAGES ----
    if not _table_exists(bind, "stages"):
        op.create_table(
            "stages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("uuid", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_stages_uuid"), "stages", ["uuid"], unique=True)
        op.create_index(op.f("ix_stages_user_id"), "stages", ["user_id"])

    # ---- CHANGE REQUESTS ----
    if not _table_exists(bind, "change_requests"):
        op.create_table(
            "change_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("reqid", sa.String(length=36), nullable=False),
            sa.Column("notebook_id", sa.Integer(), sa.ForeignKey("notebooks.id"), nullable=False),
            sa.Column("requestor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("requestor_comment", sa.Text(), nullable=True),
            sa.Column("owner_comment", sa.Text(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("license", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_change_requests_reqid"), "change_requests", ["reqid"], unique=True)
        op.create_index(op.f("ix_change_requests_notebook_id"), "change_requests", ["notebook_id"])
        op.create_index(op.f("ix_change_requests_requestor_id"), "change_requests", ["requestor_id"])

    # ---- WARNINGS ----
    if not _table_exists(bind, "warnings"):
        op.create_table(
            "warnings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="warning"),
            sa.Column("expires", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_warnings_user_id"), "warnings", ["user_id"])

    # ---- CLICKSTREAMS ----
    if not _table_exists(bind, "clickstreams"):
        op.create_table(
            "clickstreams",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=True),
            sa.Column("notebook_id", sa.Integer(), nullable=True),
            sa.Column("tracking", sa.String(length=64), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index(op.f("ix_clickstreams_user_id"), "clickstreams", ["user_id"])
        op.create_index(op.f("ix_clickstreams_action"), "clickstreams", ["action"])
        op.create_index(op.f("ix_clickstreams_notebook_id"), "clickstreams", ["notebook_id"])


def downgrade() -> None:
    for table in ("clickstreams", "warnings", "change_requests", "stages", "notebooks", "users"):
        op.drop_table(table)
