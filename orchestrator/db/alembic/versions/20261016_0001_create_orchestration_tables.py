"""Create repositories, sessions, sandboxes, transcript and checkpoint tables.

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "repositories",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False, server_default="github"),
        sa.Column("default_branch", sa.String(length=255), nullable=False, server_default="main"),
        sa.Column("context", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_repositories"),
    )
    op.create_index("ix_repositories_organization_id", "repositories", ["organization_id"])

    op.create_table(
        "git_connections",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_git_connections"),
        sa.UniqueConstraint("user_id", "provider", name="uq_git_connections_user_provider"),
    )
    op.create_index("ix_git_connections_user_id", "git_connections", ["user_id"])

    op.create_table(
        "sandboxes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("repository_id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.String(length=255), nullable=True),
        sa.Column("provider", sa.String(length=32), nullable=False, server_default="daytona"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="provisioning"),
        sa.Column("preview_url", sa.Text(), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_checkpoint_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["repository_id"],
            ["repositories.id"],
            name="fk_sandboxes_repository_id_repositories",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_sandboxes"),
        sa.UniqueConstraint("repository_id", name="uq_sandboxes_repository_id"),
    )
    op.create_index("ix_sandboxes_status", "sandboxes", ["status"])
    op.create_index("ix_sandboxes_last_active_at", "sandboxes", ["last_active_at"])

    op.create_table(
        "feature_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=255), nullable=False),
        sa.Column("repository_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("branch_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="idle"),
        sa.Column("sandbox_id", sa.Uuid(), nullable=True),
        sa.Column("agent_provider", sa.String(length=64), nullable=True),
        sa.Column("agent_session_id", sa.String(length=255), nullable=True),
        sa.Column("created_by_id", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["repository_id"],
            ["repositories.id"],
            name="fk_feature_sessions_repository_id_repositories",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["sandbox_id"],
            ["sandboxes.id"],
            name="fk_feature_sessions_sandbox_id_sandboxes",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_feature_sessions"),
    )
    op.create_index("ix_feature_sessions_repository_id", "feature_sessions", ["repository_id"])
    op.create_index("ix_feature_sessions_status", "feature_sessions", ["status"])
    op.create_index("ix_feature_sessions_sandbox_id", "feature_sessions", ["sandbox_id"])
    op.create_index(
        "ix_feature_sessions_org_updated_at",
        "feature_sessions",
        ["organization_id", "updated_at"],
    )

    op.create_table(
        "session_messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("phase", sa.String(length=32), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["feature_sessions.id"],
            name="fk_session_messages_session_id_feature_sessions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_session_messages"),
    )
    op.create_index(
        "ix_session_messages_session_created_at",
        "session_messages",
        ["session_id", "created_at"],
    )

    op.create_table(
        "approvals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.Uuid(), nullable=False),
        sa.Column("message_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["feature_sessions.id"],
            name="fk_approvals_session_id_feature_sessions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["message_id"],
            ["session_messages.id"],
            name="fk_approvals_message_id_session_messages",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_approvals"),
    )
    op.create_index("ix_approvals_session_id", "approvals", ["session_id"])
    op.create_index(
        "uq_approvals_session_pending",
        "approvals",
        ["session_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "checkpoints",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.Uuid(), nullable=True),
        sa.Column("sandbox_id", sa.Uuid(), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="manual"),
        sa.Column("provider_snapshot_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["feature_sessions.id"],
            name="fk_checkpoints_session_id_feature_sessions",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["sandbox_id"],
            ["sandboxes.id"],
            name="fk_checkpoints_sandbox_id_sandboxes",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_checkpoints"),
    )
    op.create_index("ix_checkpoints_session_id", "checkpoints", ["session_id"])
    op.create_index("ix_checkpoints_sandbox_id", "checkpoints", ["sandbox_id"])


def downgrade() -> None:
    op.drop_index("ix_checkpoints_sandbox_id", table_name="checkpoints")
    op.drop_index("ix_checkpoints_session_id", table_name="checkpoints")
    op.drop_table("checkpoints")
    op.drop_index("uq_approvals_session_pending", table_name="approvals")
    op.drop_index("ix_approvals_session_id", table_name="approvals")
    op.drop_table("approvals")
    op.drop_index("ix_session_messages_session_created_at", table_name="session_messages")
    op.drop_table("session_messages")
    op.drop_index("ix_feature_sessions_org_updated_at", table_name="feature_sessions")
    op.drop_index("ix_feature_sessions_sandbox_id", table_name="feature_sessions")
    op.drop_index("ix_feature_sessions_status", table_name="feature_sessions")
    op.drop_index("ix_feature_sessions_repository_id", table_name="feature_sessions")
    op.drop_table("feature_sessions")
    op.drop_index("ix_sandboxes_last_active_at", table_name="sandboxes")
    op.drop_index("ix_sandboxes_status", table_name="sandboxes")
    op.drop_table("sandboxes")
    op.drop_index("ix_git_connections_user_id", table_name="git_connections")
    op.drop_table("git_connections")
    op.drop_index("ix_repositories_organization_id", table_name="repositories")
    op.drop_table("repositories")
