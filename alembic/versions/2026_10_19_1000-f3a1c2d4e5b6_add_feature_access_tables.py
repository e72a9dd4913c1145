"""add_feature_access_tables

Revision ID: f3a1c2d4e5b6
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "f3a1c2d4e5b6"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _flag_fk() -> sa.Column:
    return sa.Column(
        "flag_id",
        sa.Uuid(),
        sa.ForeignKey("feature_flags.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create feature flag, access matrix, package and analytics tables."""

    op.create_table(
        "feature_flags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_feature_flags_key", "feature_flags", ["key"], unique=True)

    op.create_table(
        "feature_flag_overrides",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _flag_fk(),
        sa.Column("scope_type", sa.String(20), nullable=False),
        sa.Column("scope_id", sa.Uuid(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "flag_id", "scope_type", "scope_id", name="uq_feature_flag_override_scope"
        ),
    )
    op.create_index(
        "ix_feature_flag_overrides_scope", "feature_flag_overrides", ["scope_type", "scope_id"]
    )

    op.create_table(
        "user_type_feature_access",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _flag_fk(),
        sa.Column("user_type", sa.String(50), nullable=False),
        sa.Column("access_state", sa.String(20), nullable=False, server_default="included"),
        sa.Column("default_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("flag_id", "user_type", name="uq_user_type_feature_access"),
    )
    op.create_index(
        "ix_user_type_feature_access_user_type", "user_type_feature_access", ["user_type"]
    )

    op.create_table(
        "feature_descriptors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "flag_id",
            sa.Uuid(),
            sa.ForeignKey("feature_flags.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("short_description", sa.String(500), nullable=True),
        sa.Column("long_description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("badge_text", sa.String(50), nullable=True),
        sa.Column("help_url", sa.String(500), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_feature_descriptors_category", "feature_descriptors", ["category"])

    op.create_table(
        "feature_packages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("price_monthly_cents", sa.Integer(), nullable=True),
        sa.Column("price_yearly_cents", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_feature_packages_slug", "feature_packages", ["slug"], unique=True)

    op.create_table(
        "feature_package_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "package_id",
            sa.Uuid(),
            sa.ForeignKey("feature_packages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _flag_fk(),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("package_id", "flag_id", name="uq_feature_package_item"),
    )

    op.create_table(
        "organization_feature_packages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column(
            "package_id",
            sa.Uuid(),
            sa.ForeignKey("feature_packages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "organization_id", "package_id", name="uq_organization_feature_package"
        ),
    )
    op.create_index(
        "ix_organization_feature_packages_organization_id",
        "organization_feature_packages",
        ["organization_id"],
    )

    op.create_table(
        "user_feature_preferences",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        _flag_fk(),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "flag_id", name="uq_user_feature_preference"),
    )
    op.create_index(
        "ix_user_feature_preferences_user_id", "user_feature_preferences", ["user_id"]
    )

    op.create_table(
        "feature_usage_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _flag_fk(),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("organization_id", sa.Uuid(), nullable=True),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("user_type", sa.String(50), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_feature_usage_events_flag_created",
        "feature_usage_events",
        ["flag_id", "created_at"],
    )


def downgrade() -> None:
    """Drop feature access tables."""
    op.drop_table("feature_usage_events")
    op.drop_table("user_feature_preferences")
    op.drop_table("organization_feature_packages")
    op.drop_table("feature_package_items")
    op.drop_table("feature_packages")
    op.drop_table("feature_descriptors")
    op.drop_table("user_type_feature_access")
    op.drop_table("feature_flag_overrides")
    op.drop_table("feature_flags")
