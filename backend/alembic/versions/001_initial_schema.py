"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _team_id():
    return sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id"), nullable=False)


def _timestamps(updated: bool = True):
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    op.create_table(
        "teams",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_teams_slug", "teams", ["slug"], unique=True)

    op.create_table(
        "users",
        _id(),
        sa.Column("display_name", sa.String(255)),
        sa.Column("primary_email", sa.String(255)),
        sa.Column("profile_image_url", sa.Text()),
        sa.Column("selected_team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id")),
        sa.Column("department_access", postgresql.JSONB()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_primary_email", "users", ["primary_email"])

    op.create_table(
        "team_memberships",
        _id(),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        *_timestamps(updated=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_membership"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="chk_team_membership_role"),
    )
    op.create_index("ix_team_memberships_team_id", "team_memberships", ["team_id"])
    op.create_index("ix_team_memberships_user_id", "team_memberships", ["user_id"])

    op.create_table(
        "departments",
        _id(),
        _team_id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_departments_team_id", "departments", ["team_id"])

    op.create_table(
        "routings",
        _id(),
        _team_id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("version", sa.String(20), nullable=False, server_default="1.0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_routings_team_id", "routings", ["team_id"])
    op.create_index("ix_routings_is_active", "routings", ["is_active"])

    op.create_table(
        "routing_operations",
        _id(),
        _team_id(),
        sa.Column("routing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("routings.id"), nullable=False),
        sa.Column("operation_number", sa.Integer(), nullable=False),
        sa.Column("operation_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("departments.id")),
        sa.Column("setup_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("run_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("instructions", sa.Text()),
        sa.Column("required_skills", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("file_attachments", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_routing_operations_team_id", "routing_operations", ["team_id"])
    op.create_index("ix_routing_operations_routing_id", "routing_operations", ["routing_id"])
    op.create_index("ix_routing_operations_department_id", "routing_operations", ["department_id"])
    op.create_index("ix_routing_operations_routing_number", "routing_operations", ["routing_id", "operation_number"])

    op.create_table(
        "orders",
        _id(),
        _team_id(),
        sa.Column("order_number", sa.String(100), nullable=False),
        sa.Column("routing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("routings.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("scheduled_start_date", sa.DateTime(timezone=True)),
        sa.Column("scheduled_end_date", sa.DateTime(timezone=True)),
        sa.Column("actual_start_date", sa.DateTime(timezone=True)),
        sa.Column("actual_end_date", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        sa.Column("custom_fields", postgresql.JSONB()),
        *_timestamps(),
        sa.UniqueConstraint("team_id", "order_number", name="uq_orders_team_number"),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'cancelled')",
            name="chk_order_status",
        ),
    )
    op.create_index("ix_orders_team_id", "orders", ["team_id"])
    op.create_index("ix_orders_routing_id", "orders", ["routing_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "work_order_operations",
        _id(),
        _team_id(),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column(
            "routing_operation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("routing_operations.id"),
            nullable=False,
        ),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("scheduled_start_time", sa.DateTime(timezone=True)),
        sa.Column("scheduled_end_time", sa.DateTime(timezone=True)),
        sa.Column("actual_start_time", sa.DateTime(timezone=True)),
        sa.Column("actual_end_time", sa.DateTime(timezone=True)),
        sa.Column("quantity_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("captured_data", postgresql.JSONB()),
        sa.Column("notes", sa.Text()),
        sa.Column("file_attachments", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('waiting', 'pending', 'in_progress', 'paused', 'completed', 'cancelled')",
            name="chk_woo_status",
        ),
    )
    for column in ("team_id", "order_id", "routing_operation_id", "operator_id", "status"):
        op.create_index(f"ix_work_order_operations_{column}", "work_order_operations", [column])
    op.create_index("ix_woo_team_status", "work_order_operations", ["team_id", "status"])

    op.create_table(
        "pause_reasons",
        _id(),
        _team_id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "category IN ('planned', 'unplanned', 'maintenance', 'quality', 'material', 'other')",
            name="chk_pause_reason_category",
        ),
    )
    op.create_index("ix_pause_reasons_team_id", "pause_reasons", ["team_id"])
    op.create_index("ix_pause_reasons_category", "pause_reasons", ["category"])

    op.create_table(
        "pause_events",
        _id(),
        _team_id(),
        sa.Column(
            "work_order_operation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("work_order_operations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("pause_reason_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("pause_reasons.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        *_timestamps(updated=False),
    )
    for column in ("team_id", "work_order_operation_id", "pause_reason_id"):
        op.create_index(f"ix_pause_events_{column}", "pause_events", [column])

    op.create_table(
        "data_collection_activities",
        _id(),
        _team_id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("fields", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_data_collection_activities_team_id", "data_collection_activities", ["team_id"])

    op.create_table(
        "routing_operation_activities",
        _id(),
        sa.Column(
            "routing_operation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("routing_operations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "data_collection_activity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("data_collection_activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(updated=False),
        sa.UniqueConstraint(
            "routing_operation_id", "data_collection_activity_id", name="uq_routing_operation_activity"
        ),
    )
    for column in ("routing_operation_id", "data_collection_activity_id"):
        op.create_index(f"ix_routing_operation_activities_{column}", "routing_operation_activities", [column])

    op.create_table(
        "data_collections",
        _id(),
        _team_id(),
        sa.Column(
            "work_order_operation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("work_order_operations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "data_collection_activity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("data_collection_activities.id"),
            nullable=False,
        ),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("collected_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("collected_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    for column in ("team_id", "work_order_operation_id", "data_collection_activity_id"):
        op.create_index(f"ix_data_collections_{column}", "data_collections", [column])

    op.create_table(
        "api_keys",
        _id(),
        _team_id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("key_prefix", sa.String(20), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False),
        sa.Column("permissions", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("last_used_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        *_timestamps(),
    )
    op.create_index("ix_api_keys_team_id", "api_keys", ["team_id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)

    op.create_table(
        "api_key_usage",
        _id(),
        sa.Column(
            "api_key_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("api_keys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _team_id(),
        sa.Column("endpoint", sa.String(500), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("response_time_ms", sa.Integer()),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    for column in ("api_key_id", "team_id", "timestamp"):
        op.create_index(f"ix_api_key_usage_{column}", "api_key_usage", [column])

    op.create_table(
        "audit_events",
        _id(),
        _team_id(),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True)),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("details", postgresql.JSONB()),
        *_timestamps(updated=False),
    )
    for column in ("team_id", "action", "entity_id", "created_at"):
        op.create_index(f"ix_audit_events_{column}", "audit_events", [column])


def downgrade() -> None:
    for table in (
        "audit_events",
        "api_key_usage",
        "api_keys",
        "data_collections",
        "routing_operation_activities",
        "data_collection_activities",
        "pause_events",
        "pause_reasons",
        "work_order_operations",
        "orders",
        "routing_operations",
        "routings",
        "departments",
        "team_memberships",
        "users",
        "teams",
    ):
        op.drop_table(table)
