"""SQLAlchemy models. Every business row is scoped to a team."""
from sqlalchemy import (
    Boolean, Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from .database import Base


ORDER_STATUSES = ("pending", "in_progress", "completed", "cancelled")
WOO_STATUSES = ("waiting", "pending", "in_progress", "paused", "completed", "cancelled")
PAUSE_REASON_CATEGORIES = ("planned", "unplanned", "maintenance", "quality", "material", "other")
TEAM_ROLES = ("admin", "member")


class Team(Base):
    """Team (tenant)."""
    __tablename__ = "teams"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship("TeamMembership", back_populates="team")


class User(Base):
    """User mirrored from the identity provider."""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    display_name = Column(String(255), nullable=True)
    primary_email = Column(String(255), nullable=True, index=True)
    profile_image_url = Column(Text, nullable=True)
    # Team the user currently works in; null means "no team selected".
    selected_team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=True)
    # {"allDepartments": bool, "specificDepartments": [uuid, ...]}
    department_access = Column(JSONB, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship("TeamMembership", back_populates="user")


class TeamMembership(Base):
    """User membership in a team."""
    __tablename__ = "team_memberships"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_membership"),
        CheckConstraint(role.in_(list(TEAM_ROLES)), name="chk_team_membership_role"),
    )

    team = relationship("Team", back_populates="memberships")
    user = relationship("User", back_populates="memberships")


class Department(Base):
    """Shop-floor department."""
    __tablename__ = "departments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Routing(Base):
    """Ordered sequence of routing operations."""
    __tablename__ = "routings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String(20), nullable=False, default="1.0")
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    operations = relationship(
        "RoutingOperation",
        back_populates="routing",
        order_by="RoutingOperation.operation_number",
    )


class RoutingOperation(Base):
    """Single step of a routing."""
    __tablename__ = "routing_operations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    routing_id = Column(UUID(as_uuid=True), ForeignKey("routings.id"), nullable=False, index=True)
    operation_number = Column(Integer, nullable=False)
    operation_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=True, index=True)
    setup_time = Column(Integer, nullable=False, default=0)  # seconds
    run_time = Column(Integer, nullable=False, default=0)  # seconds per unit
    instructions = Column(Text, nullable=True)
    required_skills = Column(JSONB, nullable=False, default=list)
    file_attachments = Column(JSONB, nullable=False, default=list)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_routing_operations_routing_number", "routing_id", "operation_number"),
    )

    routing = relationship("Routing", back_populates="operations")
    department = relationship("Department")
    activity_assignments = relationship(
        "RoutingOperationActivity",
        back_populates="routing_operation",
        order_by="RoutingOperationActivity.sequence",
    )


class Order(Base):
    """Production order."""
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    order_number = Column(String(100), nullable=False)
    routing_id = Column(UUID(as_uuid=True), ForeignKey("routings.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    priority = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="pending", index=True)
    scheduled_start_date = Column(DateTime(timezone=True), nullable=True)
    scheduled_end_date = Column(DateTime(timezone=True), nullable=True)
    actual_start_date = Column(DateTime(timezone=True), nullable=True)
    actual_end_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    custom_fields = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("team_id", "order_number", name="uq_orders_team_number"),
        CheckConstraint(status.in_(list(ORDER_STATUSES)), name="chk_order_status"),
    )

    routing = relationship("Routing")
    work_order_operations = relationship("WorkOrderOperation", back_populates="order")


class WorkOrderOperation(Base):
    """Execution of one routing operation for one order."""
    __tablename__ = "work_order_operations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    routing_operation_id = Column(UUID(as_uuid=True), ForeignKey("routing_operations.id"), nullable=False, index=True)
    operator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="waiting", index=True)
    scheduled_start_time = Column(DateTime(timezone=True), nullable=True)
    scheduled_end_time = Column(DateTime(timezone=True), nullable=True)
    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)
    quantity_completed = Column(Integer, nullable=False, default=0)
    quantity_rejected = Column(Integer, nullable=False, default=0)
    captured_data = Column(JSONB, nullable=True)
    notes = Column(Text, nullable=True)
    file_attachments = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(list(WOO_STATUSES)), name="chk_woo_status"),
        Index("ix_woo_team_status", "team_id", "status"),
    )

    order = relationship("Order", back_populates="work_order_operations")
    routing_operation = relationship("RoutingOperation")
    operator = relationship("User")
    pause_events = relationship(
        "PauseEvent",
        back_populates="work_order_operation",
        order_by="PauseEvent.start_time",
    )


class PauseReason(Base):
    """Reason an operator may give for pausing work."""
    __tablename__ = "pause_reasons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(category.in_(list(PAUSE_REASON_CATEGORIES)), name="chk_pause_reason_category"),
    )


class PauseEvent(Base):
    """Interval during which a WOO was paused. Open while end_time is null."""
    __tablename__ = "pause_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    work_order_operation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("work_order_operations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pause_reason_id = Column(UUID(as_uuid=True), ForeignKey("pause_reasons.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    work_order_operation = relationship("WorkOrderOperation", back_populates="pause_events")
    pause_reason = relationship("PauseReason")


class DataCollectionActivity(Base):
    """Form template captured by operators during an operation."""
    __tablename__ = "data_collection_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # [{id, name, label, type, required?, validation?, helpText?, defaultValue?}]
    fields = Column(JSONB, nullable=False, default=list)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RoutingOperationActivity(Base):
    """Assignment of a data-collection activity to a routing operation."""
    __tablename__ = "routing_operation_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    routing_operation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("routing_operations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_collection_activity_id = Column(
        UUID(as_uuid=True),
        ForeignKey("data_collection_activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_required = Column(Boolean, nullable=False, default=False)
    sequence = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("routing_operation_id", "data_collection_activity_id", name="uq_routing_operation_activity"),
    )

    routing_operation = relationship("RoutingOperation", back_populates="activity_assignments")
    activity = relationship("DataCollectionActivity")


class DataCollection(Base):
    """Values captured for one activity on one WOO."""
    __tablename__ = "data_collections"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    work_order_operation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("work_order_operations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_collection_activity_id = Column(
        UUID(as_uuid=True),
        ForeignKey("data_collection_activities.id"),
        nullable=False,
        index=True,
    )
    operator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    collected_data = Column(JSONB, nullable=False, default=dict)
    collected_at = Column(DateTime(timezone=True), server_default=func.now())


class APIKey(Base):
    """Team-scoped key for the external API. Only the sha256 hash is stored."""
    __tablename__ = "api_keys"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    key_prefix = Column(String(20), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    permissions = Column(JSONB, nullable=False, default=dict)
    is_active = Column(Boolean, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class APIKeyUsage(Base):
    """One external API request made with a key."""
    __tablename__ = "api_key_usage"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    api_key_id = Column(UUID(as_uuid=True), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    endpoint = Column(String(500), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time_ms = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class AuditEvent(Base):
    """Append-only audit log of lifecycle changes."""
    __tablename__ = "audit_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    details = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
