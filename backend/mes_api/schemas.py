"""Pydantic schemas for API. JSON uses camelCase; attributes stay snake_case."""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Literal, Optional
from datetime import datetime
from uuid import UUID


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Files
class FileRecord(CamelModel):
    """File metadata embedded in attachment lists."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(min_length=1)
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[str] = None


class AttachmentCreate(CamelModel):
    file_record: FileRecord


class SuccessResponse(CamelModel):
    success: bool = True


# Departments / users
class DepartmentBrief(CamelModel):
    id: UUID
    name: str


class DepartmentCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None


class DepartmentUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class DepartmentBulkAction(CamelModel):
    action: Literal["activate", "deactivate"]
    department_ids: list[UUID] = Field(min_length=1)


class DepartmentResponse(CamelModel):
    id: UUID
    team_id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool = True
    operations_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DepartmentBulkResult(CamelModel):
    success: bool = True
    updated: list[UUID] = []
    not_found: list[UUID] = []


class UserResponse(CamelModel):
    id: UUID
    display_name: Optional[str] = None
    primary_email: Optional[str] = None
    profile_image_url: Optional[str] = None
    department_access: Optional[dict[str, Any]] = None
    departments: list[DepartmentBrief] = []


# Routings
class RoutingOperationCreate(CamelModel):
    operation_number: int = Field(ge=1)
    operation_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[UUID] = None
    setup_time: int = Field(0, ge=0)
    run_time: int = Field(0, ge=0)
    instructions: Optional[str] = None
    required_skills: list[str] = []


class RoutingOperationUpdate(CamelModel):
    operation_number: Optional[int] = Field(None, ge=1)
    operation_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[UUID] = None
    setup_time: Optional[int] = Field(None, ge=0)
    run_time: Optional[int] = Field(None, ge=0)
    instructions: Optional[str] = None
    required_skills: Optional[list[str]] = None
    is_active: Optional[bool] = None


class RoutingOperationResponse(CamelModel):
    id: UUID
    routing_id: UUID
    operation_number: int
    operation_name: str
    description: Optional[str] = None
    department_id: Optional[UUID] = None
    setup_time: int
    run_time: int
    instructions: Optional[str] = None
    required_skills: list[str] = []
    file_attachments: list[dict[str, Any]] = []
    is_active: bool = True


class RoutingCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    version: str = "1.0"
    operations: list[RoutingOperationCreate] = []


class RoutingUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = None
    is_active: Optional[bool] = None


class RoutingResponse(CamelModel):
    id: UUID
    team_id: UUID
    name: str
    description: Optional[str] = None
    version: str
    is_active: bool
    operations: list[RoutingOperationResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Orders
OrderStatus = Literal["pending", "in_progress", "completed", "cancelled"]


class OrderCreate(CamelModel):
    order_number: str = Field(min_length=1, max_length=100)
    routing_id: UUID
    quantity: int = Field(1, ge=1)
    priority: int = 0
    scheduled_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None


class OrderUpdate(CamelModel):
    order_number: Optional[str] = Field(None, min_length=1, max_length=100)
    quantity: Optional[int] = Field(None, ge=1)
    priority: Optional[int] = None
    scheduled_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None


class OrderResponse(CamelModel):
    id: UUID
    team_id: UUID
    order_number: str
    routing_id: UUID
    quantity: int
    priority: int
    status: OrderStatus
    scheduled_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    notes: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Work order operations
class PauseEventResponse(CamelModel):
    id: UUID
    pause_reason_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    notes: Optional[str] = None


class WorkOrderOperationResponse(CamelModel):
    id: UUID
    team_id: UUID
    order_id: UUID
    routing_operation_id: UUID
    operator_id: Optional[UUID] = None
    status: str
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    quantity_completed: int = 0
    quantity_rejected: int = 0
    captured_data: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    file_attachments: list[dict[str, Any]] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkOrderOperationDetail(WorkOrderOperationResponse):
    pause_events: list[PauseEventResponse] = []
    active_time_seconds: int = 0


class OrderDetailResponse(OrderResponse):
    work_order_operations: list[WorkOrderOperationResponse] = []
    progress: float = 0.0


class WOOPauseRequest(CamelModel):
    pause_reason_id: Optional[UUID] = None
    notes: Optional[str] = None


class WOOCompleteRequest(CamelModel):
    captured_data: Optional[dict[str, Any]] = None
    quantity_completed: int = Field(0, ge=0)
    quantity_rejected: int = Field(0, ge=0)
    notes: Optional[str] = None


class WOOUpdate(CamelModel):
    operator_id: Optional[UUID] = None
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    quantity_completed: Optional[int] = Field(None, ge=0)
    quantity_rejected: Optional[int] = Field(None, ge=0)
    captured_data: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


# Pause reasons
class PauseReasonCreate(CamelModel):
    # Presence is checked by the use case so the error message stays stable.
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class PauseReasonUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class PauseReasonResponse(CamelModel):
    id: UUID
    team_id: UUID
    name: str
    description: Optional[str] = None
    category: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PauseReasonCategorySummary(CamelModel):
    category: str
    count: int
    active_count: int


class PauseReasonUsageStats(CamelModel):
    event_count: int
    total_duration_seconds: int
    avg_duration_seconds: int


class PauseReasonUsage(CamelModel):
    pause_reason: PauseReasonResponse
    usage: PauseReasonUsageStats


# Data collection
class DataCollectionActivityCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    fields: Any = None


class DataCollectionActivityUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    fields: Any = None
    is_active: Optional[bool] = None


class DataCollectionActivityResponse(CamelModel):
    id: UUID
    team_id: UUID
    name: str
    description: Optional[str] = None
    fields: list[dict[str, Any]] = []
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AssignedActivityResponse(DataCollectionActivityResponse):
    is_required: bool = False
    sequence: int = 1


class ActivityAssignRequest(CamelModel):
    routing_operation_id: Optional[UUID] = None
    data_collection_activity_id: Optional[UUID] = None
    is_required: bool = False
    sequence: int = Field(1, ge=1)


class ActivityAssignmentResponse(CamelModel):
    id: UUID
    routing_operation_id: UUID
    data_collection_activity_id: UUID
    is_required: bool
    sequence: int


class DataCollectionCreate(CamelModel):
    work_order_operation_id: Optional[UUID] = None
    data_collection_activity_id: Optional[UUID] = None
    collected_data: Optional[dict[str, Any]] = None


class WOODataCollectionSave(CamelModel):
    collected_data: Optional[dict[str, Any]] = None


class DataCollectionResponse(CamelModel):
    id: UUID
    team_id: UUID
    work_order_operation_id: UUID
    data_collection_activity_id: UUID
    operator_id: Optional[UUID] = None
    collected_data: dict[str, Any] = {}
    collected_at: Optional[datetime] = None


# API keys
class APIKeyPermissions(CamelModel):
    read: bool = False
    write: bool = False
    admin: bool = False

    @model_validator(mode="after")
    def _at_least_one(self):
        if not (self.read or self.write or self.admin):
            raise ValueError("At least one permission must be selected")
        return self


class APIKeyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: APIKeyPermissions
    expires_at: Optional[datetime] = None


class APIKeyResponse(CamelModel):
    id: UUID
    team_id: UUID
    name: str
    description: Optional[str] = None
    key_prefix: str
    permissions: dict[str, bool]
    is_active: bool
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class APIKeyCreated(APIKeyResponse):
    """Returned once at creation; the plaintext key is never stored."""
    secret_key: str


class APIKeyListEnvelope(CamelModel):
    success: bool = True
    api_keys: list[APIKeyResponse]


class APIKeyEnvelope(CamelModel):
    success: bool = True
    api_key: APIKeyResponse


class APIKeyCreatedEnvelope(CamelModel):
    success: bool = True
    api_key: APIKeyCreated


# External API
class PerformanceQuery(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    department_id: Optional[UUID] = None
    operator_id: Optional[UUID] = None


class ExternalOrdersQuery(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    status: Optional[OrderStatus] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)
    sort: Literal["createdAt", "scheduledStartDate", "priority"] = "createdAt"
    order: Literal["asc", "desc"] = "desc"


class ExternalWOOsQuery(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    order_id: Optional[UUID] = None
    status: Optional[Literal["pending", "waiting", "in_progress", "paused", "completed", "cancelled"]] = None
    department_id: Optional[UUID] = None
    operator_id: Optional[UUID] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)


class ExternalWOOAction(CamelModel):
    action: Literal["start", "pause", "resume", "complete"]
    operator_id: Optional[UUID] = None
    pause_reason_id: Optional[UUID] = None
    notes: Optional[str] = None
    captured_data: Optional[dict[str, Any]] = None
    quantity_completed: int = Field(0, ge=0)
    quantity_rejected: int = Field(0, ge=0)
