from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from ..constants import (
    DEFAULT_ACTIVITY_LIMIT,
    DEFAULT_EVENT_LIMIT,
    DEFAULT_TURN_LIMIT,
    DEFAULT_UNIT_LIMIT,
    DEFAULT_USER_LIMIT,
    DEFAULT_VENDOR_LIMIT,
    ActivityActionType,
    EntityType,
    EventStatus,
    EventType,
    TaskCategory,
    TurnPriority,
    TurnStatus,
    UnitStatus,
    UserRole,
    VendorCategory,
)
from ..core.clock import ensure_utc
from ..models.models import generate_id

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
OrderDirection = Literal["asc", "desc"]


class ServiceResult(BaseModel):
    """Uniform envelope returned by every service operation."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(default=None, serialization_alias="errorCode")

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: Optional[str], many: bool = False) -> "ServiceResult":
        return cls(success=False, data=[] if many else None, error=error, error_code=error_code)


def parse_payload(model: type, payload: Any) -> Any:
    """Accept either a validated model instance or a raw mapping."""
    if isinstance(payload, model):
        return payload
    return model.model_validate(payload or {})


class _Closed(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True, validate_default=True)


class _ORMRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class UnitBase(_Closed):
    unit_number: str = Field(min_length=1)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0, ge=0)
    square_footage: int = Field(default=0, ge=0)
    floor: Optional[int] = None
    building: Optional[str] = None
    notes: Optional[str] = None
    amenities: List[str] = []


class UnitCreate(UnitBase):
    status: UnitStatus = UnitStatus.READY
    is_vacant: bool = False
    vacant_since: Optional[UtcDatetime] = None


class UnitUpdate(_Closed):
    unit_number: Optional[str] = Field(default=None, min_length=1)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[float] = Field(default=None, ge=0)
    square_footage: Optional[int] = Field(default=None, ge=0)
    floor: Optional[int] = None
    building: Optional[str] = None
    notes: Optional[str] = None
    amenities: Optional[List[str]] = None
    status: Optional[UnitStatus] = None
    is_vacant: Optional[bool] = None
    vacant_since: Optional[UtcDatetime] = None


class UnitRead(_ORMRead):
    id: str
    unit_number: str
    bedrooms: int
    bathrooms: float
    square_footage: int
    floor: Optional[int]
    building: Optional[str]
    status: str
    current_turn_id: Optional[str]
    last_turn_completed_date: Optional[UtcDatetime]
    is_vacant: bool
    vacant_since: Optional[UtcDatetime]
    days_vacant: int
    notes: Optional[str]
    amenities: List[str] = []
    created_at: UtcDatetime
    updated_at: UtcDatetime


class UnitQuery(_Closed):
    status: Optional[UnitStatus] = None
    is_vacant: Optional[bool] = None
    building: Optional[str] = None
    limit: int = Field(default=DEFAULT_UNIT_LIMIT, ge=1, le=1000)
    order_by: Literal["unit_number", "vacant_since", "days_vacant", "status", "created_at"] = "unit_number"
    order_direction: OrderDirection = "asc"


# ---------------------------------------------------------------------------
# Turns and checklist tasks
# ---------------------------------------------------------------------------


class ChecklistTask(_Closed):
    task_id: str = Field(default_factory=generate_id)
    task_name: str = Field(min_length=1)
    category: TaskCategory = TaskCategory.OTHER
    required: bool = True
    order: int = 0
    completed: bool = False
    completed_by: Optional[str] = None
    completed_by_name: Optional[str] = None
    completed_at: Optional[UtcDatetime] = None
    notes: Optional[str] = None
    photos: List[str] = []


def _check_unique_task_ids(checklist: List[ChecklistTask]) -> List[ChecklistTask]:
    seen = set()
    for task in checklist:
        if task.task_id in seen:
            raise ValueError(f"Duplicate task_id {task.task_id!r} in checklist.")
        seen.add(task.task_id)
    return checklist


Checklist = Annotated[List[ChecklistTask], AfterValidator(_check_unique_task_ids)]


class TaskUpdate(_Closed):
    """Fields a caller may merge into a checklist task.

    Completion stamps are applied by the workflow engine and are not accepted
    from callers.
    """

    task_name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[TaskCategory] = None
    required: Optional[bool] = None
    order: Optional[int] = None
    completed: Optional[bool] = None
    notes: Optional[str] = None
    photos: Optional[List[str]] = None


class TurnCreate(_Closed):
    unit_id: str
    unit_number: Optional[str] = None
    assigned_technician_id: Optional[str] = None
    assigned_technician_name: Optional[str] = None
    checklist: Checklist = []
    start_date: Optional[UtcDatetime] = None
    target_completion_date: UtcDatetime
    priority: TurnPriority = TurnPriority.NORMAL
    notes: Optional[str] = None


class TurnUpdate(_Closed):
    assigned_technician_id: Optional[str] = None
    assigned_technician_name: Optional[str] = None
    target_completion_date: Optional[UtcDatetime] = None
    priority: Optional[TurnPriority] = None
    notes: Optional[str] = None
    checklist: Optional[Checklist] = None


class TurnRead(_ORMRead):
    id: str
    unit_id: str
    unit_number: str
    status: str
    start_date: UtcDatetime
    target_completion_date: UtcDatetime
    actual_completion_date: Optional[UtcDatetime]
    days_in_progress: int
    days_overdue: int
    assigned_technician_id: Optional[str]
    assigned_technician_name: Optional[str]
    checklist: List[ChecklistTask] = []
    total_tasks: int
    completed_tasks: int
    progress_percentage: float
    notes: Optional[str]
    blockage_reason: Optional[str]
    priority: str
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


class TurnQuery(_Closed):
    status: Optional[TurnStatus] = None
    assigned_technician_id: Optional[str] = None
    unit_id: Optional[str] = None
    limit: int = Field(default=DEFAULT_TURN_LIMIT, ge=1, le=500)
    order_by: Literal["target_completion_date", "start_date", "created_at", "progress_percentage"] = (
        "target_completion_date"
    )
    order_direction: OrderDirection = "asc"


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------


class VendorAddress(_Closed):
    street: str
    city: str
    state: str
    zip: str


class VendorCreate(_Closed):
    vendor_name: str = Field(min_length=1)
    category: VendorCategory
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[VendorAddress] = None
    services_offered: List[str] = []
    licensed_insured: bool = False
    preferred_vendor: bool = False
    rating: Optional[float] = Field(default=None, ge=1, le=5)
    total_jobs_completed: int = Field(default=0, ge=0)
    last_service_date: Optional[UtcDatetime] = None
    notes: Optional[str] = None
    active: bool = True


class VendorUpdate(_Closed):
    vendor_name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[VendorCategory] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[VendorAddress] = None
    services_offered: Optional[List[str]] = None
    licensed_insured: Optional[bool] = None
    preferred_vendor: Optional[bool] = None
    notes: Optional[str] = None
    active: Optional[bool] = None


class VendorRead(_ORMRead):
    id: str
    vendor_name: str
    category: str
    contact_name: Optional[str]
    phone: Optional[str]
    alternate_phone: Optional[str]
    email: Optional[str]
    website: Optional[str]
    address: Optional[Dict[str, str]]
    services_offered: List[str] = []
    licensed_insured: bool
    preferred_vendor: bool
    rating: Optional[float]
    last_service_date: Optional[UtcDatetime]
    total_jobs_completed: int
    notes: Optional[str]
    active: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime


class VendorQuery(_Closed):
    category: Optional[VendorCategory] = None
    active: Optional[bool] = None
    preferred_vendor: Optional[bool] = None
    limit: int = Field(default=DEFAULT_VENDOR_LIMIT, ge=1, le=1000)
    order_by: Literal["vendor_name", "category", "rating", "created_at"] = "vendor_name"
    order_direction: OrderDirection = "asc"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class NotificationSettings(_Closed):
    email_notifications: bool = True
    push_notifications: bool = True
    sms_notifications: bool = False


class UserProfileCreate(_Closed):
    email: str = Field(min_length=3)
    display_name: str = Field(min_length=1)
    phone_number: Optional[str] = None
    role: UserRole = UserRole.VIEWER
    permissions: Optional[List[str]] = None
    active: bool = True
    email_verified: bool = False
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    specialties: List[str] = []
    certifications: List[str] = []
    total_turns_completed: int = Field(default=0, ge=0)
    avg_turn_completion_time: float = Field(default=0, ge=0)
    notification_settings: Optional[NotificationSettings] = None


class UserProfileUpdate(_Closed):
    email: Optional[str] = Field(default=None, min_length=3)
    display_name: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = None
    permissions: Optional[List[str]] = None
    email_verified: Optional[bool] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    specialties: Optional[List[str]] = None
    certifications: Optional[List[str]] = None


class UserRead(_ORMRead):
    id: str
    email: str
    display_name: str
    phone_number: Optional[str]
    role: str
    permissions: List[str] = []
    active: bool
    email_verified: bool
    photo_url: Optional[str]
    bio: Optional[str]
    specialties: List[str] = []
    certifications: List[str] = []
    last_login_at: Optional[UtcDatetime]
    total_turns_completed: int
    avg_turn_completion_time: float
    notification_settings: Dict[str, bool]
    created_at: UtcDatetime
    updated_at: UtcDatetime


class UserQuery(_Closed):
    role: Optional[UserRole] = None
    active: Optional[bool] = None
    limit: int = Field(default=DEFAULT_USER_LIMIT, ge=1, le=1000)
    order_by: Literal["display_name", "email", "role", "created_at"] = "display_name"
    order_direction: OrderDirection = "asc"


# ---------------------------------------------------------------------------
# Calendar events
# ---------------------------------------------------------------------------


class CalendarEventCreate(_Closed):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    event_type: EventType = EventType.OTHER
    start_date_time: UtcDatetime
    end_date_time: UtcDatetime
    all_day: bool = False
    unit_id: Optional[str] = None
    unit_number: Optional[str] = None
    turn_id: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "CalendarEventCreate":
        if self.end_date_time <= self.start_date_time:
            raise ValueError("end_date_time must be after start_date_time.")
        return self


class CalendarEventUpdate(_Closed):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    all_day: Optional[bool] = None
    unit_id: Optional[str] = None
    unit_number: Optional[str] = None
    turn_id: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    notes: Optional[str] = None
    reminder_sent: Optional[bool] = None


class CalendarEventRead(_ORMRead):
    id: str
    title: str
    description: Optional[str]
    event_type: str
    start_date_time: UtcDatetime
    end_date_time: UtcDatetime
    all_day: bool
    unit_id: Optional[str]
    unit_number: Optional[str]
    turn_id: Optional[str]
    vendor_id: Optional[str]
    vendor_name: Optional[str]
    assigned_to: Optional[str]
    assigned_to_name: Optional[str]
    status: str
    completed_at: Optional[UtcDatetime]
    cancelled_reason: Optional[str]
    notes: Optional[str]
    reminder_sent: bool
    created_by: Optional[str]
    created_at: UtcDatetime
    updated_at: UtcDatetime


class EventQuery(_Closed):
    status: Optional[EventStatus] = None
    event_type: Optional[EventType] = None
    unit_id: Optional[str] = None
    assigned_to: Optional[str] = None
    start_from: Optional[UtcDatetime] = None
    start_to: Optional[UtcDatetime] = None
    limit: int = Field(default=DEFAULT_EVENT_LIMIT, ge=1, le=1000)
    order_by: Literal["start_date_time", "created_at"] = "start_date_time"
    order_direction: OrderDirection = "asc"


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityCreate(_Closed):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    action: str = Field(min_length=1)
    action_type: ActivityActionType
    entity_type: EntityType
    entity_id: str
    entity_name: Optional[str] = None
    metadata: Dict[str, Any] = {}
    timestamp: Optional[UtcDatetime] = None


class ActivityRead(_ORMRead):
    id: str
    user_id: Optional[str]
    user_name: Optional[str]
    user_role: Optional[str]
    action: str
    action_type: str
    entity_type: str
    entity_id: str
    entity_name: Optional[str]
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    timestamp: UtcDatetime


class ActivityQuery(_Closed):
    user_id: Optional[str] = None
    entity_type: Optional[EntityType] = None
    entity_id: Optional[str] = None
    action_type: Optional[ActivityActionType] = None
    limit: int = Field(default=DEFAULT_ACTIVITY_LIMIT, ge=1, le=500)


# ---------------------------------------------------------------------------
# Request bodies for workflow endpoints
# ---------------------------------------------------------------------------


class ReasonPayload(_Closed):
    reason: str = Field(min_length=1)


class ReschedulePayload(_Closed):
    start_date_time: UtcDatetime
    end_date_time: UtcDatetime

    @model_validator(mode="after")
    def _end_after_start(self) -> "ReschedulePayload":
        if self.end_date_time <= self.start_date_time:
            raise ValueError("end_date_time must be after start_date_time.")
        return self


class ConflictCheckPayload(_Closed):
    assigned_to: str
    start_date_time: UtcDatetime
    end_date_time: UtcDatetime
    exclude_event_id: Optional[str] = None


class RatingPayload(BaseModel):
    rating: float


class RolePayload(BaseModel):
    role: str
