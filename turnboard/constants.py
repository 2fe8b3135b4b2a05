from enum import Enum


class UnitStatus(str, Enum):
    READY = "Ready"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    OCCUPIED = "Occupied"


class TurnStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"
    CANCELLED = "Cancelled"


OPEN_TURN_STATUSES = (TurnStatus.IN_PROGRESS.value, TurnStatus.BLOCKED.value)
TERMINAL_TURN_STATUSES = (TurnStatus.COMPLETED.value, TurnStatus.CANCELLED.value)


class TurnPriority(str, Enum):
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"


class TaskCategory(str, Enum):
    CLEANING = "Cleaning"
    MAINTENANCE = "Maintenance"
    INSPECTION = "Inspection"
    OTHER = "Other"


class EventType(str, Enum):
    VENDOR_VISIT = "Vendor Visit"
    INSPECTION = "Inspection"
    MOVE_IN = "Move-in"
    OTHER = "Other"


class EventStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    RESCHEDULED = "Rescheduled"


ACTIVE_EVENT_STATUSES = (EventStatus.SCHEDULED.value, EventStatus.RESCHEDULED.value)
CLOSED_EVENT_STATUSES = (EventStatus.COMPLETED.value, EventStatus.CANCELLED.value)


class UserRole(str, Enum):
    ADMIN = "Admin"
    TECHNICIAN = "Technician"
    VIEWER = "Viewer"
    MANAGER = "Manager"


VALID_ROLES = [role.value for role in UserRole]


class VendorCategory(str, Enum):
    CARPET = "Carpet"
    HVAC = "HVAC"
    PLUMBING = "Plumbing"
    ELECTRICAL = "Electrical"
    PAINT = "Paint"
    APPLIANCE = "Appliance"
    GENERAL = "General"
    LANDSCAPING = "Landscaping"


class ActivityActionType(str, Enum):
    TURN_CREATED = "turn.created"
    TURN_COMPLETED = "turn.completed"
    TURN_BLOCKED = "turn.blocked"
    TURN_RESUMED = "turn.resumed"
    TURN_CANCELLED = "turn.cancelled"
    TASK_COMPLETED = "task.completed"
    VENDOR_SCHEDULED = "vendor.scheduled"
    UNIT_STATUS_CHANGED = "unit.status_changed"
    NOTE_ADDED = "note.added"
    PHOTO_UPLOADED = "photo.uploaded"


class EntityType(str, Enum):
    TURN = "turn"
    UNIT = "unit"
    CALENDAR = "calendar"
    VENDOR = "vendor"
    USER = "user"


# Default permission strings granted per role when a profile is created without any.
DEFAULT_ROLE_PERMISSIONS = {
    "Admin": [
        "units:read",
        "units:write",
        "turns:read",
        "turns:write",
        "vendors:read",
        "vendors:write",
        "users:read",
        "users:write",
        "calendar:read",
        "calendar:write",
        "settings:manage",
    ],
    "Manager": [
        "units:read",
        "units:write",
        "turns:read",
        "turns:write",
        "vendors:read",
        "vendors:write",
        "users:read",
        "calendar:read",
        "calendar:write",
    ],
    "Technician": ["units:read", "turns:read", "turns:write", "calendar:read"],
    "Viewer": ["units:read", "turns:read", "vendors:read", "calendar:read"],
}

DEFAULT_NOTIFICATION_SETTINGS = {
    "email_notifications": True,
    "push_notifications": True,
    "sms_notifications": False,
}

# Result caps for list queries.
DEFAULT_TURN_LIMIT = 50
DEFAULT_UNIT_LIMIT = 200
DEFAULT_VENDOR_LIMIT = 100
DEFAULT_USER_LIMIT = 100
DEFAULT_EVENT_LIMIT = 100
DEFAULT_ACTIVITY_LIMIT = 50
ACTIVITY_ENTITY_LIMIT = 100
ACTIVITY_DATE_RANGE_LIMIT = 500
ACTIVITY_PRUNE_BATCH = 500
EVENT_DATE_RANGE_LIMIT = 500
CONFLICT_SCAN_LIMIT = 100
TOP_USERS_LIMIT = 10
STATISTICS_SCAN_LIMIT = 1000
