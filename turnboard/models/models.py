import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.mutable import MutableDict, MutableList

from ..config import Base
from ..core import clock
from ..constants import (
    DEFAULT_NOTIFICATION_SETTINGS,
    EventStatus,
    TurnPriority,
    TurnStatus,
    UnitStatus,
)


def utcnow():
    return clock.utcnow()


def generate_id() -> str:
    return uuid.uuid4().hex


class Unit(Base):
    __tablename__ = "units"

    id = Column(String(32), primary_key=True, default=generate_id)
    unit_number = Column(String, unique=True, index=True, nullable=False)
    bedrooms = Column(Integer, nullable=False, default=0)
    bathrooms = Column(Float, nullable=False, default=0)
    square_footage = Column(Integer, nullable=False, default=0)
    floor = Column(Integer, nullable=True)
    building = Column(String, nullable=True, index=True)

    status = Column(String, nullable=False, default=UnitStatus.READY.value, index=True)
    current_turn_id = Column(String(32), nullable=True)
    last_turn_completed_date = Column(DateTime(timezone=True), nullable=True)

    is_vacant = Column(Boolean, nullable=False, default=False, index=True)
    vacant_since = Column(DateTime(timezone=True), nullable=True)
    days_vacant = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)
    amenities = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Turn(Base):
    __tablename__ = "turns"

    id = Column(String(32), primary_key=True, default=generate_id)
    unit_id = Column(String(32), nullable=False, index=True)
    unit_number = Column(String, nullable=False)
    # Holds unit_id while the turn is open and NULL otherwise; the unique
    # constraint makes "one open turn per unit" a conditional write.
    open_unit_id = Column(String(32), nullable=True, unique=True)

    status = Column(String, nullable=False, default=TurnStatus.IN_PROGRESS.value, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    target_completion_date = Column(DateTime(timezone=True), nullable=False, index=True)
    actual_completion_date = Column(DateTime(timezone=True), nullable=True)
    days_in_progress = Column(Integer, nullable=False, default=0)
    days_overdue = Column(Integer, nullable=False, default=0)

    assigned_technician_id = Column(String, nullable=True, index=True)
    assigned_technician_name = Column(String, nullable=True)

    # Checklist is replaced wholesale on every write so plain JSON change
    # tracking is enough.
    checklist = Column(JSON, nullable=False, default=list)
    total_tasks = Column(Integer, nullable=False, default=0)
    completed_tasks = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Float, nullable=False, default=0)

    notes = Column(Text, nullable=True)
    blockage_reason = Column(Text, nullable=True)
    priority = Column(String, nullable=False, default=TurnPriority.NORMAL.value)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String(32), primary_key=True, default=generate_id)
    vendor_name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)

    contact_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    alternate_phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    website = Column(String, nullable=True)
    address = Column(MutableDict.as_mutable(JSON), nullable=True)

    services_offered = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    licensed_insured = Column(Boolean, nullable=False, default=False)
    preferred_vendor = Column(Boolean, nullable=False, default=False)

    rating = Column(Float, nullable=True)
    last_service_date = Column(DateTime(timezone=True), nullable=True)
    total_jobs_completed = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class User(Base):
    """Profile for an identity-provider account; ``id`` is the provider's subject id."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    display_name = Column(String, nullable=False, index=True)
    phone_number = Column(String, nullable=True)

    role = Column(String, nullable=False, index=True)
    permissions = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    active = Column(Boolean, nullable=False, default=True, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)

    photo_url = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    specialties = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    certifications = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    total_turns_completed = Column(Integer, nullable=False, default=0)
    avg_turn_completion_time = Column(Float, nullable=False, default=0)

    notification_settings = Column(
        MutableDict.as_mutable(JSON),
        nullable=False,
        default=lambda: dict(DEFAULT_NOTIFICATION_SETTINGS),
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String, nullable=False, index=True)

    start_date_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_date_time = Column(DateTime(timezone=True), nullable=False)
    all_day = Column(Boolean, nullable=False, default=False)

    unit_id = Column(String(32), nullable=True, index=True)
    unit_number = Column(String, nullable=True)
    turn_id = Column(String(32), nullable=True)
    vendor_id = Column(String(32), nullable=True)
    vendor_name = Column(String, nullable=True)

    assigned_to = Column(String, nullable=True, index=True)
    assigned_to_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default=EventStatus.SCHEDULED.value, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_reason = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)
    reminder_sent = Column(Boolean, nullable=False, default=False)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (Index("ix_calendar_events_assignee_window", "assigned_to", "status", "start_date_time"),)


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String, nullable=True, index=True)
    user_name = Column(String, nullable=True)
    user_role = Column(String, nullable=True)

    action = Column(Text, nullable=False)
    action_type = Column(String, nullable=False, index=True)

    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    entity_name = Column(String, nullable=True)

    # "metadata" is reserved on declarative classes.
    details = Column("metadata", JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (Index("ix_activities_entity", "entity_type", "entity_id"),)
