"""Models package."""
from app.models.user import User, UserRole
from app.models.department import Department, DepartmentRequirement, RequirementType
from app.models.event import Event, EventType, ReportsStatus
from app.models.availability import LocationAvailability, LocationStatus, ResourceAvailability
from app.models.notification import Notification, NotificationRead
from app.models.message import Message, MessageType
from app.models.user_activity import UserActivityLog

__all__ = [
    "User",
    "UserRole",
    "Department",
    "DepartmentRequirement",
    "RequirementType",
    "Event",
    "EventType",
    "ReportsStatus",
    "LocationAvailability",
    "LocationStatus",
    "ResourceAvailability",
    "Notification",
    "NotificationRead",
    "Message",
    "MessageType",
    "UserActivityLog",
]
