# Database Models
from sos_api.models.alert import (
    OPEN_ALERT_STATUSES,
    Alert,
    AlertStatus,
    TriggerMethod,
    VerificationStatus,
)
from sos_api.models.alert_notification import (
    AlertNotification,
    DeliveryStatus,
    RecipientType,
)
from sos_api.models.alert_responder import (
    ACTIVE_ASSIGNMENT_STATUSES,
    AlertResponder,
    ResponderStatus,
)
from sos_api.models.base import Base, TimestampMixin
from sos_api.models.responder import AvailabilityStatus, Responder, ResponderType
from sos_api.models.trusted_contact import TrustedContact
from sos_api.models.user import User, UserRole
from sos_api.models.user_settings import UserSettings

__all__ = [
    "ACTIVE_ASSIGNMENT_STATUSES",
    "OPEN_ALERT_STATUSES",
    "Alert",
    "AlertNotification",
    "AlertResponder",
    "AlertStatus",
    "AvailabilityStatus",
    "Base",
    "DeliveryStatus",
    "RecipientType",
    "Responder",
    "ResponderStatus",
    "ResponderType",
    "TimestampMixin",
    "TriggerMethod",
    "TrustedContact",
    "User",
    "UserRole",
    "UserSettings",
    "VerificationStatus",
]
