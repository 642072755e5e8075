"""Domain Enums"""
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class BookingSource(str, Enum):
    WEBSITE = "WEBSITE"
    MOBILE_APP = "MOBILE_APP"
    PHONE = "PHONE"
    PARTNER_PORTAL = "PARTNER_PORTAL"
    ADMIN = "ADMIN"


class LoftStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


class PricingRuleType(str, Enum):
    SEASONAL = "SEASONAL"
    WEEKEND = "WEEKEND"
    HOLIDAY = "HOLIDAY"
    EVENT = "EVENT"
    LENGTH_OF_STAY = "LENGTH_OF_STAY"
    ADVANCE_BOOKING = "ADVANCE_BOOKING"
    LAST_MINUTE = "LAST_MINUTE"


class AdjustmentType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    OVERRIDE = "OVERRIDE"


class RestrictionType(str, Enum):
    MINIMUM_STAY = "MINIMUM_STAY"
    MAXIMUM_STAY = "MAXIMUM_STAY"
    BLOCKED_DATES = "BLOCKED_DATES"
    EXISTING_BOOKING = "EXISTING_BOOKING"
    RESERVATION_LOCK = "RESERVATION_LOCK"


class AuditAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class UserRole(str, Enum):
    CLIENT = "CLIENT"
    PARTNER = "PARTNER"
    ADMIN = "ADMIN"


class NotificationType(str, Enum):
    NEW_RESERVATION = "NEW_RESERVATION"
    RESERVATION_MODIFIED = "RESERVATION_MODIFIED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PROPERTY_ADDED = "PROPERTY_ADDED"
    PROPERTY_UPDATED = "PROPERTY_UPDATED"
    REVENUE_REPORT = "REVENUE_REPORT"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
