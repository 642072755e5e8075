"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Any, Dict, List, Optional

from domain.enums import (
    BookingSource, LoftStatus, PricingRuleType, AdjustmentType, AuditAction, UserRole,
    NotificationType, NotificationPriority
)
from domain.value_objects import AvailabilityUpdate, PricingConfig


# ============================================================================
# LOFT SCHEMAS
# ============================================================================

class CreateLoftRequest(BaseModel):
    """Create loft request DTO"""
    name: str = Field(min_length=1)
    address: str = ""
    description: Optional[str] = None
    partner_id: Optional[UUID] = Field(None, description="Owner; defaults to the calling partner")
    base_rate: Decimal = Field(gt=0)
    cleaning_fee: Decimal = Field(ge=0, default=Decimal("0"))
    service_fee_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    currency: str = Field(default="DZD", min_length=3, max_length=3)
    max_guests: int = Field(ge=1, default=4)
    minimum_stay: int = Field(ge=1, default=1)
    maximum_stay: Optional[int] = Field(None, ge=1)
    company_percentage: Decimal = Field(ge=0, le=100, default=Decimal("20"))
    use_default_pricing: bool = False


class UpdatePricingRequest(BaseModel):
    """Update base pricing request DTO"""
    base_rate: Optional[Decimal] = Field(None, gt=0)
    cleaning_fee: Optional[Decimal] = Field(None, ge=0)
    service_fee_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class SeasonalRateRequest(BaseModel):
    """Seasonal rate request DTO"""
    name: str
    start_date: date
    end_date: date
    multiplier: Decimal = Field(gt=0)
    priority: int = 0
    is_active: bool = True


class PricingRuleRequest(BaseModel):
    """Pricing rule request DTO"""
    name: str
    rule_type: PricingRuleType
    adjustment_type: AdjustmentType = AdjustmentType.PERCENTAGE
    adjustment_value: Decimal
    priority: int = 0
    is_active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: Optional[List[int]] = Field(None, description="Python weekday numbers, Monday is 0")
    minimum_nights: Optional[int] = None
    maximum_nights: Optional[int] = None
    advance_booking_days: Optional[int] = None
    description: Optional[str] = None


class UpdateLoftStatusRequest(BaseModel):
    """Update loft status request DTO"""
    status: LoftStatus


class LoftResponse(BaseModel):
    """Loft response DTO"""
    loft_id: UUID
    name: str
    address: str
    description: Optional[str] = None
    partner_id: UUID
    status: str
    max_guests: int
    minimum_stay: int
    maximum_stay: Optional[int] = None
    company_percentage: Decimal
    owner_percentage: Decimal
    pricing: PricingConfig
    created_at: datetime
    modified_at: datetime
    version: int


class LoftRevenueResponse(BaseModel):
    """Revenue of a single loft"""
    loft_id: UUID
    name: str
    currency: str
    booking_count: int
    total_revenue: Decimal
    company_share: Decimal
    owner_share: Decimal


class PartnerRevenueResponse(BaseModel):
    """Partner revenue report DTO"""
    partner_id: UUID
    lofts: List[LoftRevenueResponse]
    total_revenue: Decimal
    company_share: Decimal
    owner_share: Decimal


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class UpdateAvailabilityRequest(BaseModel):
    """Update availability request DTO"""
    days: List[AvailabilityUpdate] = Field(min_length=1)


class AvailabilityDayResponse(BaseModel):
    """Availability day response DTO"""
    loft_id: UUID
    availability_date: date
    is_available: bool
    price_override: Optional[Decimal] = None
    blocked_reason: Optional[str] = None
    notes: Optional[str] = None
    last_updated: datetime
    version: int


class CheckAvailabilityRequest(BaseModel):
    """Check availability request DTO"""
    loft_id: UUID
    check_in: date
    check_out: date
    lock_id: Optional[UUID] = None


class ReservationLockRequest(BaseModel):
    """Reservation lock request DTO"""
    loft_id: UUID
    check_in: date
    check_out: date


class ReservationLockResponse(BaseModel):
    """Reservation lock response DTO"""
    lock_id: UUID
    loft_id: UUID
    check_in: date
    check_out: date
    user_id: Optional[UUID] = None
    expires_at: datetime


class CalendarResponse(BaseModel):
    """Availability calendar DTO"""
    loft_id: UUID
    start_date: date
    end_date: date
    days: Dict[date, bool]


# ============================================================================
# PRICING & CURRENCY SCHEMAS
# ============================================================================

class QuoteRequest(BaseModel):
    """Price quote request DTO"""
    loft_id: UUID
    check_in: date
    check_out: date
    guests: int = Field(ge=1, default=1)
    booking_date: Optional[date] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)


class CreateCurrencyRequest(BaseModel):
    """Register currency request DTO"""
    id: str = Field(min_length=1)
    code: str = Field(min_length=3, max_length=3)
    name: str
    symbol: str
    ratio: Decimal = Field(gt=0)
    is_default: bool = False


class ConvertRequest(BaseModel):
    """Currency conversion request DTO"""
    amount: Decimal = Field(ge=0)
    from_currency_id: str
    to_currency_id: Optional[str] = Field(None, description="Defaults to the default currency")


class ExchangeRateResponse(BaseModel):
    """Exchange rate response DTO"""
    from_currency_id: str
    to_currency_id: str
    rate: Decimal


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class CreateBookingRequest(BaseModel):
    """Create booking request DTO"""
    loft_id: UUID
    check_in: date
    check_out: date
    adults: int = Field(ge=1, le=16)
    children: int = Field(ge=0, le=16, default=0)
    booking_source: BookingSource = Field(default=BookingSource.WEBSITE, description="Source of booking")
    notes: Optional[str] = None
    lock_id: Optional[UUID] = Field(None, description="Reservation lock held by the caller")
    client_id: Optional[UUID] = Field(None, description="Admins may book on behalf of a client")


class ModifyBookingRequest(BaseModel):
    """Modify booking request DTO"""
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    adults: Optional[int] = Field(None, ge=1, le=16)
    children: Optional[int] = Field(None, ge=0, le=16)


class ConfirmBookingRequest(BaseModel):
    """Confirm booking request DTO"""
    payment_confirmed: bool = True


class CancelBookingRequest(BaseModel):
    """Cancel booking request DTO"""
    reason: str = "Client changed plans"


class BookingResponse(BaseModel):
    """Booking response DTO"""
    booking_id: UUID
    confirmation_code: str
    loft_id: UUID
    client_id: UUID
    partner_id: UUID
    check_in: date
    check_out: date
    nights: int
    adults: int
    children: int
    total_amount: Decimal
    currency: str
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    status: str
    booking_source: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    modified_at: datetime
    created_by: str
    version: int


class MoneyResponse(BaseModel):
    """Money response DTO"""
    amount: Decimal
    currency: str


# ============================================================================
# AUDIT SCHEMAS
# ============================================================================

class AuditLogResponse(BaseModel):
    """Audit log response DTO"""
    id: UUID
    table_name: str
    record_id: str
    action: AuditAction
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    timestamp: datetime
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changed_fields: List[str]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogPageResponse(BaseModel):
    """Paginated audit logs"""
    logs: List[AuditLogResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AuditCleanupRequest(BaseModel):
    """Audit retention cleanup request DTO"""
    retention_days: Optional[int] = Field(None, ge=1)


class AuditCleanupResponse(BaseModel):
    deleted: int
    retention_days: int


# ============================================================================
# NOTIFICATION SCHEMAS
# ============================================================================

class NotificationResponse(BaseModel):
    """Notification response DTO"""
    notification_id: UUID
    notification_type: NotificationType
    title: str
    message: str
    data: Dict[str, Any]
    priority: NotificationPriority
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    expires_at: Optional[datetime] = None


class NotificationPageResponse(BaseModel):
    """Paginated notifications with the unread count"""
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int


class MaintenanceNoticeRequest(BaseModel):
    """Scheduled maintenance broadcast request DTO"""
    recipient_ids: List[UUID] = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    description: str = ""


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole
    disabled: bool
