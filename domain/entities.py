"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime, date, timedelta, timezone
from typing import Optional, List, Dict, Any, Tuple
from decimal import Decimal
import hashlib
import json

from domain.enums import (
    BookingStatus, BookingSource, LoftStatus, AuditAction, NotificationType, NotificationPriority
)
from domain.value_objects import (
    DateRange, GuestCount, Money, CancellationPolicy, PricingBreakdown,
    PricingConfig, PricingRule, SeasonalRate
)


class Loft(BaseModel):
    """Loft (property) Aggregate Root Entity"""

    # Identity
    loft_id: UUID = Field(default_factory=uuid4)
    name: str
    address: str = ""
    description: Optional[str] = None

    # Ownership
    partner_id: UUID
    company_percentage: Decimal = Field(ge=0, le=100, default=Decimal("20"))
    owner_percentage: Decimal = Field(ge=0, le=100, default=Decimal("80"))

    # Booking constraints
    status: LoftStatus = LoftStatus.AVAILABLE
    max_guests: int = Field(ge=1, default=4)
    minimum_stay: int = Field(ge=1, default=1)
    maximum_stay: Optional[int] = Field(None, ge=1)

    pricing: PricingConfig

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    @validator('owner_percentage')
    def percentages_sum_to_hundred(cls, v, values):
        if 'company_percentage' in values and values['company_percentage'] + v != 100:
            raise ValueError('Company and owner percentages must sum to 100')
        return v

    @validator('maximum_stay')
    def maximum_not_below_minimum(cls, v, values):
        if v is not None and 'minimum_stay' in values and v < values['minimum_stay']:
            raise ValueError('Maximum stay must be greater than or equal to minimum stay')
        return v

    # ==================== PRICING CONFIGURATION ====================
    def update_pricing(
        self,
        base_rate: Optional[Decimal] = None,
        cleaning_fee: Optional[Decimal] = None,
        service_fee_rate: Optional[Decimal] = None,
        currency: Optional[str] = None
    ) -> None:
        """Change base pricing, keeping seasons and rules"""
        changes = {}
        if base_rate is not None:
            changes["base_rate"] = base_rate
        if cleaning_fee is not None:
            changes["cleaning_fee"] = cleaning_fee
        if service_fee_rate is not None:
            changes["service_fee_rate"] = service_fee_rate
        if currency is not None:
            changes["currency"] = currency.upper()

        # re-validate through the model so constraints still hold
        self.pricing = PricingConfig(**{**self.pricing.dict(), **changes})
        self._touch()

    def add_seasonal_rate(self, seasonal_rate: SeasonalRate) -> SeasonalRate:
        self.pricing.seasonal_rates.append(seasonal_rate)
        self._touch()
        return seasonal_rate

    def remove_seasonal_rate(self, rate_id: UUID) -> None:
        remaining = [s for s in self.pricing.seasonal_rates if s.id != rate_id]
        if len(remaining) == len(self.pricing.seasonal_rates):
            raise ValueError("Seasonal rate not found")
        self.pricing.seasonal_rates = remaining
        self._touch()

    def find_pricing_rule(self, rule_id: UUID) -> Optional[PricingRule]:
        for rule in self.pricing.pricing_rules:
            if rule.id == rule_id:
                return rule
        return None

    def add_pricing_rule(self, rule: PricingRule) -> PricingRule:
        self.pricing.pricing_rules.append(rule)
        self._touch()
        return rule

    def replace_pricing_rule(self, rule_id: UUID, rule: PricingRule) -> PricingRule:
        for index, existing in enumerate(self.pricing.pricing_rules):
            if existing.id == rule_id:
                updated = rule.copy(update={"id": rule_id})
                self.pricing.pricing_rules[index] = updated
                self._touch()
                return updated
        raise ValueError("Pricing rule not found")

    def remove_pricing_rule(self, rule_id: UUID) -> None:
        remaining = [r for r in self.pricing.pricing_rules if r.id != rule_id]
        if len(remaining) == len(self.pricing.pricing_rules):
            raise ValueError("Pricing rule not found")
        self.pricing.pricing_rules = remaining
        self._touch()

    def set_status(self, status: LoftStatus) -> None:
        self.status = status
        self._touch()

    # ==================== QUERY METHODS ====================
    def is_bookable(self) -> bool:
        return self.status == LoftStatus.AVAILABLE

    def split_revenue(self, amount: Decimal) -> Tuple[Decimal, Decimal]:
        """Split an amount into (company share, owner share)"""
        company = (amount * self.company_percentage / 100).quantize(Decimal("0.01"))
        return company, amount - company

    def _touch(self) -> None:
        self.modified_at = datetime.utcnow()
        self.version += 1


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = Field(default_factory=uuid4)
    confirmation_code: str

    # References to other aggregates
    loft_id: UUID
    client_id: UUID
    partner_id: UUID

    # Value Objects
    date_range: DateRange
    guest_count: GuestCount
    pricing: PricingBreakdown
    total_amount: Money
    cancellation_policy: CancellationPolicy

    # Enums/Status
    status: BookingStatus = BookingStatus.PENDING
    booking_source: BookingSource = BookingSource.WEBSITE

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        loft_id: UUID,
        client_id: UUID,
        partner_id: UUID,
        date_range: DateRange,
        guest_count: GuestCount,
        pricing: PricingBreakdown,
        cancellation_policy: CancellationPolicy,
        booking_source: BookingSource = BookingSource.WEBSITE,
        notes: Optional[str] = None,
        created_by: str = "SYSTEM"
    ) -> "Booking":
        """Create new booking with validation"""
        Booking._validate_date_range(date_range)
        Booking._validate_amount(pricing.total)

        return Booking(
            confirmation_code=Booking._generate_confirmation_code(),
            loft_id=loft_id,
            client_id=client_id,
            partner_id=partner_id,
            date_range=date_range,
            guest_count=guest_count,
            pricing=pricing,
            total_amount=Money(amount=pricing.total, currency=pricing.currency),
            cancellation_policy=cancellation_policy,
            booking_source=booking_source,
            status=BookingStatus.PENDING,
            notes=notes,
            created_by=created_by
        )

    # ==================== MODIFICATION METHODS ====================
    def modify(
        self,
        new_pricing: PricingBreakdown,
        new_date_range: Optional[DateRange] = None,
        new_guest_count: Optional[GuestCount] = None
    ) -> None:
        """Modify stay details; the caller re-prices the stay"""
        if not self.is_modifiable():
            raise ValueError(
                f"Cannot modify booking in {self.status.value} status or within 24 hours of check-in"
            )

        if new_date_range:
            Booking._validate_date_range(new_date_range)
        Booking._validate_amount(new_pricing.total)

        # nothing is assigned until every check has passed
        if new_date_range:
            self.date_range = new_date_range
        if new_guest_count:
            self.guest_count = new_guest_count
        self.pricing = new_pricing
        self.total_amount = Money(amount=new_pricing.total, currency=new_pricing.currency)

        self._touch()

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self, payment_confirmed: bool) -> None:
        """Confirm booking after payment"""
        if self.status != BookingStatus.PENDING:
            raise ValueError(
                f"Cannot confirm booking with status {self.status.value}"
            )

        if not payment_confirmed:
            raise ValueError("Payment must be confirmed to proceed")

        self.status = BookingStatus.CONFIRMED
        self._touch()

    def check_in(self) -> None:
        """Mark guest as checked in"""
        if self.status not in [BookingStatus.PENDING, BookingStatus.CONFIRMED]:
            raise ValueError(
                f"Cannot check in with status {self.status.value}"
            )

        if self.date_range.check_in > date.today():
            raise ValueError("Cannot check in before check-in date")

        self.status = BookingStatus.CHECKED_IN
        self._touch()

    def check_out(self) -> Money:
        """Process guest check-out and return the final bill"""
        if self.status != BookingStatus.CHECKED_IN:
            raise ValueError(
                f"Cannot check out with status {self.status.value}"
            )

        self.status = BookingStatus.CHECKED_OUT
        self._touch()

        return self.total_amount

    def cancel(self, reason: str) -> Money:
        """Cancel booking and return the refund owed"""
        if not self.is_cancellable():
            raise ValueError(
                f"Cannot cancel booking with status {self.status.value}"
            )

        refund_amount = self.calculate_refund(datetime.now(timezone.utc))

        self.status = BookingStatus.CANCELLED
        self.cancellation_reason = reason
        self._touch()

        return refund_amount

    def mark_no_show(self) -> None:
        """Mark guest as no-show"""
        if self.status not in [BookingStatus.PENDING, BookingStatus.CONFIRMED]:
            raise ValueError(
                f"Cannot mark as no-show with status {self.status.value}"
            )

        self.status = BookingStatus.NO_SHOW
        self._touch()

    # ==================== QUERY METHODS ====================
    def is_modifiable(self, now: Optional[datetime] = None) -> bool:
        """Check if booking can be modified: more than 24 hours must remain before check-in"""
        if self.status not in [BookingStatus.PENDING, BookingStatus.CONFIRMED]:
            return False

        return self._hours_until_check_in(now or datetime.now(timezone.utc)) > 24

    def is_cancellable(self) -> bool:
        return self.status in [BookingStatus.PENDING, BookingStatus.CONFIRMED]

    def is_active(self) -> bool:
        """Whether the booking still holds its dates"""
        return self.status in [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN]

    def generates_revenue(self) -> bool:
        return self.status in [BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT]

    def calculate_refund(self, cancelled_at: datetime) -> Money:
        """Calculate refund amount based on policy"""
        if cancelled_at.tzinfo is None:
            cancelled_at = cancelled_at.replace(tzinfo=timezone.utc)

        if self._hours_until_check_in(cancelled_at) >= self.cancellation_policy.deadline_hours:
            refund_amount = self.total_amount.amount
        else:
            refund_amount = (
                self.total_amount.amount * self.cancellation_policy.refund_percentage / 100
            ).quantize(Decimal("0.01"))

        return Money(
            amount=refund_amount,
            currency=self.total_amount.currency
        )

    def get_nights(self) -> int:
        return self.date_range.nights()

    def audit_snapshot(self) -> Dict[str, Any]:
        """Flat, JSON-friendly view used for audit old/new values"""
        return {
            "status": self.status.value,
            "check_in": self.date_range.check_in.isoformat(),
            "check_out": self.date_range.check_out.isoformat(),
            "adults": self.guest_count.adults,
            "children": self.guest_count.children,
            "total_amount": str(self.total_amount.amount),
            "currency": self.total_amount.currency,
            "version": self.version,
        }

    # ==================== PRIVATE METHODS ====================
    def _hours_until_check_in(self, moment: datetime) -> float:
        checkin_datetime = datetime.combine(self.date_range.check_in, datetime.min.time())
        checkin_datetime = checkin_datetime.replace(tzinfo=timezone.utc)
        return (checkin_datetime - moment).total_seconds() / 3600

    def _touch(self) -> None:
        self.modified_at = datetime.utcnow()
        self.version += 1

    @staticmethod
    def _validate_date_range(date_range: DateRange) -> None:
        if date_range.check_in < date.today():
            raise ValueError("Check-in date must be today or later")

        if date_range.nights() < 1:
            raise ValueError("Minimum stay is 1 night")

    @staticmethod
    def _validate_amount(amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError("Amount must be greater than 0")

    @staticmethod
    def _generate_confirmation_code() -> str:
        """Generate unique confirmation code"""
        import random
        import string
        return ''.join(random.choices(string.ascii_uppercase + string.digits, k=8))


class AvailabilityDay(BaseModel):
    """Availability of one loft on one date"""

    # Composite Identity
    loft_id: UUID
    availability_date: date

    is_available: bool = True
    price_override: Optional[Decimal] = Field(None, gt=0)
    blocked_reason: Optional[str] = None
    notes: Optional[str] = None

    last_updated: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    def block(self, reason: str) -> None:
        self.is_available = False
        self.blocked_reason = reason
        self._touch()

    def unblock(self) -> None:
        self.is_available = True
        self.blocked_reason = None
        self._touch()

    def set_price_override(self, price: Optional[Decimal]) -> None:
        if price is not None and price <= 0:
            raise ValueError("Price override must be greater than 0")
        self.price_override = price
        self._touch()

    def _touch(self) -> None:
        self.last_updated = datetime.utcnow()
        self.version += 1


class ReservationLock(BaseModel):
    """Short-lived hold on a loft's dates while a client checks out"""
    lock_id: UUID = Field(default_factory=uuid4)
    loft_id: UUID
    date_range: DateRange
    user_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime

    @staticmethod
    def acquire(loft_id: UUID, date_range: DateRange, user_id: Optional[UUID], minutes: int) -> "ReservationLock":
        created_at = datetime.utcnow()
        return ReservationLock(
            loft_id=loft_id,
            date_range=date_range,
            user_id=user_id,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=minutes)
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def blocks(self, date_range: DateRange, now: Optional[datetime] = None) -> bool:
        return not self.is_expired(now) and self.date_range.overlaps(date_range)


class AuditLogEntry(BaseModel):
    """Immutable record of a change to an audited table"""
    id: UUID = Field(default_factory=uuid4)
    table_name: str
    record_id: str
    action: AuditAction
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = []
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    integrity_hash: str = ""

    @staticmethod
    def create(
        table_name: str,
        record_id: str,
        action: AuditAction,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> "AuditLogEntry":
        entry = AuditLogEntry(
            table_name=table_name,
            record_id=record_id,
            action=action,
            user_id=user_id,
            user_email=user_email,
            old_values=old_values,
            new_values=new_values,
            changed_fields=AuditLogEntry.diff_fields(old_values, new_values),
            ip_address=ip_address,
            user_agent=user_agent
        )
        entry.integrity_hash = entry.compute_hash()
        return entry

    @staticmethod
    def diff_fields(old_values: Optional[Dict[str, Any]], new_values: Optional[Dict[str, Any]]) -> List[str]:
        old_values = old_values or {}
        new_values = new_values or {}
        keys = set(old_values) | set(new_values)
        return sorted(k for k in keys if old_values.get(k) != new_values.get(k))

    def compute_hash(self) -> str:
        payload = {
            "id": str(self.id),
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action.value,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "timestamp": self.timestamp.isoformat(),
            "old_values": self.old_values,
            "new_values": self.new_values,
            "changed_fields": self.changed_fields,
        }
        canonical = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def is_intact(self) -> bool:
        return self.integrity_hash == self.compute_hash()


class Notification(BaseModel):
    """In-app message for a partner or client"""
    notification_id: UUID = Field(default_factory=uuid4)
    recipient_id: UUID
    notification_type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = {}
    priority: NotificationPriority = NotificationPriority.MEDIUM
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    # None means the notification never expires
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def mark_as_read(self) -> None:
        if self.is_read:
            return
        self.is_read = True
        self.read_at = datetime.utcnow()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at
