"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4
from typing import Optional, List, Dict

from domain.enums import PricingRuleType, AdjustmentType, RestrictionType


class DateRange(BaseModel):
    """Value Object for date ranges"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out date must be after check-in date')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def stay_dates(self) -> List[date]:
        """Every night of the stay, check-out day excluded"""
        return [self.check_in + timedelta(days=i) for i in range(self.nights())]

    def overlaps(self, other: "DateRange") -> bool:
        return self.check_in < other.check_out and other.check_in < self.check_out

    def covers(self, other: "DateRange") -> bool:
        return self.check_in <= other.check_in and other.check_out <= self.check_out

    class Config:
        frozen = True


class Money(BaseModel):
    """Value Object for monetary amounts"""
    amount: Decimal = Field(ge=0)
    currency: str = "DZD"

    class Config:
        frozen = True


class GuestCount(BaseModel):
    """Value Object for guest count"""
    adults: int = Field(ge=1, le=16)
    children: int = Field(ge=0, le=16, default=0)

    @property
    def total(self) -> int:
        return self.adults + self.children

    class Config:
        frozen = True


class CancellationPolicy(BaseModel):
    """Value Object for cancellation policy"""
    policy_name: str
    refund_percentage: Decimal = Field(ge=0, le=100)
    deadline_hours: int = Field(ge=0)

    class Config:
        frozen = True


# ==================== PRICING ====================

class SeasonalRate(BaseModel):
    """Multiplier applied to the base rate between two dates (both inclusive)"""
    id: UUID = Field(default_factory=uuid4)
    name: str
    start_date: date
    end_date: date
    multiplier: Decimal = Field(gt=0)
    priority: int = 0
    is_active: bool = True

    @validator('end_date')
    def end_not_before_start(cls, v, values):
        if 'start_date' in values and v < values['start_date']:
            raise ValueError('Season end date must not be before its start date')
        return v

    def covers(self, day: date) -> bool:
        return self.is_active and self.start_date <= day <= self.end_date


class PricingRule(BaseModel):
    """Special pricing rule defined by a partner"""
    id: UUID = Field(default_factory=uuid4)
    name: str
    rule_type: PricingRuleType
    adjustment_type: AdjustmentType = AdjustmentType.PERCENTAGE
    adjustment_value: Decimal
    priority: int = 0
    is_active: bool = True

    # Conditions
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: Optional[List[int]] = None
    minimum_nights: Optional[int] = None
    maximum_nights: Optional[int] = None
    advance_booking_days: Optional[int] = None

    description: Optional[str] = None


class TaxExemption(BaseModel):
    """Reduction of the VAT rate for stays of at least minimum_nights"""
    name: str
    minimum_nights: int = Field(ge=1)
    rate_reduction: Decimal = Field(ge=0, le=1)


class TaxConfiguration(BaseModel):
    """VAT rate plus per-guest, per-night city and tourist taxes"""
    base_rate: Decimal = Field(ge=0, le=1)
    city_tax: Decimal = Field(ge=0, default=Decimal("0"))
    tourist_tax: Decimal = Field(ge=0, default=Decimal("0"))
    exemptions: List[TaxExemption] = []


class PricingConfig(BaseModel):
    """Everything the pricing engine needs to know about a property"""
    base_rate: Decimal = Field(gt=0)
    cleaning_fee: Decimal = Field(ge=0, default=Decimal("0"))
    service_fee_rate: Decimal = Field(ge=0, le=1, default=Decimal("0.12"))
    currency: str = "DZD"
    tax_config: TaxConfiguration = Field(default_factory=lambda: TaxConfiguration(base_rate=Decimal("0")))
    seasonal_rates: List[SeasonalRate] = []
    pricing_rules: List[PricingRule] = []


class PricingOptions(BaseModel):
    """Per-request inputs to a pricing calculation"""
    guests: int = Field(ge=1, default=1)
    advance_booking_days: Optional[int] = None
    price_overrides: Dict[date, Decimal] = {}


class SeasonalAdjustment(BaseModel):
    date: date
    original_rate: Decimal
    adjusted_rate: Decimal
    season_name: str
    multiplier: Decimal


class PriceOverride(BaseModel):
    date: date
    original_price: Decimal
    override_price: Decimal
    reason: str


class PricingBreakdown(BaseModel):
    """Result of a pricing calculation"""
    nightly_rate: Decimal
    average_nightly_rate: Decimal
    nights: int
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    vat: Decimal = Decimal("0")
    city_tax: Decimal = Decimal("0")
    tourist_tax: Decimal = Decimal("0")
    total: Decimal
    currency: str
    seasonal_adjustments: List[SeasonalAdjustment] = []
    price_overrides: List[PriceOverride] = []
    applied_rules: List[str] = []
    tax_exemption: Optional[str] = None


# ==================== CURRENCY ====================

class Currency(BaseModel):
    """Currency with its ratio against the default currency"""
    id: str
    code: str
    name: str
    symbol: str
    is_default: bool = False
    # units of this currency per one unit of the default currency
    ratio: Decimal
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ConversionResult(BaseModel):
    original_amount: Decimal
    converted_amount: Decimal
    from_currency: Currency
    to_currency: Currency
    exchange_rate: Decimal
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ==================== AVAILABILITY ====================

class AvailabilityRestriction(BaseModel):
    type: RestrictionType
    message: str
    affected_dates: List[date] = []


class AvailabilityUpdate(BaseModel):
    """Partner change to a single calendar day"""
    date: date
    is_available: bool = True
    price_override: Optional[Decimal] = Field(None, gt=0)
    blocked_reason: Optional[str] = None
    notes: Optional[str] = None


class AvailabilityResult(BaseModel):
    is_available: bool
    unavailable_dates: List[date] = []
    minimum_stay: int
    maximum_stay: Optional[int] = None
    restrictions: List[AvailabilityRestriction] = []
