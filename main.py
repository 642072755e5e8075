import logging

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.responses import Response
from uuid import UUID
from datetime import date, datetime, timedelta
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Lofts
    CreateLoftRequest, UpdatePricingRequest, SeasonalRateRequest, PricingRuleRequest,
    UpdateLoftStatusRequest, LoftResponse, PartnerRevenueResponse,
    # Availability
    UpdateAvailabilityRequest, AvailabilityDayResponse, CheckAvailabilityRequest,
    ReservationLockRequest, ReservationLockResponse, CalendarResponse,
    # Pricing & currencies
    QuoteRequest, CreateCurrencyRequest, ConvertRequest, ExchangeRateResponse,
    # Bookings
    CreateBookingRequest, ModifyBookingRequest, ConfirmBookingRequest, CancelBookingRequest,
    BookingResponse, MoneyResponse,
    # Audit
    AuditLogResponse, AuditLogPageResponse, AuditCleanupRequest, AuditCleanupResponse,
    # Notifications
    NotificationResponse, NotificationPageResponse, MaintenanceNoticeRequest,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, require_roles, fake_users_db, get_user
from infrastructure.security import verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from infrastructure.config import (
    LOG_LEVEL, SERVICE_FEE_RATE, CURRENCY_CACHE_TTL_SECONDS, RESERVATION_LOCK_MINUTES, DEFAULT_CURRENCY_CODE,
    MAX_BOOKING_WINDOW_DAYS, AUDIT_RETENTION_DAYS
)
from infrastructure.seed import default_currencies
from domain.auth import User

from application.services import LoftService, AvailabilityService, PricingService, BookingService
from application.currency_service import CurrencyConversionService
from application.audit_service import AuditService, AuditFilters
from application.notification_service import NotificationService
from infrastructure.repositories.in_memory_repositories import (
    InMemoryLoftRepository, InMemoryBookingRepository, InMemoryAvailabilityRepository,
    InMemoryReservationLockRepository, InMemoryCurrencyRepository, InMemoryAuditLogRepository,
    InMemoryNotificationRepository
)
from domain.enums import (
    BookingStatus, BookingSource, PricingRuleType, AdjustmentType, AuditAction, UserRole,
    NotificationType, NotificationPriority
)
from domain.exceptions import CurrencyNotFoundError, ConversionError
from domain.value_objects import (
    DateRange, AvailabilityResult, ConversionResult, Currency, PricingBreakdown, PricingRule, SeasonalRate
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Loft Booking API",
    description="Pricing, availability, bookings and audit trail for short-stay lofts",
    version="1.0.0"
)

# Initialize repositories
loft_repo = InMemoryLoftRepository()
booking_repo = InMemoryBookingRepository()
availability_repo = InMemoryAvailabilityRepository()
lock_repo = InMemoryReservationLockRepository()
currency_repo = InMemoryCurrencyRepository(default_currencies())
audit_repo = InMemoryAuditLogRepository()
notification_repo = InMemoryNotificationRepository()

# shared so the currency cache outlives a single request
currency_service = CurrencyConversionService(currency_repo, cache_ttl_seconds=CURRENCY_CACHE_TTL_SECONDS)

# Dependency injection
def get_audit_service() -> AuditService:
    return AuditService(audit_repo)

def get_notification_service() -> NotificationService:
    return NotificationService(notification_repo)

def get_currency_service() -> CurrencyConversionService:
    return currency_service

def get_loft_service() -> LoftService:
    return LoftService(loft_repo, booking_repo, get_audit_service(), get_notification_service())

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(
        availability_repo, loft_repo, booking_repo, lock_repo,
        lock_minutes=RESERVATION_LOCK_MINUTES,
        max_booking_window_days=MAX_BOOKING_WINDOW_DAYS
    )

def get_pricing_service() -> PricingService:
    return PricingService(loft_repo, get_availability_service(), currency_service)

def get_booking_service() -> BookingService:
    return BookingService(
        booking_repo, loft_repo, get_availability_service(), get_pricing_service(),
        get_audit_service(), get_notification_service()
    )

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [f"{item.name}" for item in BookingStatus],
        "description": "Booking status values: PENDING, CONFIRMED, CHECKED_IN, CHECKED_OUT, CANCELLED, NO_SHOW"
    }

@app.get("/api/enums/booking-source", tags=["Enum Reference"])
async def get_booking_sources():
    """Get all BookingSource enum values"""
    return {
        "values": [f"{item.name}" for item in BookingSource],
        "description": "Booking source values: WEBSITE, MOBILE_APP, PHONE, PARTNER_PORTAL, ADMIN"
    }

@app.get("/api/enums/pricing-rule-type", tags=["Enum Reference"])
async def get_pricing_rule_types():
    """Get all PricingRuleType enum values"""
    return {
        "values": [f"{item.name}" for item in PricingRuleType],
        "description": "Pricing rule types: SEASONAL, WEEKEND, HOLIDAY, EVENT, LENGTH_OF_STAY, ADVANCE_BOOKING, LAST_MINUTE"
    }

@app.get("/api/enums/adjustment-type", tags=["Enum Reference"])
async def get_adjustment_types():
    """Get all AdjustmentType enum values"""
    return {
        "values": [f"{item.name}" for item in AdjustmentType],
        "description": "PERCENTAGE compounds on the rate, FIXED adds an amount, OVERRIDE replaces the rate"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning(f"Failed login attempt for {form_data.username}")
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# CURRENCY ENDPOINTS
# ============================================================================

@app.get("/api/currencies", response_model=List[Currency], tags=["Currencies"])
async def list_currencies(
    service: CurrencyConversionService = Depends(get_currency_service),
    current_user: User = Depends(get_current_active_user)
):
    """List currencies, default currency first"""
    return await service.list_currencies()

@app.post("/api/currencies", response_model=Currency, status_code=201, tags=["Currencies"])
async def register_currency(
    request: CreateCurrencyRequest,
    service: CurrencyConversionService = Depends(get_currency_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Register a currency with its ratio against the default currency"""
    try:
        return await service.register_currency(
            currency_id=request.id,
            code=request.code,
            name=request.name,
            symbol=request.symbol,
            ratio=request.ratio,
            is_default=request.is_default
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/currencies/rate", response_model=ExchangeRateResponse, tags=["Currencies"])
async def get_exchange_rate(
    from_currency_id: str,
    to_currency_id: str,
    service: CurrencyConversionService = Depends(get_currency_service),
    current_user: User = Depends(get_current_active_user)
):
    """Exchange rate between two currencies"""
    try:
        rate = await service.get_exchange_rate(from_currency_id, to_currency_id)
    except CurrencyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConversionError as e:
        raise HTTPException(status_code=400, detail=e.conversion_error)
    return ExchangeRateResponse(from_currency_id=from_currency_id, to_currency_id=to_currency_id, rate=rate)

@app.post("/api/currencies/convert", response_model=ConversionResult, tags=["Currencies"])
async def convert_amount(
    request: ConvertRequest,
    service: CurrencyConversionService = Depends(get_currency_service),
    current_user: User = Depends(get_current_active_user)
):
    """Convert an amount between currencies"""
    try:
        return await service.calculate_conversion(request.amount, request.from_currency_id, request.to_currency_id)
    except CurrencyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConversionError as e:
        raise HTTPException(status_code=400, detail=e.conversion_error)

# ============================================================================
# LOFT ENDPOINTS
# ============================================================================

@app.post("/api/lofts", response_model=LoftResponse, status_code=201, tags=["Lofts"])
async def create_loft(
    request: CreateLoftRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Create a loft owned by the calling partner (admins name the partner)"""
    if current_user.role == UserRole.PARTNER:
        partner_id = current_user.user_id
    elif request.partner_id:
        partner_id = request.partner_id
    else:
        raise HTTPException(status_code=400, detail="partner_id is required")

    try:
        loft = await service.create_loft(
            partner_id=partner_id,
            name=request.name,
            base_rate=request.base_rate,
            address=request.address,
            description=request.description,
            cleaning_fee=request.cleaning_fee,
            service_fee_rate=request.service_fee_rate if request.service_fee_rate is not None else SERVICE_FEE_RATE,
            currency=request.currency,
            max_guests=request.max_guests,
            minimum_stay=request.minimum_stay,
            maximum_stay=request.maximum_stay,
            company_percentage=request.company_percentage,
            use_default_pricing=request.use_default_pricing,
            actor=current_user
        )
        return _loft_to_response(loft)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/lofts", response_model=List[LoftResponse], tags=["Lofts"])
async def list_lofts(
    partner_id: Optional[UUID] = None,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(get_current_active_user)
):
    """List lofts, optionally for one partner"""
    lofts = await service.list_lofts(partner_id)
    return [_loft_to_response(loft) for loft in lofts]

@app.get("/api/lofts/{loft_id}", response_model=LoftResponse, tags=["Lofts"])
async def get_loft(
    loft_id: UUID,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get loft by ID"""
    loft = await service.get_loft(loft_id)
    if not loft:
        raise HTTPException(status_code=404, detail="Loft not found")
    return _loft_to_response(loft)

@app.put("/api/lofts/{loft_id}/pricing", response_model=LoftResponse, tags=["Lofts"])
async def update_loft_pricing(
    loft_id: UUID,
    request: UpdatePricingRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Update base rate, fees or currency"""
    try:
        loft = await service.update_pricing(
            loft_id=loft_id,
            base_rate=request.base_rate,
            cleaning_fee=request.cleaning_fee,
            service_fee_rate=request.service_fee_rate,
            currency=request.currency,
            actor=current_user
        )
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/lofts/{loft_id}/seasonal-rates", response_model=LoftResponse, status_code=201, tags=["Lofts"])
async def add_seasonal_rate(
    loft_id: UUID,
    request: SeasonalRateRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Add a seasonal rate"""
    try:
        loft = await service.add_seasonal_rate(loft_id, SeasonalRate(**request.dict()), actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.delete("/api/lofts/{loft_id}/seasonal-rates/{rate_id}", response_model=LoftResponse, tags=["Lofts"])
async def remove_seasonal_rate(
    loft_id: UUID,
    rate_id: UUID,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Remove a seasonal rate"""
    try:
        loft = await service.remove_seasonal_rate(loft_id, rate_id, actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/lofts/{loft_id}/pricing-rules", response_model=LoftResponse, status_code=201, tags=["Lofts"])
async def add_pricing_rule(
    loft_id: UUID,
    request: PricingRuleRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Add a special pricing rule"""
    try:
        loft = await service.add_pricing_rule(loft_id, PricingRule(**request.dict()), actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.put("/api/lofts/{loft_id}/pricing-rules/{rule_id}", response_model=LoftResponse, tags=["Lofts"])
async def update_pricing_rule(
    loft_id: UUID,
    rule_id: UUID,
    request: PricingRuleRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Replace a special pricing rule"""
    try:
        loft = await service.update_pricing_rule(loft_id, rule_id, PricingRule(**request.dict()), actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.delete("/api/lofts/{loft_id}/pricing-rules/{rule_id}", response_model=LoftResponse, tags=["Lofts"])
async def remove_pricing_rule(
    loft_id: UUID,
    rule_id: UUID,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Remove a special pricing rule"""
    try:
        loft = await service.remove_pricing_rule(loft_id, rule_id, actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.put("/api/lofts/{loft_id}/status", response_model=LoftResponse, tags=["Lofts"])
async def set_loft_status(
    loft_id: UUID,
    request: UpdateLoftStatusRequest,
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Mark a loft available, occupied or under maintenance"""
    try:
        loft = await service.set_status(loft_id, request.status, actor=current_user)
        if not loft:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _loft_to_response(loft)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

@app.get("/api/partners/me/revenue", response_model=PartnerRevenueResponse, tags=["Lofts"])
async def get_partner_revenue(
    service: LoftService = Depends(get_loft_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER))
):
    """Revenue of the calling partner's lofts"""
    return await service.get_partner_revenue(current_user.user_id)

@app.post("/api/partners/me/revenue/report", response_model=NotificationResponse, status_code=201, tags=["Lofts"])
async def send_revenue_report(
    service: LoftService = Depends(get_loft_service),
    notification_service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER))
):
    """Post the calling partner's revenue summary to their notifications"""
    revenue = await service.get_partner_revenue(current_user.user_id)
    currency = revenue["lofts"][0]["currency"] if revenue["lofts"] else DEFAULT_CURRENCY_CODE
    notification = await notification_service.send_revenue_report(
        current_user.user_id,
        period=date.today().strftime("%Y-%m"),
        total_revenue=revenue["total_revenue"],
        booking_count=sum(loft["booking_count"] for loft in revenue["lofts"]),
        currency=currency
    )
    return _notification_to_response(notification)

# ============================================================================
# AVAILABILITY ENDPOINTS
# ============================================================================

@app.put("/api/lofts/{loft_id}/availability", response_model=List[AvailabilityDayResponse], tags=["Availability"])
async def update_availability(
    loft_id: UUID,
    request: UpdateAvailabilityRequest,
    loft_service: LoftService = Depends(get_loft_service),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Block, unblock or override prices on calendar days"""
    loft = await loft_service.get_loft(loft_id)
    if not loft:
        raise HTTPException(status_code=404, detail="Loft not found")
    if current_user.role == UserRole.PARTNER and loft.partner_id != current_user.user_id:
        raise HTTPException(status_code=403, detail="Not allowed to manage this loft")

    try:
        days = await service.update_availability(loft_id, request.days)
        return [_availability_day_to_response(day) for day in days]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/lofts/{loft_id}/calendar", response_model=CalendarResponse, tags=["Availability"])
async def get_availability_calendar(
    loft_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    loft_service: LoftService = Depends(get_loft_service),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Day-by-day availability, 30 days from today by default"""
    if not await loft_service.get_loft(loft_id):
        raise HTTPException(status_code=404, detail="Loft not found")

    start_date = start_date or date.today()
    end_date = end_date or start_date + timedelta(days=30)
    try:
        days = await service.get_availability_calendar(loft_id, start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CalendarResponse(loft_id=loft_id, start_date=start_date, end_date=end_date, days=days)

@app.post("/api/availability/check", response_model=AvailabilityResult, tags=["Availability"])
async def check_availability(
    request: CheckAvailabilityRequest,
    loft_service: LoftService = Depends(get_loft_service),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check if a loft can be booked for a stay"""
    if not await loft_service.get_loft(request.loft_id):
        raise HTTPException(status_code=404, detail="Loft not found")

    try:
        dates = DateRange(check_in=request.check_in, check_out=request.check_out)
        service.validate_booking_dates(dates)
        return await service.check_availability(request.loft_id, dates, ignore_lock_id=request.lock_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/availability/locks", response_model=ReservationLockResponse, status_code=201, tags=["Availability"])
async def lock_reservation(
    request: ReservationLockRequest,
    loft_service: LoftService = Depends(get_loft_service),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Hold dates while checkout completes"""
    if not await loft_service.get_loft(request.loft_id):
        raise HTTPException(status_code=404, detail="Loft not found")

    try:
        dates = DateRange(check_in=request.check_in, check_out=request.check_out)
        lock = await service.lock_reservation(request.loft_id, dates, current_user.user_id)
    except ValueError as e:
        raise HTTPException(status_code=409 if "not available" in str(e) else 400, detail=str(e))

    return ReservationLockResponse(
        lock_id=lock.lock_id,
        loft_id=lock.loft_id,
        check_in=lock.date_range.check_in,
        check_out=lock.date_range.check_out,
        user_id=lock.user_id,
        expires_at=lock.expires_at
    )

@app.delete("/api/availability/locks/{lock_id}", tags=["Availability"])
async def release_reservation_lock(
    lock_id: UUID,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Release a reservation lock"""
    lock = await service.get_reservation_lock(lock_id)
    if not lock:
        raise HTTPException(status_code=404, detail="Lock not found")
    if lock.user_id != current_user.user_id and not current_user.is_admin():
        raise HTTPException(status_code=403, detail="Lock is held by another user")

    await service.release_reservation_lock(lock_id)
    return {"lock_id": lock_id, "released": True}

# ============================================================================
# PRICING ENDPOINTS
# ============================================================================

@app.post("/api/pricing/quote", response_model=PricingBreakdown, tags=["Pricing"])
async def quote_stay(
    request: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Price a stay, optionally converted to another currency"""
    try:
        breakdown = await service.quote(
            loft_id=request.loft_id,
            check_in=request.check_in,
            check_out=request.check_out,
            guests=request.guests,
            booking_date=request.booking_date,
            currency_code=request.currency_code
        )
    except CurrencyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConversionError as e:
        raise HTTPException(status_code=400, detail=e.conversion_error)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not breakdown:
        raise HTTPException(status_code=404, detail="Loft not found")
    return breakdown

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create new booking"""
    client_id = current_user.user_id
    if request.client_id and request.client_id != current_user.user_id:
        if not current_user.is_admin():
            raise HTTPException(status_code=403, detail="Only admins may book on behalf of a client")
        client_id = request.client_id

    try:
        booking = await service.create_booking(
            loft_id=request.loft_id,
            client_id=client_id,
            check_in=request.check_in,
            check_out=request.check_out,
            adults=request.adults,
            children=request.children,
            booking_source=request.booking_source,
            notes=request.notes,
            lock_id=request.lock_id,
            created_by=current_user.username,
            actor=current_user
        )
        if not booking:
            raise HTTPException(status_code=404, detail="Loft not found")
        return _booking_to_response(booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/bookings", response_model=List[BookingResponse], tags=["Bookings"])
async def get_bookings(
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Bookings visible to the caller"""
    bookings = await service.get_bookings_for_user(current_user)
    return [_booking_to_response(b) for b in bookings]

@app.get("/api/bookings/code/{confirmation_code}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking_by_code(
    confirmation_code: str,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get booking by confirmation code"""
    booking = await service.get_booking_by_confirmation_code(confirmation_code)
    if not booking or not service.can_view(booking, current_user):
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)

@app.get("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get booking by ID"""
    booking = await _get_visible_booking(service, booking_id, current_user)
    return _booking_to_response(booking)

@app.put("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def modify_booking(
    booking_id: UUID,
    request: ModifyBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Modify booking dates or guests"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        booking = await service.modify_booking(
            booking_id=booking_id,
            new_check_in=request.check_in,
            new_check_out=request.check_out,
            new_adults=request.adults,
            new_children=request.children,
            actor=current_user
        )
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return _booking_to_response(booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/bookings/{booking_id}/confirm", response_model=BookingResponse, tags=["Bookings"])
async def confirm_booking(
    booking_id: UUID,
    request: ConfirmBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Confirm booking after payment"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        booking = await service.confirm_booking(
            booking_id=booking_id,
            payment_confirmed=request.payment_confirmed,
            actor=current_user
        )
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return _booking_to_response(booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/bookings/{booking_id}/check-in", response_model=BookingResponse, tags=["Bookings"])
async def check_in_guest(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Check in guest"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        booking = await service.check_in_guest(booking_id, actor=current_user)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return _booking_to_response(booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/bookings/{booking_id}/check-out", response_model=MoneyResponse, tags=["Bookings"])
async def check_out_guest(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Check out guest"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        final_amount = await service.check_out_guest(booking_id, actor=current_user)
        if not final_amount:
            raise HTTPException(status_code=404, detail="Booking not found")
        return {"amount": final_amount.amount, "currency": final_amount.currency}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/bookings/{booking_id}/cancel", response_model=MoneyResponse, tags=["Bookings"])
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel booking and return the refund"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        refund_amount = await service.cancel_booking(
            booking_id=booking_id,
            reason=request.reason,
            actor=current_user
        )
        if refund_amount is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        return {"amount": refund_amount.amount, "currency": refund_amount.currency}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/bookings/{booking_id}/no-show", response_model=BookingResponse, tags=["Bookings"])
async def mark_no_show(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.PARTNER, UserRole.ADMIN))
):
    """Mark guest as no-show"""
    await _get_visible_booking(service, booking_id, current_user)
    try:
        booking = await service.mark_no_show(booking_id, actor=current_user)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return _booking_to_response(booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

# ============================================================================
# AUDIT ENDPOINTS
# ============================================================================

@app.get("/api/audit/logs", response_model=AuditLogPageResponse, tags=["Audit"])
async def get_audit_logs(
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Filtered, paginated audit logs, newest first"""
    filters = AuditFilters(
        table_name=table_name,
        record_id=record_id,
        user_id=user_id,
        action=action,
        date_from=date_from,
        date_to=date_to,
        search=search
    )
    try:
        logs, total = await service.get_audit_logs(filters, page, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return AuditLogPageResponse(
        logs=[_audit_log_to_response(log) for log in logs],
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit
    )

@app.get("/api/audit/history/{table_name}/{record_id}", response_model=List[AuditLogResponse], tags=["Audit"])
async def get_entity_history(
    table_name: str,
    record_id: str,
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Change history of one record, oldest first"""
    logs = await service.get_entity_history(table_name, record_id)
    return [_audit_log_to_response(log) for log in logs]

@app.get("/api/audit/export", tags=["Audit"])
async def export_audit_logs(
    export_format: str = Query("csv", alias="format"),
    fields: Optional[str] = Query(None, description="Comma-separated field names"),
    include_values: bool = False,
    table_name: Optional[str] = None,
    action: Optional[AuditAction] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Download audit logs as CSV or JSON"""
    filters = AuditFilters(table_name=table_name, action=action, date_from=date_from, date_to=date_to)
    field_list = [f.strip() for f in fields.split(",") if f.strip()] if fields else None
    try:
        content = await service.export_audit_logs(filters, export_format, field_list, include_values)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    media_type = "text/csv" if export_format == "csv" else "application/json"
    filename = f"audit-logs-{date.today().isoformat()}.{export_format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )

@app.get("/api/audit/statistics", tags=["Audit"])
async def get_audit_statistics(
    table_name: Optional[str] = None,
    days: int = Query(30, ge=1),
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Activity summary over the last `days` days"""
    return await service.get_audit_statistics(table_name, days)

@app.get("/api/audit/integrity", tags=["Audit"])
async def verify_audit_integrity(
    table_name: Optional[str] = None,
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Recompute integrity hashes of stored logs"""
    return await service.verify_integrity(table_name)

@app.post("/api/audit/cleanup", response_model=AuditCleanupResponse, tags=["Audit"])
async def cleanup_audit_logs(
    request: AuditCleanupRequest,
    service: AuditService = Depends(get_audit_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Delete logs older than the retention window"""
    retention_days = request.retention_days or AUDIT_RETENTION_DAYS
    try:
        deleted = await service.cleanup_old_logs(retention_days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AuditCleanupResponse(deleted=deleted, retention_days=retention_days)

# ============================================================================
# NOTIFICATION ENDPOINTS
# ============================================================================

@app.get("/api/notifications", response_model=NotificationPageResponse, tags=["Notifications"])
async def get_notifications(
    unread_only: bool = False,
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    priority: Optional[NotificationPriority] = None,
    page: int = 1,
    limit: int = 20,
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    """The caller's unexpired notifications, newest first"""
    try:
        notifications, total = await service.get_notifications(
            current_user.user_id, unread_only, notification_type, priority, page, limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return NotificationPageResponse(
        notifications=[_notification_to_response(n) for n in notifications],
        total=total,
        unread_count=await service.get_unread_count(current_user.user_id),
        page=page,
        limit=limit
    )

@app.get("/api/notifications/unread-count", tags=["Notifications"])
async def get_unread_notification_count(
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    return {"unread_count": await service.get_unread_count(current_user.user_id)}

@app.post("/api/notifications/read-all", tags=["Notifications"])
async def mark_all_notifications_read(
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    """Mark every notification of the caller as read"""
    return {"updated": await service.mark_all_as_read(current_user.user_id)}

@app.post("/api/notifications/{notification_id}/read", response_model=NotificationResponse, tags=["Notifications"])
async def mark_notification_read(
    notification_id: UUID,
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    notification = await service.mark_as_read(notification_id, current_user.user_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return _notification_to_response(notification)

@app.delete("/api/notifications/{notification_id}", tags=["Notifications"])
async def delete_notification(
    notification_id: UUID,
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    if not await service.delete_notification(notification_id, current_user.user_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"notification_id": notification_id, "deleted": True}

@app.post("/api/notifications/maintenance", response_model=List[NotificationResponse], status_code=201,
          tags=["Notifications"])
async def announce_maintenance(
    request: MaintenanceNoticeRequest,
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Notify the given users of a scheduled maintenance window"""
    try:
        notifications = await service.send_maintenance_notice(
            request.recipient_ids, request.start_time, request.end_time, request.description
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [_notification_to_response(n) for n in notifications]

@app.post("/api/notifications/cleanup", tags=["Notifications"])
async def cleanup_expired_notifications(
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Delete expired notifications"""
    return {"deleted": await service.cleanup_expired_notifications()}

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

async def _get_visible_booking(service: BookingService, booking_id: UUID, current_user: User):
    """Load a booking the caller may see; others' bookings look missing"""
    booking = await service.get_booking(booking_id)
    if not booking or not service.can_view(booking, current_user):
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking

def _loft_to_response(loft) -> LoftResponse:
    """Convert Loft entity to LoftResponse"""
    return LoftResponse(
        loft_id=loft.loft_id,
        name=loft.name,
        address=loft.address,
        description=loft.description,
        partner_id=loft.partner_id,
        status=loft.status.value,
        max_guests=loft.max_guests,
        minimum_stay=loft.minimum_stay,
        maximum_stay=loft.maximum_stay,
        company_percentage=loft.company_percentage,
        owner_percentage=loft.owner_percentage,
        pricing=loft.pricing,
        created_at=loft.created_at,
        modified_at=loft.modified_at,
        version=loft.version
    )

def _availability_day_to_response(day) -> AvailabilityDayResponse:
    """Convert AvailabilityDay entity to AvailabilityDayResponse"""
    return AvailabilityDayResponse(
        loft_id=day.loft_id,
        availability_date=day.availability_date,
        is_available=day.is_available,
        price_override=day.price_override,
        blocked_reason=day.blocked_reason,
        notes=day.notes,
        last_updated=day.last_updated,
        version=day.version
    )

def _booking_to_response(booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    return BookingResponse(
        booking_id=booking.booking_id,
        confirmation_code=booking.confirmation_code,
        loft_id=booking.loft_id,
        client_id=booking.client_id,
        partner_id=booking.partner_id,
        check_in=booking.date_range.check_in,
        check_out=booking.date_range.check_out,
        nights=booking.get_nights(),
        adults=booking.guest_count.adults,
        children=booking.guest_count.children,
        total_amount=booking.total_amount.amount,
        currency=booking.total_amount.currency,
        subtotal=booking.pricing.subtotal,
        cleaning_fee=booking.pricing.cleaning_fee,
        service_fee=booking.pricing.service_fee,
        taxes=booking.pricing.taxes,
        status=booking.status.value,
        booking_source=booking.booking_source.value,
        notes=booking.notes,
        cancellation_reason=booking.cancellation_reason,
        created_at=booking.created_at,
        modified_at=booking.modified_at,
        created_by=booking.created_by,
        version=booking.version
    )

def _audit_log_to_response(log) -> AuditLogResponse:
    """Convert AuditLogEntry to AuditLogResponse"""
    return AuditLogResponse(
        id=log.id,
        table_name=log.table_name,
        record_id=log.record_id,
        action=log.action,
        user_id=log.user_id,
        user_email=log.user_email,
        timestamp=log.timestamp,
        old_values=log.old_values,
        new_values=log.new_values,
        changed_fields=log.changed_fields,
        ip_address=log.ip_address,
        user_agent=log.user_agent
    )

def _notification_to_response(notification) -> NotificationResponse:
    """Convert Notification entity to NotificationResponse"""
    return NotificationResponse(
        notification_id=notification.notification_id,
        notification_type=notification.notification_type,
        title=notification.title,
        message=notification.message,
        data=notification.data,
        priority=notification.priority,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
        expires_at=notification.expires_at
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
