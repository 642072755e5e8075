"""Application Services - Business use cases"""
import logging
from uuid import UUID
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from domain.auth import User
from domain.repositories import (
    LoftRepository, BookingRepository, AvailabilityRepository, ReservationLockRepository
)
from domain.entities import Loft, Booking, AvailabilityDay, ReservationLock
from domain.enums import BookingSource, LoftStatus, RestrictionType, AuditAction, UserRole, NotificationType
from domain.pricing import (
    PricingCalculator, validate_pricing_rule, create_default_tax_config,
    create_default_seasonal_rates, create_default_pricing_rules
)
from domain.price_display import validate_pricing_breakdown
from domain.value_objects import (
    DateRange, GuestCount, Money, CancellationPolicy, PricingConfig, PricingOptions,
    PricingBreakdown, PricingRule, SeasonalRate, TaxConfiguration, AvailabilityUpdate,
    AvailabilityResult, AvailabilityRestriction
)
from application.audit_service import AuditService
from application.currency_service import CurrencyConversionService
from application.notification_service import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_POLICY = CancellationPolicy(
    policy_name="Standard",
    refund_percentage=Decimal("80"),
    deadline_hours=24
)


def _audit_user(actor: Optional[User]) -> Dict[str, Optional[str]]:
    if actor is None:
        return {"user_id": None, "user_email": None}
    return {"user_id": str(actor.user_id), "user_email": actor.email}


class LoftService:
    """Service for property configuration and partner tooling"""

    def __init__(self,
                 repository: LoftRepository,
                 booking_repo: Optional[BookingRepository] = None,
                 audit_service: Optional[AuditService] = None,
                 notification_service: Optional[NotificationService] = None):
        self.repository = repository
        self.booking_repo = booking_repo
        self.audit_service = audit_service
        self.notification_service = notification_service

    async def create_loft(
        self,
        partner_id: UUID,
        name: str,
        base_rate: Decimal,
        address: str = "",
        description: Optional[str] = None,
        cleaning_fee: Decimal = Decimal("0"),
        service_fee_rate: Decimal = Decimal("0.12"),
        currency: str = "DZD",
        max_guests: int = 4,
        minimum_stay: int = 1,
        maximum_stay: Optional[int] = None,
        company_percentage: Decimal = Decimal("20"),
        use_default_pricing: bool = False,
        actor: Optional[User] = None
    ) -> Loft:
        """
        Create a property. With use_default_pricing the loft starts with the
        standard tax configuration, seasons and pricing rule templates.
        """
        pricing = PricingConfig(
            base_rate=base_rate,
            cleaning_fee=cleaning_fee,
            service_fee_rate=service_fee_rate,
            currency=currency.upper(),
            tax_config=create_default_tax_config() if use_default_pricing else TaxConfiguration(base_rate=Decimal("0")),
            seasonal_rates=create_default_seasonal_rates() if use_default_pricing else [],
            pricing_rules=create_default_pricing_rules() if use_default_pricing else []
        )

        loft = Loft(
            name=name,
            address=address,
            description=description,
            partner_id=partner_id,
            company_percentage=company_percentage,
            owner_percentage=Decimal("100") - company_percentage,
            max_guests=max_guests,
            minimum_stay=minimum_stay,
            maximum_stay=maximum_stay,
            pricing=pricing
        )
        saved = await self.repository.save(loft)
        logger.info(f"🏠 Loft {saved.loft_id} created for partner {partner_id}")
        await self._audit(saved, AuditAction.INSERT, None, actor)
        if self.notification_service:
            await self.notification_service.notify_property(saved, NotificationType.PROPERTY_ADDED)
        return saved

    async def get_loft(self, loft_id: UUID) -> Optional[Loft]:
        """Get loft by ID"""
        return await self.repository.find_by_id(loft_id)

    async def list_lofts(self, partner_id: Optional[UUID] = None) -> List[Loft]:
        if partner_id:
            return await self.repository.find_by_partner_id(partner_id)
        return await self.repository.find_all()

    async def update_pricing(
        self,
        loft_id: UUID,
        base_rate: Optional[Decimal] = None,
        cleaning_fee: Optional[Decimal] = None,
        service_fee_rate: Optional[Decimal] = None,
        currency: Optional[str] = None,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        old_values = self._snapshot(loft)
        try:
            loft.update_pricing(
                base_rate=base_rate,
                cleaning_fee=cleaning_fee,
                service_fee_rate=service_fee_rate,
                currency=currency
            )
        except ValueError as e:
            raise ValueError(f"Cannot update pricing: {str(e)}")

        return await self._save_change(loft, old_values, actor)

    async def add_seasonal_rate(
        self,
        loft_id: UUID,
        seasonal_rate: SeasonalRate,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        old_values = self._snapshot(loft)
        loft.add_seasonal_rate(seasonal_rate)
        return await self._save_change(loft, old_values, actor)

    async def remove_seasonal_rate(
        self,
        loft_id: UUID,
        rate_id: UUID,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        old_values = self._snapshot(loft)
        try:
            loft.remove_seasonal_rate(rate_id)
        except ValueError as e:
            raise ValueError(f"Cannot remove seasonal rate: {str(e)}")
        return await self._save_change(loft, old_values, actor)

    async def add_pricing_rule(
        self,
        loft_id: UUID,
        rule: PricingRule,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        errors = validate_pricing_rule(rule)
        if errors:
            raise ValueError(f"Invalid pricing rule: {'; '.join(errors)}")

        old_values = self._snapshot(loft)
        loft.add_pricing_rule(rule)
        return await self._save_change(loft, old_values, actor)

    async def update_pricing_rule(
        self,
        loft_id: UUID,
        rule_id: UUID,
        rule: PricingRule,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        errors = validate_pricing_rule(rule)
        if errors:
            raise ValueError(f"Invalid pricing rule: {'; '.join(errors)}")

        old_values = self._snapshot(loft)
        try:
            loft.replace_pricing_rule(rule_id, rule)
        except ValueError as e:
            raise ValueError(f"Cannot update pricing rule: {str(e)}")
        return await self._save_change(loft, old_values, actor)

    async def remove_pricing_rule(
        self,
        loft_id: UUID,
        rule_id: UUID,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        old_values = self._snapshot(loft)
        try:
            loft.remove_pricing_rule(rule_id)
        except ValueError as e:
            raise ValueError(f"Cannot remove pricing rule: {str(e)}")
        return await self._save_change(loft, old_values, actor)

    async def set_status(
        self,
        loft_id: UUID,
        status: LoftStatus,
        actor: Optional[User] = None
    ) -> Optional[Loft]:
        loft = await self.repository.find_by_id(loft_id)
        if not loft:
            return None
        self._ensure_can_manage(loft, actor)

        old_values = self._snapshot(loft)
        loft.set_status(status)
        logger.info(f"Loft {loft_id} status changed to {status.value}")
        updated = await self._save_change(loft, old_values, actor)
        if self.notification_service:
            await self.notification_service.notify_property(updated, NotificationType.PROPERTY_UPDATED)
        return updated

    async def get_partner_revenue(self, partner_id: UUID) -> Dict[str, Any]:
        """Revenue of revenue-generating bookings per loft, split between company and owner"""
        lofts = await self.repository.find_by_partner_id(partner_id)
        bookings = await self.booking_repo.find_by_partner_id(partner_id) if self.booking_repo else []

        per_loft = []
        total = company_total = owner_total = Decimal("0")
        for loft in lofts:
            earning = [b for b in bookings if b.loft_id == loft.loft_id and b.generates_revenue()]
            revenue = sum((b.total_amount.amount for b in earning), Decimal("0"))
            company_share, owner_share = loft.split_revenue(revenue)

            per_loft.append({
                "loft_id": loft.loft_id,
                "name": loft.name,
                "currency": loft.pricing.currency,
                "booking_count": len(earning),
                "total_revenue": revenue,
                "company_share": company_share,
                "owner_share": owner_share,
            })
            total += revenue
            company_total += company_share
            owner_total += owner_share

        return {
            "partner_id": partner_id,
            "lofts": per_loft,
            "total_revenue": total,
            "company_share": company_total,
            "owner_share": owner_total,
        }

    # ==================== PRIVATE ====================
    @staticmethod
    def _ensure_can_manage(loft: Loft, actor: Optional[User]) -> None:
        if actor is None or actor.is_admin():
            return
        if actor.role == UserRole.PARTNER and actor.user_id == loft.partner_id:
            return
        raise PermissionError("Not allowed to manage this loft")

    @staticmethod
    def _snapshot(loft: Loft) -> Dict[str, Any]:
        return {
            "name": loft.name,
            "status": loft.status.value,
            "base_rate": str(loft.pricing.base_rate),
            "cleaning_fee": str(loft.pricing.cleaning_fee),
            "service_fee_rate": str(loft.pricing.service_fee_rate),
            "currency": loft.pricing.currency,
            "seasonal_rates": sorted(str(s.id) for s in loft.pricing.seasonal_rates),
            "pricing_rules": sorted(str(r.id) for r in loft.pricing.pricing_rules),
            "version": loft.version,
        }

    async def _save_change(self, loft: Loft, old_values: Dict[str, Any], actor: Optional[User]) -> Loft:
        updated = await self.repository.update(loft)
        await self._audit(updated, AuditAction.UPDATE, old_values, actor)
        return updated

    async def _audit(
        self,
        loft: Loft,
        action: AuditAction,
        old_values: Optional[Dict[str, Any]],
        actor: Optional[User]
    ) -> None:
        if not self.audit_service:
            return
        await self.audit_service.record(
            table_name="lofts",
            record_id=str(loft.loft_id),
            action=action,
            old_values=old_values,
            new_values=self._snapshot(loft),
            **_audit_user(actor)
        )


class AvailabilityService:
    """Service for calendar, restriction and reservation lock use cases"""

    def __init__(self,
                 repository: AvailabilityRepository,
                 loft_repo: LoftRepository,
                 booking_repo: BookingRepository,
                 lock_repo: ReservationLockRepository,
                 lock_minutes: int = 15,
                 max_booking_window_days: int = 730):
        self.repository = repository
        self.loft_repo = loft_repo
        self.booking_repo = booking_repo
        self.lock_repo = lock_repo
        self.lock_minutes = lock_minutes
        self.max_booking_window_days = max_booking_window_days

    def validate_booking_dates(self, dates: DateRange, today: Optional[date] = None) -> None:
        today = today or date.today()
        if dates.check_in < today:
            raise ValueError("Check-in date cannot be in the past")
        if dates.check_out > today + timedelta(days=self.max_booking_window_days):
            raise ValueError("Booking date is too far in the future")

    async def check_availability(
        self,
        loft_id: UUID,
        dates: DateRange,
        ignore_lock_id: Optional[UUID] = None,
        ignore_booking_id: Optional[UUID] = None
    ) -> AvailabilityResult:
        """Check whether a loft can be booked for the given stay"""
        loft = await self.loft_repo.find_by_id(loft_id)
        if not loft:
            raise ValueError("Loft not found")

        stay_dates = dates.stay_dates()

        if not loft.is_bookable():
            return AvailabilityResult(
                is_available=False,
                unavailable_dates=stay_dates,
                minimum_stay=loft.minimum_stay,
                maximum_stay=loft.maximum_stay,
                restrictions=[AvailabilityRestriction(
                    type=RestrictionType.BLOCKED_DATES,
                    message="Loft is currently not available for booking",
                    affected_dates=stay_dates
                )]
            )

        restrictions: List[AvailabilityRestriction] = []
        unavailable = set()
        nights = dates.nights()

        if nights < loft.minimum_stay:
            restrictions.append(AvailabilityRestriction(
                type=RestrictionType.MINIMUM_STAY,
                message=f"Minimum stay is {loft.minimum_stay} night(s)"
            ))
        if loft.maximum_stay is not None and nights > loft.maximum_stay:
            restrictions.append(AvailabilityRestriction(
                type=RestrictionType.MAXIMUM_STAY,
                message=f"Maximum stay is {loft.maximum_stay} night(s)"
            ))

        days = await self.repository.find_by_loft_and_date_range(loft_id, dates.check_in, dates.check_out)
        blocked = [day.availability_date for day in days if not day.is_available]
        if blocked:
            unavailable.update(blocked)
            restrictions.append(AvailabilityRestriction(
                type=RestrictionType.BLOCKED_DATES,
                message="Some dates are blocked by the owner",
                affected_dates=blocked
            ))

        booked = set()
        for booking in await self.booking_repo.find_by_loft_id(loft_id):
            if booking.booking_id == ignore_booking_id or not booking.is_active():
                continue
            if booking.date_range.overlaps(dates):
                booked.update(d for d in booking.date_range.stay_dates() if dates.check_in <= d < dates.check_out)
        if booked:
            unavailable.update(booked)
            restrictions.append(AvailabilityRestriction(
                type=RestrictionType.EXISTING_BOOKING,
                message="Some dates are already booked",
                affected_dates=sorted(booked)
            ))

        locked = set()
        for lock in await self.lock_repo.find_by_loft_id(loft_id):
            if lock.lock_id == ignore_lock_id or not lock.blocks(dates):
                continue
            locked.update(d for d in lock.date_range.stay_dates() if dates.check_in <= d < dates.check_out)
        if locked:
            unavailable.update(locked)
            restrictions.append(AvailabilityRestriction(
                type=RestrictionType.RESERVATION_LOCK,
                message="Some dates are temporarily held by another reservation",
                affected_dates=sorted(locked)
            ))

        return AvailabilityResult(
            is_available=not restrictions,
            unavailable_dates=sorted(unavailable),
            minimum_stay=loft.minimum_stay,
            maximum_stay=loft.maximum_stay,
            restrictions=restrictions
        )

    async def update_availability(self, loft_id: UUID, updates: List[AvailabilityUpdate]) -> List[AvailabilityDay]:
        """Create or replace calendar days"""
        saved = []
        for update in updates:
            day = await self.repository.find_by_loft_and_date(loft_id, update.date)
            if day is None:
                day = AvailabilityDay(loft_id=loft_id, availability_date=update.date)

            if update.is_available:
                day.unblock()
            else:
                day.block(update.blocked_reason or "Blocked by owner")
            day.set_price_override(update.price_override)
            day.notes = update.notes

            saved.append(await self.repository.save(day))

        logger.info(f"📅 Updated {len(saved)} availability day(s) for loft {loft_id}")
        return saved

    async def get_availability_calendar(self, loft_id: UUID, start_date: date, end_date: date) -> Dict[date, bool]:
        """Day-by-day availability, both ends included"""
        if end_date < start_date:
            raise ValueError("End date must not be before start date")

        calendar = {}
        current = start_date
        while current <= end_date:
            calendar[current] = True
            current += timedelta(days=1)

        days = await self.repository.find_by_loft_and_date_range(loft_id, start_date, end_date + timedelta(days=1))
        for day in days:
            calendar[day.availability_date] = day.is_available

        for booking in await self.booking_repo.find_by_loft_id(loft_id):
            if not booking.is_active():
                continue
            for d in booking.date_range.stay_dates():
                if d in calendar:
                    calendar[d] = False

        return calendar

    async def get_price_overrides(self, loft_id: UUID, dates: DateRange) -> Dict[date, Decimal]:
        days = await self.repository.find_by_loft_and_date_range(loft_id, dates.check_in, dates.check_out)
        return {day.availability_date: day.price_override for day in days if day.price_override is not None}

    # ==================== RESERVATION LOCKS ====================
    async def lock_reservation(
        self,
        loft_id: UUID,
        dates: DateRange,
        user_id: Optional[UUID] = None
    ) -> ReservationLock:
        """Hold dates while the client completes checkout"""
        self.validate_booking_dates(dates)

        result = await self.check_availability(loft_id, dates)
        if not result.is_available:
            raise ValueError(
                f"Dates are not available: {'; '.join(r.message for r in result.restrictions)}"
            )

        lock = ReservationLock.acquire(loft_id, dates, user_id, self.lock_minutes)
        logger.info(f"🔒 Lock {lock.lock_id} on loft {loft_id} until {lock.expires_at.isoformat()}")
        return await self.lock_repo.save(lock)

    async def get_reservation_lock(self, lock_id: UUID) -> Optional[ReservationLock]:
        return await self.lock_repo.find_by_id(lock_id)

    async def release_reservation_lock(self, lock_id: UUID) -> bool:
        released = await self.lock_repo.delete(lock_id)
        if released:
            logger.info(f"🔓 Lock {lock_id} released")
        return released

    async def cleanup_expired_locks(self) -> int:
        expired = [lock for lock in await self.lock_repo.find_all() if lock.is_expired()]
        for lock in expired:
            await self.lock_repo.delete(lock.lock_id)
        if expired:
            logger.info(f"Removed {len(expired)} expired reservation lock(s)")
        return len(expired)


class PricingService:
    """Prices stays for lofts, optionally in another currency"""

    def __init__(self,
                 loft_repo: LoftRepository,
                 availability_service: AvailabilityService,
                 currency_service: Optional[CurrencyConversionService] = None,
                 calculator: Optional[PricingCalculator] = None):
        self.loft_repo = loft_repo
        self.availability_service = availability_service
        self.currency_service = currency_service
        self.calculator = calculator or PricingCalculator()

    async def quote(
        self,
        loft_id: UUID,
        check_in: date,
        check_out: date,
        guests: int = 1,
        booking_date: Optional[date] = None,
        currency_code: Optional[str] = None
    ) -> Optional[PricingBreakdown]:
        loft = await self.loft_repo.find_by_id(loft_id)
        if not loft:
            return None

        dates = DateRange(check_in=check_in, check_out=check_out)
        breakdown = await self.price_stay(loft, dates, guests, booking_date)

        if currency_code and currency_code.upper() != breakdown.currency:
            if not self.currency_service:
                raise ValueError("Currency conversion is not available")
            breakdown = await self.currency_service.convert_breakdown(breakdown, currency_code.upper())
            self._ensure_consistent(breakdown)

        return breakdown

    async def price_stay(
        self,
        loft: Loft,
        dates: DateRange,
        guests: int,
        booking_date: Optional[date] = None
    ) -> PricingBreakdown:
        booking_date = booking_date or date.today()
        options = PricingOptions(
            guests=guests,
            advance_booking_days=(dates.check_in - booking_date).days,
            price_overrides=await self.availability_service.get_price_overrides(loft.loft_id, dates)
        )
        breakdown = self.calculator.calculate_pricing(loft.pricing, dates, options)
        self._ensure_consistent(breakdown)
        logger.debug(f"Priced loft {loft.loft_id} for {breakdown.nights} night(s): {breakdown.total} {breakdown.currency}")
        return breakdown

    @staticmethod
    def _ensure_consistent(breakdown: PricingBreakdown) -> None:
        validation = validate_pricing_breakdown(breakdown)
        if not validation.is_valid:
            logger.error(f"Inconsistent pricing breakdown: {validation.errors}")
            raise ValueError(f"Invalid pricing breakdown: {'; '.join(validation.errors)}")


class BookingService:
    """Service for Booking business use cases"""

    def __init__(self,
                 repository: BookingRepository,
                 loft_repo: LoftRepository,
                 availability_service: AvailabilityService,
                 pricing_service: PricingService,
                 audit_service: Optional[AuditService] = None,
                 notification_service: Optional[NotificationService] = None):
        self.repository = repository
        self.loft_repo = loft_repo
        self.availability_service = availability_service
        self.pricing_service = pricing_service
        self.audit_service = audit_service
        self.notification_service = notification_service

    async def create_booking(
        self,
        loft_id: UUID,
        client_id: UUID,
        check_in: date,
        check_out: date,
        adults: int,
        children: int = 0,
        booking_source: BookingSource = BookingSource.WEBSITE,
        notes: Optional[str] = None,
        lock_id: Optional[UUID] = None,
        created_by: str = "SYSTEM",
        actor: Optional[User] = None
    ) -> Optional[Booking]:
        """Create new booking with full validation"""
        loft = await self.loft_repo.find_by_id(loft_id)
        if not loft:
            return None

        date_range = DateRange(check_in=check_in, check_out=check_out)
        guest_count = GuestCount(adults=adults, children=children)

        self.availability_service.validate_booking_dates(date_range)
        self._validate_guests(loft, guest_count)
        if lock_id:
            await self._ensure_lock_held(lock_id, loft_id, client_id, date_range)
        await self._ensure_available(loft_id, date_range, ignore_lock_id=lock_id)

        pricing = await self.pricing_service.price_stay(loft, date_range, guest_count.total)

        booking = Booking.create(
            loft_id=loft_id,
            client_id=client_id,
            partner_id=loft.partner_id,
            date_range=date_range,
            guest_count=guest_count,
            pricing=pricing,
            cancellation_policy=DEFAULT_CANCELLATION_POLICY,
            booking_source=booking_source,
            notes=notes,
            created_by=created_by
        )
        saved = await self.repository.save(booking)

        if lock_id:
            await self.availability_service.release_reservation_lock(lock_id)

        logger.info(f"📝 Booking {saved.confirmation_code} created for loft {loft_id}")
        await self._audit(saved, AuditAction.INSERT, None, actor)
        if self.notification_service:
            await self.notification_service.notify_reservation(saved, loft, NotificationType.NEW_RESERVATION)
        return saved

    async def get_booking(self, booking_id: UUID) -> Optional[Booking]:
        """Get booking by ID"""
        return await self.repository.find_by_id(booking_id)

    async def get_booking_by_confirmation_code(self, code: str) -> Optional[Booking]:
        """Get booking by confirmation code"""
        return await self.repository.find_by_confirmation_code(code)

    async def get_bookings_by_client(self, client_id: UUID) -> List[Booking]:
        """Get all bookings for a client"""
        return await self.repository.find_by_client_id(client_id)

    async def get_bookings_by_partner(self, partner_id: UUID) -> List[Booking]:
        """Get all bookings on a partner's lofts"""
        return await self.repository.find_by_partner_id(partner_id)

    async def get_all_bookings(self) -> List[Booking]:
        """Get all bookings"""
        return await self.repository.find_all()

    async def get_bookings_for_user(self, user: User) -> List[Booking]:
        if user.is_admin():
            return await self.get_all_bookings()
        if user.role == UserRole.PARTNER:
            return await self.get_bookings_by_partner(user.user_id)
        return await self.get_bookings_by_client(user.user_id)

    @staticmethod
    def can_view(booking: Booking, user: User) -> bool:
        if user.is_admin():
            return True
        if user.role == UserRole.PARTNER:
            return booking.partner_id == user.user_id
        return booking.client_id == user.user_id

    async def modify_booking(
        self,
        booking_id: UUID,
        new_check_in: Optional[date] = None,
        new_check_out: Optional[date] = None,
        new_adults: Optional[int] = None,
        new_children: Optional[int] = None,
        actor: Optional[User] = None
    ) -> Optional[Booking]:
        """Change dates or guests and re-price the stay"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        loft = await self.loft_repo.find_by_id(booking.loft_id)
        if not loft:
            raise ValueError("Cannot modify booking: Loft not found")

        old_values = booking.audit_snapshot()
        try:
            new_date_range = None
            if new_check_in and new_check_out:
                new_date_range = DateRange(check_in=new_check_in, check_out=new_check_out)

            new_guest_count = None
            if new_adults is not None:
                new_guest_count = GuestCount(
                    adults=new_adults,
                    children=new_children if new_children is not None else booking.guest_count.children
                )

            date_range = new_date_range or booking.date_range
            guest_count = new_guest_count or booking.guest_count
            self._validate_guests(loft, guest_count)

            if new_date_range:
                self.availability_service.validate_booking_dates(new_date_range)
                await self._ensure_available(booking.loft_id, new_date_range, ignore_booking_id=booking_id)

            pricing = await self.pricing_service.price_stay(loft, date_range, guest_count.total)
            booking.modify(
                new_pricing=pricing,
                new_date_range=new_date_range,
                new_guest_count=new_guest_count
            )
        except ValueError as e:
            raise ValueError(f"Cannot modify booking: {str(e)}")

        updated = await self._save_change(booking, old_values, actor)
        if self.notification_service:
            await self.notification_service.notify_reservation(updated, loft, NotificationType.RESERVATION_MODIFIED)
        return updated

    async def confirm_booking(
        self,
        booking_id: UUID,
        payment_confirmed: bool = True,
        actor: Optional[User] = None
    ) -> Optional[Booking]:
        """Confirm booking after payment"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        old_values = booking.audit_snapshot()
        try:
            booking.confirm(payment_confirmed)
        except ValueError as e:
            raise ValueError(f"Cannot confirm booking: {str(e)}")
        updated = await self._save_change(booking, old_values, actor)
        loft = await self._notification_loft(updated)
        if loft:
            await self.notification_service.notify_payment(updated, loft)
        return updated

    async def check_in_guest(self, booking_id: UUID, actor: Optional[User] = None) -> Optional[Booking]:
        """Check in guest"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        old_values = booking.audit_snapshot()
        try:
            booking.check_in()
        except ValueError as e:
            raise ValueError(f"Cannot check in: {str(e)}")
        return await self._save_change(booking, old_values, actor)

    async def check_out_guest(self, booking_id: UUID, actor: Optional[User] = None) -> Optional[Money]:
        """Check out guest and return final bill"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        old_values = booking.audit_snapshot()
        try:
            final_bill = booking.check_out()
        except ValueError as e:
            raise ValueError(f"Cannot check out: {str(e)}")
        await self._save_change(booking, old_values, actor)
        return final_bill

    async def cancel_booking(
        self,
        booking_id: UUID,
        reason: str = "Client requested cancellation",
        actor: Optional[User] = None
    ) -> Optional[Money]:
        """Cancel booking and calculate refund"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        old_values = booking.audit_snapshot()
        try:
            refund = booking.cancel(reason)
        except ValueError as e:
            raise ValueError(f"Cannot cancel booking: {str(e)}")
        await self._save_change(booking, old_values, actor)
        logger.info(f"❌ Booking {booking.confirmation_code} cancelled, refund {refund.amount} {refund.currency}")
        loft = await self._notification_loft(booking)
        if loft:
            await self.notification_service.notify_reservation(booking, loft, NotificationType.RESERVATION_CANCELLED)
        return refund

    async def mark_no_show(self, booking_id: UUID, actor: Optional[User] = None) -> Optional[Booking]:
        """Mark booking as no-show"""
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            return None

        old_values = booking.audit_snapshot()
        try:
            booking.mark_no_show()
        except ValueError as e:
            raise ValueError(f"Cannot mark as no-show: {str(e)}")
        return await self._save_change(booking, old_values, actor)

    # ==================== PRIVATE ====================
    @staticmethod
    def _validate_guests(loft: Loft, guest_count: GuestCount) -> None:
        if guest_count.total > loft.max_guests:
            raise ValueError(f"Loft accommodates at most {loft.max_guests} guests")

    async def _ensure_available(
        self,
        loft_id: UUID,
        date_range: DateRange,
        ignore_lock_id: Optional[UUID] = None,
        ignore_booking_id: Optional[UUID] = None
    ) -> None:
        result = await self.availability_service.check_availability(
            loft_id, date_range, ignore_lock_id=ignore_lock_id, ignore_booking_id=ignore_booking_id
        )
        if not result.is_available:
            raise ValueError(
                f"Loft is not available for the selected dates: {'; '.join(r.message for r in result.restrictions)}"
            )

    async def _ensure_lock_held(self, lock_id: UUID, loft_id: UUID, client_id: UUID, date_range: DateRange) -> None:
        lock = await self.availability_service.get_reservation_lock(lock_id)
        if not lock or lock.user_id != client_id or lock.loft_id != loft_id:
            raise ValueError("Reservation lock not found")
        if lock.is_expired():
            raise ValueError("Reservation lock has expired")
        if not lock.date_range.covers(date_range):
            raise ValueError("Reservation lock does not cover the selected dates")

    async def _notification_loft(self, booking: Booking) -> Optional[Loft]:
        """The booking's loft, or None when notifications are off"""
        if not self.notification_service:
            return None
        return await self.loft_repo.find_by_id(booking.loft_id)

    async def _save_change(self, booking: Booking, old_values: Dict[str, Any], actor: Optional[User]) -> Booking:
        updated = await self.repository.update(booking)
        await self._audit(updated, AuditAction.UPDATE, old_values, actor)
        return updated

    async def _audit(
        self,
        booking: Booking,
        action: AuditAction,
        old_values: Optional[Dict[str, Any]],
        actor: Optional[User]
    ) -> None:
        if not self.audit_service:
            return
        await self.audit_service.record(
            table_name="bookings",
            record_id=str(booking.booking_id),
            action=action,
            old_values=old_values,
            new_values=booking.audit_snapshot(),
            **_audit_user(actor)
        )
