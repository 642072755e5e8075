"""In-Memory Repository Implementations"""
from typing import Optional, List, Dict, Iterable, Tuple
from uuid import UUID
from datetime import date

from domain.repositories import (
    LoftRepository, BookingRepository, AvailabilityRepository,
    ReservationLockRepository, CurrencyRepository, AuditLogRepository, NotificationRepository
)
from domain.entities import Loft, Booking, AvailabilityDay, ReservationLock, AuditLogEntry, Notification
from domain.value_objects import Currency


class InMemoryLoftRepository(LoftRepository):
    """In-memory implementation of LoftRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Loft] = {}

    async def save(self, loft: Loft) -> Loft:
        self._storage[loft.loft_id] = loft
        return loft

    async def find_by_id(self, loft_id: UUID) -> Optional[Loft]:
        return self._storage.get(loft_id)

    async def find_by_partner_id(self, partner_id: UUID) -> List[Loft]:
        return [loft for loft in self._storage.values() if loft.partner_id == partner_id]

    async def find_all(self) -> List[Loft]:
        return list(self._storage.values())

    async def update(self, loft: Loft) -> Loft:
        if loft.loft_id in self._storage:
            self._storage[loft.loft_id] = loft
            return loft
        raise ValueError("Loft not found")


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of BookingRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Booking] = {}

    async def save(self, booking: Booking) -> Booking:
        """Save booking to memory"""
        self._storage[booking.booking_id] = booking
        return booking

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        return self._storage.get(booking_id)

    async def find_by_confirmation_code(self, code: str) -> Optional[Booking]:
        """Find booking by confirmation code"""
        for booking in self._storage.values():
            if booking.confirmation_code == code:
                return booking
        return None

    async def find_by_client_id(self, client_id: UUID) -> List[Booking]:
        return [b for b in self._storage.values() if b.client_id == client_id]

    async def find_by_partner_id(self, partner_id: UUID) -> List[Booking]:
        return [b for b in self._storage.values() if b.partner_id == partner_id]

    async def find_by_loft_id(self, loft_id: UUID) -> List[Booking]:
        return [b for b in self._storage.values() if b.loft_id == loft_id]

    async def find_all(self) -> List[Booking]:
        return list(self._storage.values())

    async def update(self, booking: Booking) -> Booking:
        if booking.booking_id in self._storage:
            self._storage[booking.booking_id] = booking
            return booking
        raise ValueError("Booking not found")


class InMemoryAvailabilityRepository(AvailabilityRepository):
    """In-memory implementation of AvailabilityRepository"""

    def __init__(self):
        self._storage: Dict[Tuple[UUID, date], AvailabilityDay] = {}

    async def save(self, availability: AvailabilityDay) -> AvailabilityDay:
        key = (availability.loft_id, availability.availability_date)
        self._storage[key] = availability
        return availability

    async def find_by_loft_and_date(self, loft_id: UUID, availability_date: date) -> Optional[AvailabilityDay]:
        return self._storage.get((loft_id, availability_date))

    async def find_by_loft_and_date_range(self, loft_id: UUID, start_date: date, end_date: date) -> List[AvailabilityDay]:
        results = [
            day for (l_id, d), day in self._storage.items()
            if l_id == loft_id and start_date <= d < end_date
        ]
        return sorted(results, key=lambda day: day.availability_date)


class InMemoryReservationLockRepository(ReservationLockRepository):

    def __init__(self):
        self._storage: Dict[UUID, ReservationLock] = {}

    async def save(self, lock: ReservationLock) -> ReservationLock:
        self._storage[lock.lock_id] = lock
        return lock

    async def find_by_id(self, lock_id: UUID) -> Optional[ReservationLock]:
        return self._storage.get(lock_id)

    async def find_by_loft_id(self, loft_id: UUID) -> List[ReservationLock]:
        return [lock for lock in self._storage.values() if lock.loft_id == loft_id]

    async def find_all(self) -> List[ReservationLock]:
        return list(self._storage.values())

    async def delete(self, lock_id: UUID) -> bool:
        if lock_id in self._storage:
            del self._storage[lock_id]
            return True
        return False


class InMemoryCurrencyRepository(CurrencyRepository):
    """In-memory currency table, optionally seeded at construction"""

    def __init__(self, currencies: Optional[Iterable[Currency]] = None):
        self._storage: Dict[str, Currency] = {}
        for currency in currencies or []:
            self._storage[currency.id] = currency

    async def save(self, currency: Currency) -> Currency:
        self._storage[currency.id] = currency
        return currency

    async def find_by_id(self, currency_id: str) -> Optional[Currency]:
        return self._storage.get(currency_id)

    async def find_by_code(self, code: str) -> Optional[Currency]:
        code = code.upper()
        for currency in self._storage.values():
            if currency.code == code:
                return currency
        return None

    async def find_default(self) -> Optional[Currency]:
        for currency in self._storage.values():
            if currency.is_default:
                return currency
        return None

    async def find_all(self) -> List[Currency]:
        return list(self._storage.values())


class InMemoryAuditLogRepository(AuditLogRepository):

    def __init__(self):
        self._storage: Dict[UUID, AuditLogEntry] = {}

    async def save(self, entry: AuditLogEntry) -> AuditLogEntry:
        self._storage[entry.id] = entry
        return entry

    async def find_all(self) -> List[AuditLogEntry]:
        return list(self._storage.values())

    async def delete_many(self, entry_ids: List[UUID]) -> int:
        deleted = 0
        for entry_id in entry_ids:
            if self._storage.pop(entry_id, None) is not None:
                deleted += 1
        return deleted


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self):
        self._storage: Dict[UUID, Notification] = {}

    async def save(self, notification: Notification) -> Notification:
        self._storage[notification.notification_id] = notification
        return notification

    async def find_by_id(self, notification_id: UUID) -> Optional[Notification]:
        return self._storage.get(notification_id)

    async def find_by_recipient(self, recipient_id: UUID) -> List[Notification]:
        return [n for n in self._storage.values() if n.recipient_id == recipient_id]

    async def find_all(self) -> List[Notification]:
        return list(self._storage.values())

    async def update(self, notification: Notification) -> Notification:
        if notification.notification_id in self._storage:
            self._storage[notification.notification_id] = notification
            return notification
        raise ValueError("Notification not found")

    async def delete_many(self, notification_ids: List[UUID]) -> int:
        deleted = 0
        for notification_id in notification_ids:
            if self._storage.pop(notification_id, None) is not None:
                deleted += 1
        return deleted
