"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID
from datetime import date

from domain.entities import Loft, Booking, AvailabilityDay, ReservationLock, AuditLogEntry, Notification
from domain.value_objects import Currency


class LoftRepository(ABC):
    """Repository interface for Loft Aggregate"""

    @abstractmethod
    async def save(self, loft: Loft) -> Loft:
        pass

    @abstractmethod
    async def find_by_id(self, loft_id: UUID) -> Optional[Loft]:
        pass

    @abstractmethod
    async def find_by_partner_id(self, partner_id: UUID) -> List[Loft]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Loft]:
        pass

    @abstractmethod
    async def update(self, loft: Loft) -> Loft:
        pass


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate"""

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Save booking"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_by_confirmation_code(self, code: str) -> Optional[Booking]:
        """Find booking by confirmation code"""
        pass

    @abstractmethod
    async def find_by_client_id(self, client_id: UUID) -> List[Booking]:
        pass

    @abstractmethod
    async def find_by_partner_id(self, partner_id: UUID) -> List[Booking]:
        pass

    @abstractmethod
    async def find_by_loft_id(self, loft_id: UUID) -> List[Booking]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Booking]:
        pass

    @abstractmethod
    async def update(self, booking: Booking) -> Booking:
        pass


class AvailabilityRepository(ABC):
    """Repository interface for per-day loft availability"""

    @abstractmethod
    async def save(self, availability: AvailabilityDay) -> AvailabilityDay:
        pass

    @abstractmethod
    async def find_by_loft_and_date(self, loft_id: UUID, availability_date: date) -> Optional[AvailabilityDay]:
        pass

    @abstractmethod
    async def find_by_loft_and_date_range(self, loft_id: UUID, start_date: date, end_date: date) -> List[AvailabilityDay]:
        """Days with start_date <= day < end_date"""
        pass


class ReservationLockRepository(ABC):

    @abstractmethod
    async def save(self, lock: ReservationLock) -> ReservationLock:
        pass

    @abstractmethod
    async def find_by_id(self, lock_id: UUID) -> Optional[ReservationLock]:
        pass

    @abstractmethod
    async def find_by_loft_id(self, loft_id: UUID) -> List[ReservationLock]:
        pass

    @abstractmethod
    async def find_all(self) -> List[ReservationLock]:
        pass

    @abstractmethod
    async def delete(self, lock_id: UUID) -> bool:
        pass


class CurrencyRepository(ABC):

    @abstractmethod
    async def save(self, currency: Currency) -> Currency:
        pass

    @abstractmethod
    async def find_by_id(self, currency_id: str) -> Optional[Currency]:
        pass

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[Currency]:
        pass

    @abstractmethod
    async def find_default(self) -> Optional[Currency]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Currency]:
        pass


class AuditLogRepository(ABC):
    """Append-only store for audit entries"""

    @abstractmethod
    async def save(self, entry: AuditLogEntry) -> AuditLogEntry:
        pass

    @abstractmethod
    async def find_all(self) -> List[AuditLogEntry]:
        pass

    @abstractmethod
    async def delete_many(self, entry_ids: List[UUID]) -> int:
        pass


class NotificationRepository(ABC):
    """Repository interface for in-app notifications"""

    @abstractmethod
    async def save(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def find_by_id(self, notification_id: UUID) -> Optional[Notification]:
        pass

    @abstractmethod
    async def find_by_recipient(self, recipient_id: UUID) -> List[Notification]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Notification]:
        pass

    @abstractmethod
    async def update(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def delete_many(self, notification_ids: List[UUID]) -> int:
        pass
