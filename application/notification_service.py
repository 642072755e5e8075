"""Notification Service - in-app notifications for partners and clients"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from domain.entities import Booking, Loft, Notification
from domain.enums import NotificationPriority, NotificationType
from domain.repositories import NotificationRepository

logger = logging.getLogger(__name__)

# days before a notification of each type expires; None never expires
EXPIRATION_DAYS: Dict[NotificationType, Optional[int]] = {
    NotificationType.NEW_RESERVATION: 30,
    NotificationType.RESERVATION_MODIFIED: 30,
    NotificationType.RESERVATION_CANCELLED: 30,
    NotificationType.PAYMENT_RECEIVED: 90,
    NotificationType.PROPERTY_ADDED: 7,
    NotificationType.PROPERTY_UPDATED: 7,
    NotificationType.REVENUE_REPORT: 90,
    NotificationType.SYSTEM_MAINTENANCE: 1,
}

RESERVATION_MESSAGES = {
    NotificationType.NEW_RESERVATION: 'New reservation {code} for "{loft}" from {check_in} to {check_out}.',
    NotificationType.RESERVATION_MODIFIED: 'Reservation {code} for "{loft}" has been modified.',
    NotificationType.RESERVATION_CANCELLED: 'Reservation {code} for "{loft}" has been cancelled.',
}


class NotificationService:
    """Stores notifications and serves each recipient's inbox"""

    def __init__(self, repository: NotificationRepository):
        self.repository = repository

    async def notify(
        self,
        recipient_id: UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM
    ) -> Notification:
        days = EXPIRATION_DAYS.get(notification_type)
        created_at = datetime.utcnow()
        notification = Notification(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            data=data or {},
            priority=priority,
            created_at=created_at,
            expires_at=created_at + timedelta(days=days) if days is not None else None
        )
        saved = await self.repository.save(notification)
        logger.info(f"🔔 {notification_type.value} notification for {recipient_id}")
        return saved

    # ==================== DOMAIN EVENTS ====================
    async def notify_reservation(
        self,
        booking: Booking,
        loft: Loft,
        notification_type: NotificationType
    ) -> Notification:
        if notification_type not in RESERVATION_MESSAGES:
            raise ValueError(f"{notification_type.value} is not a reservation notification")

        message = RESERVATION_MESSAGES[notification_type].format(
            code=booking.confirmation_code,
            loft=loft.name,
            check_in=booking.date_range.check_in.isoformat(),
            check_out=booking.date_range.check_out.isoformat()
        )
        priority = (
            NotificationPriority.HIGH
            if notification_type == NotificationType.NEW_RESERVATION
            else NotificationPriority.MEDIUM
        )
        return await self.notify(
            booking.partner_id,
            notification_type,
            "Reservation Update",
            message,
            data={
                "booking_id": str(booking.booking_id),
                "loft_id": str(loft.loft_id),
                "confirmation_code": booking.confirmation_code,
                "check_in": booking.date_range.check_in.isoformat(),
                "check_out": booking.date_range.check_out.isoformat(),
                "total_amount": str(booking.total_amount.amount),
                "currency": booking.total_amount.currency,
            },
            priority=priority
        )

    async def notify_payment(self, booking: Booking, loft: Loft) -> Notification:
        amount = booking.total_amount
        return await self.notify(
            booking.partner_id,
            NotificationType.PAYMENT_RECEIVED,
            "Payment Received",
            f'Payment of {amount.amount} {amount.currency} received for "{loft.name}".',
            data={
                "booking_id": str(booking.booking_id),
                "loft_id": str(loft.loft_id),
                "amount": str(amount.amount),
                "currency": amount.currency,
            },
            priority=NotificationPriority.HIGH
        )

    async def notify_property(self, loft: Loft, notification_type: NotificationType) -> Notification:
        if notification_type == NotificationType.PROPERTY_ADDED:
            message = f'New property "{loft.name}" has been added to your portfolio.'
        elif notification_type == NotificationType.PROPERTY_UPDATED:
            message = f'Property "{loft.name}" is now {loft.status.value}.'
        else:
            raise ValueError(f"{notification_type.value} is not a property notification")

        return await self.notify(
            loft.partner_id,
            notification_type,
            "Property Update",
            message,
            data={"loft_id": str(loft.loft_id), "name": loft.name, "status": loft.status.value}
        )

    async def send_revenue_report(
        self,
        partner_id: UUID,
        period: str,
        total_revenue: Decimal,
        booking_count: int,
        currency: str
    ) -> Notification:
        return await self.notify(
            partner_id,
            NotificationType.REVENUE_REPORT,
            "Revenue Report",
            f"Your revenue report for {period} is ready. Total: {total_revenue} {currency} "
            f"from {booking_count} bookings.",
            data={
                "period": period,
                "total_revenue": str(total_revenue),
                "booking_count": booking_count,
                "currency": currency,
            },
            priority=NotificationPriority.LOW
        )

    async def send_maintenance_notice(
        self,
        recipient_ids: List[UUID],
        start_time: datetime,
        end_time: datetime,
        description: str
    ) -> List[Notification]:
        if end_time <= start_time:
            raise ValueError("Maintenance must end after it starts")

        message = (
            f"System maintenance scheduled from {start_time.isoformat()} to {end_time.isoformat()}. "
            f"{description}"
        )
        data = {"start_time": start_time.isoformat(), "end_time": end_time.isoformat(), "description": description}
        return [
            await self.notify(
                recipient_id, NotificationType.SYSTEM_MAINTENANCE, "Scheduled Maintenance", message, data=data
            )
            for recipient_id in dict.fromkeys(recipient_ids)
        ]

    # ==================== INBOX ====================
    async def get_notifications(
        self,
        recipient_id: UUID,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        priority: Optional[NotificationPriority] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Notification], int]:
        """Unexpired notifications, newest first, with the total match count"""
        if page < 1:
            raise ValueError("Page must be 1 or greater")
        if limit < 1:
            raise ValueError("Limit must be 1 or greater")

        now = datetime.utcnow()
        matched = [
            n for n in await self.repository.find_by_recipient(recipient_id)
            if not n.is_expired(now)
            and not (unread_only and n.is_read)
            and (notification_type is None or n.notification_type == notification_type)
            and (priority is None or n.priority == priority)
        ]
        matched.sort(key=lambda n: n.created_at, reverse=True)
        offset = (page - 1) * limit
        return matched[offset:offset + limit], len(matched)

    async def get_unread_count(self, recipient_id: UUID) -> int:
        now = datetime.utcnow()
        return sum(
            1 for n in await self.repository.find_by_recipient(recipient_id)
            if not n.is_read and not n.is_expired(now)
        )

    async def mark_as_read(self, notification_id: UUID, recipient_id: UUID) -> Optional[Notification]:
        """Returns None when the notification does not belong to the recipient"""
        notification = await self.repository.find_by_id(notification_id)
        if not notification or notification.recipient_id != recipient_id:
            return None
        notification.mark_as_read()
        return await self.repository.update(notification)

    async def mark_all_as_read(self, recipient_id: UUID) -> int:
        unread = [n for n in await self.repository.find_by_recipient(recipient_id) if not n.is_read]
        for notification in unread:
            notification.mark_as_read()
            await self.repository.update(notification)
        return len(unread)

    async def delete_notification(self, notification_id: UUID, recipient_id: UUID) -> bool:
        notification = await self.repository.find_by_id(notification_id)
        if not notification or notification.recipient_id != recipient_id:
            return False
        return await self.repository.delete_many([notification_id]) == 1

    async def cleanup_expired_notifications(self) -> int:
        now = datetime.utcnow()
        expired = [n.notification_id for n in await self.repository.find_all() if n.is_expired(now)]
        deleted = await self.repository.delete_many(expired)
        if deleted:
            logger.info(f"Removed {deleted} expired notification(s)")
        return deleted
