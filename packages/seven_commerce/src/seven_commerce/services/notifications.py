"""
Notification Service

Dashboard notifications. `create` and the notify_* helpers only add the row
to the session so they join the caller's transaction; the read/delete
operations commit on their own.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from seven_commerce.persistence.models import Notification, NotificationType

logger = logging.getLogger(__name__)

_VALID_TYPES = {t.value for t in NotificationType}


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: UUID,
        type: str = NotificationType.INFO.value,
        title: str = "",
        message: str | None = None,
        link: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        if isinstance(type, NotificationType):
            type = type.value
        if type not in _VALID_TYPES:
            type = NotificationType.INFO.value

        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link,
            metadata_json=metadata,
            is_read=False,
        )
        self.db.add(notification)
        self.db.flush()

        logger.info(f"Notification created: {type} - {title}", extra={"user_id": str(user_id)})
        return notification

    def get_for_user(
        self,
        user_id: UUID,
        limit: int = 50,
        unread_only: bool = False,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        search: str | None = None,
    ) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        if start_date:
            query = query.filter(Notification.created_at >= start_date)
        if end_date:
            query = query.filter(Notification.created_at <= end_date)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(Notification.title.ilike(pattern), Notification.message.ilike(pattern))
            )
        return query.order_by(Notification.created_at.desc()).limit(limit).all()

    def get_unread_count(self, user_id: UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .count()
        )

    def mark_as_read(self, notification_id: UUID, user_id: UUID) -> bool:
        updated = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def mark_all_as_read(self, user_id: UUID) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def delete(self, notification_id: UUID, user_id: UUID) -> bool:
        deleted = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    def cleanup(self, days_old: int = 30) -> int:
        """Delete read notifications older than `days_old` days."""
        cutoff = utcnow() - timedelta(days=days_old)
        deleted = (
            self.db.query(Notification)
            .filter(Notification.is_read == True, Notification.created_at < cutoff)  # noqa: E712
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"Cleaned up {deleted} old notifications")
        return deleted

    # =========================================================================
    # Helpers
    # =========================================================================

    def notify_new_lead(self, user_id: UUID, lead_name: str, conversation_id: UUID | None) -> Notification:
        return self.create(
            user_id,
            type=NotificationType.LEAD.value,
            title="Nouveau lead détecté",
            message=f"{lead_name} semble intéressé par vos produits",
            link="/dashboard/leads",
            metadata={"conversation_id": str(conversation_id) if conversation_id else None},
        )

    def notify_low_credits(self, user_id: UUID, remaining_credits: int) -> Notification:
        return self.create(
            user_id,
            type=NotificationType.WARNING.value,
            title="Crédits faibles",
            message=f"Il vous reste {remaining_credits} crédits",
            link="/dashboard/settings",
        )

    def notify_whatsapp_disconnected(self, user_id: UUID, agent_name: str) -> Notification:
        return self.create(
            user_id,
            type=NotificationType.WARNING.value,
            title="Agent déconnecté",
            message=f"{agent_name} a été déconnecté",
            link="/dashboard/agents",
        )
