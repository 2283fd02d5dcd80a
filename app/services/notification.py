"""
ProcessFlow
Notification Service.

Central service for creating, broadcasting and querying notifications.
Create/broadcast only flush, so callers such as move_order keep
transaction control; the read actions commit themselves.
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.auth import User
from app.models.notification import NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, tenant_id, recipient_user_id, title, message="", type="system", order_id=None):
        """
        Create a single unread notification record.

        Returns:
            The created Notification instance (flushed, not committed).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type}")
        notif = Notification(
            tenant_id=tenant_id,
            recipient_user_id=recipient_user_id,
            title=title,
            message=message,
            type=type,
            order_id=order_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def broadcast_to_roles(*, tenant_id, roles, title, message="", type="system", order_id=None):
        """
        Send one notification to every active user of the tenant holding one of *roles*.

        Returns:
            List of created Notification instances.
        """
        recipients = (
            User.query
            .filter(User.tenant_id == tenant_id, User.is_active.is_(True), User.role.in_(roles))
            .order_by(User.name)
            .all()
        )
        return [
            NotificationService.create(
                tenant_id=tenant_id,
                recipient_user_id=u.id,
                title=title,
                message=message,
                type=type,
                order_id=order_id,
            )
            for u in recipients
        ]

    # ── Order lifecycle helpers ───────────────────────────────────────────

    @staticmethod
    def notify_order_finalized(order, actor, stage):
        """Alert active admins and supervisors that an operator finalized an order."""
        return NotificationService.broadcast_to_roles(
            tenant_id=order.tenant_id,
            roles=("admin", "supervisor"),
            title="Pedido finalizado",
            message=f"O pedido {order.order_number} foi finalizado por {actor.name} ({stage.name}).",
            type="system",
            order_id=order.id,
        )

    @staticmethod
    def delete_for_order(order_id):
        return Notification.query.filter_by(order_id=order_id).delete(synchronize_session=False)

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a user, newest first."""
        q = Notification.query.filter_by(tenant_id=user.tenant_id, recipient_user_id=user.id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = q.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(user):
        return Notification.query.filter_by(
            tenant_id=user.tenant_id, recipient_user_id=user.id, is_read=False,
        ).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(user, notification_id):
        """Mark a single notification as read. Only the recipient may do so."""
        notif = Notification.get_for_tenant(user.tenant_id, notification_id)
        if notif is None or notif.recipient_user_id != user.id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user):
        """Mark all notifications of a user as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(tenant_id=user.tenant_id, recipient_user_id=user.id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        logger.info("Marked %d notifications read for user=%s", count, user.id)
        return count
