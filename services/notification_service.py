import logging
from datetime import timedelta
from models import db
from models.base import utcnow
from models.notification import Notification
from models.user import User
from services.auth_services import formatting_id

logger = logging.getLogger(__name__)


def build_notification(recipient_id, title, message, type='general', sender_id=None,
                       data=None, entity_type=None, entity_id=None, priority='medium'):
    """Add a notification to the session without committing."""
    notification = Notification(
        notification_id=formatting_id('NT', Notification, 'notification_id'),
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=type,
        title=title[:200],
        message=message[:1000],
        data=data or {},
        entity_type=entity_type,
        entity_id=entity_id,
        priority=priority
    )
    db.session.add(notification)
    return notification


def notify(recipient_id, title, message, **kwargs):
    """Create and commit a notification. Failures are logged, never raised."""
    try:
        notification = build_notification(recipient_id, title, message, **kwargs)
        db.session.commit()
        return notification
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create notification for {recipient_id}: {e}")
        return None


def notify_many(recipient_ids, title, message, **kwargs):
    try:
        created = [build_notification(rid, title, message, **kwargs) for rid in recipient_ids]
        db.session.commit()
        return created
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create bulk notifications: {e}")
        return []


def notify_admins(title, message, **kwargs):
    admin_ids = [u.user_id for u in User.query.filter_by(role='admin', is_active=True).all()]
    return notify_many(admin_ids, title, message, **kwargs)


def unread_count(user_id):
    return Notification.query.filter_by(recipient_id=user_id, is_read=False).count()


def mark_all_read(user_id):
    now = utcnow()
    updated = Notification.query.filter_by(recipient_id=user_id, is_read=False) \
        .update({"is_read": True, "read_at": now}, synchronize_session=False)
    db.session.commit()
    return updated


def cleanup_old_notifications(days_old=30):
    """Delete read notifications older than `days_old` days."""
    cutoff = utcnow() - timedelta(days=days_old)
    deleted = Notification.query.filter(
        Notification.is_read.is_(True),
        Notification.created_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    logger.info(f"Removed {deleted} old notifications")
    return deleted
