import logging
from flask import Blueprint, request, jsonify
from models import db, Notification, User
from models.notification import NOTIFICATION_TYPES, PRIORITIES
from models.user import ROLES
from services import auth_services
from services.auth_services import login_required, admin_required, get_current_user
from services.errors import APIError
from services.notification_service import notify_many, unread_count, mark_all_read
from services.pagination import paginate
from services.validation import Validator

notifications = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)


def own_notification(notification_id, user):
    notification = Notification.get(notification_id)
    if notification is None or notification.recipient_id != user.user_id:
        raise APIError("Notification not found", 404)
    return notification


@notifications.route('', methods=['GET'])
@login_required
def list_notifications():
    user = get_current_user()
    query = Notification.query.filter_by(recipient_id=user.user_id)
    if request.args.get('unread_only') == 'true':
        query = query.filter_by(is_read=False)
    notification_type = request.args.get('type')
    if notification_type:
        query = query.filter_by(type=notification_type)

    items, pagination = paginate(query.order_by(Notification.created_at.desc()), default_limit=20)
    return jsonify({
        "notifications": items,
        "unread_count": unread_count(user.user_id),
        "pagination": pagination
    }), 200


@notifications.route('/unread-count', methods=['GET'])
@login_required
def get_unread_count():
    user = get_current_user()
    return jsonify({"unread_count": unread_count(user.user_id)}), 200


@notifications.route('/read-all', methods=['PUT'])
@login_required
def read_all():
    user = get_current_user()
    try:
        updated = mark_all_read(user.user_id)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update notifications: {e}")
        return jsonify({"error": "Failed to update notifications"}), 500
    return jsonify({"message": "All notifications marked as read", "updated": updated}), 200


@notifications.route('/<notification_id>/read', methods=['PUT'])
@login_required
def read_one(notification_id):
    user = get_current_user()
    notification = own_notification(notification_id, user)
    try:
        notification.mark_read()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update notification: {e}")
        return jsonify({"error": "Failed to update notification"}), 500
    return jsonify({"message": "Notification marked as read", "notification": notification.to_dict()}), 200


@notifications.route('/<notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id):
    user = get_current_user()
    notification = own_notification(notification_id, user)
    try:
        db.session.delete(notification)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete notification: {e}")
        return jsonify({"error": "Failed to delete notification"}), 500
    return jsonify({"message": "Notification deleted"}), 200


@notifications.route('/announce', methods=['POST'])
@admin_required
def announce():
    """Send a system announcement to every active user with one of `roles`, or to `user_ids`."""
    admin = get_current_user()
    data = request.get_json(silent=True) or {}

    v = Validator(data)
    v.required('title', 'message')
    v.max_length('title', 200).max_length('message', 1000)
    v.one_of('priority', PRIORITIES).one_of('type', NOTIFICATION_TYPES)
    roles = data.get('roles') or []
    user_ids = data.get('user_ids') or []
    if not isinstance(roles, list) or any(role not in ROLES for role in roles):
        v.error('roles', f"roles must be a list drawn from: {', '.join(ROLES)}")
    if not isinstance(user_ids, list):
        v.error('user_ids', "user_ids must be a list")
    if not roles and not user_ids:
        v.error('roles', "Provide roles or user_ids")
    v.check()

    query = User.query.filter_by(is_active=True)
    if roles:
        query = query.filter(User.role.in_(roles))
    if user_ids:
        query = query.filter(User.user_id.in_(user_ids))
    recipients = [u.user_id for u in query.all()]

    created = notify_many(
        recipients, data['title'].strip(), data['message'].strip(),
        type=data.get('type') or 'system_announcement',
        sender_id=admin.user_id,
        priority=data.get('priority') or 'medium'
    )
    auth_services.audit(admin, 'Notification', None, 'CREATE',
                        f'Announcement "{data["title"].strip()}" to {len(created)} users')
    return jsonify({"message": "Announcement sent", "recipients": len(created)}), 201
