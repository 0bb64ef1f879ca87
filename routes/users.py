import logging
from flask import Blueprint, request, jsonify
from sqlalchemy import or_
from models import db, User
from models.user import ROLES
from services import auth_services, user_srv
from services.auth_services import admin_required, get_current_user
from services.errors import APIError
from services.pagination import paginate
from services.validation import validate_profile

users = Blueprint('users', __name__)
logger = logging.getLogger(__name__)


@users.route('', methods=['GET'])
def list_users():
    """Public directory of active, approved members."""
    query = User.query.filter(User.is_active.is_(True), User.is_approved.is_(True),
                              User.role != 'employee')

    role = request.args.get('role')
    if role:
        query = query.filter(User.role == role)

    department = request.args.get('department')
    if department:
        query = query.filter(User.department.ilike(f"%{department}%"))

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern),
            User.institution.ilike(pattern)
        ))

    items, pagination = paginate(query.order_by(User.created_at.desc()),
                                 serializer=lambda u: u.to_public_dict())
    return jsonify({"users": items, "pagination": pagination}), 200


@users.route('/stats', methods=['GET'])
@admin_required
def get_user_stats():
    return jsonify({"stats": user_srv.user_stats()}), 200


@users.route('/<user_id>', methods=['GET'])
def get_user(user_id):
    user = User.get(user_id)
    if not user or not user.is_active:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user": user.to_public_dict()}), 200


@users.route('/<user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    current_user = get_current_user()
    user = User.get(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    data = request.get_json(silent=True) or {}
    validate_profile(data.get('profile') if isinstance(data.get('profile'), dict) else data)

    if 'role' in data and data['role'] not in ROLES:
        return jsonify({"error": f"Role must be one of: {', '.join(ROLES)}"}), 400

    try:
        user_srv.apply_profile(user, data)
        if 'role' in data:
            user.role = data['role']
        if 'is_active' in data:
            user.is_active = bool(data['is_active'])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update user: {e}")
        return jsonify({"error": "Failed to update user"}), 500

    auth_services.audit(current_user, 'User', user.user_id, 'UPDATE', 'Updated user details')
    return jsonify({"message": "User updated successfully", "user": user.to_dict()}), 200


@users.route('/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    current_user = get_current_user()
    user = User.get(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    if user.role == 'admin':
        return jsonify({"error": "Admin accounts cannot be deleted"}), 400

    email = user.email
    try:
        user_srv.delete_account(user)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete user: {e}")
        return jsonify({"error": "Failed to delete user"}), 500

    auth_services.audit(current_user, 'User', user_id, 'DELETE', f'Deleted user {email}')
    return jsonify({"message": "User deleted successfully"}), 200
