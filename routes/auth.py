import logging
from datetime import datetime, timezone
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import get_jwt
from models import db, User
from models.base import utcnow
from services import auth_services, user_srv, mail
from services.auth_services import login_required, get_current_user
from services.notification_service import notify_admins
from services.validation import validate_registration, validate_profile

auth = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def get_redis_client():
    return current_app.redis_client


@auth.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    validate_registration(data)

    try:
        user = user_srv.add_new_user(data, role=data.get('role') or 'visitor')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    auth_services.audit(user, 'User', user.user_id, 'SIGNUP', 'Created Account')
    notify_admins(
        "New user registration",
        f"{user.full_name} ({user.email}) registered as {user.role} and is awaiting approval.",
        type='user_registration',
        entity_type='User',
        entity_id=user.user_id
    )
    mail.send_welcome_email(user)

    return jsonify({
        "message": "Registration successful. Your account is pending admin approval.",
        "user": user.to_dict(),
        "requires_approval": True
    }), 201


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = User.query.filter_by(email=email).one_or_none()
    if user is None or not user.check_password(password):
        return jsonify({"error": "Invalid credentials"}), 401

    if not user.is_active:
        return jsonify({"error": "Account is deactivated. Please contact support."}), 401

    if user.role != 'admin' and not user.is_approved:
        if user.approval_status == 'rejected':
            message = "Your account registration was rejected."
        else:
            message = "Your account is pending admin approval."
        return jsonify({
            "error": message,
            "approval_status": user.approval_status,
            "rejection_reason": user.rejection_reason
        }), 403

    try:
        user.last_login = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Login failed: {e}")
        return jsonify({"error": "Login failed"}), 500

    access_token = auth_services.generate_token(user.user_id)

    auth_services.audit(user, 'User', None, 'LOGIN', 'User logged in')

    return jsonify({
        "message": "Login successful",
        "token": access_token,
        "user": user.to_dict()
    }), 200


@auth.route('/me', methods=['GET'])
@login_required
def get_user_details():
    user = get_current_user()
    data = user.to_dict()
    if user.employee is not None:
        data['employee'] = user.employee.to_dict()
    return jsonify({"user": data}), 200


@auth.route('/me', methods=['PUT'])
@login_required
def update_profile():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    validate_profile(data.get('profile') if isinstance(data.get('profile'), dict) else data)

    try:
        user_srv.apply_profile(user, data)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update profile: {e}")
        return jsonify({"error": "Failed to update profile"}), 500

    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()}), 200


@auth.route('/change-password', methods=['PUT', 'POST'])
@login_required
def change_password():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    current_password = data.get('current_password')
    new_password = data.get('new_password')

    if not current_password or not new_password:
        return jsonify({"error": "Current password and new password are required"}), 400

    if not user.check_password(current_password):
        return jsonify({"error": "Current password is incorrect"}), 400

    password_error = auth_services.validate_password(new_password)
    if password_error:
        return jsonify({"error": password_error}), 400

    if data.get('confirm_password') is not None and data['confirm_password'] != new_password:
        return jsonify({"error": "Passwords do not match"}), 400

    try:
        user.set_password(new_password)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to change password: {e}")
        return jsonify({"error": "Failed to change password"}), 500

    auth_services.audit(user, 'User', user.user_id, 'UPDATE', 'Changed password')
    return jsonify({"message": "Password changed successfully"}), 200


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    user = get_current_user()
    token = get_jwt()
    remaining = max(int(token["exp"] - datetime.now(timezone.utc).timestamp()), 1) if 'exp' in token else None

    redis_client = get_redis_client()
    redis_client.set(f"blocklist:{token['jti']}", "1", ex=remaining)

    auth_services.audit(user, 'User', None, 'LOGOUT', 'User logged out')
    return jsonify({"message": "Logged out successfully"}), 200
