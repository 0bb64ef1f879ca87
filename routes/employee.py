import logging
from flask import Blueprint, request, jsonify
from models import db
from services import attendance_service
from services.auth_services import role_required, get_current_user
from services.errors import APIError
from services.notification_service import unread_count
from services.validation import Validator

employee = Blueprint('employee', __name__)
logger = logging.getLogger(__name__)


def current_employee():
    user = get_current_user()
    if user.employee is None:
        raise APIError("Employee profile not found", 404)
    return user.employee


@employee.route('/profile', methods=['GET'])
@role_required('employee')
def get_profile():
    user = get_current_user()
    record = current_employee()
    return jsonify({
        "employee": record.to_dict(),
        "user": user.to_dict()
    }), 200


@employee.route('/profile', methods=['PUT'])
@role_required('employee')
def update_profile():
    record = current_employee()
    data = request.get_json(silent=True) or {}

    # employees may only change their contact number; the rest is managed by admins
    v = Validator(data, partial=True)
    v.phone('phone')
    v.check()

    try:
        if 'phone' in data:
            record.phone = data['phone']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update profile: {e}")
        return jsonify({"error": "Failed to update profile"}), 500

    return jsonify({"message": "Profile updated successfully", "employee": record.to_dict()}), 200


@employee.route('/dashboard', methods=['GET'])
@role_required('employee')
def dashboard():
    user = get_current_user()
    record = current_employee()
    now = attendance_service.local_now()
    today = attendance_service.record_for(record, now.date())

    return jsonify({
        "employee": record.to_dict(),
        "today": today.to_dict() if today else None,
        "monthly_summary": attendance_service.monthly_summary(record, now.year, now.month, now.date()),
        "unread_notifications": unread_count(user.user_id)
    }), 200
