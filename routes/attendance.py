import logging
from datetime import MINYEAR, MAXYEAR
from flask import Blueprint, current_app, request, jsonify
from models import db, Attendance, Employee
from models.attendance import ATTENDANCE_STATUSES, DEVICE_TYPES
from models.base import utcnow
from services import attendance_service, auth_services
from services.auth_services import role_required, admin_required, get_current_user
from services.errors import APIError
from services.notification_service import notify, notify_admins
from services.validation import parse_date

attendance = Blueprint('attendance', __name__)
logger = logging.getLogger(__name__)

employee_required = role_required('employee')


def current_employee():
    user = get_current_user()
    if user.employee is None:
        raise APIError("Employee profile not found", 404)
    return user.employee


def month_args():
    today = attendance_service.local_now().date()
    try:
        month = int(request.args.get('month', today.month))
        year = int(request.args.get('year', today.year))
    except ValueError:
        raise APIError("month and year must be integers", 400)
    if not 1 <= month <= 12:
        raise APIError("month must be between 1 and 12", 400)
    if not MINYEAR <= year <= MAXYEAR:
        raise APIError(f"year must be between {MINYEAR} and {MAXYEAR}", 400)
    return year, month


@attendance.route('/checkin', methods=['POST'])
@employee_required
def checkin():
    employee = current_employee()
    data = request.get_json(silent=True) or {}
    device_type = data.get('device_type')
    if device_type and device_type not in DEVICE_TYPES:
        return jsonify({"error": f"device_type must be one of: {', '.join(DEVICE_TYPES)}"}), 400

    record = attendance_service.check_in(
        employee,
        work_from_home=bool(data.get('work_from_home')),
        location=data.get('location'),
        notes=data.get('notes'),
        device_type=device_type
    )
    message = "Checked in successfully"
    if record.is_late_arrival:
        message += " (late arrival)"
    return jsonify({"message": message, "attendance": record.to_dict()}), 201


@attendance.route('/checkout', methods=['POST'])
@employee_required
def checkout():
    employee = current_employee()
    data = request.get_json(silent=True) or {}
    break_minutes = data.get('break_minutes')
    if break_minutes is not None:
        try:
            break_minutes = int(break_minutes)
        except (TypeError, ValueError):
            return jsonify({"error": "break_minutes must be an integer"}), 400
        if break_minutes < 0:
            return jsonify({"error": "break_minutes cannot be negative"}), 400

    record = attendance_service.check_out(employee, break_minutes=break_minutes, notes=data.get('notes'))
    return jsonify({"message": "Checked out successfully", "attendance": record.to_dict()}), 200


@attendance.route('/today', methods=['GET'])
@employee_required
def today():
    employee = current_employee()
    record = attendance_service.record_for(employee, attendance_service.local_now().date())
    return jsonify({
        "attendance": record.to_dict() if record else None,
        "checked_in": bool(record and record.check_in_time),
        "checked_out": bool(record and record.check_out_time),
        "work_start": employee.work_start,
        "work_end": employee.work_end
    }), 200


@attendance.route('/history', methods=['GET'])
@employee_required
def history():
    employee = current_employee()
    year, month = month_args()
    records = attendance_service.history(employee, year, month)
    return jsonify({
        "month": month,
        "year": year,
        "records": [r.to_dict() for r in records]
    }), 200


@attendance.route('/summary', methods=['GET'])
@employee_required
def summary():
    employee = current_employee()
    year, month = month_args()
    return jsonify({"summary": attendance_service.monthly_summary(employee, year, month)}), 200


@attendance.route('/<attendance_id>/regularize', methods=['POST'])
@employee_required
def request_regularization(attendance_id):
    employee = current_employee()
    record = Attendance.get(attendance_id)
    if record is None or record.employee_id != employee.employee_id:
        return jsonify({"error": "Attendance record not found"}), 404

    data = request.get_json(silent=True) or {}
    reason = (data.get('reason') or '').strip()
    if not reason:
        return jsonify({"error": "Reason is required"}), 400
    if len(reason) > 500:
        return jsonify({"error": "Reason cannot exceed 500 characters"}), 400
    if record.regularization_status == 'pending':
        return jsonify({"error": "A regularization request is already pending"}), 400

    try:
        record.regularization_requested = True
        record.regularization_reason = reason
        record.regularization_status = 'pending'
        record.regularization_requested_at = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to request regularization: {e}")
        return jsonify({"error": "Failed to request regularization"}), 500

    notify_admins("Attendance regularization request",
                  f"{employee.user.full_name} requested regularization for {record.work_date.isoformat()}.",
                  type='general', entity_type='Attendance', entity_id=record.attendance_id)
    return jsonify({"message": "Regularization requested", "attendance": record.to_dict()}), 200


@attendance.route('/admin/overview', methods=['GET'])
@admin_required
def admin_overview():
    try:
        day = parse_date(request.args['date']) if request.args.get('date') \
            else attendance_service.local_now().date()
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    employees = Employee.query.filter_by(employment_status='active').all()
    records = {r.employee_id: r for r in Attendance.query.filter_by(work_date=day).all()}

    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    rows = []
    for employee in employees:
        record = records.get(employee.employee_id)
        status = record.status if record else 'absent'
        counts[status] = counts.get(status, 0) + 1
        rows.append({
            "employee": employee.to_dict(),
            "attendance": record.to_dict() if record else None,
            "status": status,
        })

    return jsonify({
        "date": day.isoformat(),
        "total_employees": len(employees),
        "counts": counts,
        "employees": rows
    }), 200


@attendance.route('/admin/regularizations', methods=['GET'])
@admin_required
def pending_regularizations():
    status = request.args.get('status', 'pending')
    records = Attendance.query.filter_by(regularization_status=status) \
        .order_by(Attendance.regularization_requested_at.desc()).all()
    return jsonify({"requests": [r.to_dict() for r in records]}), 200


@attendance.route('/admin/regularizations/<attendance_id>', methods=['PUT'])
@admin_required
def decide_regularization(attendance_id):
    admin = get_current_user()
    record = Attendance.get(attendance_id)
    if record is None or record.regularization_status != 'pending':
        return jsonify({"error": "No pending regularization request for this record"}), 404

    data = request.get_json(silent=True) or {}
    decision = data.get('decision')
    if decision not in ('approved', 'rejected'):
        return jsonify({"error": "decision must be 'approved' or 'rejected'"}), 400
    if data.get('status') and data['status'] not in ATTENDANCE_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(ATTENDANCE_STATUSES)}"}), 400

    try:
        if decision == 'approved':
            if data.get('check_in_time'):
                record.check_in_time = attendance_service.parse_local_datetime(data['check_in_time'])
            if data.get('check_out_time'):
                record.check_out_time = attendance_service.parse_local_datetime(data['check_out_time'])
            if data.get('status'):
                record.status = data['status']
            record.recalculate(record.employee.work_end,
                               current_app.config.get('STANDARD_WORK_HOURS', 8))
            record.approved_by = admin.user_id
        record.regularization_status = decision
        record.regularization_reviewed_by = admin.user_id
        record.regularization_reviewed_at = utcnow()
        db.session.commit()
    except ValueError:
        db.session.rollback()
        return jsonify({"error": "check_in_time and check_out_time must be ISO 8601 datetimes"}), 400
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update regularization: {e}")
        return jsonify({"error": "Failed to update regularization"}), 500

    notify(record.employee.user_id, f"Regularization {decision}",
           f"Your regularization request for {record.work_date.isoformat()} was {decision}.",
           type='general', sender_id=admin.user_id,
           entity_type='Attendance', entity_id=record.attendance_id)
    auth_services.audit(admin, 'Attendance', record.attendance_id, 'UPDATE', f'Regularization {decision}')
    return jsonify({"message": f"Regularization {decision}", "attendance": record.to_dict()}), 200
