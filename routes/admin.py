import logging
from datetime import datetime
from io import BytesIO
import pandas as pd
from flask import Blueprint, request, jsonify, send_file
from sqlalchemy import or_, func
from models import (
    db, User, ResearchPaper, Event, Job, JobApplication, Contact, AuditTrail, Employee, Report
)
from models.base import utcnow
from models.report import REPORT_STATUSES
from models.research_paper import STATUSES as PAPER_STATUSES
from models.user import ROLES
from services import auth_services, mail, moderation_service, paper_service, user_srv
from services.auth_services import admin_required, get_current_user
from services.errors import APIError
from services.notification_service import notify
from services.pagination import paginate
from services.validation import validate_employee

admin = Blueprint('admin', __name__)
logger = logging.getLogger(__name__)

EMPLOYEE_FIELDS = (
    'department', 'position', 'phone', 'employment_status', 'work_start', 'work_end', 'manager_id'
)
EXPORT_COLUMNS = (
    'user_id', 'first_name', 'last_name', 'email', 'role', 'department', 'institution',
    'approval_status', 'is_active', 'created_at', 'last_login'
)
MODERATION_STATES = {'approve': 'approved', 'hide': 'hidden', 'delete': 'deleted'}


def get_user(user_id):
    user = User.get(user_id)
    if user is None:
        raise APIError("User not found", 404)
    return user


def grouped_counts(column, key_column):
    rows = db.session.query(column, func.count(key_column)).group_by(column).all()
    return {key: count for key, count in rows}


def search_users(query):
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern)
        ))
    return query


@admin.route('/stats', methods=['GET'])
@admin_required
def dashboard_stats():
    return jsonify({"stats": {
        "users": user_srv.user_stats(),
        "papers": {
            "total": ResearchPaper.query.count(),
            "by_status": grouped_counts(ResearchPaper.status, ResearchPaper.paper_id),
        },
        "events": {
            "total": Event.query.count(),
            "upcoming": Event.query.filter(Event.status == 'published',
                                           Event.start_date >= utcnow().date()).count(),
        },
        "jobs": {
            "total": Job.query.count(),
            "active": Job.query.filter(Job.is_active.is_(True),
                                       Job.application_deadline >= utcnow()).count(),
            "applications": JobApplication.query.count(),
        },
        "contacts": {
            "total": Contact.query.filter_by(is_spam=False).count(),
            "new": Contact.query.filter_by(status='new', is_spam=False).count(),
        },
        "employees": Employee.query.filter_by(employment_status='active').count(),
    }}), 200


@admin.route('/users', methods=['GET'])
@admin_required
def list_users():
    query = search_users(User.query.filter(User.approval_status == 'approved'))

    role = request.args.get('role')
    if role:
        query = query.filter(User.role == role)
    status = request.args.get('status')
    if status == 'active':
        query = query.filter(User.is_active.is_(True))
    elif status == 'inactive':
        query = query.filter(User.is_active.is_(False))

    items, pagination = paginate(query.order_by(User.created_at.desc()))
    return jsonify({"users": items, "pagination": pagination}), 200


@admin.route('/users/pending', methods=['GET'])
@admin_required
def pending_users():
    query = search_users(User.query.filter(User.approval_status == 'pending'))
    items, pagination = paginate(query.order_by(User.created_at.asc()))
    return jsonify({"users": items, "pagination": pagination}), 200


@admin.route('/users/<user_id>/approve', methods=['PUT'])
@admin_required
def approve_user(user_id):
    current_admin = get_current_user()
    user = get_user(user_id)
    if user.approval_status == 'approved':
        return jsonify({"error": "User is already approved"}), 400

    try:
        user.approve(current_admin.user_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to approve user: {e}")
        return jsonify({"error": "Failed to approve user"}), 500

    email_sent = mail.send_approval_email(user)
    auth_services.audit(current_admin, 'User', user.user_id, 'APPROVE', f'Approved {user.email}')
    return jsonify({
        "message": "User approved successfully",
        "email_sent": email_sent,
        "user": user.to_dict()
    }), 200


@admin.route('/users/<user_id>/reject', methods=['PUT'])
@admin_required
def reject_user(user_id):
    current_admin = get_current_user()
    user = get_user(user_id)
    data = request.get_json(silent=True) or {}
    reason = (data.get('reason') or '').strip() or None
    if reason and len(reason) > 500:
        return jsonify({"error": "Reason cannot exceed 500 characters"}), 400

    try:
        user.reject(current_admin.user_id, reason)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to reject user: {e}")
        return jsonify({"error": "Failed to reject user"}), 500

    email_sent = mail.send_rejection_email(user, reason)
    auth_services.audit(current_admin, 'User', user.user_id, 'REJECT',
                        f'Rejected {user.email}' + (f': {reason}' if reason else ''))
    return jsonify({
        "message": "User rejected",
        "email_sent": email_sent,
        "user": user.to_dict()
    }), 200


@admin.route('/users/<user_id>/status', methods=['PUT'])
@admin_required
def set_user_status(user_id):
    current_admin = get_current_user()
    user = get_user(user_id)
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('is_active'), bool):
        return jsonify({"error": "is_active must be true or false"}), 400
    if user.user_id == current_admin.user_id and not data['is_active']:
        return jsonify({"error": "You cannot deactivate your own account"}), 400

    try:
        user.is_active = data['is_active']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update user status: {e}")
        return jsonify({"error": "Failed to update user status"}), 500

    state = 'activated' if user.is_active else 'deactivated'
    auth_services.audit(current_admin, 'User', user.user_id, 'UPDATE', f'Account {state}')
    return jsonify({"message": f"User {state} successfully", "user": user.to_dict()}), 200


@admin.route('/users/<user_id>/role', methods=['PUT'])
@admin_required
def set_user_role(user_id):
    current_admin = get_current_user()
    user = get_user(user_id)
    data = request.get_json(silent=True) or {}
    role = data.get('role')
    if role not in ROLES:
        return jsonify({"error": f"Role must be one of: {', '.join(ROLES)}"}), 400
    if user.user_id == current_admin.user_id:
        return jsonify({"error": "You cannot change your own role"}), 400
    if role == 'employee' and user.employee is None:
        return jsonify({"error": "Create an employee record instead of assigning the employee role"}), 400

    try:
        previous = user.role
        user.role = role
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update role: {e}")
        return jsonify({"error": "Failed to update role"}), 500

    auth_services.audit(current_admin, 'User', user.user_id, 'UPDATE', f'Role changed from {previous} to {role}')
    return jsonify({"message": "User role updated successfully", "user": user.to_dict()}), 200


@admin.route('/users/<user_id>', methods=['DELETE'])
@admin_required
def deactivate_user(user_id):
    """Soft delete: the account is deactivated and kept for its records."""
    current_admin = get_current_user()
    user = get_user(user_id)
    if user.user_id == current_admin.user_id:
        return jsonify({"error": "You cannot delete your own account"}), 400

    try:
        user.is_active = False
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete user: {e}")
        return jsonify({"error": "Failed to delete user"}), 500

    auth_services.audit(current_admin, 'User', user.user_id, 'DELETE', f'Deactivated {user.email}')
    return jsonify({"message": "User deleted successfully"}), 200


@admin.route('/users/export', methods=['GET'])
@admin_required
def export_users():
    current_admin = get_current_user()
    query = search_users(User.query)
    role = request.args.get('role')
    if role:
        query = query.filter(User.role == role)

    records = [
        {column: getattr(user, column) for column in EXPORT_COLUMNS}
        for user in query.order_by(User.created_at.asc()).all()
    ]
    df = pd.DataFrame(records, columns=list(EXPORT_COLUMNS))
    output = BytesIO()
    df.to_csv(output, index=False)
    output.seek(0)

    auth_services.audit(current_admin, 'User', None, 'EXPORT', f'Exported {len(records)} users')
    current_timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return send_file(
        output,
        mimetype='text/csv',
        as_attachment=True,
        download_name=f"{current_timestamp}_Users.csv"
    )


@admin.route('/papers', methods=['GET'])
@admin_required
def list_papers():
    query = ResearchPaper.query
    status = request.args.get('status')
    if status:
        query = query.filter(ResearchPaper.status == status)
    field = request.args.get('field')
    if field:
        query = query.filter(ResearchPaper.field == field)
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            ResearchPaper.title.ilike(pattern),
            ResearchPaper.abstract.ilike(pattern),
            ResearchPaper.submission_id.ilike(pattern)
        ))

    items, pagination = paginate(query.order_by(ResearchPaper.updated_at.desc()))
    return jsonify({"papers": items, "pagination": pagination}), 200


@admin.route('/papers/<paper_id>/status', methods=['PUT'])
@admin_required
def set_paper_status(paper_id):
    current_admin = get_current_user()
    paper = paper_service.get_paper(paper_id)
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in PAPER_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(PAPER_STATUSES)}"}), 400
    comments = data.get('comments')
    if comments and len(comments) > 3000:
        return jsonify({"error": "Comments cannot exceed 3000 characters"}), 400

    try:
        if status == 'published':
            paper_service.publish(paper)
        else:
            paper.status = status
        paper.update_from(data, ('journal', 'doi'))
        if comments:
            paper.review_comments = comments
        paper.reviewed_by = current_admin.user_id
        paper.reviewed_at = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update paper status: {e}")
        return jsonify({"error": "Failed to update paper status"}), 500

    notify(paper.submitted_by, "Paper status updated",
           f'Your paper "{paper.title}" is now {status.replace("_", " ")}.',
           type='paper_status_update', sender_id=current_admin.user_id,
           entity_type='ResearchPaper', entity_id=paper.paper_id,
           data={"status": status, "comments": comments})
    auth_services.audit(current_admin, 'ResearchPaper', paper.paper_id, 'UPDATE',
                        f'Set paper status to {status}')
    return jsonify({"message": "Paper status updated successfully", "paper": paper.to_dict()}), 200


@admin.route('/audit-logs', methods=['GET'])
@admin_required
def audit_logs():
    query = AuditTrail.query
    operation = request.args.get('operation')
    if operation:
        query = query.filter(AuditTrail.operation == operation)
    email = request.args.get('email')
    if email:
        query = query.filter(AuditTrail.email.ilike(f"%{email}%"))
    table_name = request.args.get('table_name')
    if table_name:
        query = query.filter(AuditTrail.table_name == table_name)

    items, pagination = paginate(query.order_by(AuditTrail.change_datetime.desc()), default_limit=20)
    operations = [op for (op,) in db.session.query(AuditTrail.operation).distinct().all()]
    return jsonify({"logs": items, "operations": operations, "pagination": pagination}), 200


@admin.route('/employees', methods=['POST'])
@admin_required
def create_employee():
    current_admin = get_current_user()
    data = request.get_json(silent=True) or {}
    parsed = validate_employee(data)

    try:
        record = user_srv.add_new_employee(dict(data, **parsed), created_by=current_admin.user_id)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create employee: {e}")
        return jsonify({"error": "Failed to create employee"}), 500

    auth_services.audit(current_admin, 'Employee', record.employee_id, 'CREATE',
                        f'Created employee {record.employee_code} for {record.user.email}')
    return jsonify({"message": "Employee created successfully", "employee": record.to_dict()}), 201


@admin.route('/employees', methods=['GET'])
@admin_required
def list_employees():
    query = Employee.query.join(User, Employee.user_id == User.user_id)
    for field in ('department', 'employment_status'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Employee, field) == value)
    query = search_users(query)
    items, pagination = paginate(query.order_by(Employee.employee_code.asc()))
    return jsonify({"employees": items, "pagination": pagination}), 200


@admin.route('/employees/<employee_id>', methods=['PUT'])
@admin_required
def update_employee(employee_id):
    current_admin = get_current_user()
    record = Employee.get(employee_id)
    if record is None:
        return jsonify({"error": "Employee not found"}), 404
    data = request.get_json(silent=True) or {}
    parsed = validate_employee(data, partial=True)

    try:
        record.update_from(data, EMPLOYEE_FIELDS)
        record.update_from(parsed, ('date_of_joining',))
        for field in ('first_name', 'last_name'):
            if data.get(field):
                setattr(record.user, field, data[field].strip())
        # employees who leave lose portal access
        if record.employment_status == 'terminated':
            record.user.is_active = False
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update employee: {e}")
        return jsonify({"error": "Failed to update employee"}), 500

    auth_services.audit(current_admin, 'Employee', record.employee_id, 'UPDATE',
                        f'Updated employee {record.employee_code}')
    return jsonify({"message": "Employee updated successfully", "employee": record.to_dict()}), 200


@admin.route('/reports', methods=['GET'])
@admin_required
def list_reports():
    query = Report.query
    for field in ('status', 'type', 'priority'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Report, field) == value)
    items, pagination = paginate(query.order_by(Report.created_at.desc()), default_limit=20)
    return jsonify({"reports": items, "pagination": pagination}), 200


@admin.route('/reports/<report_id>', methods=['PUT'])
@admin_required
def review_report(report_id):
    current_admin = get_current_user()
    report = Report.get(report_id)
    if report is None:
        return jsonify({"error": "Report not found"}), 404
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in REPORT_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(REPORT_STATUSES)}"}), 400
    notes = data.get('moderator_notes')
    if notes and len(notes) > 1000:
        return jsonify({"error": "Moderator notes cannot exceed 1000 characters"}), 400

    try:
        report.review(current_admin.user_id, status, notes)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update report: {e}")
        return jsonify({"error": "Failed to update report"}), 500

    auth_services.audit(current_admin, 'Report', report.report_id, 'UPDATE',
                        f'Marked report on {report.type} {report.target_id} as {status}')
    return jsonify({"message": "Report updated successfully", "report": report.to_dict()}), 200


@admin.route('/content', methods=['GET'])
@admin_required
def moderation_queue():
    report_type = request.args.get('type')
    if report_type and report_type not in moderation_service.MODERATED_TYPES:
        return jsonify({"error": f"type must be one of: {', '.join(moderation_service.MODERATED_TYPES)}"}), 400
    items = moderation_service.content_queue(report_type)
    return jsonify({"content": items, "total": len(items)}), 200


@admin.route('/content/<target_id>/moderate', methods=['PUT'])
@admin_required
def moderate_content(target_id):
    current_admin = get_current_user()
    data = request.get_json(silent=True) or {}
    report_type = data.get('type')
    action = data.get('action')
    target = moderation_service.get_target(report_type, target_id)
    owner = moderation_service.owner_id(report_type, target)

    try:
        summary, closed = moderation_service.moderate(report_type, target_id, action, current_admin)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to moderate content: {e}")
        return jsonify({"error": "Failed to moderate content"}), 500

    if action in ('hide', 'delete') and owner:
        state = MODERATION_STATES[action]
        notify(owner, "Content moderated",
               f'Your {report_type.replace("_", " ")} "{summary["title"]}" was {state} by a moderator.',
               type='content_report', sender_id=current_admin.user_id,
               entity_type=report_type, entity_id=target_id, data={"action": action})
    auth_services.audit(current_admin, 'Report', target_id, 'MODERATE',
                        f'{action.capitalize()} {report_type} {target_id}, closed {closed} reports')
    return jsonify({
        "message": f"Content {MODERATION_STATES[action]} successfully",
        "content": summary,
        "reports_closed": closed
    }), 200
