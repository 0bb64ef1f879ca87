import logging
from flask import Blueprint, request, jsonify
from models import db, Report
from models.report import priority_for
from services import auth_services, moderation_service
from services.auth_services import login_required, get_current_user
from services.notification_service import notify_admins
from services.pagination import paginate
from services.validation import validate_report

reports = Blueprint('reports', __name__)
logger = logging.getLogger(__name__)


@reports.route('', methods=['POST'])
@login_required
def create_report():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    validate_report(data)

    report_type = data['type']
    target = moderation_service.get_target(report_type, data['target_id'])
    if moderation_service.owner_id(report_type, target) == user.user_id:
        return jsonify({"error": "You cannot report your own content"}), 400
    existing = Report.query.filter_by(type=report_type, target_id=data['target_id'],
                                      reported_by=user.user_id).first()
    if existing is not None:
        return jsonify({"error": "You have already reported this content"}), 400

    try:
        report = Report(
            report_id=auth_services.formatting_id('RT', Report, 'report_id'),
            type=report_type,
            target_id=data['target_id'],
            reported_by=user.user_id,
            reason=data['reason'],
            description=(data.get('description') or '').strip() or None,
            priority=priority_for(data['reason'])
        )
        db.session.add(report)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to submit report: {e}")
        return jsonify({"error": "Failed to submit report"}), 500

    if report.priority == 'high':
        summary = moderation_service.describe(report_type, target)
        notify_admins("High priority content report",
                      f'{report.reason.replace("_", " ").capitalize()} reported on {report_type.replace("_", " ")} '
                      f'"{summary["title"]}".',
                      type='content_report', sender_id=user.user_id, priority='high',
                      entity_type='Report', entity_id=report.report_id,
                      data={"type": report_type, "target_id": report.target_id})

    return jsonify({
        "message": "Report submitted successfully. Our moderators will review it.",
        "report": report.to_dict()
    }), 201


@reports.route('/my-reports', methods=['GET'])
@login_required
def my_reports():
    user = get_current_user()
    query = Report.query.filter_by(reported_by=user.user_id).order_by(Report.created_at.desc())
    items, pagination = paginate(query)
    return jsonify({"reports": items, "pagination": pagination}), 200


@reports.route('/status/<report_type>/<target_id>', methods=['GET'])
@login_required
def report_status(report_type, target_id):
    user = get_current_user()
    report = Report.query.filter_by(type=report_type, target_id=target_id,
                                    reported_by=user.user_id).first()
    return jsonify({
        "is_reported": report is not None,
        "report_status": report.status if report else None
    }), 200
