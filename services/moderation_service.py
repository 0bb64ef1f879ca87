"""
Content reports and moderator decisions.

Members report users, papers or events. Reported papers and events with
pending reports form the moderation queue; a moderator approves, hides or
deletes the content and the pending reports on it are closed accordingly.
"""
import logging
from sqlalchemy import func
from models import db, User, ResearchPaper, Event, Report
from models.base import utcnow, serialize_value
from services import paper_service
from services.errors import APIError

logger = logging.getLogger(__name__)

TARGETS = {
    'user': User,
    'research_paper': ResearchPaper,
    'event': Event,
}
MODERATED_TYPES = ('research_paper', 'event')
ACTIONS = ('approve', 'hide', 'delete')

# (report status, moderator note) given to pending reports when a moderator acts on the content
ACTION_OUTCOMES = {
    'approve': ('dismissed', 'Content approved'),
    'hide': ('resolved', 'Content hidden'),
    'delete': ('resolved', 'Content deleted'),
}


def get_target(report_type, target_id):
    model = TARGETS.get(report_type)
    if model is None:
        raise APIError("Invalid report type", 400)
    target = model.get(target_id)
    if target is None:
        raise APIError("Target content not found", 404)
    return target


def owner_id(report_type, target):
    if report_type == 'user':
        return target.user_id
    if report_type == 'research_paper':
        return target.submitted_by
    return target.created_by


def describe(report_type, target):
    if report_type == 'user':
        return {
            "type": report_type,
            "target_id": target.user_id,
            "title": target.full_name,
            "summary": target.email,
            "is_public": target.is_active,
        }
    if report_type == 'research_paper':
        author = target.submitter
        return {
            "type": report_type,
            "target_id": target.paper_id,
            "title": target.title,
            "summary": target.abstract[:300],
            "author": {"user_id": author.user_id, "full_name": author.full_name} if author else None,
            "status": target.status,
            "is_public": target.is_public,
            "is_moderated": target.is_moderated,
        }
    creator = target.creator
    return {
        "type": report_type,
        "target_id": target.event_id,
        "title": target.title,
        "summary": (target.short_description or target.description)[:300],
        "author": {"user_id": creator.user_id, "full_name": creator.full_name} if creator else None,
        "status": target.status,
        "is_public": target.is_public,
        "is_moderated": target.is_moderated,
    }


def content_queue(report_type=None):
    """Reported papers and events with pending reports, most reported first."""
    report_count = func.count(Report.report_id)
    latest = func.max(Report.created_at)
    query = db.session.query(Report.type, Report.target_id, report_count, latest) \
        .filter(Report.status == 'pending', Report.type.in_(MODERATED_TYPES))
    if report_type:
        query = query.filter(Report.type == report_type)
    rows = query.group_by(Report.type, Report.target_id) \
        .order_by(report_count.desc(), latest.desc()).all()

    items = []
    for target_type, target_id, count, latest_at in rows:
        target = TARGETS[target_type].get(target_id)
        if target is None:
            logger.info(f"Skipping reports on missing {target_type} {target_id}")
            continue
        item = describe(target_type, target)
        item.update({"report_count": count, "latest_report_at": serialize_value(latest_at)})
        items.append(item)
    return items


def close_reports(report_type, target_id, moderator_id, status, notes=None):
    reports = Report.query.filter_by(type=report_type, target_id=target_id, status='pending').all()
    for report in reports:
        report.review(moderator_id, status, notes)
    return len(reports)


def moderate(report_type, target_id, action, moderator):
    """
    Apply a moderator decision to a paper or event. Returns the content summary
    and the number of reports closed. The caller commits.
    """
    if report_type not in MODERATED_TYPES:
        raise APIError("Unsupported content type", 400)
    if action not in ACTIONS:
        raise APIError(f"action must be one of: {', '.join(ACTIONS)}", 400)

    target = get_target(report_type, target_id)
    summary = describe(report_type, target)

    if action == 'delete':
        if report_type == 'research_paper':
            paper_service.delete_paper(target)
        else:
            db.session.delete(target)
            db.session.flush()
    else:
        target.is_moderated = True
        target.moderated_by = moderator.user_id
        target.moderated_at = utcnow()
        if action == 'hide':
            target.is_public = False
        summary = describe(report_type, target)

    status, notes = ACTION_OUTCOMES[action]
    closed = close_reports(report_type, target_id, moderator.user_id, status, notes)
    return summary, closed
