import logging
import re
from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func
from models import db, Contact
from models.contact import CONTACT_STATUSES, PRIORITIES
from services import auth_services, mail
from services.auth_services import admin_required, get_current_user
from services.errors import APIError
from services.notification_service import notify_admins
from services.pagination import paginate
from services.validation import validate_contact

contact = Blueprint('contact', __name__)
logger = logging.getLogger(__name__)

LINK_PATTERN = re.compile(r'https?://', re.IGNORECASE)
SPAM_LINK_THRESHOLD = 2


def looks_like_spam(message):
    return len(LINK_PATTERN.findall(message or '')) >= SPAM_LINK_THRESHOLD


def get_contact(contact_id):
    record = Contact.get(contact_id)
    if record is None:
        raise APIError("Contact submission not found", 404)
    return record


@contact.route('', methods=['POST'])
def submit_contact():
    data = request.get_json(silent=True) or {}
    validate_contact(data)

    try:
        record = Contact(
            contact_id=auth_services.formatting_id('CT', Contact, 'contact_id'),
            name=data['name'].strip(),
            email=data['email'].strip().lower(),
            phone=data.get('phone'),
            organization=data.get('organization'),
            subject=data['subject'].strip(),
            message=data['message'].strip(),
            category=data['category'],
            priority=data.get('priority') or 'medium',
            ip_address=request.headers.get('X-Forwarded-For', request.remote_addr),
            user_agent=(request.headers.get('User-Agent') or '')[:500],
            referrer=request.referrer,
            source=data.get('source') or 'website',
            is_spam=looks_like_spam(data['message'])
        )
        db.session.add(record)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to submit contact form: {e}")
        return jsonify({"error": "Failed to submit contact form"}), 500

    if not record.is_spam:
        notify_admins("New contact submission",
                      f'{record.name} wrote about "{record.subject}".',
                      type='general', entity_type='Contact', entity_id=record.contact_id,
                      priority=record.priority)

    return jsonify({
        "message": "Thank you for contacting us. We will get back to you soon.",
        "contact_id": record.contact_id
    }), 201


@contact.route('', methods=['GET'])
@admin_required
def list_contacts():
    query = Contact.query

    if request.args.get('include_spam') != 'true':
        query = query.filter(Contact.is_spam.is_(False))
    if request.args.get('include_archived') != 'true':
        query = query.filter(Contact.is_archived.is_(False))

    for field in ('status', 'category', 'priority'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Contact, field) == value)

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Contact.name.ilike(pattern),
            Contact.email.ilike(pattern),
            Contact.subject.ilike(pattern),
            Contact.message.ilike(pattern)
        ))

    items, pagination = paginate(query.order_by(Contact.created_at.desc()))
    return jsonify({"contacts": items, "pagination": pagination}), 200


@contact.route('/stats', methods=['GET'])
@admin_required
def contact_stats():
    def grouped(column):
        rows = db.session.query(column, func.count(Contact.contact_id)) \
            .filter(Contact.is_spam.is_(False)).group_by(column).all()
        return {key: count for key, count in rows}

    return jsonify({"stats": {
        "total": Contact.query.filter_by(is_spam=False).count(),
        "spam": Contact.query.filter_by(is_spam=True).count(),
        "archived": Contact.query.filter_by(is_archived=True).count(),
        "by_status": grouped(Contact.status),
        "by_category": grouped(Contact.category),
        "by_priority": grouped(Contact.priority),
    }}), 200


@contact.route('/<contact_id>', methods=['GET'])
@admin_required
def get_contact_details(contact_id):
    return jsonify({"contact": get_contact(contact_id).to_dict()}), 200


@contact.route('/<contact_id>/status', methods=['PUT'])
@admin_required
def update_status(contact_id):
    admin = get_current_user()
    record = get_contact(contact_id)
    data = request.get_json(silent=True) or {}

    status = data.get('status')
    if status not in CONTACT_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(CONTACT_STATUSES)}"}), 400
    if data.get('priority') and data['priority'] not in PRIORITIES:
        return jsonify({"error": f"Priority must be one of: {', '.join(PRIORITIES)}"}), 400

    try:
        record.status = status
        record.update_from(data, ('priority', 'assigned_to', 'tags'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update status: {e}")
        return jsonify({"error": "Failed to update status"}), 500

    auth_services.audit(admin, 'Contact', record.contact_id, 'UPDATE', f'Set status to {status}')
    return jsonify({"message": "Status updated successfully", "contact": record.to_dict()}), 200


@contact.route('/<contact_id>/respond', methods=['POST'])
@admin_required
def respond(contact_id):
    admin = get_current_user()
    record = get_contact(contact_id)
    data = request.get_json(silent=True) or {}
    message = (data.get('message') or '').strip()

    if not message:
        return jsonify({"error": "Response message is required"}), 400
    if len(message) > 2000:
        return jsonify({"error": "Response cannot exceed 2000 characters"}), 400

    try:
        record.respond(message, admin.user_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to save response: {e}")
        return jsonify({"error": "Failed to save response"}), 500

    email_sent = mail.send_contact_response(record)
    auth_services.audit(admin, 'Contact', record.contact_id, 'UPDATE', 'Responded to contact submission')

    return jsonify({
        "message": "Response sent successfully",
        "email_sent": email_sent,
        "contact": record.to_dict()
    }), 200


@contact.route('/<contact_id>/spam', methods=['PUT'])
@admin_required
def mark_spam(contact_id):
    record = get_contact(contact_id)
    data = request.get_json(silent=True) or {}
    try:
        record.is_spam = bool(data.get('is_spam', True))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update contact: {e}")
        return jsonify({"error": "Failed to update contact"}), 500
    return jsonify({"message": "Spam flag updated", "contact": record.to_dict()}), 200


@contact.route('/<contact_id>/archive', methods=['PUT'])
@admin_required
def archive(contact_id):
    record = get_contact(contact_id)
    data = request.get_json(silent=True) or {}
    try:
        record.is_archived = bool(data.get('is_archived', True))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update contact: {e}")
        return jsonify({"error": "Failed to update contact"}), 500
    return jsonify({"message": "Archive flag updated", "contact": record.to_dict()}), 200


@contact.route('/<contact_id>', methods=['DELETE'])
@admin_required
def delete_contact(contact_id):
    admin = get_current_user()
    record = get_contact(contact_id)
    try:
        db.session.delete(record)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete contact: {e}")
        return jsonify({"error": "Failed to delete contact"}), 500

    auth_services.audit(admin, 'Contact', contact_id, 'DELETE', 'Deleted contact submission')
    return jsonify({"message": "Contact submission deleted successfully"}), 200
