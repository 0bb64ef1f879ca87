import logging
from flask import Blueprint, request, jsonify
from sqlalchemy import or_
from models import db, Event, EventRegistration
from models.event import REGISTRATION_STATUSES
from models.base import utcnow
from services import auth_services
from services.auth_services import role_required, login_required, optional_auth, get_current_user
from services.errors import APIError
from services.notification_service import notify
from services.pagination import paginate
from services.validation import validate_event

events = Blueprint('events', __name__)
logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'title', 'description', 'short_description', 'type', 'category',
    'start_time', 'end_time', 'timezone', 'venue_type', 'venue_name',
    'venue_address', 'virtual_link', 'venue_capacity', 'organizers',
    'speakers', 'agenda', 'tags', 'registration_required', 'registration_fee',
    'registration_currency', 'max_attendees', 'status', 'is_public', 'is_featured'
)


def get_event(event_id):
    event = Event.get(event_id)
    if event is None:
        raise APIError("Event not found", 404)
    return event


def can_manage(event, user):
    return user is not None and (user.role == 'admin' or event.created_by == user.user_id)


@events.route('', methods=['GET'])
def list_events():
    query = Event.query.filter(Event.status == 'published', Event.is_public.is_(True))

    event_type = request.args.get('type')
    if event_type:
        query = query.filter(Event.type == event_type)

    category = request.args.get('category')
    if category:
        query = query.filter(Event.category == category)

    if request.args.get('upcoming') == 'true':
        query = query.filter(Event.start_date >= utcnow().date())

    if request.args.get('featured') == 'true':
        query = query.filter(Event.is_featured.is_(True))

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Event.title.ilike(pattern), Event.description.ilike(pattern)))

    items, pagination = paginate(query.order_by(Event.start_date.asc()))
    return jsonify({"events": items, "pagination": pagination}), 200


@events.route('/user/registered', methods=['GET'])
@login_required
def my_registrations():
    user = get_current_user()
    query = Event.query.join(EventRegistration).filter(
        EventRegistration.user_id == user.user_id,
        EventRegistration.status != 'cancelled'
    )
    items, pagination = paginate(query.order_by(Event.start_date.asc()))
    return jsonify({"events": items, "pagination": pagination}), 200


@events.route('/<event_id>', methods=['GET'])
@optional_auth
def get_event_details(event_id):
    user = get_current_user()
    event = get_event(event_id)
    if (event.status == 'draft' or not event.is_public) and not can_manage(event, user):
        return jsonify({"error": "Event not found"}), 404

    data = event.to_dict()
    if user is not None:
        data['is_registered'] = event.registration_for(user.user_id) is not None
    return jsonify({"event": data}), 200


@events.route('', methods=['POST'])
@role_required('faculty', 'admin')
def create_event():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    parsed = validate_event(data)

    try:
        event = Event(
            event_id=auth_services.formatting_id('EV', Event, 'event_id'),
            created_by=user.user_id
        )
        event.update_from(data, EDITABLE_FIELDS)
        event.update_from(parsed, ('start_date', 'end_date', 'registration_deadline'))
        db.session.add(event)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create event: {e}")
        return jsonify({"error": "Failed to create event"}), 500

    auth_services.audit(user, 'Event', event.event_id, 'CREATE', f'Created event {event.title}')
    return jsonify({"message": "Event created successfully", "event": event.to_dict()}), 201


@events.route('/<event_id>', methods=['PUT'])
@login_required
def update_event(event_id):
    user = get_current_user()
    event = get_event(event_id)
    if not can_manage(event, user):
        return jsonify({"error": "Not authorized to update this event"}), 403

    data = request.get_json(silent=True) or {}
    parsed = validate_event(data, partial=True)

    start_date = parsed.get('start_date', event.start_date)
    end_date = parsed.get('end_date', event.end_date)
    if end_date < start_date:
        raise APIError("Validation failed", 400,
                       details=[{"field": "end_date", "message": "End date must be after start date"}])

    try:
        event.update_from(data, EDITABLE_FIELDS)
        event.update_from(parsed, ('start_date', 'end_date', 'registration_deadline'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update event: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    auth_services.audit(user, 'Event', event.event_id, 'UPDATE', f'Updated event {event.title}')
    return jsonify({"message": "Event updated successfully", "event": event.to_dict()}), 200


@events.route('/<event_id>', methods=['DELETE'])
@login_required
def delete_event(event_id):
    user = get_current_user()
    event = get_event(event_id)
    if not can_manage(event, user):
        return jsonify({"error": "Not authorized to delete this event"}), 403

    try:
        title = event.title
        db.session.delete(event)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete event: {e}")
        return jsonify({"error": "Failed to delete event"}), 500

    auth_services.audit(user, 'Event', event_id, 'DELETE', f'Deleted event {title}')
    return jsonify({"message": "Event deleted successfully"}), 200


@events.route('/<event_id>/register', methods=['POST'])
@login_required
def register_for_event(event_id):
    user = get_current_user()
    event = get_event(event_id)
    if event.status != 'published':
        return jsonify({"error": "Event is not open for registration"}), 400
    if event.registration_for(user.user_id) is not None:
        return jsonify({"error": "You are already registered for this event"}), 400

    registration_status = event.registration_status
    if registration_status != 'open':
        return jsonify({
            "error": f"Registration is {registration_status.replace('-', ' ')}",
            "registration_status": registration_status
        }), 400

    try:
        registration = EventRegistration.query.filter_by(event_id=event.event_id, user_id=user.user_id).first()
        if registration is None:
            registration = EventRegistration(
                registration_id=auth_services.formatting_id('ER', EventRegistration, 'registration_id'),
                event_id=event.event_id,
                user_id=user.user_id
            )
            event.registrations.append(registration)
        else:
            # re-registering after a cancellation
            registration.status = 'registered'
            registration.registered_at = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to register: {e}")
        return jsonify({"error": "Failed to register"}), 500

    notify(user.user_id, "Event registration confirmed",
           f'You are registered for "{event.title}" on {event.start_date.isoformat()}.',
           type='event_registration', entity_type='Event', entity_id=event.event_id)

    return jsonify({
        "message": "Successfully registered for event",
        "registration": registration.to_dict(),
        "attendee_count": event.attendee_count
    }), 201


@events.route('/<event_id>/register', methods=['DELETE'])
@login_required
def unregister_from_event(event_id):
    user = get_current_user()
    event = get_event(event_id)
    registration = event.registration_for(user.user_id)
    if registration is None:
        return jsonify({"error": "You are not registered for this event"}), 400

    try:
        registration.status = 'cancelled'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to unregister: {e}")
        return jsonify({"error": "Failed to unregister"}), 500

    return jsonify({"message": "Successfully unregistered from event"}), 200


@events.route('/<event_id>/attendees', methods=['GET'])
@login_required
def list_attendees(event_id):
    user = get_current_user()
    event = get_event(event_id)
    if not can_manage(event, user):
        return jsonify({"error": "Not authorized to view attendees"}), 403

    status = request.args.get('status')
    if status and status not in REGISTRATION_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(REGISTRATION_STATUSES)}"}), 400

    attendees = [
        {
            "registration_id": r.registration_id,
            "user_id": r.user_id,
            "full_name": r.user.full_name,
            "email": r.user.email,
            "registered_at": r.registered_at.isoformat() if r.registered_at else None,
            "status": r.status,
        }
        for r in event.registrations
        if (r.status == status if status else r.status != 'cancelled')
    ]
    return jsonify({"attendees": attendees, "total": len(attendees)}), 200
