from datetime import datetime, time
import pytz
from models import db
from models.base import BaseModel, utcnow

EVENT_TYPES = (
    'conference', 'workshop', 'seminar', 'webinar', 'symposium', 'lecture',
    'meeting', 'training', 'networking', 'other'
)
EVENT_CATEGORIES = (
    'Research', 'Academic', 'Professional Development', 'Networking',
    'Technology', 'Innovation', 'Industry Collaboration', 'Student Event',
    'Public Outreach', 'Other'
)
VENUE_TYPES = ('physical', 'virtual', 'hybrid')
EVENT_STATUSES = ('draft', 'published', 'cancelled', 'completed')
REGISTRATION_STATUSES = ('registered', 'attended', 'cancelled')

# reminder type -> lead time before the event start, in hours
REMINDER_WINDOWS = {
    '1_week': 24 * 7,
    '24_hours': 24,
    '1_hour': 1,
}


def _parse_hhmm(value, fallback):
    if not value:
        return fallback
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


class Event(BaseModel):
    __tablename__ = 'events'

    event_id = db.Column(db.String(20), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(5000), nullable=False)
    short_description = db.Column(db.String(300))
    type = db.Column(db.String(30), nullable=False)
    category = db.Column(db.String(40), nullable=False)

    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5))
    end_time = db.Column(db.String(5))
    timezone = db.Column(db.String(50), nullable=False, default='Asia/Kolkata')

    venue_type = db.Column(db.String(20), nullable=False, default='physical')
    venue_name = db.Column(db.String(200))
    venue_address = db.Column(db.JSON, default=dict)
    virtual_link = db.Column(db.String(500))
    venue_capacity = db.Column(db.Integer)

    organizers = db.Column(db.JSON, default=list)
    speakers = db.Column(db.JSON, default=list)
    agenda = db.Column(db.JSON, default=list)
    tags = db.Column(db.JSON, default=list)

    registration_required = db.Column(db.Boolean, nullable=False, default=True)
    registration_deadline = db.Column(db.DateTime)
    registration_fee = db.Column(db.Float, nullable=False, default=0)
    registration_currency = db.Column(db.String(3), nullable=False, default='INR')
    max_attendees = db.Column(db.Integer)

    status = db.Column(db.String(20), nullable=False, default='draft', index=True)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    is_moderated = db.Column(db.Boolean, nullable=False, default=False)
    moderated_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    moderated_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    creator = db.relationship('User', foreign_keys=[created_by])
    registrations = db.relationship('EventRegistration', back_populates='event',
                                    cascade='all, delete-orphan')

    def _as_utc(self, day, at):
        tz = pytz.timezone(self.timezone or 'UTC')
        local = tz.localize(datetime.combine(day, at))
        return local.astimezone(pytz.utc).replace(tzinfo=None)

    @property
    def starts_at(self):
        return self._as_utc(self.start_date, _parse_hhmm(self.start_time, time(0, 0)))

    @property
    def ends_at(self):
        return self._as_utc(self.end_date, _parse_hhmm(self.end_time, time(23, 59)))

    @property
    def attendee_count(self):
        return sum(1 for r in self.registrations if r.status != 'cancelled')

    @property
    def event_status(self):
        if self.status == 'cancelled':
            return 'cancelled'
        now = utcnow()
        if now < self.starts_at:
            return 'upcoming'
        if now <= self.ends_at:
            return 'ongoing'
        return 'completed'

    @property
    def registration_status(self):
        if not self.registration_required:
            return 'not-required'
        now = utcnow()
        if self.registration_deadline and now > self.registration_deadline:
            return 'closed'
        if now >= self.starts_at:
            return 'closed'
        if self.max_attendees and self.attendee_count >= self.max_attendees:
            return 'full'
        return 'open'

    def registration_for(self, user_id):
        for registration in self.registrations:
            if registration.user_id == user_id and registration.status != 'cancelled':
                return registration
        return None

    def to_dict(self):
        data = super().to_dict()
        data.update({
            "event_status": self.event_status,
            "registration_status": self.registration_status,
            "attendee_count": self.attendee_count,
        })
        if self.creator is not None:
            data['creator'] = {"user_id": self.creator.user_id, "full_name": self.creator.full_name}
        return data


class EventRegistration(BaseModel):
    __tablename__ = 'event_registrations'

    registration_id = db.Column(db.String(20), primary_key=True)
    event_id = db.Column(db.String(20), db.ForeignKey('events.event_id'), nullable=False, index=True)
    user_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False, index=True)
    registered_at = db.Column(db.DateTime, default=utcnow)
    status = db.Column(db.String(20), nullable=False, default='registered')
    reminders_sent = db.Column(db.JSON, default=list)

    event = db.relationship('Event', back_populates='registrations')
    user = db.relationship('User')

    def reminder_sent(self, reminder_type):
        return reminder_type in (self.reminders_sent or [])

    def record_reminder(self, reminder_type):
        # reassign so the JSON column is flagged dirty
        self.reminders_sent = list(self.reminders_sent or []) + [reminder_type]
