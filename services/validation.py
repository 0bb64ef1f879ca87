import re
from datetime import datetime, timezone
import pytz
from services.errors import ValidationError
from services.auth_services import validate_password, validate_email
from models.user import SELF_REGISTER_ROLES
from models.research_paper import FIELDS, RESEARCH_TYPES, METHODOLOGIES, AUTHOR_ROLES
from models.event import EVENT_TYPES, EVENT_CATEGORIES, VENUE_TYPES, EVENT_STATUSES
from models.job import JOB_TYPES, EXPERIENCE_LEVELS, EXPERIENCE_TYPES
from models.contact import CATEGORIES, PRIORITIES, SOURCES
from models.employee import DEPARTMENTS, EMPLOYMENT_STATUSES
from models.collaboration import (
    COLLABORATION_TYPES, COLLABORATION_STATUSES, VISIBILITIES, MEMBER_ROLES,
    MILESTONE_STATUSES, UPDATE_TYPES
)
from models.report import REPORT_TYPES, REASONS

TIME_REGEX = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')
PHONE_REGEX = re.compile(r'^\+?[\d\s\-()]{7,20}$')
URL_REGEX = re.compile(r'^https?://\S+$')


def parse_date(value):
    return datetime.strptime(value[:10], '%Y-%m-%d').date()


def parse_datetime(value):
    value = value.replace('Z', '+00:00')
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class Validator:
    """Collects field errors for a request body; check() raises them together."""

    def __init__(self, data, partial=False):
        self.data = data or {}
        self.partial = partial
        self.errors = []

    def error(self, field, message):
        self.errors.append({"field": field, "message": message})

    def present(self, field):
        value = self.data.get(field)
        return value is not None and value != ''

    def required(self, *fields):
        if self.partial:
            return self
        for field in fields:
            value = self.data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                self.error(field, f"{field} is required")
        return self

    def max_length(self, field, limit):
        value = self.data.get(field)
        if isinstance(value, str) and len(value.strip()) > limit:
            self.error(field, f"{field} cannot exceed {limit} characters")
        return self

    def one_of(self, field, choices):
        if self.present(field) and self.data[field] not in choices:
            self.error(field, f"{field} must be one of: {', '.join(choices)}")
        return self

    def email(self, field='email'):
        if self.present(field) and not validate_email(str(self.data[field])):
            self.error(field, "Please provide a valid email")
        return self

    def phone(self, field='phone'):
        if self.present(field) and not PHONE_REGEX.match(str(self.data[field])):
            self.error(field, "Please provide a valid phone number")
        return self

    def url(self, field):
        if self.present(field) and not URL_REGEX.match(str(self.data[field])):
            self.error(field, f"{field} must be a valid URL")
        return self

    def timezone(self, field='timezone'):
        if self.present(field) and str(self.data[field]) not in pytz.all_timezones_set:
            self.error(field, f"{field} must be a valid IANA timezone such as Asia/Kolkata")
        return self

    def clock(self, field):
        if self.present(field) and not TIME_REGEX.match(str(self.data[field])):
            self.error(field, f"{field} must be in HH:MM format")
        return self

    def number(self, field, minimum=None):
        if not self.present(field):
            return self
        try:
            value = float(self.data[field])
        except (TypeError, ValueError):
            self.error(field, f"{field} must be a number")
            return self
        if minimum is not None and value < minimum:
            self.error(field, f"{field} must be at least {minimum}")
        return self

    def string_list(self, field, item_limit=None):
        if not self.present(field):
            return self
        value = self.data[field]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.error(field, f"{field} must be a list of strings")
        elif item_limit and any(len(v) > item_limit for v in value):
            self.error(field, f"Each {field} entry cannot exceed {item_limit} characters")
        return self

    def date(self, field):
        if not self.present(field):
            return None
        try:
            return parse_date(str(self.data[field]))
        except ValueError:
            self.error(field, f"{field} must be a valid date (YYYY-MM-DD)")
            return None

    def datetime(self, field):
        if not self.present(field):
            return None
        try:
            return parse_datetime(str(self.data[field]))
        except ValueError:
            self.error(field, f"{field} must be a valid ISO 8601 date")
            return None

    def check(self):
        if self.errors:
            raise ValidationError(self.errors)


def validate_registration(data):
    v = Validator(data)
    v.required('first_name', 'last_name', 'email', 'password')
    v.max_length('first_name', 50).max_length('last_name', 50)
    v.email('email')
    v.one_of('role', SELF_REGISTER_ROLES)
    if v.present('password'):
        password_error = validate_password(data['password'])
        if password_error:
            v.error('password', password_error)
    v.check()


def validate_profile(data):
    v = Validator(data, partial=True)
    v.max_length('first_name', 50).max_length('last_name', 50)
    v.max_length('bio', 1000).max_length('title', 100)
    v.max_length('department', 100).max_length('institution', 100)
    v.string_list('research_interests', item_limit=50)
    v.url('website').url('linkedin')
    v.check()


def validate_paper(data, partial=False):
    v = Validator(data, partial=partial)
    v.required('title', 'abstract', 'field', 'research_type')
    v.max_length('title', 300).max_length('abstract', 3000).max_length('subfield', 100)
    v.one_of('field', tuple(FIELDS)).one_of('research_type', RESEARCH_TYPES)
    v.one_of('methodology', METHODOLOGIES)
    v.string_list('keywords', item_limit=100)
    v.check()


def validate_author(data):
    v = Validator(data)
    v.required('name')
    v.email('email')
    v.max_length('affiliation', 200).max_length('contribution', 500)
    v.one_of('role', tuple(r for r in AUTHOR_ROLES if r != 'primary_author'))
    v.check()


def validate_event(data, partial=False):
    """Validate an event body; returns the parsed dates and deadline."""
    v = Validator(data, partial=partial)
    v.required('title', 'description', 'type', 'category', 'start_date', 'end_date')
    v.max_length('title', 200).max_length('description', 5000)
    v.max_length('short_description', 300)
    v.one_of('type', EVENT_TYPES).one_of('category', EVENT_CATEGORIES)
    v.one_of('venue_type', VENUE_TYPES).one_of('status', EVENT_STATUSES)
    v.clock('start_time').clock('end_time')
    v.timezone()
    v.url('virtual_link')
    v.number('registration_fee', minimum=0).number('max_attendees', minimum=1)
    v.number('venue_capacity', minimum=1)
    v.string_list('tags', item_limit=50)
    parsed = {
        'start_date': v.date('start_date'),
        'end_date': v.date('end_date'),
        'registration_deadline': v.datetime('registration_deadline'),
    }
    if parsed['start_date'] and parsed['end_date'] and parsed['end_date'] < parsed['start_date']:
        v.error('end_date', "End date must be after start date")
    if data.get('venue_type') in ('virtual', 'hybrid') and not partial and not v.present('virtual_link'):
        v.error('virtual_link', "virtual_link is required for virtual and hybrid events")
    v.check()
    return {k: val for k, val in parsed.items() if val is not None}


def validate_job(data, partial=False):
    v = Validator(data, partial=partial)
    v.required('title', 'department', 'location', 'type', 'experience', 'description')
    v.max_length('title', 200)
    v.one_of('type', JOB_TYPES).one_of('experience', EXPERIENCE_LEVELS)
    v.number('salary_min', minimum=0).number('salary_max', minimum=0)
    v.string_list('requirements').string_list('responsibilities').string_list('skills')
    deadline = v.datetime('application_deadline')
    if v.present('salary_min') and v.present('salary_max') and not v.errors:
        if float(data['salary_min']) > float(data['salary_max']):
            v.error('salary_max', "salary_max must not be lower than salary_min")
    v.check()
    return {'application_deadline': deadline} if deadline else {}


def validate_application(data):
    v = Validator(data)
    v.required('full_name', 'email', 'phone', 'experience_type')
    v.max_length('full_name', 100)
    v.email('email').phone('phone')
    v.one_of('experience_type', EXPERIENCE_TYPES)
    v.number('experience_years', minimum=0).number('expected_salary', minimum=0)
    v.max_length('cover_letter', 2000)
    v.check()


def validate_contact(data):
    v = Validator(data)
    v.required('name', 'email', 'subject', 'message', 'category')
    v.max_length('name', 100).max_length('organization', 100)
    v.max_length('subject', 200).max_length('message', 2000)
    v.email('email').phone('phone')
    v.one_of('category', CATEGORIES).one_of('priority', PRIORITIES).one_of('source', SOURCES)
    if v.present('message') and len(data['message'].strip()) < 10:
        v.error('message', "Message must be at least 10 characters")
    v.check()


def validate_employee(data, partial=False):
    """Validate an employee body; returns the parsed joining date."""
    v = Validator(data, partial=partial)
    if not partial:
        v.required('first_name', 'last_name', 'email', 'password', 'department', 'position')
        v.email('email')
        if v.present('password'):
            password_error = validate_password(data['password'])
            if password_error:
                v.error('password', password_error)
    v.max_length('first_name', 50).max_length('last_name', 50).max_length('position', 100)
    v.one_of('department', DEPARTMENTS).one_of('employment_status', EMPLOYMENT_STATUSES)
    v.phone('phone')
    v.clock('work_start').clock('work_end')
    joined = v.date('date_of_joining')
    v.check()
    return {'date_of_joining': joined} if joined else {}


def validate_collaboration(data, partial=False):
    """Validate a collaboration body; returns the parsed timeline dates."""
    v = Validator(data, partial=partial)
    v.required('title', 'description', 'type')
    v.max_length('title', 200).max_length('description', 2000)
    v.max_length('funding_source', 200)
    v.one_of('type', COLLABORATION_TYPES).one_of('status', COLLABORATION_STATUSES)
    v.one_of('visibility', VISIBILITIES)
    v.string_list('research_areas', item_limit=100).string_list('keywords', item_limit=50)
    v.string_list('tags', item_limit=30)
    v.number('funding_amount', minimum=0)
    if v.present('resources') and not isinstance(data['resources'], dict):
        v.error('resources', "resources must be an object")
    links = data.get('links')
    if links is not None:
        if not isinstance(links, list):
            v.error('links', "links must be a list")
        elif any(not isinstance(link, dict) or not link.get('title')
                 or not URL_REGEX.match(str(link.get('url', ''))) for link in links):
            v.error('links', "Each link needs a title and a valid URL")
    parsed = {
        'start_date': v.date('start_date'),
        'expected_end_date': v.date('expected_end_date'),
    }
    if parsed['start_date'] and parsed['expected_end_date'] \
            and parsed['expected_end_date'] < parsed['start_date']:
        v.error('expected_end_date', "Expected end date must be after start date")
    v.check()
    return {k: val for k, val in parsed.items() if val is not None}


def validate_invitation(data):
    v = Validator(data)
    v.required('email')
    v.email('email')
    v.one_of('role', MEMBER_ROLES)
    v.max_length('contribution', 500)
    permissions = data.get('permissions')
    if permissions is not None and not isinstance(permissions, dict):
        v.error('permissions', "permissions must be an object")
    v.check()


def validate_milestone(data):
    """Validate a new milestone; returns the parsed due date."""
    v = Validator(data)
    v.required('title')
    v.max_length('title', 100).max_length('description', 500)
    v.one_of('status', MILESTONE_STATUSES)
    v.string_list('assigned_to')
    due_date = v.date('due_date')
    v.check()
    return {'due_date': due_date} if due_date else {}


def validate_collaboration_update(data):
    v = Validator(data)
    v.required('title', 'content')
    v.max_length('title', 150).max_length('content', 2000)
    v.one_of('type', UPDATE_TYPES)
    attachments = data.get('attachments')
    if attachments is not None:
        if not isinstance(attachments, list) or any(
                not isinstance(a, dict) or not a.get('name') or not a.get('url') for a in attachments):
            v.error('attachments', "Each attachment needs a name and a url")
    v.check()


def validate_report(data):
    v = Validator(data)
    v.required('type', 'target_id', 'reason')
    v.one_of('type', REPORT_TYPES).one_of('reason', REASONS)
    v.max_length('description', 1000)
    v.check()
