from datetime import timedelta
from sqlalchemy import func
from models import (
    db, User, Employee, Attendance, Contact, Notification, StoredFile, ResearchPaper, PaperAuthor,
    PaperReviewer, Event, EventRegistration, Job, Collaboration, CollaborationMember,
    CollaborationUpdate, Report
)
from models.base import utcnow
from models.user import ROLES, PROFILE_FIELDS
from services.auth_services import formatting_id
from services.errors import APIError


def email_taken(email, exclude_user_id=None):
    query = User.query.filter(func.lower(User.email) == email.strip().lower())
    if exclude_user_id:
        query = query.filter(User.user_id != exclude_user_id)
    return query.first() is not None


def add_new_user(data, role='visitor', approved_by=None):
    """Build a User from a request body and add it to the session. The caller commits."""
    if email_taken(data['email']):
        raise APIError("User already exists with this email", 400)

    new_user = User(
        user_id=formatting_id('US', User, 'user_id'),
        first_name=data['first_name'].strip(),
        last_name=data['last_name'].strip(),
        email=data['email'],
        password=data['password'],
        role=role
    )
    profile = data.get('profile') or {}
    for field in PROFILE_FIELDS:
        if field in profile:
            setattr(new_user, field, profile[field])

    if approved_by is not None:
        new_user.approve(approved_by)
    db.session.add(new_user)
    db.session.flush()
    return new_user


def add_new_employee(data, created_by):
    """Create the User and Employee rows for a new staff member. The caller commits."""
    user = add_new_user(data, role='employee', approved_by=created_by)
    employee = Employee(
        employee_id=formatting_id('EMP', Employee, 'employee_id'),
        user_id=user.user_id,
        employee_code=Employee.next_code(),
        department=data['department'],
        position=data['position'],
        phone=data.get('phone'),
        date_of_joining=data.get('date_of_joining'),
        work_start=data.get('work_start') or '09:00',
        work_end=data.get('work_end') or '17:00',
        manager_id=data.get('manager_id'),
        created_by=created_by
    )
    db.session.add(employee)
    db.session.flush()
    return employee


def apply_profile(user, data):
    """Copy name and profile fields from a request body. `profile` may be nested or flat."""
    for field in ('first_name', 'last_name'):
        if data.get(field):
            setattr(user, field, data[field].strip())
    profile = data.get('profile') if isinstance(data.get('profile'), dict) else data
    user.update_from(profile, PROFILE_FIELDS)


def user_stats():
    by_role = dict(
        db.session.query(User.role, func.count(User.user_id)).group_by(User.role).all()
    )
    since = utcnow() - timedelta(days=30)
    return {
        "total_users": User.query.count(),
        "active_users": User.query.filter_by(is_active=True).count(),
        "pending_approval": User.query.filter_by(approval_status='pending').count(),
        "recent_signups": User.query.filter(User.created_at >= since).count(),
        "by_role": {role: by_role.get(role, 0) for role in ROLES},
    }


def owned_records(user):
    """Counts of the records that keep a user from being hard deleted, by kind."""
    counts = {
        "papers": ResearchPaper.query.filter_by(submitted_by=user.user_id).count(),
        "paper_authorships": PaperAuthor.query.filter_by(user_id=user.user_id).count(),
        "review_assignments": PaperReviewer.query.filter_by(reviewer_id=user.user_id).count(),
        "events": Event.query.filter_by(created_by=user.user_id).count(),
        "event_registrations": EventRegistration.query.filter_by(user_id=user.user_id).count(),
        "jobs": Job.query.filter_by(posted_by=user.user_id).count(),
        "files": StoredFile.query.filter(StoredFile.owner_id == user.user_id,
                                         StoredFile.bucket != 'profile_images').count(),
        "attendance": Attendance.query.filter_by(employee_id=user.employee.employee_id).count()
        if user.employee else 0,
        "collaborations": Collaboration.query.filter_by(initiator_id=user.user_id).count(),
        "collaboration_memberships": CollaborationMember.query.filter_by(user_id=user.user_id).count(),
        "collaboration_updates": CollaborationUpdate.query.filter_by(author_id=user.user_id).count(),
        "reports": Report.query.filter_by(reported_by=user.user_id).count(),
    }
    return {kind: count for kind, count in counts.items() if count}


# Nullable columns that only record who acted on another row
ACTOR_COLUMNS = (
    User.approved_by, Contact.assigned_to, Contact.responded_by, Employee.manager_id,
    Employee.created_by, Attendance.approved_by, Attendance.regularization_reviewed_by,
    Notification.sender_id, ResearchPaper.reviewed_by, ResearchPaper.moderated_by,
    Event.moderated_by, Report.reviewed_by, CollaborationMember.invited_by,
)


def delete_account(user):
    """
    Hard delete a user who owns nothing. Raises a 409 APIError listing the
    owned records otherwise. The caller commits.
    """
    owned = owned_records(user)
    if owned:
        raise APIError("User still owns records. Deactivate the account instead.", 409, owned=owned)

    Notification.query.filter_by(recipient_id=user.user_id).delete()
    StoredFile.query.filter_by(owner_id=user.user_id, bucket='profile_images').delete()
    Report.query.filter_by(type='user', target_id=user.user_id).delete()
    for column in ACTOR_COLUMNS:
        column.class_.query.filter(column == user.user_id).update({column.key: None})
    db.session.delete(user)
    db.session.flush()
