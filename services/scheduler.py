import logging
import time
from datetime import timedelta
import schedule
from models import db, User, Event
from models.base import utcnow
from models.event import REMINDER_WINDOWS
from services import mail
from services.notification_service import build_notification, cleanup_old_notifications

logger = logging.getLogger(__name__)


def due_reminder(hours_until):
    """The tightest reminder window the event start falls in, or None."""
    if hours_until <= 0:
        return None
    for reminder_type, hours in sorted(REMINDER_WINDOWS.items(), key=lambda item: item[1]):
        if hours_until <= hours:
            return reminder_type
    return None


def send_event_reminders(now=None):
    """Remind registered attendees of published events starting within a week."""
    now = now or utcnow()
    horizon = (now + timedelta(hours=max(REMINDER_WINDOWS.values()))).date()
    events = Event.query.filter(
        Event.status == 'published',
        Event.start_date >= (now - timedelta(days=1)).date(),
        Event.start_date <= horizon
    ).all()

    sent = 0
    for event in events:
        hours_until = (event.starts_at - now).total_seconds() / 3600
        reminder_type = due_reminder(hours_until)
        if reminder_type is None:
            continue

        for registration in event.registrations:
            if registration.status != 'registered' or registration.reminder_sent(reminder_type):
                continue
            user = registration.user
            build_notification(
                user.user_id,
                f"Reminder: {event.title}",
                f"{event.title} starts in {reminder_type.replace('_', ' ')}.",
                type='event_reminder',
                entity_type='Event',
                entity_id=event.event_id,
                data={"reminder_type": reminder_type},
                priority='high' if reminder_type == '1_hour' else 'medium'
            )
            registration.record_reminder(reminder_type)
            db.session.commit()
            mail.send_event_reminder(user, event, reminder_type)
            sent += 1

    logger.info(f"Sent {sent} event reminders for {len(events)} upcoming events")
    return sent


def complete_past_events(now=None):
    """Mark published events that have ended as completed."""
    now = now or utcnow()
    completed = 0
    for event in Event.query.filter(Event.status == 'published', Event.end_date <= now.date()).all():
        if event.ends_at < now:
            event.status = 'completed'
            completed += 1
    db.session.commit()
    logger.info(f"Marked {completed} events as completed")
    return completed


def update_to_inactive(days=180, now=None):
    """Deactivate non-admin accounts whose last login is older than `days`."""
    now = now or utcnow()
    logger.info('Updating the status of long-unused accounts to inactive')
    updated = User.query.filter(
        User.is_active.is_(True),
        User.role != 'admin',
        User.last_login.isnot(None),
        User.last_login <= now - timedelta(days=days)
    ).update({"is_active": False}, synchronize_session=False)
    db.session.commit()
    return updated


def _in_context(app, job, *args):
    def run():
        with app.app_context():
            try:
                job(*args)
            except Exception as e:
                db.session.rollback()
                logger.error(f"Scheduled job {job.__name__} failed: {e}", exc_info=True)
    return run


def register_jobs(app):
    schedule.every().hour.at(":00").do(_in_context(app, send_event_reminders))
    schedule.every().day.at("00:00").do(_in_context(app, complete_past_events))
    schedule.every().day.at("00:10").do(
        _in_context(app, update_to_inactive, app.config['INACTIVE_ACCOUNT_DAYS'])
    )
    schedule.every().day.at("00:20").do(_in_context(app, cleanup_old_notifications))


def run_scheduler():
    while True:
        schedule.run_pending()
        time.sleep(60)  # Check every minute
