from datetime import datetime, timedelta
import pytest
from models import db, Event, EventRegistration, Notification, User
from services import scheduler
from services.auth_services import formatting_id


@pytest.mark.parametrize("hours, expected", [
    (0.5, '1_hour'),
    (1, '1_hour'),
    (5, '24_hours'),
    (24, '24_hours'),
    (100, '1_week'),
    (200, None),
    (-1, None),
])
def test_due_reminder_picks_tightest_window(hours, expected):
    assert scheduler.due_reminder(hours) == expected


def make_event(creator_id, start, status='published', end=None):
    event = Event(
        event_id=formatting_id('EV', Event, 'event_id'),
        title="Seminar on Wetlands",
        description="Talk",
        type='seminar',
        category='Research',
        start_date=start.date(),
        end_date=(end or start).date(),
        start_time=start.strftime('%H:%M'),
        end_time=(end or start + timedelta(hours=2)).strftime('%H:%M'),
        timezone='UTC',
        status=status,
        created_by=creator_id
    )
    db.session.add(event)
    db.session.flush()
    return event


def register(event, user_id):
    registration = EventRegistration(
        registration_id=formatting_id('ER', EventRegistration, 'registration_id'),
        event_id=event.event_id,
        user_id=user_id
    )
    event.registrations.append(registration)
    db.session.flush()
    return registration


def test_event_reminders_sent_once_per_window(app, faculty, researcher):
    now = datetime(2030, 5, 1, 8, 0)
    with app.app_context():
        event = make_event(faculty.user_id, datetime(2030, 5, 1, 20, 0))
        registration = register(event, researcher.user_id)
        cancelled = register(event, faculty.user_id)
        cancelled.status = 'cancelled'
        db.session.commit()

        assert scheduler.send_event_reminders(now=now) == 1
        assert registration.reminders_sent == ['24_hours']
        assert scheduler.send_event_reminders(now=now + timedelta(minutes=30)) == 0

        # within the last hour the tighter reminder goes out
        assert scheduler.send_event_reminders(now=datetime(2030, 5, 1, 19, 15)) == 1
        assert registration.reminders_sent == ['24_hours', '1_hour']

        notifications = Notification.query.filter_by(recipient_id=researcher.user_id,
                                                     type='event_reminder').all()
        assert sorted(n.data["reminder_type"] for n in notifications) == ['1_hour', '24_hours']
        assert Notification.query.filter_by(recipient_id=faculty.user_id).count() == 0


def test_no_reminders_for_drafts_or_distant_events(app, faculty, researcher):
    now = datetime(2030, 5, 1, 8, 0)
    with app.app_context():
        draft = make_event(faculty.user_id, datetime(2030, 5, 1, 12, 0), status='draft')
        distant = make_event(faculty.user_id, datetime(2030, 6, 1, 12, 0))
        register(draft, researcher.user_id)
        register(distant, researcher.user_id)
        db.session.commit()

        assert scheduler.send_event_reminders(now=now) == 0


def test_complete_past_events(app, faculty):
    now = datetime(2030, 5, 10, 12, 0)
    with app.app_context():
        past = make_event(faculty.user_id, datetime(2030, 5, 1, 9, 0))
        today = make_event(faculty.user_id, datetime(2030, 5, 10, 9, 0), end=datetime(2030, 5, 10, 18, 0))
        future = make_event(faculty.user_id, datetime(2030, 5, 20, 9, 0))
        db.session.commit()

        assert scheduler.complete_past_events(now=now) == 1
        assert past.status == 'completed'
        assert today.status == 'published'
        assert future.status == 'published'


def test_update_to_inactive(app, admin, researcher, faculty):
    now = datetime(2030, 1, 1)
    with app.app_context():
        stale = db.session.get(User, researcher.user_id)
        stale.last_login = now - timedelta(days=200)
        recent = db.session.get(User, faculty.user_id)
        recent.last_login = now - timedelta(days=10)
        stale_admin = db.session.get(User, admin.user_id)
        stale_admin.last_login = now - timedelta(days=400)
        db.session.commit()

        assert scheduler.update_to_inactive(180, now=now) == 1
        db.session.expire_all()
        assert db.session.get(User, researcher.user_id).is_active is False
        assert db.session.get(User, faculty.user_id).is_active is True
        assert db.session.get(User, admin.user_id).is_active is True


def test_scheduled_job_failures_are_contained(app, caplog):
    def broken():
        raise RuntimeError("boom")

    scheduler._in_context(app, broken)()

    assert "Scheduled job broken failed: boom" in caplog.text
