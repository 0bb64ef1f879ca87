from datetime import timedelta
from models import db, Notification
from models.base import utcnow
from services import notification_service


def seed(app, user_id, count=3, **kwargs):
    with app.app_context():
        created = notification_service.notify_many([user_id] * count, "Hello", "Message body", **kwargs)
        return [n.notification_id for n in created]


def test_list_and_unread_count(app, client, researcher):
    ids = seed(app, researcher.user_id)
    seed(app, researcher.user_id, count=1, type='system_announcement')

    assert ids[0].startswith('NT-')
    assert len(ids[0].split('-')[-1]) == 5

    response = client.get('/api/notifications', headers=researcher.headers)
    body = response.get_json()
    assert body["unread_count"] == 4
    assert body["pagination"]["total_items"] == 4

    response = client.get('/api/notifications?type=system_announcement', headers=researcher.headers)
    assert response.get_json()["pagination"]["total_items"] == 1


def test_mark_read(app, client, researcher):
    ids = seed(app, researcher.user_id)

    response = client.put(f'/api/notifications/{ids[0]}/read', headers=researcher.headers)
    assert response.status_code == 200
    assert response.get_json()["notification"]["is_read"] is True
    assert response.get_json()["notification"]["read_at"] is not None

    response = client.get('/api/notifications?unread_only=true', headers=researcher.headers)
    assert response.get_json()["pagination"]["total_items"] == 2

    response = client.put('/api/notifications/read-all', headers=researcher.headers)
    assert response.get_json()["updated"] == 2

    response = client.get('/api/notifications/unread-count', headers=researcher.headers)
    assert response.get_json() == {"unread_count": 0}


def test_cannot_touch_others_notifications(app, client, researcher, faculty):
    ids = seed(app, researcher.user_id, count=1)

    assert client.put(f'/api/notifications/{ids[0]}/read', headers=faculty.headers).status_code == 404
    assert client.delete(f'/api/notifications/{ids[0]}', headers=faculty.headers).status_code == 404
    assert client.delete(f'/api/notifications/{ids[0]}', headers=researcher.headers).status_code == 200


def test_announce_to_roles(app, client, admin, researcher, faculty, create_user):
    create_user(role='researcher', is_active=False)

    response = client.post('/api/notifications/announce', headers=admin.headers, json={
        "title": "Maintenance window",
        "message": "The portal will be offline on Sunday.",
        "roles": ["researcher", "faculty"],
        "priority": "high",
    })

    assert response.status_code == 201
    assert response.get_json()["recipients"] == 2
    with app.app_context():
        notification = Notification.query.filter_by(recipient_id=faculty.user_id).one()
        assert notification.type == 'system_announcement'
        assert notification.sender_id == admin.user_id
        assert notification.priority == 'high'


def test_announce_to_user_ids(client, admin, researcher, faculty):
    response = client.post('/api/notifications/announce', headers=admin.headers, json={
        "title": "Hi", "message": "Just you", "user_ids": [faculty.user_id],
    })
    assert response.get_json()["recipients"] == 1


def test_announce_validation(client, admin, researcher):
    response = client.post('/api/notifications/announce', headers=admin.headers,
                           json={"title": "Hi", "message": "x"})
    assert response.status_code == 400

    response = client.post('/api/notifications/announce', headers=admin.headers,
                           json={"title": "Hi", "message": "x", "roles": ["wizard"]})
    assert response.status_code == 400

    response = client.post('/api/notifications/announce', headers=researcher.headers,
                           json={"title": "Hi", "message": "x", "roles": ["faculty"]})
    assert response.status_code == 403


def test_cleanup_old_notifications(app, researcher):
    ids = seed(app, researcher.user_id, count=3)
    with app.app_context():
        old_read, old_unread, recent_read = (db.session.get(Notification, i) for i in ids)
        for notification in (old_read, old_unread):
            notification.created_at = utcnow() - timedelta(days=45)
        old_read.mark_read()
        recent_read.mark_read()
        db.session.commit()

        assert notification_service.cleanup_old_notifications(days_old=30) == 1
        assert Notification.query.count() == 2
