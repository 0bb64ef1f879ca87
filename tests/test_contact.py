import logging
import pytest
from models import db, Contact, Notification


@pytest.fixture
def contact_payload():
    return {
        "name": "Priya Sharma",
        "email": "priya@example.com",
        "subject": "Collaboration on soil sensors",
        "message": "We would like to explore a joint project on low-cost soil sensors.",
        "category": "collaboration",
    }


def submit(client, payload):
    response = client.post('/api/contact', json=payload)
    assert response.status_code == 201
    return response.get_json()["contact_id"]


def test_submit_notifies_admins(app, client, admin, contact_payload):
    contact_id = submit(client, contact_payload)

    assert contact_id.startswith("CT-")
    with app.app_context():
        notification = Notification.query.filter_by(recipient_id=admin.user_id).one()
        assert notification.entity_id == contact_id


def test_submit_validation(client):
    response = client.post('/api/contact', json={
        "name": "A", "email": "nope", "subject": "Hi", "message": "short", "category": "gossip",
    })

    assert response.status_code == 400
    fields = {d["field"] for d in response.get_json()["details"]}
    assert fields == {"email", "message", "category"}


def test_link_heavy_messages_are_spam(app, client, admin, contact_payload):
    submit(client, dict(contact_payload, message="Buy now http://a.example and https://b.example"))

    response = client.get('/api/contact', headers=admin.headers)
    assert response.get_json()["contacts"] == []

    response = client.get('/api/contact?include_spam=true', headers=admin.headers)
    assert response.get_json()["contacts"][0]["is_spam"] is True

    with app.app_context():
        assert Notification.query.count() == 0


def test_listing_requires_admin(client, researcher):
    assert client.get('/api/contact', headers=researcher.headers).status_code == 403
    assert client.get('/api/contact').status_code == 401


def test_admin_workflow(client, admin, contact_payload):
    contact_id = submit(client, contact_payload)

    response = client.put(f'/api/contact/{contact_id}/status', headers=admin.headers,
                          json={"status": "in-progress", "priority": "high"})
    assert response.status_code == 200
    assert response.get_json()["contact"]["priority"] == "high"

    response = client.put(f'/api/contact/{contact_id}/status', headers=admin.headers,
                          json={"status": "pending"})
    assert response.status_code == 400

    response = client.post(f'/api/contact/{contact_id}/respond', headers=admin.headers,
                           json={"message": "Thanks, our team will reach out."})
    assert response.status_code == 200
    body = response.get_json()
    assert body["email_sent"] is True
    assert body["contact"]["status"] == "resolved"
    assert body["contact"]["responded_by"] == admin.user_id

    response = client.get('/api/contact/stats', headers=admin.headers)
    stats = response.get_json()["stats"]
    assert stats["total"] == 1
    assert stats["by_status"] == {"resolved": 1}
    assert stats["by_category"] == {"collaboration": 1}

    response = client.put(f'/api/contact/{contact_id}/archive', headers=admin.headers, json={})
    assert response.get_json()["contact"]["is_archived"] is True
    assert client.get('/api/contact', headers=admin.headers).get_json()["contacts"] == []

    response = client.delete(f'/api/contact/{contact_id}', headers=admin.headers)
    assert response.status_code == 200
    assert client.get(f'/api/contact/{contact_id}', headers=admin.headers).status_code == 404


def test_respond_requires_message(client, admin, contact_payload):
    contact_id = submit(client, contact_payload)
    response = client.post(f'/api/contact/{contact_id}/respond', headers=admin.headers, json={})
    assert response.status_code == 400


def test_source_must_be_known(app, client, contact_payload):
    response = client.post('/api/contact', json=dict(contact_payload, source="carrier-pigeon"))
    assert response.status_code == 400
    assert [d["field"] for d in response.get_json()["details"]] == ["source"]

    contact_id = submit(client, dict(contact_payload, source="api"))
    with app.app_context():
        assert db.session.get(Contact, contact_id).source == "api"


def test_storage_failure_returns_generic_error(app, client, contact_payload, monkeypatch, caplog):
    def broken_commit():
        raise RuntimeError("connection to db-internal:5432 refused")

    monkeypatch.setattr(db.session, 'commit', broken_commit)
    with caplog.at_level(logging.ERROR, logger='routes.contact'):
        response = client.post('/api/contact', json=contact_payload)

    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to submit contact form"}
    assert "db-internal" in caplog.text
