from datetime import date, timedelta
from flask_jwt_extended import create_access_token
from models import db, AuditTrail, Notification, User

REGISTRATION = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "Ada@Example.com",
    "password": "Analytic1",
    "role": "researcher",
}


def test_register_creates_pending_account(app, client, admin):
    response = client.post('/api/auth/register', json=REGISTRATION)

    assert response.status_code == 201
    body = response.get_json()
    assert body["requires_approval"] is True
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["approval_status"] == "pending"
    assert "password_hash" not in body["user"]
    assert body["user"]["user_id"].startswith("US-")

    with app.app_context():
        assert Notification.query.filter_by(recipient_id=admin.user_id,
                                            type='user_registration').count() == 1
        assert AuditTrail.query.filter_by(operation='SIGNUP').count() == 1


def test_register_rejects_duplicate_email(client):
    client.post('/api/auth/register', json=REGISTRATION)
    response = client.post('/api/auth/register', json=dict(REGISTRATION, email="ada@example.com"))

    assert response.status_code == 400
    assert response.get_json()["error"] == "User already exists with this email"


def test_register_cannot_choose_admin_role(client):
    response = client.post('/api/auth/register', json=dict(REGISTRATION, role="admin"))

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "role"


def test_register_reports_weak_password(client):
    response = client.post('/api/auth/register', json=dict(REGISTRATION, password="short"))

    assert response.status_code == 400
    fields = [d["field"] for d in response.get_json()["details"]]
    assert "password" in fields


def test_login_blocked_until_approved(app, client):
    client.post('/api/auth/register', json=REGISTRATION)

    response = client.post('/api/auth/login', json={"email": "ada@example.com", "password": "Analytic1"})
    assert response.status_code == 403
    assert response.get_json()["approval_status"] == "pending"

    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        user.approve(user.user_id)
        db.session.commit()

    response = client.post('/api/auth/login', json={"email": "ada@example.com", "password": "Analytic1"})
    assert response.status_code == 200
    assert response.get_json()["token"]


def test_login_with_wrong_password(client, researcher):
    response = client.post('/api/auth/login', json={"email": researcher.email, "password": "Wrong1234"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid credentials"


def test_login_requires_fields(client):
    response = client.post('/api/auth/login', json={"email": ""})
    assert response.status_code == 400


def test_deactivated_account_cannot_log_in(client, create_user):
    user = create_user(role="student", is_active=False)

    response = client.post('/api/auth/login', json={"email": user.email, "password": user.password})
    assert response.status_code == 401


def test_me_requires_token(client):
    response = client.get('/api/auth/me')

    assert response.status_code == 401
    assert response.get_json() == {"error": "Access denied. No token provided."}


def test_me_returns_profile(client, researcher):
    response = client.get('/api/auth/me', headers=researcher.headers)

    assert response.status_code == 200
    assert response.get_json()["user"]["email"] == researcher.email


def test_update_profile(client, researcher):
    response = client.put('/api/auth/me', headers=researcher.headers, json={
        "first_name": "Grace",
        "profile": {"bio": "Works on compilers", "research_interests": ["languages"]},
    })

    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["first_name"] == "Grace"
    assert user["bio"] == "Works on compilers"
    assert user["research_interests"] == ["languages"]


def test_update_profile_validates_urls(client, researcher):
    response = client.put('/api/auth/me', headers=researcher.headers,
                          json={"profile": {"website": "not a url"}})
    assert response.status_code == 400


def test_change_password(client, researcher):
    response = client.put('/api/auth/change-password', headers=researcher.headers, json={
        "current_password": researcher.password,
        "new_password": "Changed123",
    })
    assert response.status_code == 200

    response = client.post('/api/auth/login', json={"email": researcher.email, "password": "Changed123"})
    assert response.status_code == 200


def test_change_password_checks_current(client, researcher):
    response = client.put('/api/auth/change-password', headers=researcher.headers, json={
        "current_password": "Nope12345",
        "new_password": "Changed123",
    })
    assert response.status_code == 400


def test_logout_revokes_token(app, client, researcher):
    response = client.post('/api/auth/logout', headers=researcher.headers)
    assert response.status_code == 200
    assert len(app.redis_client.keys('blocklist:*')) == 1

    response = client.get('/api/auth/me', headers=researcher.headers)
    assert response.status_code == 401
    assert response.get_json()["error"] == "Token has been revoked."


def token_for(app, user_id, expires_in):
    with app.app_context():
        token = create_access_token(identity=user_id, expires_delta=expires_in)
    return {"Authorization": f"Bearer {token}"}


def test_expired_token_is_rejected_on_protected_routes(app, client, researcher):
    headers = token_for(app, researcher.user_id, timedelta(seconds=-1))

    response = client.get('/api/auth/me', headers=headers)

    assert response.status_code == 401
    assert response.get_json() == {"error": "Token expired."}


def test_optional_auth_serves_stale_tokens_anonymously(app, client, faculty, researcher):
    start = (date.today() + timedelta(days=5)).isoformat()
    response = client.post('/api/events', headers=faculty.headers, json={
        "title": "Open Lab Day",
        "description": "Tour of the institute labs.",
        "type": "other",
        "category": "Public Outreach",
        "start_date": start,
        "end_date": start,
        "status": "published",
    })
    event_id = response.get_json()["event"]["event_id"]

    expired = token_for(app, researcher.user_id, timedelta(seconds=-1))
    response = client.get(f'/api/events/{event_id}', headers=expired)
    assert response.status_code == 200
    assert "is_registered" not in response.get_json()["event"]

    response = client.get(f'/api/events/{event_id}', headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 200

    client.post('/api/auth/logout', headers=researcher.headers)
    response = client.get(f'/api/events/{event_id}', headers=researcher.headers)
    assert response.status_code == 200


def test_token_close_to_expiry_is_refreshed(app, client, researcher):
    headers = token_for(app, researcher.user_id, timedelta(minutes=10))

    response = client.get('/api/auth/me', headers=headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body["user"]["user_id"] == researcher.user_id
    assert body["token"] and body["token"] != headers["Authorization"].split()[1]


def test_fresh_token_is_not_refreshed(client, researcher):
    response = client.get('/api/auth/me', headers=researcher.headers)
    assert "token" not in response.get_json()
