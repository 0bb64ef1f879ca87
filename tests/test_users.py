import io
from PIL import Image
from models import db, User, Notification, StoredFile, Employee


def avatar_upload():
    buffer = io.BytesIO()
    Image.new('RGB', (64, 64), (20, 120, 200)).save(buffer, format='PNG')
    buffer.seek(0)
    return {"image": (buffer, 'me.png', 'image/png')}


def test_directory_lists_active_approved_members(client, admin, create_user, create_employee):
    chemist = create_user(role='faculty', department='Chemistry', institution='ORII')
    create_user(role='researcher', department='Physics')
    create_user(role='researcher', approved=False)
    create_user(role='student', is_active=False)
    create_employee()

    response = client.get('/api/users?limit=50')
    assert response.status_code == 200
    roles = {u["role"] for u in response.get_json()["users"]}
    assert "employee" not in roles
    assert response.get_json()["pagination"]["total_items"] == 3
    assert "email" not in response.get_json()["users"][0]

    response = client.get('/api/users?department=chem')
    assert [u["user_id"] for u in response.get_json()["users"]] == [chemist.user_id]

    response = client.get('/api/users?role=researcher')
    assert [u["department"] for u in response.get_json()["users"]] == ["Physics"]

    response = client.get('/api/users?search=orii')
    assert [u["user_id"] for u in response.get_json()["users"]] == [chemist.user_id]


def test_public_profile_hides_inactive_users(client, create_user):
    active = create_user(role='researcher')
    inactive = create_user(role='researcher', is_active=False)

    assert client.get(f'/api/users/{active.user_id}').status_code == 200
    assert client.get(f'/api/users/{inactive.user_id}').status_code == 404


def test_stats_require_admin(client, admin, researcher, create_user):
    create_user(role='student', approved=False)

    assert client.get('/api/users/stats', headers=researcher.headers).status_code == 403

    response = client.get('/api/users/stats', headers=admin.headers)
    stats = response.get_json()["stats"]
    assert stats["total_users"] == 3
    assert stats["pending_approval"] == 1
    assert stats["by_role"]["researcher"] == 1


def test_admin_updates_user(client, admin, researcher):
    response = client.put(f'/api/users/{researcher.user_id}', headers=admin.headers, json={
        "first_name": "Rosalind",
        "role": "faculty",
        "profile": {"department": "Biophysics"},
    })

    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["first_name"] == "Rosalind"
    assert user["role"] == "faculty"
    assert user["department"] == "Biophysics"

    response = client.put(f'/api/users/{researcher.user_id}', headers=admin.headers, json={"role": "wizard"})
    assert response.status_code == 400

    response = client.put(f'/api/users/{researcher.user_id}', headers=researcher.headers, json={"first_name": "X"})
    assert response.status_code == 403


def test_hard_delete_user_without_records(app, client, admin, create_user):
    member = create_user(role='student')
    response = client.post('/api/files/upload/profile-image', headers=member.headers,
                           data=avatar_upload(), content_type='multipart/form-data')
    assert response.status_code == 201
    with app.app_context():
        db.session.get(User, admin.user_id).approved_by = member.user_id
        db.session.add(Notification(notification_id='NT-20260101-00001', recipient_id=member.user_id,
                                    type='general', title='Hello', message='Welcome'))
        db.session.commit()

    response = client.delete(f'/api/users/{member.user_id}', headers=admin.headers)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, member.user_id) is None
        assert Notification.query.filter_by(recipient_id=member.user_id).count() == 0
        assert StoredFile.query.filter_by(owner_id=member.user_id).count() == 0
        assert db.session.get(User, admin.user_id).approved_by is None


def test_delete_user_who_owns_records_is_conflict(app, client, admin, researcher, paper_payload):
    client.post('/api/papers', headers=researcher.headers, json=paper_payload)

    response = client.delete(f'/api/users/{researcher.user_id}', headers=admin.headers)

    assert response.status_code == 409
    body = response.get_json()
    assert body["error"] == "User still owns records. Deactivate the account instead."
    assert body["owned"]["papers"] == 1
    assert body["owned"]["paper_authorships"] == 1
    with app.app_context():
        assert db.session.get(User, researcher.user_id) is not None


def test_delete_employee_removes_staff_record(app, client, admin, employee):
    response = client.delete(f'/api/users/{employee.user_id}', headers=admin.headers)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Employee, employee.employee_id) is None


def test_admin_accounts_cannot_be_deleted(client, admin, create_user):
    other_admin = create_user(role='admin')

    response = client.delete(f'/api/users/{other_admin.user_id}', headers=admin.headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Admin accounts cannot be deleted"


def test_delete_requires_admin(client, researcher, faculty):
    response = client.delete(f'/api/users/{faculty.user_id}', headers=researcher.headers)
    assert response.status_code == 403

    response = client.delete('/api/users/US-00000000-0000', headers=researcher.headers)
    assert response.status_code == 403
