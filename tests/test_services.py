from datetime import date, datetime
import pytest
from models import db, AuditTrail, User
from services import auth_services, user_srv
from services.errors import APIError, ValidationError
from services.validation import Validator, parse_datetime, validate_registration


def test_formatting_id_sequences_within_a_day(app):
    today = datetime.now().strftime('%Y%m%d')
    with app.app_context():
        first = auth_services.formatting_id('US', User, 'user_id')
        assert first == f'US-{today}-0001'

        user_srv.add_new_user({"first_name": "A", "last_name": "B",
                               "email": "a@example.com", "password": "Secret123"})
        assert auth_services.formatting_id('US', User, 'user_id') == f'US-{today}-0002'
        assert auth_services.formatting_id('AUD', AuditTrail, 'audit_id') == f'AUD-{today}-00001'
        db.session.rollback()


def test_audit_trail_records_actor(app, researcher):
    with app.app_context():
        user = db.session.get(User, researcher.user_id)
        auth_services.audit(user, 'User', user.user_id, 'UPDATE', 'Changed something')

        entry = AuditTrail.query.one()
        assert entry.email == researcher.email
        assert entry.role == 'researcher'
        assert entry.operation == 'UPDATE'


@pytest.mark.parametrize("password, message", [
    ("Ab1", "Password must be at least 6 characters long."),
    ("abcdef1", "Password must contain at least one uppercase letter."),
    ("ABCDEF1", "Password must contain at least one lowercase letter."),
    ("Abcdefg", "Password must contain at least one number."),
    ("Abcdef1", None),
])
def test_validate_password(password, message):
    assert auth_services.validate_password(password) == message


def test_validator_collects_every_error():
    v = Validator({"email": "nope", "size": "big", "tags": "x", "when": "tomorrow"})
    v.required('email', 'name').email('email').number('size').string_list('tags')
    assert v.date('when') is None

    with pytest.raises(ValidationError) as error:
        v.check()

    fields = [d["field"] for d in error.value.details]
    assert fields == ['name', 'email', 'size', 'tags', 'when']
    assert error.value.status_code == 400


def test_partial_validator_skips_required():
    v = Validator({"title": "ok"}, partial=True)
    v.required('title', 'abstract')
    v.check()


def test_validator_parses_dates():
    v = Validator({"day": "2024-02-29", "at": "2024-02-29T10:00:00+05:30"})
    assert v.date('day') == date(2024, 2, 29)
    assert v.datetime('at') == datetime(2024, 2, 29, 4, 30)


def test_parse_datetime_keeps_naive_values():
    assert parse_datetime("2024-01-01T12:00:00") == datetime(2024, 1, 1, 12, 0)
    assert parse_datetime("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, 0)


def test_registration_validation_message():
    with pytest.raises(ValidationError) as error:
        validate_registration({"first_name": "A", "last_name": "B", "email": "a@b.co", "password": "x"})
    assert error.value.to_dict()["error"] == "Validation failed"


def test_duplicate_user_raises(app, researcher):
    with app.app_context():
        with pytest.raises(APIError) as error:
            user_srv.add_new_user({"first_name": "A", "last_name": "B",
                                   "email": researcher.email.upper(), "password": "Secret123"})
        assert error.value.status_code == 400


def test_api_error_extra_fields():
    error = APIError("Nope", 409, details=[{"field": "x"}], hint="try later")
    assert error.to_dict() == {"error": "Nope", "details": [{"field": "x"}], "hint": "try later"}


def test_health(client):
    response = client.get('/api/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "OK"
    assert body["database"] == "connected"
    assert body["timestamp"]


def test_index(client):
    assert client.get('/').get_json() == {"message": "API is running"}


def test_unknown_route_is_json_404(client):
    response = client.get('/api/nowhere')

    assert response.status_code == 404
    assert response.get_json() == {"error": "Resource not found", "path": "/api/nowhere"}


def test_wrong_method_is_json_405(client):
    response = client.delete('/api/health')

    assert response.status_code == 405
    assert response.get_json()["error"] == "Method not allowed"


def test_invalid_token(client):
    response = client.get('/api/auth/me', headers={"Authorization": "Bearer not.a.token"})

    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid token."}


def test_cli_create_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['create-admin', '--email', 'root@example.com', '--password', 'Admin1234'])

    assert result.exit_code == 0
    assert 'Admin root@example.com created' in result.output
    with app.app_context():
        admin = User.query.filter_by(email='root@example.com').one()
        assert admin.role == 'admin'
        assert admin.is_approved is True


def test_cli_approve_all_users(app, create_user):
    create_user(role='student', approved=False)
    create_user(role='visitor', approved=False)

    result = app.test_cli_runner().invoke(args=['approve-all-users'])

    assert 'Approved 2 users' in result.output
    with app.app_context():
        assert User.query.filter_by(approval_status='pending').count() == 0
