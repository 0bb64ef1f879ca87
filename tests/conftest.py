"""
Test configuration and fixtures.

Each test gets a fresh app on an in-memory sqlite database with a fakeredis
client for the token blocklist. User fixtures hand back plain records
(ids, email, password and auth headers) so tests never hold ORM objects
across app contexts.
"""
from types import SimpleNamespace
import fakeredis
import pytest
from flask_jwt_extended import create_access_token
from config import TestingConfig
from models import db, User
from server import create_app
from services import user_srv

PASSWORD = 'Secret123'


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.redis_client = fakeredis.FakeStrictRedis(decode_responses=True)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(app, user_id):
    with app.app_context():
        token = create_access_token(identity=user_id)
    return {"Authorization": f"Bearer {token}"}


def make_user(app, role='researcher', approved=True, email=None, **extra):
    """Create a user directly in the database and return its ids and headers."""
    with app.app_context():
        count = User.query.count()
        data = {
            "first_name": extra.pop('first_name', 'Test'),
            "last_name": extra.pop('last_name', role.title()),
            "email": email or f"{role}{count + 1}@example.com",
            "password": PASSWORD,
        }
        user = user_srv.add_new_user(data, role=role)
        if approved:
            user.approve(user.user_id)
        for key, value in extra.items():
            setattr(user, key, value)
        db.session.commit()
        record = SimpleNamespace(user_id=user.user_id, email=user.email,
                                 password=PASSWORD, role=role)
    record.headers = auth_headers(app, record.user_id)
    return record


def make_employee(app, admin_id, **overrides):
    with app.app_context():
        count = User.query.count()
        data = {
            "first_name": "Staff",
            "last_name": "Member",
            "email": f"staff{count + 1}@example.com",
            "password": PASSWORD,
            "department": "Research & Development",
            "position": "Lab Assistant",
            "work_start": "09:00",
            "work_end": "17:00",
        }
        data.update(overrides)
        employee = user_srv.add_new_employee(data, created_by=admin_id)
        db.session.commit()
        record = SimpleNamespace(user_id=employee.user_id, employee_id=employee.employee_id,
                                 employee_code=employee.employee_code,
                                 email=employee.user.email, password=PASSWORD)
    record.headers = auth_headers(app, record.user_id)
    return record


@pytest.fixture
def admin(app):
    return make_user(app, role='admin', first_name='Site', last_name='Admin')


@pytest.fixture
def researcher(app):
    return make_user(app, role='researcher')


@pytest.fixture
def faculty(app):
    return make_user(app, role='faculty')


@pytest.fixture
def employee(app, admin):
    return make_employee(app, admin.user_id)


@pytest.fixture
def paper_payload():
    return {
        "title": "Soil microbiome shifts under drought",
        "abstract": "We measure how microbial communities respond to prolonged drought.",
        "field": "environmental_science",
        "research_type": "original_research",
        "keywords": ["soil", "drought"],
    }


@pytest.fixture
def create_user(app):
    def factory(**kwargs):
        return make_user(app, **kwargs)
    return factory


@pytest.fixture
def create_employee(app, admin):
    def factory(**overrides):
        return make_employee(app, admin.user_id, **overrides)
    return factory
