"""
Pytest fixtures for canteen backend tests.

Provides test database setup, users for every role, menu items and test client.
"""

import bcrypt
import pytest

from canteen import create_app
from canteen.extensions import db
from canteen.models import MenuItem, User


DEFAULT_PASSWORD = "Password123!"

# Low bcrypt cost keeps fixtures fast; verify_password accepts any cost
FAST_PASSWORD_HASH = bcrypt.hashpw(DEFAULT_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDER_STATUS_STRICT': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(session, name: str, email: str, role: str, phone: str | None = None, is_active: bool = True) -> User:
    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=FAST_PASSWORD_HASH,
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    return user


def make_menu_item(session, name: str, price_cents: int, stock: int, category: str = "Snacks", is_available: bool = True) -> MenuItem:
    item = MenuItem(
        name=name,
        category=category,
        price_cents=price_cents,
        stock=stock,
        is_available=is_available,
    )
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "Admin User", "admin@canteen.test", "admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return make_user(db_session, "Staff Member", "staff@canteen.test", "staff")


@pytest.fixture(scope='function')
def student_user(db_session):
    return make_user(db_session, "Student One", "student1@canteen.test", "student", phone="01856432109")


@pytest.fixture(scope='function')
def other_student(db_session):
    return make_user(db_session, "Student Two", "student2@canteen.test", "student")


@pytest.fixture(scope='function')
def item_a(db_session):
    """Price 150, stock 10."""
    return make_menu_item(db_session, "Item A", price_cents=150, stock=10)


@pytest.fixture(scope='function')
def item_b(db_session):
    """Price 80, stock 5."""
    return make_menu_item(db_session, "Item B", price_cents=80, stock=5)


def get_auth_token(client, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email))


@pytest.fixture(scope='function')
def student_headers(client, student_user):
    return auth_headers(get_auth_token(client, student_user.email))


@pytest.fixture(scope='function')
def other_student_headers(client, other_student):
    return auth_headers(get_auth_token(client, other_student.email))
