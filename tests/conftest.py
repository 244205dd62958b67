"""
Pytest configuration and fixtures.
Every test gets its own in-memory local backend, reset with the seed data.
"""

from datetime import date, timedelta

import pytest

from database.seed import ADMIN_EMAIL, ADMIN_PASSWORD

USER_EMAIL = 'jane@example.com'
USER_PASSWORD = 'secret123'


@pytest.fixture
def app():
    """
    Create test application with a fresh seeded backend.

    No application context is kept pushed: each test client request gets
    its own, so per-request state (g, the loaded user) does not leak.
    """
    from app import create_app

    app = create_app('test')
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False

    backend = app.extensions['backend']
    backend.reset(seed=True)

    yield app

    backend.close()


@pytest.fixture
def backend(app):
    """Backend of the test application."""
    return app.extensions['backend']


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def notifications():
    """Notifier collecting (message, category) pairs instead of flashing them."""
    collected = []

    def notify(message, category='info'):
        collected.append((message, category))

    notify.messages = collected
    return notify


@pytest.fixture
def make_user(backend):
    """Factory signing up and confirming an account directly on the backend."""
    def make(email=USER_EMAIL, username='jane_doe', password=USER_PASSWORD,
             full_name='Jane Doe', confirm=True):
        auth = backend.auth({})
        auth_user = auth.sign_up(email, password, {'username': username, 'full_name': full_name})
        if confirm:
            auth_user = auth.verify_email(backend.confirmation_token(email))
        return auth_user

    return make


@pytest.fixture
def user(make_user):
    """Confirmed regular account."""
    return make_user()


@pytest.fixture
def authenticated_client(client, user):
    """Client signed in as the regular account."""
    response = client.post('/login', json={'identifier': USER_EMAIL, 'password': USER_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def admin_client(app):
    """Client signed in as the seeded administrator."""
    client = app.test_client()
    response = client.post('/login', json={'identifier': ADMIN_EMAIL, 'password': ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def fleet(backend):
    """Seeded vehicles keyed by name."""
    from models.vehicle import list_vehicles

    return {v.name: v for v in list_vehicles(backend, status=None)}


@pytest.fixture
def book(backend):
    """Factory inserting a booking row directly."""
    def insert(user_id, vehicle_id, start_date, end_date, status='confirmed', total_amount=100.0,
               created_at=None):
        row = {
            'user_id': user_id,
            'vehicle_id': vehicle_id,
            'start_date': start_date.isoformat() if hasattr(start_date, 'isoformat') else start_date,
            'end_date': end_date.isoformat() if hasattr(end_date, 'isoformat') else end_date,
            'booking_status': status,
            'total_amount': total_amount,
        }
        if created_at:
            row['created_at'] = created_at
        return backend.table('bookings').insert(row)[0]

    return insert


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def in_days(today):
    """Date a number of days from today."""
    return lambda days: today + timedelta(days=days)
