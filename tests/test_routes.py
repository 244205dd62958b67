"""
Tests for the HTTP routes: public API, authentication, booking flow and
admin back-office.
"""

import pytest

from conftest import USER_EMAIL, USER_PASSWORD
from gateway import Query
from utils.messages import MESSAGES


class TestPublicRoutes:

    def test_health_check(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json['status'] == 'ok'
        assert response.json['app'] == 'Locauto Vehicle Rental Service'

    def test_index(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert response.json['data']['authenticated'] is False

    def test_csrf_token(self, client):
        response = client.get('/api/csrf-token')
        assert response.status_code == 200
        assert response.json['data']['csrf_token']

    def test_vehicle_catalog(self, client):
        response = client.get('/api/vehicles')
        assert response.json['count'] == 6

        response = client.get('/api/vehicles?category=suv')
        assert {v['name'] for v in response.json['data']['vehicles']} == {'Toyota RAV4', 'Tesla Model Y'}

    def test_map_without_key_falls_back_to_text(self, client):
        response = client.get('/api/config/map')
        assert response.json['data'] == {'enabled': False, 'fallback_text': MESSAGES['map_fallback']}

    def test_map_with_key(self, app, client):
        app.config['MAPS_API_KEY'] = 'maps-key'
        response = client.get('/api/config/map')
        assert response.json['data'] == {'enabled': True, 'api_key': 'maps-key'}

    def test_unknown_route(self, client):
        response = client.get('/nowhere')
        assert response.status_code == 404
        assert response.json['error'] == MESSAGES['not_found']


class TestAuthRoutes:

    def test_login_success(self, client, user):
        response = client.post('/login', json={'identifier': USER_EMAIL, 'password': USER_PASSWORD})
        assert response.status_code == 200
        assert response.json['data']['user']['email'] == USER_EMAIL
        assert response.json['data']['email_verified'] is True
        assert response.json['redirect_to'] == '/profile'

        assert client.get('/').json['data']['authenticated'] is True

    def test_admin_login_redirects_to_dashboard(self, client):
        response = client.post('/login', json={'identifier': 'admin@locauto.fr', 'password': 'Admin1234'})
        assert response.json['redirect_to'] == '/admin/dashboard'
        assert response.json['data']['user']['is_admin'] is True

    def test_login_identifier_is_normalized(self, client, user):
        response = client.post('/login', json={'identifier': '  Jane@Example.COM ', 'password': USER_PASSWORD})
        assert response.status_code == 200

    def test_invalid_credentials(self, client, user):
        response = client.post('/login', json={'identifier': USER_EMAIL, 'password': 'wrong-password'})
        assert response.status_code == 401
        assert response.json['error'] == MESSAGES['invalid_credentials']

    def test_missing_password(self, client):
        response = client.post('/login', json={'identifier': USER_EMAIL})
        assert response.status_code == 400
        assert response.json['field'] == 'password'

    def test_unconfirmed_email(self, client, make_user):
        make_user(confirm=False)
        response = client.post('/login', json={'identifier': USER_EMAIL, 'password': USER_PASSWORD})
        assert response.status_code == 401
        assert response.json['can_resend_verification'] is True

        state = client.get('/login').json['data']
        assert state['user'] is None
        assert state['pending_verification_email'] == USER_EMAIL

    def test_register_then_verify(self, client, backend):
        response = client.post('/register', json={
            'email': 'new@example.com', 'password': 'secret123', 'username': 'new_user',
            'full_name': 'Nouveau Client'
        })
        assert response.status_code == 201
        assert response.json['data']['pending_verification_email'] == 'new@example.com'
        assert response.json['redirect_to'] == '/login'

        token = backend.confirmation_token('new@example.com')
        response = client.get(f'/verify-email?token={token}')
        assert response.status_code == 200
        assert response.json['data']['email_confirmed_at']
        assert response.json['redirect_to'] == '/login'

        response = client.post('/login', json={'identifier': 'new@example.com', 'password': 'secret123'})
        assert response.status_code == 200

    def test_register_verify_and_sign_in(self, client, backend):
        response = client.post('/register', json={
            'email': 'Sam@Example.com', 'password': 'secret123', 'username': 'sam_r'
        })
        assert response.status_code == 201
        assert response.json['data']['email'] == 'sam@example.com'

        client.get(f"/verify-email?token={backend.confirmation_token('sam@example.com')}")

        response = client.post('/login', json={'identifier': 'sam@example.com', 'password': 'secret123'})
        assert response.status_code == 200
        assert response.json['redirect_to'] == '/profile'

        session = client.get('/profile').json['data']
        assert session['user']['username'] == 'sam_r'
        assert session['user']['full_name'] == ''
        assert session['email_verified'] is True
        assert session['pending_verification_email'] is None

    def test_register_existing_email(self, client):
        response = client.post('/register', json={
            'email': 'admin@locauto.fr', 'password': 'secret123', 'username': 'someone'
        })
        assert response.status_code == 409
        assert response.json['field'] == 'email'

    def test_register_invalid_username(self, client):
        response = client.post('/register', json={
            'email': 'new@example.com', 'password': 'secret123', 'username': 'Not Valid!'
        })
        assert response.status_code == 400
        assert response.json['field'] == 'username'

    def test_register_short_password(self, client):
        response = client.post('/register', json={
            'email': 'new@example.com', 'password': '123', 'username': 'new_user'
        })
        assert response.status_code == 400
        assert response.json['field'] == 'password'

    def test_invalid_verification_link(self, client):
        response = client.get('/verify-email?token=bogus')
        assert response.status_code == 401
        response = client.get('/verify-email')
        assert response.status_code == 400

    def test_resend_without_address(self, client):
        response = client.post('/verify-email/resend', json={})
        assert response.status_code == 400
        assert response.json['field'] == 'email'

    def test_resend_to_pending_address(self, client, backend, make_user):
        make_user(confirm=False)
        client.post('/login', json={'identifier': USER_EMAIL, 'password': USER_PASSWORD})
        before = backend.confirmation_token(USER_EMAIL)

        response = client.post('/verify-email/resend', json={})
        assert response.status_code == 200
        assert response.json['data']['email'] == USER_EMAIL
        assert backend.confirmation_token(USER_EMAIL) != before

    def test_profile_requires_login(self, client):
        response = client.get('/profile')
        assert response.status_code == 401
        assert response.json['error'] == MESSAGES['not_authenticated']

    def test_profile_update(self, authenticated_client):
        response = authenticated_client.post('/profile', json={'phone': '0601020304'})
        assert response.status_code == 200
        assert response.json['data']['phone'] == '0601020304'
        assert response.json['data']['full_name'] == 'Jane Doe'

        profile = authenticated_client.get('/profile').json['data']['user']
        assert profile['phone'] == '0601020304'

    def test_profile_invalid_phone(self, authenticated_client):
        response = authenticated_client.post('/profile', json={'phone': 'call me'})
        assert response.status_code == 400
        assert response.json['field'] == 'phone'

    def test_own_bookings(self, authenticated_client, backend, fleet, user, book, in_days):
        mine = book(user.id, fleet['Renault Clio'].id, in_days(1), in_days(3))
        book(user.id, fleet['Tesla Model Y'].id, in_days(10), in_days(12), status='pending')
        admin = backend.table('profiles').single(Query().eq('username', 'admin'))
        book(admin['user_id'], fleet['Peugeot 208'].id, in_days(1), in_days(3))

        response = authenticated_client.get('/profile/bookings')
        assert response.status_code == 200
        assert response.json['count'] == 2
        bookings = response.json['data']['bookings']
        assert {b['vehicle_name'] for b in bookings} == {'Renault Clio', 'Tesla Model Y'}
        assert mine['id'] in {b['id'] for b in bookings}
        assert all(b['user_id'] == user.id for b in bookings)

    def test_own_bookings_empty(self, authenticated_client):
        response = authenticated_client.get('/profile/bookings')
        assert response.json['count'] == 0
        assert response.json['data']['bookings'] == []

    def test_own_bookings_requires_login(self, client):
        assert client.get('/profile/bookings').status_code == 401

    def test_profile_username_taken(self, authenticated_client):
        response = authenticated_client.post('/profile', json={'username': 'admin'})
        assert response.status_code == 409

    def test_logout(self, authenticated_client):
        response = authenticated_client.post('/logout')
        assert response.status_code == 200
        assert response.json['redirect_to'] == '/login'
        assert authenticated_client.get('/profile').status_code == 401


class TestBookingRoutes:

    @pytest.fixture
    def dates(self, in_days):
        return {'start_date': in_days(2).isoformat(), 'end_date': in_days(9).isoformat()}

    def test_search_requires_dates(self, client):
        response = client.get('/booking/search?start_date=2025-06-01')
        assert response.status_code == 400
        assert response.json['field'] == 'end_date'

    def test_search_inverted_range(self, client, dates):
        response = client.get('/booking/search', query_string={
            'start_date': dates['end_date'], 'end_date': dates['start_date']
        })
        assert response.status_code == 400

    def test_select_before_search(self, client, fleet):
        response = client.post('/booking/select', json={'vehicle_id': fleet['Renault Clio'].id})
        assert response.status_code == 409

    def test_submit_requires_login(self, client):
        response = client.post('/booking/submit')
        assert response.status_code == 401

    def test_full_flow(self, authenticated_client, backend, fleet, dates):
        client = authenticated_client

        response = client.get('/booking/search', query_string=dict(dates, category='economic'))
        assert response.status_code == 200
        assert response.json['data']['step'] == 'select'
        assert response.json['count'] == 2

        response = client.post('/booking/select', json={'vehicle_id': fleet['Renault Clio'].id})
        assert response.status_code == 200
        draft = response.json['data']['draft']
        assert draft['total_amount'] == 283.5
        assert draft['customer']['email'] == USER_EMAIL

        # Missing phone
        response = client.post('/booking/submit')
        assert response.status_code == 400
        assert response.json['field'] == 'phone'
        assert client.get('/booking/state').json['data']['step'] == 'details'

        response = client.post('/booking/details', json={'phone': '0601020304',
                                                          'special_requests': 'Siège bébé'})
        assert response.json['data']['draft']['customer']['phone'] == '0601020304'
        assert response.json['data']['draft']['customer']['full_name'] == 'Jane Doe'

        response = client.post('/booking/submit')
        assert response.status_code == 201
        booking_id = response.json['booking_id']
        stored = backend.table('bookings').single(Query().eq('id', booking_id))
        assert stored['booking_status'] == 'pending'
        assert stored['special_requests'] == 'Siège bébé'

        # Confirmed flows cannot go back or submit twice
        assert client.post('/booking/submit').status_code == 409
        assert client.post('/booking/restart').status_code == 409
        assert backend.table('bookings').count() == 1

        response = client.post('/booking/new')
        assert response.json['data']['step'] == 'search'

        toasts = client.get('/api/notifications').json['data']['notifications']
        assert {'category': 'success', 'message': MESSAGES['booking_created']} in toasts
        assert client.get('/api/notifications').json['data']['notifications'] == []

    def test_restart_clears_selection(self, client, fleet, dates):
        client.get('/booking/search', query_string=dates)
        client.post('/booking/select', json={'vehicle_id': fleet['Peugeot 208'].id})

        response = client.post('/booking/restart')
        assert response.status_code == 200
        assert response.json['data']['step'] == 'search'
        assert response.json['data']['draft'] is None

    def test_invalid_customer_email(self, client, fleet, dates):
        client.get('/booking/search', query_string=dates)
        client.post('/booking/select', json={'vehicle_id': fleet['Peugeot 208'].id})
        response = client.post('/booking/details', json={'email': 'not-an-email'})
        assert response.status_code == 400
        assert response.json['field'] == 'email'


class TestAdminRoutes:

    def test_requires_login(self, client):
        assert client.get('/admin/dashboard').status_code == 401

    def test_regular_user_is_denied(self, authenticated_client):
        response = authenticated_client.get('/admin/dashboard')
        assert response.status_code == 403
        assert response.json['error'] == MESSAGES['access_denied']

    def test_dashboard(self, admin_client):
        response = admin_client.get('/admin/dashboard')
        assert response.status_code == 200
        assert response.json['data']['total_vehicles'] == 6
        assert response.json['data']['pending_bookings'] == 0

    def test_analytics(self, admin_client):
        response = admin_client.get('/admin/analytics')
        assert response.status_code == 200
        assert response.json['data']['total_bookings'] == 0

        response = admin_client.get('/admin/analytics?start=yesterday')
        assert response.status_code == 400
        assert response.json['field'] == 'start'

    def test_status_change_is_audited(self, admin_client, backend, fleet, user, book, in_days):
        booking = book(user.id, fleet['Renault Clio'].id, in_days(1), in_days(3), status='pending')

        response = admin_client.post(f"/admin/bookings/{booking['id']}/status", json={'status': 'confirmed'})
        assert response.status_code == 200
        assert response.json['data']['booking']['booking_status'] == 'confirmed'
        assert response.json['data']['allowed_transitions'] == ['active', 'cancelled']

        response = admin_client.get('/admin/audit-logs', query_string={
            'table_name': 'bookings', 'action': 'update', 'record_id': booking['id']
        })
        logs = response.json['data']['logs']
        assert len(logs) == 1
        admin = backend.table('profiles').single(Query().eq('username', 'admin'))
        assert logs[0]['user_id'] == admin['user_id']

        toasts = admin_client.get('/api/notifications').json['data']['notifications']
        assert {'category': 'success',
                'message': 'Statut de la réservation mis à jour : Confirmée'} in toasts

    def test_disallowed_status_change(self, admin_client, fleet, user, book, in_days):
        booking = book(user.id, fleet['Renault Clio'].id, in_days(1), in_days(3), status='cancelled')
        response = admin_client.post(f"/admin/bookings/{booking['id']}/status", json={'status': 'confirmed'})
        assert response.status_code == 409

    def test_status_required(self, admin_client):
        response = admin_client.post('/admin/bookings/whatever/status', json={})
        assert response.status_code == 400
        assert response.json['field'] == 'status'
