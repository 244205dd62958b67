"""
Authentication routes: login, registration, logout, profile, own bookings, email verification.
Every identity change goes through the request's SessionManager.
"""

from flask import request, Blueprint
from flask_login import login_user, logout_user, login_required, current_user

from blueprints.auth.forms import LoginForm, RegisterForm, ProfileForm, ResendVerificationForm
from blueprints.auth.services.session_manager import UPDATABLE_FIELDS
from extensions import get_backend, get_session_manager
from models.booking import list_bookings
from models.vehicle import get_vehicles_by_ids
from utils.api_response import api_success, form_error
from utils.messages import MESSAGES

auth_bp = Blueprint('auth', __name__)


def _session_payload(manager) -> dict:
    state = manager.state
    return {
        'user': state.user.to_dict() if state.user else None,
        'pending_verification_email': state.pending_verification_email,
        'email_verified': manager.is_email_verified(),
    }


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """
    Login route.

    GET: Current session state
    POST: Authenticate with email and password
    """
    manager = get_session_manager()

    if request.method == 'GET' or current_user.is_authenticated:
        return api_success(data=_session_payload(manager))

    form = LoginForm()
    if not form.validate_on_submit():
        return form_error(form)

    user = manager.sign_in(form.identifier.data, form.password.data)

    # Log user in
    login_user(user, remember=form.remember_me.data)

    return api_success(
        data=_session_payload(manager),
        message=MESSAGES['login_success'].format(name=user.full_name or user.username or user.email),
        redirect_to=manager.consume_redirect()
    )


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create an account; the user must confirm the email before signing in."""
    form = RegisterForm()
    if not form.validate_on_submit():
        return form_error(form)

    manager = get_session_manager()
    auth_user = manager.sign_up(
        form.email.data,
        form.password.data,
        form.username.data,
        full_name=form.full_name.data or None
    )

    return api_success(
        data={'user_id': auth_user.id, 'email': auth_user.email,
              'pending_verification_email': manager.state.pending_verification_email},
        message=MESSAGES['registration_success'],
        status=201,
        redirect_to=manager.consume_redirect()
    )


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Logout current user."""
    manager = get_session_manager()
    manager.sign_out()
    logout_user()
    return api_success(message=MESSAGES['logout_success'], redirect_to=manager.consume_redirect())


@auth_bp.route('/profile', methods=['GET', 'POST'])
@login_required
def profile():
    """
    GET: Current user's profile
    POST: Update username, full name, phone or avatar
    """
    manager = get_session_manager()

    if request.method == 'GET':
        return api_success(data=_session_payload(manager))

    form = ProfileForm()
    if not form.validate_on_submit():
        return form_error(form)

    submitted = request.get_json(silent=True) or request.form
    changes = {name: getattr(form, name).data for name in UPDATABLE_FIELDS if name in submitted}
    user = manager.update_profile(changes)

    return api_success(data=user.to_dict(), message=MESSAGES['profile_updated'])


@auth_bp.route('/profile/bookings')
@login_required
def my_bookings():
    """Current user's bookings, newest first, with the rented vehicle's name."""
    backend = get_backend()
    bookings = list_bookings(backend, user_id=current_user.user_id)
    vehicles = get_vehicles_by_ids(backend, {b['vehicle_id'] for b in bookings})

    for booking in bookings:
        vehicle = vehicles.get(booking['vehicle_id'])
        booking['vehicle_name'] = vehicle.name if vehicle else None

    return api_success(data={'bookings': bookings}, count=len(bookings))


@auth_bp.route('/verify-email/resend', methods=['POST'])
def resend_verification():
    """Send the confirmation email again to the given or pending address."""
    form = ResendVerificationForm()
    if not form.validate_on_submit():
        return form_error(form)

    email = get_session_manager().resend_verification_email(form.email.data or None)
    return api_success(data={'email': email}, message=MESSAGES['verification_sent'])


@auth_bp.route('/verify-email')
def verify_email():
    """Confirmation link target."""
    manager = get_session_manager()
    auth_user = manager.verify_email(request.args.get('token', ''))
    return api_success(
        data={'email': auth_user.email, 'email_confirmed_at': auth_user.email_confirmed_at},
        message=MESSAGES['email_verified'],
        redirect_to='/login' if manager.user is None else '/profile'
    )
