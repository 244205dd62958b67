"""
Booking flow routes: search, vehicle selection, customer details, submission.

The flow state lives in the Flask session under FLOW_SESSION_KEY and is
rebuilt on every request.
"""

from flask import request, session, Blueprint
from flask_login import current_user, login_required

from blueprints.booking.forms import SelectVehicleForm, BookingDetailsForm, CUSTOMER_FIELDS
from blueprints.booking.services.availability_service import SearchCriteria
from blueprints.booking.services.booking_service import BookingFlow
from extensions import get_backend
from utils.api_response import api_success, form_error
from utils.messages import MESSAGES
from utils.notifications import notify

booking_bp = Blueprint('booking', __name__)

FLOW_SESSION_KEY = 'booking_flow'


def _current_user():
    return current_user._get_current_object() if current_user.is_authenticated else None


def _load_flow() -> BookingFlow:
    return BookingFlow.from_dict(session.get(FLOW_SESSION_KEY))


def _save_flow(flow: BookingFlow) -> None:
    session[FLOW_SESSION_KEY] = flow.to_dict()


@booking_bp.route('/search')
def search():
    """
    Search available vehicles for a date range.

    Query params:
        start_date, end_date (required, YYYY-MM-DD)
        category, min_price, max_price, seats, transmission, fuel_type,
        pickup_location, dropoff_location (optional)
    """
    criteria = SearchCriteria.from_dict(request.args.to_dict())
    flow = _load_flow()
    results = flow.search(get_backend(), criteria)
    _save_flow(flow)

    return api_success(
        data={'step': flow.step.value, 'criteria': criteria.to_dict(),
              'vehicles': [priced.to_dict() for priced in results]},
        count=len(results)
    )


@booking_bp.route('/select', methods=['POST'])
def select():
    """Pin a vehicle from the results and open the details step."""
    form = SelectVehicleForm()
    if not form.validate_on_submit():
        return form_error(form)

    flow = _load_flow()
    priced = flow.select_vehicle(get_backend(), form.vehicle_id.data, user=_current_user())
    _save_flow(flow)

    return api_success(data={'step': flow.step.value, 'vehicle': priced.to_dict(),
                             'draft': flow.draft.to_dict()})


@booking_bp.route('/details', methods=['POST'])
def details():
    """Merge customer details and special requests into the draft."""
    form = BookingDetailsForm()
    if not form.validate_on_submit():
        return form_error(form)

    submitted = request.get_json(silent=True) or request.form
    customer = {name: getattr(form, name).data for name in CUSTOMER_FIELDS if name in submitted}
    special_requests = form.special_requests.data if 'special_requests' in submitted else None

    flow = _load_flow()
    draft = flow.update_details(customer=customer, special_requests=special_requests)
    _save_flow(flow)

    return api_success(data={'step': flow.step.value, 'draft': draft.to_dict()})


@booking_bp.route('/submit', methods=['POST'])
@login_required
def submit():
    """
    Persist the draft as a pending booking.
    Resubmitting the same draft returns the booking created the first time.
    """
    flow = _load_flow()
    try:
        booking = flow.submit(get_backend(), _current_user(), notify=notify)
    finally:
        _save_flow(flow)

    return api_success(
        data={'step': flow.step.value, 'booking': booking.to_dict()},
        message=MESSAGES['booking_created'],
        status=201,
        booking_id=booking.id
    )


@booking_bp.route('/state')
def state():
    """Current step, criteria and draft of the flow."""
    return api_success(data=_load_flow().to_dict())


@booking_bp.route('/restart', methods=['POST'])
def restart():
    """Go back to the search step, dropping the selected vehicle."""
    flow = _load_flow()
    flow.restart()
    _save_flow(flow)
    return api_success(data=flow.to_dict())


@booking_bp.route('/new', methods=['POST'])
def new():
    """Start a fresh flow, from any step."""
    flow = BookingFlow()
    _save_flow(flow)
    return api_success(data=flow.to_dict())
