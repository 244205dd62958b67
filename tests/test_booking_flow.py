"""
Tests for the booking flow state machine and booking submission.
"""

import pytest

from gateway import GatewayError, Query
from blueprints.booking.services import booking_service
from blueprints.booking.services.availability_service import SearchCriteria
from blueprints.booking.services.booking_service import (
    BookingFlow,
    BookingStep,
    BookingDraft,
    CustomerInfo,
    submit_booking,
)
from models.profile import UserProfile, get_profile_by_user_id
from utils.errors import ValidationError, BookingError, NotAuthenticatedError, InvalidTransitionError
from utils.messages import MESSAGES


@pytest.fixture
def profile(backend, user):
    """Current-user projection of the regular account."""
    return UserProfile.from_row(get_profile_by_user_id(backend, user.id), user)


@pytest.fixture
def criteria(in_days):
    return SearchCriteria(start_date=in_days(3), end_date=in_days(13), pickup_location='Gare')


@pytest.fixture
def details_flow(backend, fleet, criteria, profile):
    """Flow on the details step with the Clio selected and full customer info."""
    flow = BookingFlow()
    flow.search(backend, criteria)
    flow.select_vehicle(backend, fleet['Renault Clio'].id, profile)
    flow.update_details({'phone': '0601020304'})
    return flow


class TestFlowTransitions:

    def test_starts_on_search(self):
        flow = BookingFlow()
        assert flow.step == BookingStep.SEARCH
        assert flow.selected_vehicle_id is None

    def test_search_moves_to_select(self, backend, criteria):
        flow = BookingFlow()
        results = flow.search(backend, criteria)
        assert flow.step == BookingStep.SELECT
        assert len(results) == 6
        assert flow.criteria == criteria

    def test_select_prices_from_stored_vehicle(self, backend, fleet, criteria, profile):
        flow = BookingFlow()
        flow.search(backend, criteria)
        priced = flow.select_vehicle(backend, fleet['Renault Clio'].id, profile)

        assert flow.step == BookingStep.DETAILS
        assert priced.duration == 10
        assert priced.discounted_price == 405
        draft = flow.draft
        assert draft.total_amount == 405
        assert draft.start_date == criteria.start_date.isoformat()
        assert draft.pickup_location == 'Gare'
        assert draft.customer.full_name == 'Jane Doe'
        assert draft.customer.email == 'jane@example.com'

    def test_select_requires_search_first(self, backend, fleet):
        with pytest.raises(InvalidTransitionError):
            BookingFlow().select_vehicle(backend, fleet['Renault Clio'].id)

    def test_select_unknown_vehicle(self, backend, criteria):
        flow = BookingFlow()
        flow.search(backend, criteria)
        with pytest.raises(ValidationError) as exc_info:
            flow.select_vehicle(backend, 'missing')
        assert exc_info.value.field == 'vehicle_id'
        assert flow.step == BookingStep.SELECT

    def test_select_vehicle_booked_meanwhile(self, backend, fleet, criteria, user, book):
        flow = BookingFlow()
        flow.search(backend, criteria)
        book(user.id, fleet['Renault Clio'].id, criteria.start_date, criteria.end_date)

        with pytest.raises(ValidationError) as exc_info:
            flow.select_vehicle(backend, fleet['Renault Clio'].id)
        assert exc_info.value.message == MESSAGES['vehicle_unavailable']

    def test_new_search_clears_selection(self, backend, details_flow, criteria):
        details_flow.search(backend, criteria)
        assert details_flow.step == BookingStep.SELECT
        assert details_flow.draft is None

    def test_restart_returns_to_search(self, details_flow):
        details_flow.restart()
        assert details_flow.step == BookingStep.SEARCH
        assert details_flow.selected_vehicle_id is None

    def test_details_only_on_details_step(self):
        with pytest.raises(InvalidTransitionError):
            BookingFlow().update_details({'phone': '0601020304'})

    def test_update_details_merges(self, details_flow):
        draft = details_flow.update_details({'license_number': 'AB123'}, special_requests='Siège bébé')
        assert draft.customer.phone == '0601020304'
        assert draft.customer.license_number == 'AB123'
        assert draft.customer.full_name == 'Jane Doe'
        assert draft.special_requests == 'Siège bébé'


class TestFlowSubmit:

    def test_submit_creates_pending_booking(self, backend, details_flow, profile, notifications):
        booking = details_flow.submit(backend, profile, notify=notifications)

        assert details_flow.step == BookingStep.CONFIRMATION
        assert details_flow.booking_id == booking.id
        assert booking.booking_status == 'pending'
        assert booking.total_amount == 405
        assert booking.user_id == profile.user_id
        assert notifications.messages == [(MESSAGES['booking_created'], 'success')]

    def test_confirmed_flow_cannot_go_back(self, backend, details_flow, profile, criteria):
        details_flow.submit(backend, profile)
        with pytest.raises(InvalidTransitionError):
            details_flow.restart()
        with pytest.raises(InvalidTransitionError):
            details_flow.search(backend, criteria)
        with pytest.raises(InvalidTransitionError):
            details_flow.submit(backend, profile)

    def test_resubmitting_same_draft_is_idempotent(self, backend, details_flow, profile):
        saved = details_flow.to_dict()
        first = details_flow.submit(backend, profile)

        # Same draft submitted again, e.g. after a lost response
        retried = BookingFlow.from_dict(saved)
        second = retried.submit(backend, profile)

        assert second.id == first.id
        assert backend.table('bookings').count(Query().eq('idempotency_key', first.idempotency_key)) == 1

    def test_gateway_failure_keeps_details_step(self, backend, details_flow, profile, notifications,
                                                monkeypatch):
        def failing(backend, values):
            raise GatewayError('connection reset', transient=True)

        monkeypatch.setattr(booking_service, 'create_booking', failing)

        with pytest.raises(BookingError) as exc_info:
            details_flow.submit(backend, profile, notify=notifications)

        assert exc_info.value.message == MESSAGES['booking_failed']
        assert details_flow.step == BookingStep.DETAILS
        assert details_flow.booking_id is None
        assert notifications.messages == [(MESSAGES['booking_failed'], 'error')]
        assert backend.table('bookings').count() == 0


class TestSubmitBooking:

    @pytest.fixture
    def draft(self, fleet, in_days):
        return BookingDraft(
            vehicle_id=fleet['Peugeot 208'].id,
            start_date=in_days(1).isoformat(),
            end_date=in_days(4).isoformat(),
            total_amount=126.0,
            customer=CustomerInfo(full_name='Jane Doe', email='jane@example.com', phone='0601020304'),
        )

    def test_requires_user(self, backend, draft):
        with pytest.raises(NotAuthenticatedError):
            submit_booking(backend, None, draft)

    def test_reports_first_missing_field(self, backend, draft, profile):
        incomplete = BookingDraft(**{**draft.__dict__, 'customer': CustomerInfo(full_name='Jane Doe')})
        with pytest.raises(ValidationError) as exc_info:
            submit_booking(backend, profile, incomplete)
        assert exc_info.value.field == 'email'

    def test_blank_fields_count_as_missing(self, backend, draft, profile):
        blank = BookingDraft(**{**draft.__dict__, 'customer': CustomerInfo(full_name='  ', email='a@b.fr',
                                                                            phone='1')})
        with pytest.raises(ValidationError) as exc_info:
            submit_booking(backend, profile, blank)
        assert exc_info.value.field == 'full_name'

    def test_rejects_malformed_contact(self, backend, draft, profile):
        bad_email = BookingDraft(**{**draft.__dict__, 'customer': CustomerInfo(
            full_name='Jane Doe', email='jane-at-example', phone='0601020304')})
        with pytest.raises(ValidationError) as exc_info:
            submit_booking(backend, profile, bad_email)
        assert exc_info.value.field == 'email'

        bad_phone = BookingDraft(**{**draft.__dict__, 'customer': CustomerInfo(
            full_name='Jane Doe', email='jane@example.com', phone='12')})
        with pytest.raises(ValidationError) as exc_info:
            submit_booking(backend, profile, bad_phone)
        assert exc_info.value.field == 'phone'

    def test_rejects_inverted_dates(self, backend, draft, profile):
        inverted = BookingDraft(**{**draft.__dict__, 'start_date': draft.end_date, 'end_date': draft.start_date})
        with pytest.raises(ValidationError):
            submit_booking(backend, profile, inverted)

    def test_same_key_returns_first_booking(self, backend, draft, profile):
        first = submit_booking(backend, profile, draft)
        second = submit_booking(backend, profile, BookingDraft(**{**draft.__dict__, 'total_amount': 1.0}))
        assert second.id == first.id
        assert second.total_amount == 126.0
        assert backend.table('bookings').count() == 1


class TestFlowSerialisation:

    def test_round_trip_through_session_dict(self, details_flow):
        restored = BookingFlow.from_dict(details_flow.to_dict())
        assert restored.step == BookingStep.DETAILS
        assert restored.criteria == details_flow.criteria
        assert restored.draft == details_flow.draft

    def test_empty_state(self):
        assert BookingFlow.from_dict(None).step == BookingStep.SEARCH
