"""
Booking Service - booking flow state machine and booking submission.

Flow: search -> select -> details -> confirmation, strictly forward.
Returning to search clears the selected vehicle; a confirmed flow cannot go
back and a new flow must be started instead.
"""

import logging
import uuid
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Callable, Optional, List

from gateway import GatewayError
from models.booking import Booking, BookingStatus, create_booking
from models.vehicle import get_vehicle_by_id
from blueprints.booking.services.availability_service import (
    SearchCriteria,
    PricedVehicle,
    search_available_vehicles,
    is_vehicle_available,
    rental_duration,
    price_vehicle,
)
from utils.errors import ValidationError, BookingError, NotAuthenticatedError, InvalidTransitionError
from utils.messages import MESSAGES
from utils.validators import sanitize_input, validate_email, validate_phone, validate_date_range

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = ('full_name', 'email', 'phone')


class BookingStep(str, Enum):
    SEARCH = 'search'
    SELECT = 'select'
    DETAILS = 'details'
    CONFIRMATION = 'confirmation'


@dataclass(frozen=True)
class CustomerInfo:
    full_name: str = ''
    email: str = ''
    phone: str = ''
    license_number: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'CustomerInfo':
        data = data or {}
        return cls(**{name: sanitize_input(str(data.get(name) or ''), 255)
                      for name in ('full_name', 'email', 'phone', 'license_number')})

    def missing_fields(self) -> list:
        return [name for name in REQUIRED_CUSTOMER_FIELDS if not getattr(self, name).strip()]


@dataclass(frozen=True)
class BookingDraft:
    """Reservation being filled in; the idempotency key identifies it for its whole life."""

    vehicle_id: str
    start_date: str
    end_date: str
    total_amount: float
    pickup_location: str = ''
    dropoff_location: str = ''
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    special_requests: str = ''
    idempotency_key: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'BookingDraft':
        data = dict(data)
        data['customer'] = CustomerInfo.from_dict(data.get('customer'))
        return cls(**data)


# =============================================================================
# SUBMISSION
# =============================================================================

def submit_booking(backend, user, draft: BookingDraft) -> Booking:
    """
    Validate and persist a draft booking in pending status.

    Resubmitting the same draft returns the booking stored the first time.

    Args:
        backend: Gateway backend
        user: Current UserProfile (None when signed out)
        draft: Draft to persist

    Returns:
        The stored Booking

    Raises:
        NotAuthenticatedError: no current user
        ValidationError: missing or malformed customer name, email or phone, or inverted dates
        BookingError: the backend rejected or failed the insert
    """
    if user is None:
        raise NotAuthenticatedError(MESSAGES['not_authenticated'])

    missing = draft.customer.missing_fields()
    if missing:
        raise ValidationError(MESSAGES['customer_info_required'], field=missing[0])

    if not validate_email(draft.customer.email):
        raise ValidationError(MESSAGES['invalid_email'], field='email')
    if not validate_phone(draft.customer.phone):
        raise ValidationError(MESSAGES['invalid_phone'], field='phone')

    if not validate_date_range(draft.start_date, draft.end_date):
        raise ValidationError(MESSAGES['invalid_date_range'], field='end_date')

    values = {
        'user_id': user.user_id,
        'vehicle_id': draft.vehicle_id,
        'start_date': draft.start_date,
        'end_date': draft.end_date,
        'pickup_location': draft.pickup_location or None,
        'dropoff_location': draft.dropoff_location or None,
        'total_amount': draft.total_amount,
        'booking_status': BookingStatus.PENDING.value,
        'special_requests': draft.special_requests or None,
        'idempotency_key': draft.idempotency_key,
    }

    try:
        booking = create_booking(backend, values)
    except (GatewayError, LookupError) as e:
        logger.error(f'Booking insert failed for draft {draft.idempotency_key}: {e}', exc_info=True)
        raise BookingError(MESSAGES['booking_failed'])

    logger.info(f'Booking {booking.id} created for user {user.user_id} (vehicle {booking.vehicle_id})')
    return booking


# =============================================================================
# FLOW
# =============================================================================

class BookingFlow:
    """
    Multi-step booking flow for one customer.

    Serialisable with to_dict()/from_dict() so it can live in the Flask session.
    """

    def __init__(self, step: BookingStep = BookingStep.SEARCH, criteria: SearchCriteria = None,
                 draft: BookingDraft = None, booking_id: str = None):
        self.step = step
        self.criteria = criteria
        self.draft = draft
        self.booking_id = booking_id

    def _require(self, *steps: BookingStep) -> None:
        if self.step not in steps:
            raise InvalidTransitionError(MESSAGES['invalid_step'], field='step')

    @property
    def selected_vehicle_id(self) -> Optional[str]:
        return self.draft.vehicle_id if self.draft else None

    def search(self, backend, criteria: SearchCriteria) -> List[PricedVehicle]:
        """
        Run an availability search and show the results (select step).
        Any selected vehicle is cleared.
        """
        self._require(BookingStep.SEARCH, BookingStep.SELECT, BookingStep.DETAILS)
        results = search_available_vehicles(backend, criteria)
        self.criteria = criteria
        self.draft = None
        self.step = BookingStep.SELECT
        return results

    def select_vehicle(self, backend, vehicle_id: str, user=None) -> PricedVehicle:
        """
        Pin a vehicle and copy the search dates and locations into a draft.

        The price is computed again from the stored vehicle, not taken from
        the client.

        Raises:
            ValidationError: unknown vehicle or vehicle no longer available
        """
        self._require(BookingStep.SELECT)

        vehicle = get_vehicle_by_id(backend, vehicle_id) if vehicle_id else None
        if vehicle is None:
            raise ValidationError(MESSAGES['vehicle_not_found'], field='vehicle_id')
        criteria = self.criteria
        if not is_vehicle_available(backend, vehicle, criteria.start_date, criteria.end_date):
            raise ValidationError(MESSAGES['vehicle_unavailable'], field='vehicle_id')

        priced = price_vehicle(vehicle, rental_duration(criteria.start_date, criteria.end_date))
        customer = CustomerInfo()
        if user is not None:
            customer = CustomerInfo(full_name=user.full_name or '', email=user.email or '',
                                    phone=user.phone or '')

        self.draft = BookingDraft(
            vehicle_id=vehicle.id,
            start_date=criteria.start_date.isoformat(),
            end_date=criteria.end_date.isoformat(),
            pickup_location=criteria.pickup_location,
            dropoff_location=criteria.dropoff_location,
            total_amount=priced.discounted_price,
            customer=customer,
        )
        self.step = BookingStep.DETAILS
        return priced

    def update_details(self, customer: dict = None, special_requests: str = None) -> BookingDraft:
        """Merge customer info and special requests into the draft."""
        self._require(BookingStep.DETAILS)
        changes = {}
        if customer is not None:
            merged = {**asdict(self.draft.customer), **{k: v for k, v in customer.items() if v is not None}}
            changes['customer'] = CustomerInfo.from_dict(merged)
        if special_requests is not None:
            changes['special_requests'] = sanitize_input(special_requests, 1000)
        if changes:
            self.draft = replace(self.draft, **changes)
        return self.draft

    def submit(self, backend, user, notify: Callable = None) -> Booking:
        """
        Persist the draft and move to confirmation.
        On failure the flow stays on the details step.
        """
        self._require(BookingStep.DETAILS)
        try:
            booking = submit_booking(backend, user, self.draft)
        except BookingError as e:
            if notify is not None:
                notify(e.message, 'error')
            raise

        self.booking_id = booking.id
        self.step = BookingStep.CONFIRMATION
        if notify is not None:
            notify(MESSAGES['booking_created'], 'success')
        return booking

    def restart(self) -> None:
        """Return to the search step, clearing the selected vehicle."""
        self._require(BookingStep.SEARCH, BookingStep.SELECT, BookingStep.DETAILS)
        self.draft = None
        self.step = BookingStep.SEARCH

    # --- serialisation -------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'step': self.step.value,
            'criteria': self.criteria.to_dict() if self.criteria else None,
            'draft': self.draft.to_dict() if self.draft else None,
            'booking_id': self.booking_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'BookingFlow':
        if not data:
            return cls()
        return cls(
            step=BookingStep(data.get('step', BookingStep.SEARCH.value)),
            criteria=SearchCriteria.from_dict(data['criteria']) if data.get('criteria') else None,
            draft=BookingDraft.from_dict(data['draft']) if data.get('draft') else None,
            booking_id=data.get('booking_id'),
        )
