"""
Booking model and data access functions.
Handles booking creation, conflict lookup and status changes.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from gateway import Query


class BookingStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


# Bookings in these statuses make their vehicle unavailable
BLOCKING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)


@dataclass(frozen=True)
class Booking:
    id: str
    user_id: str
    vehicle_id: str
    start_date: str
    end_date: str
    total_amount: float
    booking_status: str = BookingStatus.PENDING.value
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    special_requests: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> 'Booking':
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            vehicle_id=row['vehicle_id'],
            start_date=row['start_date'],
            end_date=row['end_date'],
            total_amount=float(row.get('total_amount') or 0),
            booking_status=row.get('booking_status') or BookingStatus.PENDING.value,
            pickup_location=row.get('pickup_location'),
            dropoff_location=row.get('dropoff_location'),
            special_requests=row.get('special_requests'),
            idempotency_key=row.get('idempotency_key'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def _iso(value) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


# =============================================================================
# READ OPERATIONS
# =============================================================================

def find_conflicting_bookings(backend, start_date, end_date, vehicle_id: str = None) -> list:
    """
    Get blocking bookings overlapping [start_date, end_date).

    The overlap predicate is evaluated by the backend.

    Args:
        backend: Gateway backend
        start_date: Range start (date or YYYY-MM-DD)
        end_date: Range end (date or YYYY-MM-DD)
        vehicle_id: Restrict to one vehicle (optional)

    Returns:
        List of booking dicts
    """
    query = (Query()
             .in_('booking_status', BLOCKING_STATUSES)
             .lt('start_date', _iso(end_date))
             .gt('end_date', _iso(start_date)))
    if vehicle_id:
        query.eq('vehicle_id', vehicle_id)
    return backend.table('bookings').select(query)


def get_booked_vehicle_ids(backend, start_date, end_date) -> set:
    """Ids of vehicles with a blocking booking overlapping the range."""
    return {row['vehicle_id'] for row in find_conflicting_bookings(backend, start_date, end_date)}


def get_booking_by_id(backend, booking_id: str) -> Optional[Booking]:
    row = backend.table('bookings').single(Query().eq('id', booking_id))
    return Booking.from_row(row) if row else None


def get_booking_by_idempotency_key(backend, key: str) -> Optional[Booking]:
    row = backend.table('bookings').single(Query().eq('idempotency_key', key))
    return Booking.from_row(row) if row else None


def list_bookings(
    backend,
    user_id: str = None,
    status: str = None,
    created_from: str = None,
    created_to: str = None,
    limit: int = None
) -> list:
    """
    List bookings, newest first.

    Args:
        backend: Gateway backend
        user_id: Filter by owner
        status: Filter by booking status
        created_from: Created at or after this ISO timestamp
        created_to: Created strictly before this ISO timestamp
        limit: Maximum number of rows

    Returns:
        List of booking dicts
    """
    query = Query()
    if user_id:
        query.eq('user_id', user_id)
    if status:
        query.eq('booking_status', status)
    if created_from:
        query.gte('created_at', created_from)
    if created_to:
        query.lt('created_at', created_to)
    query.order('created_at', desc=True)
    if limit:
        query.limit(limit)
    return backend.table('bookings').select(query)


def count_bookings(backend, statuses=None) -> int:
    query = Query()
    if statuses:
        query.in_('booking_status', statuses)
    return backend.table('bookings').count(query)


# =============================================================================
# CREATE / UPDATE OPERATIONS
# =============================================================================

def create_booking(backend, values: dict) -> Booking:
    """
    Insert a booking keyed on its idempotency key.

    A second call with the same key leaves the stored row untouched and
    returns it.

    Args:
        backend: Gateway backend
        values: Booking columns, including idempotency_key

    Returns:
        The stored Booking
    """
    key = values['idempotency_key']
    backend.table('bookings').upsert(values, on_conflict='idempotency_key', ignore_duplicates=True)
    booking = get_booking_by_idempotency_key(backend, key)
    if booking is None:
        raise LookupError(f'Booking {key} was not stored')
    return booking


def update_booking_status(backend, booking_id: str, status: str, updated_at: str) -> Optional[Booking]:
    rows = backend.table('bookings').update(
        {'booking_status': status, 'updated_at': updated_at},
        Query().eq('id', booking_id)
    )
    return Booking.from_row(rows[0]) if rows else None
