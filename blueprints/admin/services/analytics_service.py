"""
Business logic for the admin back-office.
Dashboard statistics, analytics report and booking status changes.
"""

import logging
import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Any

from gateway import GatewayError
from models.booking import (
    BookingStatus,
    BLOCKING_STATUSES,
    count_bookings,
    get_booking_by_id,
    list_bookings,
    update_booking_status,
)
from models.profile import count_profiles
from models.vehicle import RentalStatus, count_vehicles, get_vehicles_by_ids
from utils.datetime_helpers import utc_now_iso
from utils.errors import ValidationError, InvalidTransitionError, NetworkError
from utils.messages import MESSAGES, get_message

logger = logging.getLogger(__name__)

# Allowed admin status changes; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    BookingStatus.PENDING.value: (BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value),
    BookingStatus.CONFIRMED.value: (BookingStatus.ACTIVE.value, BookingStatus.CANCELLED.value),
    BookingStatus.ACTIVE.value: (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value),
    BookingStatus.COMPLETED.value: (),
    BookingStatus.CANCELLED.value: (),
}

TOP_VEHICLES_LIMIT = 10
DAILY_BOOKINGS_DAYS = 30


# =============================================================================
# DASHBOARD
# =============================================================================

def get_dashboard_stats(backend, max_workers: int = 4) -> Dict[str, int]:
    """
    Fetch the dashboard counters concurrently and wait for all of them.

    Args:
        backend: Gateway backend
        max_workers: Thread pool size

    Returns:
        dict with total_users, total_vehicles, available_vehicles,
        active_bookings, pending_bookings

    Raises:
        NetworkError: if any count failed
    """
    queries = {
        'total_users': lambda: count_profiles(backend),
        'total_vehicles': lambda: count_vehicles(backend),
        'available_vehicles': lambda: count_vehicles(backend, RentalStatus.AVAILABLE.value),
        'active_bookings': lambda: count_bookings(backend, BLOCKING_STATUSES),
        'pending_bookings': lambda: count_bookings(backend, (BookingStatus.PENDING.value,)),
    }

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {name: executor.submit(fn) for name, fn in queries.items()}
        try:
            return {name: future.result() for name, future in futures.items()}
        except GatewayError as e:
            logger.error(f'Dashboard statistics failed: {e}', exc_info=True)
            raise NetworkError(MESSAGES['network_error'])


# =============================================================================
# ANALYTICS REPORT
# =============================================================================

def _day_start(day: date) -> str:
    return f'{day.isoformat()}T00:00:00.000Z'


def _revenue(bookings: list) -> float:
    return round(sum(float(b.get('total_amount') or 0) for b in bookings
                     if b.get('booking_status') != BookingStatus.CANCELLED.value), 2)


def _growth(current: float, previous: float) -> float:
    return round((current - previous) / previous * 100, 2) if previous > 0 else 0.0


def _monthly_revenue(bookings: list) -> list:
    months = defaultdict(lambda: {'revenue': 0.0, 'bookings': 0})
    for booking in bookings:
        if booking.get('booking_status') == BookingStatus.CANCELLED.value:
            continue
        month = months[(booking.get('created_at') or '')[:7]]
        month['revenue'] += float(booking.get('total_amount') or 0)
        month['bookings'] += 1
    return [
        {'month': key, 'revenue': round(value['revenue'], 2), 'bookings': value['bookings']}
        for key, value in sorted(months.items())
    ]


def _category_stats(bookings: list, vehicles: dict) -> list:
    categories = defaultdict(lambda: {'bookings': 0, 'revenue': 0.0, 'rates': []})
    for booking in bookings:
        if booking.get('booking_status') == BookingStatus.CANCELLED.value:
            continue
        vehicle = vehicles.get(booking['vehicle_id'])
        stats = categories[vehicle.category if vehicle else 'unknown']
        stats['bookings'] += 1
        stats['revenue'] += float(booking.get('total_amount') or 0)
        if vehicle:
            stats['rates'].append(vehicle.daily_rate)

    return [
        {
            'category': category,
            'label': MESSAGES.get(f'category_{category}', category),
            'bookings': stats['bookings'],
            'revenue': round(stats['revenue'], 2),
            'avg_rate': round(sum(stats['rates']) / len(stats['rates']), 2) if stats['rates'] else 0,
        }
        for category, stats in categories.items()
    ]


def _top_vehicles(all_bookings: list, vehicles: dict) -> list:
    per_vehicle = defaultdict(list)
    for booking in all_bookings:
        per_vehicle[booking['vehicle_id']].append(booking)

    now = datetime.now(timezone.utc)
    performance = []
    for vehicle_id, bookings in per_vehicle.items():
        vehicle = vehicles.get(vehicle_id)
        if vehicle is None:
            continue
        created = _created_at(vehicle) or now
        days = math.ceil((now - created).total_seconds() / 86400)
        utilization = min(len(bookings) / days * 100, 100) if days > 0 else 0
        performance.append({
            'id': vehicle.id,
            'name': vehicle.name,
            'make': vehicle.make,
            'model': vehicle.model,
            'bookings': len(bookings),
            'revenue': _revenue(bookings),
            'utilization': round(utilization, 2),
        })

    performance.sort(key=lambda v: v['revenue'], reverse=True)
    return performance[:TOP_VEHICLES_LIMIT]


def _created_at(vehicle):
    if not vehicle.created_at:
        return None
    return datetime.fromisoformat(vehicle.created_at.replace('Z', '+00:00'))


def _customer_insights(bookings: list, customers_total: int) -> dict:
    per_customer = defaultdict(int)
    for booking in bookings:
        per_customer[booking['user_id']] += 1

    active = len(per_customer)
    repeat = sum(1 for count in per_customer.values() if count > 1)
    return {
        'total_customers': customers_total,
        'active_customers': active,
        'repeat_customers': repeat,
        'avg_bookings_per_customer': round(len(bookings) / active, 2) if active else 0,
        'retention_rate': round(repeat / customers_total * 100, 2) if customers_total else 0,
    }


def _daily_bookings(bookings: list) -> list:
    days = defaultdict(int)
    for booking in bookings:
        days[(booking.get('created_at') or '')[:10]] += 1
    return [{'date': day, 'count': count} for day, count in sorted(days.items())][-DAILY_BOOKINGS_DAYS:]


def get_analytics_report(backend, start: date, end: date, max_workers: int = 4) -> Dict[str, Any]:
    """
    Build the analytics report for bookings created between start and end.

    Revenue counts every booking that is not cancelled. Growth compares with
    the previous period of the same length, ending where this one starts.

    Args:
        backend: Gateway backend
        start: First day (inclusive)
        end: Last day (inclusive)
        max_workers: Thread pool size

    Returns:
        dict with total_revenue, total_bookings, avg_booking_value,
        revenue_growth, booking_growth, monthly_revenue, category_stats,
        top_vehicles, customer_insights, daily_bookings

    Raises:
        ValidationError: end before start
        NetworkError: backend failure
    """
    if end < start:
        raise ValidationError(MESSAGES['invalid_date_range'], field='end_date')

    period_days = max(1, (end - start).days)
    previous_start = start - timedelta(days=period_days)
    range_end = _day_start(end + timedelta(days=1))

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        current_future = executor.submit(list_bookings, backend, created_from=_day_start(start), created_to=range_end)
        previous_future = executor.submit(list_bookings, backend, created_from=_day_start(previous_start),
                                          created_to=_day_start(start))
        all_future = executor.submit(list_bookings, backend)
        customers_future = executor.submit(count_profiles, backend, 'user')
        try:
            bookings = current_future.result()
            previous = previous_future.result()
            all_bookings = all_future.result()
            customers_total = customers_future.result()
            vehicles = get_vehicles_by_ids(backend, {b['vehicle_id'] for b in all_bookings})
        except GatewayError as e:
            logger.error(f'Analytics report failed: {e}', exc_info=True)
            raise NetworkError(MESSAGES['network_error'])

    total_revenue = _revenue(bookings)
    total_bookings = len(bookings)

    return {
        'period': {'start': start.isoformat(), 'end': end.isoformat()},
        'total_revenue': total_revenue,
        'total_bookings': total_bookings,
        'avg_booking_value': round(total_revenue / total_bookings, 2) if total_bookings else 0,
        'revenue_growth': _growth(total_revenue, _revenue(previous)),
        'booking_growth': _growth(total_bookings, len(previous)),
        'monthly_revenue': _monthly_revenue(bookings),
        'category_stats': _category_stats(bookings, vehicles),
        'top_vehicles': _top_vehicles(all_bookings, vehicles),
        'customer_insights': _customer_insights(bookings, customers_total),
        'daily_bookings': _daily_bookings(bookings),
    }


# =============================================================================
# BOOKING STATUS
# =============================================================================

def change_booking_status(backend, booking_id: str, new_status: str):
    """
    Move a booking to a new status following STATUS_TRANSITIONS.

    Last write wins: no version check is made against concurrent changes.

    Returns:
        Updated Booking

    Raises:
        ValidationError: unknown booking or status
        InvalidTransitionError: transition not allowed
    """
    if new_status not in STATUS_TRANSITIONS:
        raise ValidationError(MESSAGES['invalid_status'], field='status')

    booking = get_booking_by_id(backend, booking_id)
    if booking is None:
        raise ValidationError(MESSAGES['booking_not_found'], field='booking_id')

    if new_status not in STATUS_TRANSITIONS[booking.booking_status]:
        raise InvalidTransitionError(
            get_message('invalid_status_transition',
                        current=MESSAGES[f'status_{booking.booking_status}'],
                        target=MESSAGES[f'status_{new_status}']),
            field='status'
        )

    try:
        updated = update_booking_status(backend, booking_id, new_status, utc_now_iso())
    except GatewayError as e:
        logger.error(f'Status change failed for booking {booking_id}: {e}', exc_info=True)
        raise NetworkError(MESSAGES['network_error'])

    logger.info(f'Booking {booking_id}: {booking.booking_status} -> {new_status}')
    return updated
