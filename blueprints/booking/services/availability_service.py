"""
Availability & Pricing Service.

Handles:
- Search criteria validation
- Exclusion of vehicles with a blocking booking in the requested range
- Specification filters (seats, transmission, fuel type)
- Rental duration and discount tier pricing
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, List

from models.booking import get_booked_vehicle_ids, find_conflicting_bookings
from models.vehicle import Vehicle, VehicleCategory, list_vehicles, RentalStatus
from utils.errors import ValidationError
from utils.messages import MESSAGES
from utils.validators import parse_date, validate_date_range

WEEKLY_THRESHOLD_DAYS = 7
MONTHLY_THRESHOLD_DAYS = 30


@dataclass(frozen=True)
class SearchCriteria:
    """Availability search; filters left at their default are inactive."""

    start_date: date
    end_date: date
    category: Optional[str] = None
    min_price: float = 0
    max_price: Optional[float] = None
    seats: int = 0
    transmission: str = ''
    fuel_type: str = ''
    pickup_location: str = ''
    dropoff_location: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'SearchCriteria':
        """
        Build criteria from request parameters (strings accepted).

        Raises:
            ValidationError: missing or unparsable dates or numbers
        """
        start, end = data.get('start_date'), data.get('end_date')
        if not start or not end:
            raise ValidationError(MESSAGES['dates_required'], field='start_date' if not start else 'end_date')
        try:
            start_date = parse_date(start)
        except ValueError:
            raise ValidationError(MESSAGES['invalid_date'], field='start_date')
        try:
            end_date = parse_date(end)
        except ValueError:
            raise ValidationError(MESSAGES['invalid_date'], field='end_date')

        def number(name, default, cast=float):
            value = data.get(name)
            if value in (None, ''):
                return default
            try:
                return cast(value)
            except (TypeError, ValueError):
                raise ValidationError(MESSAGES['invalid_value'], field=name)

        category = data.get('category') or None
        if category and category not in {c.value for c in VehicleCategory}:
            raise ValidationError(MESSAGES['invalid_value'], field='category')

        return cls(
            start_date=start_date,
            end_date=end_date,
            category=category,
            min_price=number('min_price', 0),
            max_price=number('max_price', None),
            seats=number('seats', 0, int),
            transmission=data.get('transmission') or '',
            fuel_type=data.get('fuel_type') or '',
            pickup_location=data.get('pickup_location') or '',
            dropoff_location=data.get('dropoff_location') or '',
        )

    def validate(self) -> 'SearchCriteria':
        """
        Reject inverted ranges; same-day ranges are allowed.

        Raises:
            ValidationError: end_date before start_date
        """
        if not validate_date_range(self.start_date, self.end_date):
            raise ValidationError(MESSAGES['invalid_date_range'], field='end_date')
        return self

    def to_dict(self) -> dict:
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'category': self.category,
            'min_price': self.min_price,
            'max_price': self.max_price,
            'seats': self.seats,
            'transmission': self.transmission,
            'fuel_type': self.fuel_type,
            'pickup_location': self.pickup_location,
            'dropoff_location': self.dropoff_location,
        }


@dataclass(frozen=True)
class PricedVehicle:
    vehicle: Vehicle
    duration: int
    total_price: float
    discounted_price: float
    discount_percentage: float

    def to_dict(self) -> dict:
        data = self.vehicle.to_dict()
        data.update({
            'duration': self.duration,
            'total_price': self.total_price,
            'discounted_price': self.discounted_price,
            'discount_percentage': self.discount_percentage,
        })
        return data


# =============================================================================
# PRICING
# =============================================================================

def rental_duration(start_date: date, end_date: date) -> int:
    """
    Number of billed days: ceil((end - start) / 1 day), at least 1.

    Args:
        start_date: First day
        end_date: Last day

    Returns:
        int: Duration in days (same-day rental counts as 1)
    """
    days = (end_date - start_date).total_seconds() / 86400
    return max(1, math.ceil(days))


def discount_percentage(duration: int, pricing: dict) -> float:
    """
    Discount tier for a duration. Monthly supersedes weekly; never both.

    Args:
        duration: Rental duration in days
        pricing: Vehicle pricing with optional weekly_discount / monthly_discount

    Returns:
        Percentage (0 when no tier applies)
    """
    pricing = pricing or {}
    if duration >= MONTHLY_THRESHOLD_DAYS and pricing.get('monthly_discount'):
        return float(pricing['monthly_discount'])
    if duration >= WEEKLY_THRESHOLD_DAYS and pricing.get('weekly_discount'):
        return float(pricing['weekly_discount'])
    return 0.0


def price_vehicle(vehicle: Vehicle, duration: int) -> PricedVehicle:
    base_price = round(vehicle.daily_rate * duration, 2)
    pct = discount_percentage(duration, vehicle.pricing)
    discounted = round(base_price * (1 - pct / 100), 2) if pct else base_price
    return PricedVehicle(
        vehicle=vehicle,
        duration=duration,
        total_price=base_price,
        discounted_price=discounted,
        discount_percentage=pct,
    )


# =============================================================================
# FILTERS
# =============================================================================

def matches_specifications(vehicle: Vehicle, criteria: SearchCriteria) -> bool:
    """
    Check the client-side filters against the vehicle's specifications.

    An inactive filter always matches; an active filter fails when the
    vehicle lacks the specification.
    """
    specs = vehicle.specifications or {}

    if criteria.seats > 0:
        seats = specs.get('seats')
        if seats is None or int(seats) < criteria.seats:
            return False

    if criteria.transmission and specs.get('transmission') != criteria.transmission:
        return False

    if criteria.fuel_type and specs.get('fuel_type') != criteria.fuel_type:
        return False

    return True


# =============================================================================
# SEARCH
# =============================================================================

def search_available_vehicles(backend, criteria: SearchCriteria) -> List[PricedVehicle]:
    """
    Vehicles free for the requested range, with pricing.

    A vehicle is returned iff its rental status is available and no
    confirmed or active booking on it overlaps [start_date, end_date).

    Args:
        backend: Gateway backend
        criteria: Search criteria

    Returns:
        List of PricedVehicle in backend order

    Raises:
        ValidationError: inverted date range
    """
    criteria.validate()

    vehicles = list_vehicles(
        backend,
        status=RentalStatus.AVAILABLE.value,
        category=criteria.category,
        min_price=criteria.min_price,
        max_price=criteria.max_price,
    )
    booked = get_booked_vehicle_ids(backend, criteria.start_date, criteria.end_date)
    duration = rental_duration(criteria.start_date, criteria.end_date)

    return [
        price_vehicle(vehicle, duration)
        for vehicle in vehicles
        if vehicle.id not in booked and matches_specifications(vehicle, criteria)
    ]


def is_vehicle_available(backend, vehicle: Vehicle, start_date: date, end_date: date) -> bool:
    """Single-vehicle form of the availability rule."""
    if vehicle.rental_status != RentalStatus.AVAILABLE.value:
        return False
    return not find_conflicting_bookings(backend, start_date, end_date, vehicle_id=vehicle.id)
