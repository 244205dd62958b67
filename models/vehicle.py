"""
Vehicle model and data access functions.
Catalog entities read by the availability engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from gateway import Query


class VehicleCategory(str, Enum):
    ECONOMIC = 'economic'
    LUXURY = 'luxury'
    SUV = 'suv'
    UTILITY = 'utility'


class RentalStatus(str, Enum):
    AVAILABLE = 'available'
    RENTED = 'rented'
    MAINTENANCE = 'maintenance'
    RETIRED = 'retired'


@dataclass(frozen=True)
class Vehicle:
    """Catalog vehicle as returned by the backend."""

    id: str
    name: str
    make: str
    model: str
    year: Optional[int]
    category: str
    daily_rate: float
    features: list = field(default_factory=list)
    specifications: dict = field(default_factory=dict)
    pricing: dict = field(default_factory=dict)
    rental_status: str = RentalStatus.AVAILABLE.value
    location: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> 'Vehicle':
        return cls(
            id=row['id'],
            name=row.get('name') or f"{row.get('make', '')} {row.get('model', '')}".strip(),
            make=row.get('make') or '',
            model=row.get('model') or '',
            year=row.get('year'),
            category=row.get('category'),
            daily_rate=float(row.get('daily_rate') or 0),
            features=list(row.get('features') or []),
            specifications=dict(row.get('specifications') or {}),
            pricing=dict(row.get('pricing') or {}),
            rental_status=row.get('rental_status') or RentalStatus.AVAILABLE.value,
            location=row.get('location'),
            image_url=row.get('image_url'),
            created_at=row.get('created_at'),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'make': self.make,
            'model': self.model,
            'year': self.year,
            'category': self.category,
            'daily_rate': self.daily_rate,
            'features': list(self.features),
            'specifications': dict(self.specifications),
            'pricing': dict(self.pricing),
            'rental_status': self.rental_status,
            'location': self.location,
            'image_url': self.image_url,
        }


# =============================================================================
# READ OPERATIONS
# =============================================================================

def list_vehicles(
    backend,
    status: str = RentalStatus.AVAILABLE.value,
    category: str = None,
    min_price: float = None,
    max_price: float = None
) -> list:
    """
    List vehicles with server-side filters.

    Args:
        backend: Gateway backend
        status: Rental status to match (None for any)
        category: Category to match (None for any)
        min_price: Minimum daily rate (None or <= 0 for no bound)
        max_price: Maximum daily rate (None for no bound)

    Returns:
        List of Vehicle, in backend order
    """
    query = Query()
    if status:
        query.eq('rental_status', status)
    if category:
        query.eq('category', category)
    if min_price is not None and min_price > 0:
        query.gte('daily_rate', min_price)
    if max_price is not None:
        query.lte('daily_rate', max_price)

    return [Vehicle.from_row(row) for row in backend.table('vehicles').select(query)]


def get_vehicle_by_id(backend, vehicle_id: str) -> Optional[Vehicle]:
    """
    Get vehicle by ID.

    Returns:
        Vehicle or None if not found
    """
    row = backend.table('vehicles').single(Query().eq('id', vehicle_id))
    return Vehicle.from_row(row) if row else None


def count_vehicles(backend, status: str = None) -> int:
    query = Query()
    if status:
        query.eq('rental_status', status)
    return backend.table('vehicles').count(query)


def get_vehicles_by_ids(backend, vehicle_ids) -> dict:
    """Map of vehicle id to Vehicle for the given ids."""
    vehicle_ids = list(vehicle_ids)
    if not vehicle_ids:
        return {}
    rows = backend.table('vehicles').select(Query().in_('id', vehicle_ids))
    return {row['id']: Vehicle.from_row(row) for row in rows}
