"""
Database seed data.
Initial data population for fresh local backend installations.
"""

import json
import uuid
from datetime import datetime, timezone

from werkzeug.security import generate_password_hash

ADMIN_EMAIL = 'admin@locauto.fr'
ADMIN_USERNAME = 'admin'
ADMIN_PASSWORD = 'Admin1234'


def _now() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def seed_database(db):
    """Insert initial seed data."""

    # 1. Administrator account (confirmed, admin role)
    admin_id = uuid.uuid4().hex
    db.execute('''
        INSERT INTO auth_users (id, email, password_hash, email_confirmed_at, user_metadata)
        VALUES (?, ?, ?, ?, ?)
    ''', (admin_id, ADMIN_EMAIL, generate_password_hash(ADMIN_PASSWORD), _now(),
          json.dumps({'username': ADMIN_USERNAME, 'full_name': 'Administrateur'})))

    db.execute('''
        INSERT INTO profiles (id, user_id, username, email, full_name, role)
        VALUES (?, ?, ?, ?, ?, 'admin')
    ''', (uuid.uuid4().hex, admin_id, ADMIN_USERNAME, ADMIN_EMAIL, 'Administrateur'))

    # 2. Demo fleet
    vehicles_data = [
        # name, make, model, year, category, daily_rate, specifications, pricing, location
        ('Renault Clio', 'Renault', 'Clio', 2023, 'economic', 45.0,
         {'seats': 5, 'transmission': 'Manuelle', 'fuel_type': 'Essence', 'doors': 5},
         {'weekly_discount': 10}, 'Aéroport'),
        ('Peugeot 208', 'Peugeot', '208', 2022, 'economic', 42.0,
         {'seats': 5, 'transmission': 'Automatique', 'fuel_type': 'Diesel', 'doors': 5},
         {'weekly_discount': 10, 'monthly_discount': 20}, 'Centre-ville'),
        ('Mercedes Classe E', 'Mercedes', 'Classe E', 2024, 'luxury', 150.0,
         {'seats': 5, 'transmission': 'Automatique', 'fuel_type': 'Hybride', 'doors': 4},
         {'weekly_discount': 5, 'monthly_discount': 15}, 'Aéroport'),
        ('Toyota RAV4', 'Toyota', 'RAV4', 2023, 'suv', 85.0,
         {'seats': 5, 'transmission': 'Automatique', 'fuel_type': 'Hybride', 'doors': 5},
         {'weekly_discount': 10}, 'Centre-ville'),
        ('Renault Master', 'Renault', 'Master', 2021, 'utility', 95.0,
         {'seats': 3, 'transmission': 'Manuelle', 'fuel_type': 'Diesel', 'doors': 4},
         {}, 'Zone industrielle'),
        ('Tesla Model Y', 'Tesla', 'Model Y', 2024, 'suv', 120.0,
         {'seats': 7, 'transmission': 'Automatique', 'fuel_type': 'Électrique', 'doors': 5},
         {'weekly_discount': 8, 'monthly_discount': 18}, 'Gare'),
    ]

    for name, make, model, year, category, daily_rate, specs, pricing, location in vehicles_data:
        db.execute('''
            INSERT INTO vehicles (id, name, make, model, year, category, daily_rate,
                                  features, specifications, pricing, location)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (uuid.uuid4().hex, name, make, model, year, category, daily_rate,
              json.dumps(['Climatisation', 'Bluetooth', 'GPS']), json.dumps(specs),
              json.dumps(pricing), location))
