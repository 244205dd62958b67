"""
Database schema definitions.
Table creation, indexes, and structure management for the local backend.
"""

# ISO-8601 UTC timestamp, same shape the hosted backend returns
NOW = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

# Columns stored as JSON text and decoded on read
JSON_COLUMNS = {
    'auth_users': {'user_metadata'},
    'vehicles': {'features', 'specifications', 'pricing'},
    'audit_logs': {'old_data', 'new_data'},
    'error_logs': {'registration_context'},
}

# Columns stored as 0/1 and decoded to bool on read
BOOLEAN_COLUMNS = {
    'auth_attempts': {'success'},
}


def drop_tables(db):
    """Drop all existing tables."""
    # Disable foreign key constraints before dropping
    db.execute('PRAGMA foreign_keys = OFF')

    tables = [
        'error_logs',
        'auth_attempts',
        'audit_logs',
        'bookings',
        'vehicles',
        'sessions',
        'profiles',
        'auth_users',
    ]

    for table in tables:
        db.execute(f'DROP TABLE IF EXISTS {table}')

    # Re-enable foreign key constraints
    db.execute('PRAGMA foreign_keys = ON')


def create_tables(db):
    """Create all database tables."""

    # 1. Auth tables (owned by the backend's auth service)
    db.execute(f'''
        CREATE TABLE IF NOT EXISTS auth_users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            email_confirmed_at TEXT,
            confirmation_token TEXT,
            confirmation_sent_at TEXT,
            user_metadata TEXT,
            last_sign_in_at TEXT,
            created_at TEXT DEFAULT {NOW}
        )
    ''')

    db.execute(f'''
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            refresh_token TEXT,
            user_agent TEXT,
            ip_address TEXT,
            created_at TEXT DEFAULT {NOW},
            expires_at TEXT NOT NULL
        )
    ''')

    # 2. Public tables
    db.execute(f'''
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            user_id TEXT UNIQUE NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            username TEXT UNIQUE,
            email TEXT UNIQUE,
            full_name TEXT,
            phone TEXT,
            avatar_url TEXT,
            role TEXT CHECK(role IN ('user', 'admin')) DEFAULT 'user',
            created_at TEXT DEFAULT {NOW},
            updated_at TEXT DEFAULT {NOW}
        )
    ''')

    db.execute(f'''
        CREATE TABLE IF NOT EXISTS vehicles (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            make TEXT NOT NULL,
            model TEXT NOT NULL,
            year INTEGER,
            category TEXT CHECK(category IN ('economic', 'luxury', 'suv', 'utility')) NOT NULL,
            daily_rate REAL NOT NULL,
            features TEXT DEFAULT '[]',
            specifications TEXT DEFAULT '{{}}',
            pricing TEXT DEFAULT '{{}}',
            rental_status TEXT CHECK(rental_status IN ('available', 'rented', 'maintenance', 'retired'))
                DEFAULT 'available',
            location TEXT,
            image_url TEXT,
            created_at TEXT DEFAULT {NOW},
            updated_at TEXT DEFAULT {NOW}
        )
    ''')

    db.execute(f'''
        CREATE TABLE IF NOT EXISTS bookings (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES auth_users(id),
            vehicle_id TEXT NOT NULL REFERENCES vehicles(id),
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            pickup_location TEXT,
            dropoff_location TEXT,
            total_amount REAL NOT NULL DEFAULT 0,
            booking_status TEXT CHECK(booking_status IN
                ('pending', 'confirmed', 'active', 'completed', 'cancelled')) DEFAULT 'pending',
            special_requests TEXT,
            idempotency_key TEXT UNIQUE,
            created_at TEXT DEFAULT {NOW},
            updated_at TEXT DEFAULT {NOW}
        )
    ''')

    # 3. Logging tables
    db.execute(f'''
        CREATE TABLE IF NOT EXISTS audit_logs (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            action TEXT NOT NULL,
            table_name TEXT NOT NULL,
            record_id TEXT,
            old_data TEXT,
            new_data TEXT,
            ip_address TEXT,
            created_at TEXT DEFAULT {NOW}
        )
    ''')

    db.execute(f'''
        CREATE TABLE IF NOT EXISTS auth_attempts (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            ip_address TEXT,
            success INTEGER DEFAULT 0,
            attempt_count INTEGER DEFAULT 0,
            last_attempt TEXT DEFAULT {NOW},
            blocked_until TEXT,
            created_at TEXT DEFAULT {NOW}
        )
    ''')

    db.execute(f'''
        CREATE TABLE IF NOT EXISTS error_logs (
            id TEXT PRIMARY KEY,
            error_message TEXT NOT NULL,
            error_detail TEXT,
            error_context TEXT,
            registration_context TEXT,
            stack_trace TEXT,
            created_at TEXT DEFAULT {NOW}
        )
    ''')


def create_indexes(db):
    """Create performance indexes."""

    # Availability lookups: status + date range overlap
    db.execute('CREATE INDEX IF NOT EXISTS idx_bookings_availability '
               'ON bookings(booking_status, start_date, end_date)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_bookings_vehicle ON bookings(vehicle_id)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_bookings_user ON bookings(user_id)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_bookings_created ON bookings(created_at)')

    # Vehicle search
    db.execute('CREATE INDEX IF NOT EXISTS idx_vehicles_status ON vehicles(rental_status, category, daily_rate)')

    # Sessions and audit
    db.execute('CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_audit_logs_table ON audit_logs(table_name, record_id)')
    db.execute('CREATE INDEX IF NOT EXISTS idx_audit_logs_created ON audit_logs(created_at)')
