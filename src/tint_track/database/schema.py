"""Database schema definition and initialization."""

import sqlite3

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Named monotonic counters (job numbers)
    """CREATE TABLE IF NOT EXISTS sequences (
        name TEXT PRIMARY KEY,
        value INTEGER NOT NULL DEFAULT 0 CHECK (value >= 0)
    )""",

    # Installers and managers
    """CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE,
        first_name TEXT NOT NULL DEFAULT '',
        last_name TEXT NOT NULL DEFAULT '',
        role TEXT NOT NULL DEFAULT 'installer'
            CHECK (role IN ('installer', 'manager')),
        hourly_rate REAL NOT NULL DEFAULT 0.0 CHECK (hourly_rate >= 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Film material types
    """CREATE TABLE IF NOT EXISTS films (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        type TEXT NOT NULL,
        cost_per_sqft REAL NOT NULL CHECK (cost_per_sqft >= 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        total_sqft REAL,
        gross_weight REAL,
        core_weight REAL,
        net_weight REAL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Current stock per film (mutated only through the ledger)
    """CREATE TABLE IF NOT EXISTS film_inventory (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        film_id INTEGER NOT NULL UNIQUE,
        current_stock REAL NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
        minimum_stock REAL NOT NULL DEFAULT 0 CHECK (minimum_stock >= 0),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (film_id) REFERENCES films(id) ON DELETE RESTRICT
    )""",

    # Job entries (one vehicle work order each)
    """CREATE TABLE IF NOT EXISTS job_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_number TEXT NOT NULL UNIQUE,
        date TEXT NOT NULL,
        vehicle_year TEXT NOT NULL,
        vehicle_make TEXT NOT NULL,
        vehicle_model TEXT NOT NULL,
        total_windows INTEGER NOT NULL DEFAULT 7 CHECK (total_windows >= 1),
        windows_completed INTEGER NOT NULL DEFAULT 0
            CHECK (windows_completed >= 0),
        windows_source TEXT NOT NULL DEFAULT 'aggregate_fallback'
            CHECK (windows_source IN ('assigned', 'aggregate_fallback')),
        start_time TEXT,
        end_time TEXT,
        duration_minutes INTEGER CHECK (duration_minutes >= 0),
        total_sqft REAL NOT NULL DEFAULT 0,
        film_cost REAL NOT NULL DEFAULT 0,
        window_assignments TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    """CREATE TABLE IF NOT EXISTS job_dimensions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_entry_id INTEGER NOT NULL,
        film_id INTEGER,
        length_inches REAL NOT NULL CHECK (length_inches > 0),
        width_inches REAL NOT NULL CHECK (width_inches > 0),
        sqft REAL NOT NULL,
        film_cost REAL,
        description TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (job_entry_id) REFERENCES job_entries(id) ON DELETE CASCADE,
        FOREIGN KEY (film_id) REFERENCES films(id) ON DELETE RESTRICT
    )""",

    """CREATE TABLE IF NOT EXISTS job_installers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_entry_id INTEGER NOT NULL,
        installer_id INTEGER NOT NULL,
        time_variance INTEGER NOT NULL DEFAULT 0,
        windows_completed INTEGER NOT NULL DEFAULT 0
            CHECK (windows_completed >= 0),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (job_entry_id) REFERENCES job_entries(id) ON DELETE CASCADE,
        FOREIGN KEY (installer_id) REFERENCES users(id) ON DELETE RESTRICT,
        UNIQUE(job_entry_id, installer_id)
    )""",

    """CREATE TABLE IF NOT EXISTS redo_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_entry_id INTEGER NOT NULL,
        installer_id INTEGER NOT NULL,
        part TEXT NOT NULL
            CHECK (part IN ('windshield', 'rollups',
                            'back_windshield', 'quarter')),
        length_inches REAL,
        width_inches REAL,
        sqft REAL,
        film_id INTEGER,
        material_cost REAL,
        time_minutes INTEGER NOT NULL DEFAULT 0 CHECK (time_minutes >= 0),
        timestamp TIMESTAMP NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (job_entry_id) REFERENCES job_entries(id) ON DELETE CASCADE,
        FOREIGN KEY (installer_id) REFERENCES users(id) ON DELETE RESTRICT,
        FOREIGN KEY (film_id) REFERENCES films(id) ON DELETE RESTRICT
    )""",

    # Derived per-installer time split (never edited directly)
    """CREATE TABLE IF NOT EXISTS installer_time_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_entry_id INTEGER NOT NULL,
        installer_id INTEGER NOT NULL,
        windows_completed INTEGER NOT NULL DEFAULT 0
            CHECK (windows_completed >= 0),
        time_minutes INTEGER NOT NULL CHECK (time_minutes >= 0),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (job_entry_id) REFERENCES job_entries(id) ON DELETE CASCADE,
        FOREIGN KEY (installer_id) REFERENCES users(id) ON DELETE RESTRICT,
        UNIQUE(job_entry_id, installer_id)
    )""",

    # Append-only stock ledger; job_entry_id is a plain reference so
    # deleting a job never rewrites history
    """CREATE TABLE IF NOT EXISTS inventory_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        film_id INTEGER NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('addition', 'adjustment')),
        quantity REAL NOT NULL,
        previous_stock REAL NOT NULL CHECK (previous_stock >= 0),
        new_stock REAL NOT NULL CHECK (new_stock >= 0),
        job_entry_id INTEGER,
        notes TEXT,
        created_by INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (film_id) REFERENCES films(id) ON DELETE RESTRICT,
        FOREIGN KEY (created_by) REFERENCES users(id) ON DELETE RESTRICT
    )""",

    """CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        severity TEXT NOT NULL DEFAULT 'info'
            CHECK (severity IN ('info', 'warning', 'critical')),
        source TEXT NOT NULL DEFAULT 'system',
        job_entry_id INTEGER,
        film_id INTEGER,
        is_read INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_jobs_date ON job_entries(date)",
    "CREATE INDEX IF NOT EXISTS idx_job_inst_job ON job_installers(job_entry_id)",
    "CREATE INDEX IF NOT EXISTS idx_job_inst_user ON job_installers(installer_id)",
    "CREATE INDEX IF NOT EXISTS idx_job_dims_job ON job_dimensions(job_entry_id)",
    "CREATE INDEX IF NOT EXISTS idx_redo_job ON redo_entries(job_entry_id)",
    "CREATE INDEX IF NOT EXISTS idx_redo_user ON redo_entries(installer_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_job ON installer_time_entries(job_entry_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_user ON installer_time_entries(installer_id)",
    "CREATE INDEX IF NOT EXISTS idx_inv_tx_film ON inventory_transactions(film_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_read ON notifications(is_read)",

    # Triggers
    """CREATE TRIGGER IF NOT EXISTS update_users_timestamp AFTER UPDATE ON users
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE users SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_films_timestamp AFTER UPDATE ON films
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE films SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_film_inventory_timestamp
    AFTER UPDATE ON film_inventory
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE film_inventory SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_job_entries_timestamp
    AFTER UPDATE ON job_entries
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE job_entries SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS inventory_transactions_no_update
    BEFORE UPDATE ON inventory_transactions BEGIN
        SELECT RAISE(ABORT, 'inventory transactions are immutable');
    END""",

    """CREATE TRIGGER IF NOT EXISTS inventory_transactions_no_delete
    BEFORE DELETE ON inventory_transactions BEGIN
        SELECT RAISE(ABORT, 'inventory transactions are immutable');
    END""",

    # Seed counters
    "INSERT OR IGNORE INTO sequences (name, value) VALUES ('job_number', 0)",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (1)",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables, indexes, triggers, and seed counters.

    Safe to call on every start-up: a database already at
    ``SCHEMA_VERSION`` is left untouched.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)
        if version < SCHEMA_VERSION:
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
