"""Shared test fixtures."""

import pytest

from tint_track.database.connection import DatabaseConnection
from tint_track.database.models import Film, User
from tint_track.database.repository import Repository
from tint_track.database.schema import initialize_database


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def manager(repo):
    user = User(
        email="dana@shop.test", first_name="Dana", last_name="Brooks",
        role="manager", hourly_rate=30.0,
    )
    user.id = repo.create_user(user)
    return user


@pytest.fixture
def installers(repo):
    """Three active installers: Alice ($24/h), Ben ($20/h), Cara ($30/h)."""
    users = []
    for first, last, rate in [
        ("Alice", "Adams", 24.0),
        ("Ben", "Brown", 20.0),
        ("Cara", "Cole", 30.0),
    ]:
        user = User(
            email=f"{first.lower()}@shop.test", first_name=first,
            last_name=last, role="installer", hourly_rate=rate,
        )
        user.id = repo.create_user(user)
        users.append(user)
    return users


@pytest.fixture
def film(repo):
    """A $2.00 / sq ft tint film with an empty stock row."""
    f = Film(name="Ceramic 20%", type="Window Tint", cost_per_sqft=2.0)
    f.id = repo.create_film(f)
    return f


@pytest.fixture
def make_payload():
    """Build a valid job payload; keyword overrides replace fields."""
    def _make(installer_ids, **overrides):
        payload = {
            "date": "2024-03-15",
            "vehicle_year": "2021",
            "vehicle_make": "Toyota",
            "vehicle_model": "Camry",
            "total_windows": 7,
            "installer_ids": list(installer_ids),
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def assign():
    """Build window assignments, one window per installer id given."""
    def _assign(*installer_ids):
        return [
            {"windowId": f"w{n}", "windowName": f"Window {n}",
             "installerId": installer_id}
            for n, installer_id in enumerate(installer_ids, start=1)
        ]
    return _assign
