"""Seed the database with realistic mock data for development and demos.

Creates:
  - 1 manager and 5 installers
  - 6 films, each stocked through the inventory ledger
  - ~40 jobs over the last 30 days, most with per-window assignments,
    some recorded with only a window total, a handful with redos

Run:
    python -m execution.seed_mock_data          (from project root)
    python execution/seed_mock_data.py          (direct)

WARNING: This script INSERTS data; run against a fresh DB to avoid
duplicates. Delete data/tint_track.db first for a clean start.
"""

import os
import random
import sys
from datetime import date, timedelta

# Ensure project src is on the path
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_ROOT, "src"))

from tint_track.database.connection import DatabaseConnection
from tint_track.database.models import Film, User
from tint_track.database.repository import Repository
from tint_track.database.schema import initialize_database
from tint_track.utils.constants import DEFAULT_WINDOWS, FILM_TYPES, REDO_PARTS

VEHICLES = [
    ("2021", "Toyota", "Camry"),
    ("2019", "Honda", "Civic"),
    ("2022", "Tesla", "Model 3"),
    ("2020", "Ford", "F-150"),
    ("2018", "Chevrolet", "Silverado"),
    ("2023", "BMW", "X5"),
    ("2017", "Nissan", "Altima"),
    ("2022", "Jeep", "Wrangler"),
]


def seed(repo: Repository, jobs: int = 40, rng: random.Random | None = None):
    """Populate the database with mock data."""
    rng = rng or random.Random(1423)

    # ── 1. Users ──────────────────────────────────────────────────
    print("Creating users...")
    manager_id = repo.create_user(User(
        email="dana@tintshop.test", first_name="Dana", last_name="Brooks",
        role="manager", hourly_rate=32.0,
    ))
    installers = [
        ("Marco", "Silva", 24.0),
        ("Tina", "Nguyen", 26.5),
        ("Luis", "Ortega", 22.0),
        ("Amy", "Carter", 25.0),
        ("Sam", "Patel", 21.0),
    ]
    installer_ids = []
    for first, last, rate in installers:
        installer_ids.append(repo.create_user(User(
            email=f"{first.lower()}@tintshop.test", first_name=first,
            last_name=last, role="installer", hourly_rate=rate,
        )))
    print(f"  → {len(installers) + 1} users created")

    # ── 2. Films and opening stock ────────────────────────────────
    print("Creating films...")
    films = [
        Film(name="Ceramic IR 15%", type=FILM_TYPES[0], cost_per_sqft=1.85,
             total_sqft=500, net_weight=38.0),
        Film(name="Ceramic IR 35%", type=FILM_TYPES[0], cost_per_sqft=1.85,
             total_sqft=500, net_weight=38.0),
        Film(name="Carbon 20%", type=FILM_TYPES[0], cost_per_sqft=0.95,
             total_sqft=500, net_weight=34.0),
        Film(name="Dyed 5%", type=FILM_TYPES[0], cost_per_sqft=0.55,
             total_sqft=500, net_weight=30.0),
        Film(name="Clear PPF Gloss", type=FILM_TYPES[1],
             cost_per_sqft=6.25, total_sqft=250),
        Film(name="Security 8 mil", type=FILM_TYPES[5],
             cost_per_sqft=2.40, total_sqft=300),
    ]
    film_ids = []
    for film in films:
        film_id = repo.create_film(film)
        film_ids.append(film_id)
        repo.add_inventory_stock(film_id, 500.0, manager_id,
                                 notes="Opening stock")
        repo.set_minimum_stock(film_id, 100.0)
    print(f"  → {len(films)} films created and stocked")

    # ── 3. Jobs ───────────────────────────────────────────────────
    print("Creating jobs...")
    today = date.today()
    redo_count = 0
    for n in range(jobs):
        crew = rng.sample(installer_ids, rng.choice([1, 1, 2, 2, 3]))
        film_id = rng.choice(film_ids[:4])
        year, make, model = rng.choice(VEHICLES)
        payload = {
            "date": (today - timedelta(days=rng.randint(0, 30))).isoformat(),
            "vehicle_year": year,
            "vehicle_make": make,
            "vehicle_model": model,
            "total_windows": len(DEFAULT_WINDOWS),
            "duration_minutes": rng.randint(60, 240),
            "installer_ids": crew,
            "installer_time_variances": {
                i: rng.randint(-20, 30) for i in crew
            },
            "dimensions": [
                {"length_inches": rng.randint(18, 60),
                 "width_inches": rng.randint(12, 40),
                 "film_id": film_id,
                 "description": name}
                for _, name in DEFAULT_WINDOWS[:rng.randint(2, 5)]
            ],
        }
        # One job in five is recorded with only the window total
        if n % 5:
            payload["window_assignments"] = [
                {"windowId": wid, "windowName": name,
                 "installerId": rng.choice(crew)}
                for wid, name in DEFAULT_WINDOWS
            ]

        if rng.random() < 0.25:
            payload["redo_entries"] = [{
                "part": rng.choice(REDO_PARTS),
                "installer_id": rng.choice(crew),
                "length_inches": rng.randint(15, 40),
                "width_inches": rng.randint(10, 30),
                "film_id": film_id,
                "time_minutes": rng.randint(10, 45),
            }]
            redo_count += 1

        repo.create_job_entry(payload)
    print(f"  → {jobs} jobs created ({redo_count} with redos)")

    # ── 4. Stock draw-down ────────────────────────────────────────
    print("Recording stock counts...")
    for film_id in film_ids[:4]:
        counted = round(rng.uniform(60, 300), 2)
        repo.adjust_inventory_stock(film_id, counted, manager_id,
                                    notes="Weekly count")
    print("  → 4 films recounted")

    # ── Done ──────────────────────────────────────────────────────
    print("\n✓ Mock data seeded successfully!")
    print(f"  Installers: {len(installer_ids)}")
    print(f"  Films: {len(film_ids)}")
    print(f"  Jobs: {jobs}")


def main():
    from tint_track.config import Config
    db_path = Config.DATABASE_PATH
    print(f"Database: {db_path}")

    # Confirm if DB exists
    if os.path.exists(db_path):
        resp = input("Database already exists. Seed anyway? (y/N): ").strip().lower()
        if resp != "y":
            print("Aborted.")
            return

    db = DatabaseConnection(db_path)
    initialize_database(db)
    repo = Repository(db)
    seed(repo)


if __name__ == "__main__":
    main()
