"""Tests for schema creation, constraints, and ledger triggers."""

import sqlite3

import pytest

from tint_track.database.schema import SCHEMA_VERSION, initialize_database


class TestInitialize:
    def test_creates_tables(self, db):
        rows = db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        )
        tables = {r["name"] for r in rows}
        for name in (
            "users", "films", "film_inventory", "job_entries",
            "job_dimensions", "job_installers", "redo_entries",
            "installer_time_entries", "inventory_transactions",
            "notifications", "sequences",
        ):
            assert name in tables

    def test_records_version(self, db):
        rows = db.execute("SELECT MAX(version) AS v FROM schema_version")
        assert rows[0]["v"] == SCHEMA_VERSION

    def test_seeds_job_counter(self, db):
        rows = db.execute(
            "SELECT value FROM sequences WHERE name = 'job_number'"
        )
        assert rows[0]["value"] == 0

    def test_idempotent(self, db, repo):
        repo.next_job_number()
        initialize_database(db)
        rows = db.execute(
            "SELECT value FROM sequences WHERE name = 'job_number'"
        )
        assert rows[0]["value"] == 1


class TestConstraints:
    def test_total_windows_must_be_positive(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("""
                INSERT INTO job_entries
                    (job_number, date, vehicle_year, vehicle_make,
                     vehicle_model, total_windows)
                VALUES ('X-1', '2024-01-01', '2020', 'Ford', 'Focus', 0)
            """)

    def test_stock_cannot_go_negative(self, db, film):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "UPDATE film_inventory SET current_stock = -1 "
                "WHERE film_id = ?", (film.id,),
            )

    def test_redo_part_checked(self, db, repo, installers, make_payload):
        job = repo.create_job_entry(make_payload([installers[0].id]))
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("""
                INSERT INTO redo_entries
                    (job_entry_id, installer_id, part, timestamp)
                VALUES (?, ?, 'sunroof', '2024-01-01')
            """, (job.id, installers[0].id))


class TestLedgerImmutability:
    def test_update_rejected(self, db, repo, film, manager):
        repo.add_inventory_stock(film.id, 10, manager.id)
        with pytest.raises(sqlite3.DatabaseError, match="immutable"):
            db.execute("UPDATE inventory_transactions SET quantity = 99")

    def test_delete_rejected(self, db, repo, film, manager):
        repo.add_inventory_stock(film.id, 10, manager.id)
        with pytest.raises(sqlite3.DatabaseError, match="immutable"):
            db.execute("DELETE FROM inventory_transactions")
        assert len(repo.get_inventory_transactions(film.id)) == 1
