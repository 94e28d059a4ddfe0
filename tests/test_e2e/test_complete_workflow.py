"""E2E tests: complete workflows from start to finish.

These tests drive a full week of shop activity through the repository and
check that job records, analytics, the stock ledger and the exports agree
with each other at every step.
"""

import csv

import pytest

from tint_track.database.errors import ValidationError
from tint_track.io.csv_handler import export_jobs_csv
from tint_track.io.excel_handler import export_performance_report_excel


class TestShopWeek:
    """Jobs, a correction, a redo, and stock counts over one week."""

    def test_week_of_jobs(
        self, repo, installers, film, manager, make_payload, assign,
        tmp_path,
    ):
        alice, ben, cara = installers
        a, b = alice.id, ben.id

        # Opening stock
        repo.add_inventory_stock(film.id, 100, manager.id, notes="Delivery")
        repo.set_minimum_stock(film.id, 50)

        # Monday: two-person job with assigned windows
        monday = repo.create_job_entry(make_payload(
            [a, b], date="2024-04-01", duration_minutes=70,
            window_assignments=assign(a, a, a, a, b, b, b),
            dimensions=[{"length_inches": 24, "width_inches": 36,
                         "film_id": film.id}],
        ))
        assert {t.installer_id: t.time_minutes
                for t in monday.time_entries} == {a: 40, b: 30}

        # Tuesday: Ben alone, window total only
        tuesday = repo.create_job_entry(make_payload(
            [b], date="2024-04-02", total_windows=5, duration_minutes=50,
        ))
        assert tuesday.windows_source == "aggregate_fallback"
        assert tuesday.time_entries == []

        # A bad submission changes nothing
        with pytest.raises(ValidationError):
            repo.create_job_entry(make_payload([a], total_windows=0))
        assert len(repo.get_job_entries()) == 2

        # Wednesday: Monday's windshield needs redoing; record it by edit
        monday = repo.update_job_entry(monday.id, make_payload(
            [a, b], date="2024-04-01", duration_minutes=70,
            window_assignments=assign(a, a, a, a, b, b, b),
            dimensions=[{"length_inches": 24, "width_inches": 36,
                         "film_id": film.id}],
            redo_entries=[{"part": "windshield", "installer_id": a,
                           "length_inches": 24, "width_inches": 36,
                           "film_id": film.id, "time_minutes": 25}],
        ))
        assert monday.redo_count == 1
        assert monday.redo_entries[0].material_cost == 12.0

        # Friday count: 100 -> 60, approaching the 50 minimum
        tx = repo.adjust_inventory_stock(film.id, 60, manager.id,
                                         notes="Friday count")
        assert tx.quantity == -40
        assert repo.get_film_inventory(film.id).stock_status == "approaching"
        assert [f["status"] for f in repo.get_low_stock_films()] == [
            "approaching",
        ]

        # Analytics agree with what was recorded
        metrics = repo.get_performance_metrics()
        assert metrics["total_vehicles"] == 2
        assert metrics["total_windows"] == 12
        assert metrics["total_redos"] == 1
        assert metrics["jobs_without_redos"] == 1

        top = repo.get_top_performers()
        by_id = {r["installer"].id: r for r in top}
        assert by_id[b]["total_windows"] == 8
        assert by_id[a]["total_windows"] == 4
        assert by_id[cara.id]["success_rate"] == 100.0
        assert top[0]["installer"].id == b

        timing = repo.get_installer_time_performance()
        # Both average 10 min per window; more windows ranks first
        assert [t["installer"].id for t in timing] == [a, b]
        assert cara.id not in [t["installer"].id for t in timing]

        breakdown = repo.get_redo_breakdown()
        assert breakdown == [{
            "part": "windshield", "count": 1, "total_sqft": 6.0,
            "total_cost": 12.0, "avg_time_minutes": 25.0,
        }]

        consumption = repo.get_film_consumption()
        assert consumption[0]["total_sqft"] == 12.0

        summary = repo.get_job_cost_summary(monday.id)
        assert summary["labor_cost"] == 26.0
        assert summary["total_cost"] == 50.0

        # Ledger is consistent end to end
        assert repo.verify_ledger(film.id)["consistent"] is True

        # Exports reflect the same data
        jobs_csv = tmp_path / "jobs.csv"
        assert export_jobs_csv(repo, jobs_csv) == 2
        with open(jobs_csv, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["date"] for r in rows] == ["2024-04-02", "2024-04-01"]

        counts = export_performance_report_excel(repo,
                                                 tmp_path / "week.xlsx")
        assert counts["Redo Breakdown"] == 1
        assert counts["Time Performance"] == 2

    def test_delete_job_keeps_ledger(
        self, repo, installers, film, manager, make_payload,
    ):
        job = repo.create_job_entry(make_payload([installers[0].id]))
        repo.add_inventory_stock(film.id, 20, manager.id,
                                 job_entry_id=job.id)
        repo.delete_job_entry(job.id)

        assert repo.get_performance_metrics()["total_vehicles"] == 0
        history = repo.get_inventory_transactions(film.id)
        assert len(history) == 1
        assert history[0].job_entry_id == job.id
        assert repo.verify_ledger(film.id)["consistent"] is True
