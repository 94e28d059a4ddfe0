"""Tests for job creation, editing, deletion and retrieval."""

import json

import pytest

from tint_track.database.errors import NotFoundError, ValidationError


class TestCreateJob:
    def test_creates_job_with_number(self, repo, installers, make_payload):
        job = repo.create_job_entry(make_payload([installers[0].id]))
        assert job.id is not None
        assert job.job_number.endswith("-1")
        assert job.vehicle == "2021 Toyota Camry"
        assert job.date == "2024-03-15"
        assert job.installer_ids == [installers[0].id]

    def test_dimensions_computed(self, repo, installers, film, make_payload):
        job = repo.create_job_entry(make_payload(
            [installers[0].id],
            dimensions=[
                {"length_inches": 24, "width_inches": 36,
                 "film_id": film.id, "description": "Windshield"},
                {"length_inches": 12, "width_inches": 12},
            ],
        ))
        assert len(job.dimensions) == 2
        assert job.dimensions[0].sqft == pytest.approx(6.0)
        assert job.dimensions[0].film_cost == pytest.approx(12.0)
        assert job.dimensions[0].film_name == film.name
        assert job.dimensions[1].film_cost is None
        assert job.total_sqft == pytest.approx(7.0)
        assert job.film_cost == pytest.approx(12.0)

    def test_time_variances_stored(self, repo, installers, make_payload):
        a, b = installers[0].id, installers[1].id
        job = repo.create_job_entry(make_payload(
            [a, b], installer_time_variances={a: 15, str(b): -5},
        ))
        variances = {i.installer_id: i.time_variance for i in job.installers}
        assert variances == {a: 15, b: -5}

    def test_redo_defaults_to_first_installer(
        self, repo, installers, make_payload,
    ):
        job = repo.create_job_entry(make_payload(
            [installers[1].id, installers[0].id],
            redo_entries=[{"part": "windshield", "time_minutes": 20}],
        ))
        assert job.redo_count == 1
        assert job.redo_entries[0].installer_id == installers[1].id
        assert job.redo_entries[0].installer_name == "Ben Brown"

    def test_redo_cost_from_film(self, repo, installers, film, make_payload):
        job = repo.create_job_entry(make_payload(
            [installers[0].id],
            redo_entries=[{
                "part": "quarter", "length_inches": 12, "width_inches": 12,
                "film_id": film.id, "material_cost": 99.0,
            }],
        ))
        redo = job.redo_entries[0]
        assert redo.sqft == pytest.approx(1.0)
        assert redo.material_cost == pytest.approx(2.0)

    def test_redo_cost_supplied_without_film(
        self, repo, installers, make_payload,
    ):
        job = repo.create_job_entry(make_payload(
            [installers[0].id],
            redo_entries=[{"part": "rollups", "material_cost": 7.5}],
        ))
        assert job.redo_entries[0].material_cost == pytest.approx(7.5)
        assert job.redo_entries[0].sqft is None

    def test_total_windows_defaults(self, repo, installers, make_payload):
        payload = make_payload([installers[0].id])
        del payload["total_windows"]
        job = repo.create_job_entry(payload)
        assert job.total_windows == 7


class TestCreateJobRejected:
    def test_validation_error(self, repo, installers, make_payload, db):
        with pytest.raises(ValidationError) as exc:
            repo.create_job_entry(make_payload(
                [installers[0].id], total_windows=0, vehicle_make="",
            ))
        assert len(exc.value.errors) == 2
        assert db.execute("SELECT * FROM job_entries") == []

    def test_no_installers(self, repo, make_payload):
        with pytest.raises(ValidationError):
            repo.create_job_entry(make_payload([]))

    def test_unknown_installer_writes_nothing(
        self, repo, installers, make_payload, db,
    ):
        with pytest.raises(NotFoundError):
            repo.create_job_entry(make_payload([installers[0].id, 999]))
        assert db.execute("SELECT * FROM job_entries") == []
        assert db.execute("SELECT * FROM job_installers") == []
        # The number was never handed out
        assert repo.next_job_number().endswith("-1")

    def test_unknown_film(self, repo, installers, make_payload):
        with pytest.raises(NotFoundError, match="Film 404"):
            repo.create_job_entry(make_payload(
                [installers[0].id],
                dimensions=[{"length_inches": 10, "width_inches": 10,
                             "film_id": 404}],
            ))

    def test_assignment_to_outside_installer(
        self, repo, installers, make_payload, assign,
    ):
        with pytest.raises(ValidationError, match="not on this job"):
            repo.create_job_entry(make_payload(
                [installers[0].id],
                window_assignments=assign(installers[1].id),
            ))


class TestWindowsCompleted:
    def test_assigned_windows_counted(
        self, repo, installers, make_payload, assign,
    ):
        a, b = installers[0].id, installers[1].id
        assignments = assign(a, a, b) + [
            {"windowId": "w9", "windowName": "Quarter", "installerId": None},
        ]
        job = repo.create_job_entry(make_payload(
            [a, b], window_assignments=assignments,
        ))
        assert job.windows_source == "assigned"
        assert job.windows_completed == 3
        credit = {i.installer_id: i.windows_completed for i in job.installers}
        assert credit == {a: 2, b: 1}
        assert json.loads(job.window_assignments)[0]["windowId"] == "w1"

    def test_fallback_without_assignments(
        self, repo, installers, make_payload,
    ):
        a, b = installers[0].id, installers[1].id
        job = repo.create_job_entry(make_payload([a, b], total_windows=5))
        assert job.windows_source == "aggregate_fallback"
        assert job.windows_completed == 5
        credit = {i.installer_id: i.windows_completed for i in job.installers}
        assert credit == {a: 3, b: 2}
        assert job.window_assignments is None

    def test_all_unassigned_falls_back(self, repo, installers, make_payload):
        job = repo.create_job_entry(make_payload(
            [installers[0].id],
            window_assignments=[{"windowId": "w1", "installerId": ""}],
        ))
        assert job.windows_source == "aggregate_fallback"
        assert job.windows_completed == 7

    def test_unparsable_assignments_flagged(
        self, repo, installers, make_payload,
    ):
        job = repo.create_job_entry(make_payload(
            [installers[0].id], window_assignments="{broken",
            duration_minutes=90,
        ))
        assert job.windows_source == "aggregate_fallback"
        assert job.windows_completed == 7
        assert job.window_assignments == "{broken"
        assert job.time_entries == []

        notes = repo.get_notifications(source="data_quality")
        assert len(notes) == 1
        assert notes[0].job_entry_id == job.id
        assert notes[0].severity == "warning"
        assert job.job_number in notes[0].title


class TestUpdateJob:
    def test_replaces_children(
        self, repo, installers, film, make_payload, assign,
    ):
        a, b = installers[0].id, installers[1].id
        job = repo.create_job_entry(make_payload(
            [a, b],
            redo_entries=[{"part": "windshield", "installer_id": b}],
            dimensions=[{"length_inches": 10, "width_inches": 10}],
        ))
        updated = repo.update_job_entry(job.id, make_payload(
            [a], vehicle_model="Corolla",
            window_assignments=assign(a, a), duration_minutes=30,
        ))
        assert updated.job_number == job.job_number
        assert updated.vehicle_model == "Corolla"
        assert updated.installer_ids == [a]
        assert updated.redo_entries == []
        assert updated.dimensions == []
        assert updated.windows_completed == 2
        assert [(t.installer_id, t.time_minutes)
                for t in updated.time_entries] == [(a, 30)]

    def test_unknown_job(self, repo, installers, make_payload):
        with pytest.raises(NotFoundError):
            repo.update_job_entry(999, make_payload([installers[0].id]))

    def test_invalid_update_keeps_original(
        self, repo, installers, make_payload,
    ):
        job = repo.create_job_entry(make_payload([installers[0].id]))
        with pytest.raises(ValidationError):
            repo.update_job_entry(job.id, make_payload(
                [installers[0].id], date="",
            ))
        assert repo.get_job_entry(job.id).date == "2024-03-15"


class TestDeleteJob:
    def test_cascades_children(
        self, repo, db, installers, manager, film, make_payload, assign,
    ):
        a = installers[0].id
        job = repo.create_job_entry(make_payload(
            [a], window_assignments=assign(a), duration_minutes=20,
            redo_entries=[{"part": "quarter"}],
            dimensions=[{"length_inches": 10, "width_inches": 10,
                         "film_id": film.id}],
        ))
        tx = repo.add_inventory_stock(film.id, 5, manager.id,
                                      job_entry_id=job.id)

        repo.delete_job_entry(job.id)

        assert repo.get_job_entry(job.id) is None
        for table in ("job_installers", "job_dimensions", "redo_entries",
                      "installer_time_entries"):
            assert db.execute(f"SELECT * FROM {table}") == []
        # Ledger rows keep their reference untouched
        ledger = repo.get_inventory_transactions(film.id)
        assert ledger[0].id == tx.id
        assert ledger[0].job_entry_id == job.id

    def test_unknown_job(self, repo):
        with pytest.raises(NotFoundError):
            repo.delete_job_entry(12345)


class TestGetJobs:
    def test_get_missing_returns_none(self, repo):
        assert repo.get_job_entry(1) is None

    def test_get_by_number(self, repo, installers, make_payload):
        job = repo.create_job_entry(make_payload([installers[0].id]))
        assert repo.get_job_by_number(job.job_number).id == job.id
        assert repo.get_job_by_number("NOPE-1") is None

    def test_newest_first_with_paging(self, repo, installers, make_payload):
        ids = [installers[0].id]
        for day in ("2024-03-01", "2024-03-03", "2024-03-02"):
            repo.create_job_entry(make_payload(ids, date=day))
        dates = [j.date for j in repo.get_job_entries()]
        assert dates == ["2024-03-03", "2024-03-02", "2024-03-01"]

        page = repo.get_job_entries(limit=1, offset=1)
        assert [j.date for j in page] == ["2024-03-02"]

    def test_filters(self, repo, installers, make_payload):
        a, b = installers[0].id, installers[1].id
        repo.create_job_entry(make_payload([a], date="2024-03-01"))
        repo.create_job_entry(make_payload([a, b], date="2024-03-10"))
        repo.create_job_entry(make_payload([b], date="2024-03-20"))

        assert len(repo.get_job_entries(installer_id=a)) == 2
        assert len(repo.get_job_entries(date_from="2024-03-10")) == 2
        in_range = repo.get_job_entries(
            installer_id=b, date_from="2024-03-05", date_to="2024-03-15",
        )
        assert [j.date for j in in_range] == ["2024-03-10"]


class TestJobDates:
    @pytest.mark.parametrize("raw", ["20240315", "2024-W11-5",
                                     "2024-03-15T09:30:00"])
    def test_stored_as_calendar_date(self, repo, installers, make_payload,
                                     raw):
        job = repo.create_job_entry(make_payload([installers[0].id],
                                                 date=raw))
        assert job.date == "2024-03-15"

    def test_compact_date_counted_by_filters(
        self, repo, installers, make_payload,
    ):
        repo.create_job_entry(make_payload([installers[0].id],
                                           date="20240315"))
        m = repo.get_performance_metrics(date_from="2024-01-01")
        assert m["total_vehicles"] == 1
        assert len(repo.get_job_entries(date_to="20240315")) == 1

    def test_bad_filter_date(self, repo):
        with pytest.raises(ValidationError):
            repo.get_job_entries(date_from="15/03/2024")
