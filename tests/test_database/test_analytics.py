"""Tests for the performance analytics queries."""

import pytest


@pytest.fixture
def workload(repo, installers, film, make_payload, assign):
    """Three jobs across Alice and Ben; Cara has no activity.

    J1 2024-03-01  Alice x4 + Ben x3 windows, 70 min, Alice redo (windshield)
    J2 2024-03-10  Alice x2 windows, 30 min, clean
    J3 2024-03-20  Ben only, no assignments (5 windows), two Ben redos
    """
    alice, ben, cara = installers
    a, b = alice.id, ben.id
    repo.create_job_entry(make_payload(
        [a, b], date="2024-03-01", duration_minutes=70,
        window_assignments=assign(a, a, a, a, b, b, b),
        installer_time_variances={a: 10, b: -4},
        dimensions=[{"length_inches": 24, "width_inches": 36,
                     "film_id": film.id}],
        redo_entries=[{"part": "windshield", "installer_id": a,
                       "length_inches": 12, "width_inches": 12,
                       "film_id": film.id, "time_minutes": 20}],
    ))
    repo.create_job_entry(make_payload(
        [a], date="2024-03-10", duration_minutes=30,
        window_assignments=assign(a, a),
        installer_time_variances={a: 6},
        dimensions=[{"length_inches": 12, "width_inches": 12,
                     "film_id": film.id}],
    ))
    repo.create_job_entry(make_payload(
        [b], date="2024-03-20", duration_minutes=50, total_windows=5,
        redo_entries=[
            {"part": "rollups", "installer_id": b, "material_cost": 4.0,
             "time_minutes": 10},
            {"part": "back_windshield", "installer_id": b,
             "time_minutes": 30},
        ],
    ))
    return alice, ben, cara


class TestPerformanceMetrics:
    def test_overall(self, repo, workload):
        m = repo.get_performance_metrics()
        assert m == {
            "total_vehicles": 3,
            "total_windows": 14,
            "total_redos": 3,
            "avg_time_variance": 3,
            "active_installers": 2,
            "jobs_without_redos": 1,
        }

    def test_installer_filter(self, repo, workload):
        alice, ben, _ = workload
        m = repo.get_performance_metrics(installer_id=alice.id)
        assert m["total_vehicles"] == 2
        assert m["total_windows"] == 6
        assert m["total_redos"] == 1
        assert m["avg_time_variance"] == 8
        assert m["active_installers"] == 1
        assert m["jobs_without_redos"] == 1

        m = repo.get_performance_metrics(installer_id=ben.id)
        assert m["total_windows"] == 8
        assert m["total_redos"] == 2
        assert m["avg_time_variance"] == -2

    def test_date_filter(self, repo, workload):
        m = repo.get_performance_metrics(date_from="2024-03-05")
        assert m["total_vehicles"] == 2
        assert m["total_windows"] == 7
        assert m["total_redos"] == 2

        m = repo.get_performance_metrics(date_to="2024-03-01")
        assert m["total_vehicles"] == 1

    def test_empty_database(self, repo):
        m = repo.get_performance_metrics()
        assert m["total_vehicles"] == 0
        assert m["total_windows"] == 0
        assert m["avg_time_variance"] == 0


class TestTopPerformers:
    def test_ranking(self, repo, workload):
        alice, ben, cara = workload
        rows = repo.get_top_performers()
        assert [r["installer"].id for r in rows] == [alice.id, cara.id, ben.id]

        by_id = {r["installer"].id: r for r in rows}
        assert by_id[alice.id]["vehicle_count"] == 2
        assert by_id[alice.id]["total_windows"] == 6
        assert by_id[alice.id]["redo_count"] == 1
        assert by_id[alice.id]["success_rate"] == 83.3
        assert by_id[ben.id]["success_rate"] == 75.0

    def test_idle_installer_is_perfect(self, repo, workload):
        _, _, cara = workload
        row = next(r for r in repo.get_top_performers()
                   if r["installer"].id == cara.id)
        assert row["total_windows"] == 0
        assert row["redo_count"] == 0
        assert row["success_rate"] == 100.0

    def test_limit(self, repo, workload):
        assert len(repo.get_top_performers(limit=2)) == 2
        assert repo.get_top_performers(limit=0) == []

    def test_inactive_installers_excluded(self, repo, workload):
        _, _, cara = workload
        repo.deactivate_user(cara.id)
        ids = [r["installer"].id for r in repo.get_top_performers()]
        assert cara.id not in ids

    def test_deactivated_installer_keeps_past_work(self, repo, workload):
        _, ben, _ = workload
        repo.deactivate_user(ben.id)
        row = next(r for r in repo.get_top_performers()
                   if r["installer"].id == ben.id)
        assert row["vehicle_count"] == 2
        assert row["total_windows"] == 8

        # Outside the period of that work the installer drops off again
        ids = [r["installer"].id for r in
               repo.get_top_performers(date_to="2024-02-28")]
        assert ben.id not in ids


class TestRedoBreakdown:
    def test_ties_sorted_by_part(self, repo, workload):
        rows = repo.get_redo_breakdown()
        assert [r["part"] for r in rows] == [
            "back_windshield", "rollups", "windshield",
        ]

    def test_totals(self, repo, workload):
        rows = {r["part"]: r for r in repo.get_redo_breakdown()}
        assert rows["windshield"]["total_sqft"] == 1.0
        assert rows["windshield"]["total_cost"] == 2.0
        assert rows["windshield"]["avg_time_minutes"] == 20.0
        assert rows["rollups"]["total_cost"] == 4.0

    def test_count_desc(self, repo, workload, installers, make_payload):
        repo.create_job_entry(make_payload(
            [installers[2].id],
            redo_entries=[{"part": "rollups"}],
        ))
        rows = repo.get_redo_breakdown()
        assert rows[0]["part"] == "rollups"
        assert rows[0]["count"] == 2

    def test_installer_filter(self, repo, workload):
        alice, _, _ = workload
        rows = repo.get_redo_breakdown(installer_id=alice.id)
        assert [r["part"] for r in rows] == ["windshield"]


class TestWindowPerformance:
    def test_overall(self, repo, workload):
        alice, ben, _ = workload
        result = repo.get_window_performance_analytics()
        assert result["total_windows"] == 14
        assert result["total_redos"] == 3
        assert result["success_rate"] == 78.6
        assert result["redo_overflow"] is False

        perf = result["installer_performance"]
        assert [p["installer"].id for p in perf] == [alice.id, ben.id]
        assert perf[0]["windows_completed"] == 6
        assert perf[1]["windows_completed"] == 8

    def test_redo_overflow_clamped(
        self, repo, installers, make_payload, assign,
    ):
        a = installers[0].id
        repo.create_job_entry(make_payload(
            [a], window_assignments=assign(a),
            redo_entries=[{"part": "windshield"}, {"part": "quarter"},
                          {"part": "rollups"}],
        ))
        result = repo.get_window_performance_analytics()
        assert result["success_rate"] == 0.0
        assert result["redo_overflow"] is True
        perf = result["installer_performance"][0]
        assert perf["success_rate"] == 0.0
        assert perf["redo_overflow"] is True

    def test_rates_within_bounds(self, repo, workload):
        result = repo.get_window_performance_analytics()
        assert 0 <= result["success_rate"] <= 100
        for p in result["installer_performance"]:
            assert 0 <= p["success_rate"] <= 100

    def test_empty(self, repo):
        result = repo.get_window_performance_analytics()
        assert result["success_rate"] == 100.0
        assert result["installer_performance"] == []

    def test_fallback_windows_not_duplicated(
        self, repo, installers, make_payload,
    ):
        a, b = installers[0].id, installers[1].id
        repo.create_job_entry(make_payload([a, b], total_windows=7))

        result = repo.get_window_performance_analytics()
        assert result["total_windows"] == 7
        perf = {p["installer"].id: p["windows_completed"]
                for p in result["installer_performance"]}
        assert perf == {a: 4, b: 3}
        assert sum(perf.values()) == result["total_windows"]

        top = {r["installer"].id: r["total_windows"]
               for r in repo.get_top_performers()}
        assert top[a] + top[b] == 7


class TestInstallerTimePerformance:
    def test_fastest_first(self, repo, workload):
        alice, ben, _ = workload
        rows = repo.get_installer_time_performance()
        assert [r["installer"].id for r in rows] == [ben.id, alice.id]
        assert rows[0]["avg_time_per_window"] == 10.0
        assert rows[1]["avg_time_per_window"] == 11.7
        assert rows[1]["total_minutes"] == 70
        assert rows[1]["job_count"] == 2

    def test_idle_installer_absent(self, repo, workload):
        _, _, cara = workload
        ids = [r["installer"].id for r in repo.get_installer_time_performance()]
        assert cara.id not in ids

    def test_date_filter(self, repo, workload):
        alice, _, _ = workload
        rows = repo.get_installer_time_performance(date_from="2024-03-05")
        assert [r["installer"].id for r in rows] == [alice.id]
        assert rows[0]["avg_time_per_window"] == 15.0


class TestFilmConsumption:
    def test_jobs_and_redos(self, repo, workload, film):
        rows = repo.get_film_consumption()
        assert len(rows) == 1
        row = rows[0]
        assert row["film"].id == film.id
        assert row["job_sqft"] == 7.0
        assert row["job_cost"] == 14.0
        assert row["redo_sqft"] == 1.0
        assert row["redo_cost"] == 2.0
        assert row["total_sqft"] == 8.0
        assert row["total_cost"] == 16.0
        assert row["job_count"] == 2

    def test_empty(self, repo):
        assert repo.get_film_consumption() == []
