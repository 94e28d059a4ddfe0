"""Excel (XLSX) export of the performance report."""

from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from tint_track.database.repository import Repository
from tint_track.utils.constants import REDO_PART_LABELS, STOCK_STATUS_LABELS

REPORT_SHEETS = [
    "Metrics", "Top Performers", "Redo Breakdown", "Time Performance",
    "Film Consumption", "Inventory",
]


def _autofit(ws):
    # Auto-fit column widths (approximate)
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def _header(ws, headers: list[str]):
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)


def export_performance_report_excel(
    repo: Repository,
    filepath: str | Path,
    installer_id: Optional[int] = None,
    date_from=None,
    date_to=None,
    limit: Optional[int] = None,
) -> dict:
    """Write the performance report workbook.

    Returns a ``{sheet title: data row count}`` summary.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    filters = dict(installer_id=installer_id, date_from=date_from,
                   date_to=date_to)
    counts = {}

    wb = Workbook()
    ws = wb.active
    ws.title = "Metrics"
    _header(ws, ["Metric", "Value"])
    metrics = repo.get_performance_metrics(**filters)
    windows = repo.get_window_performance_analytics(**filters)
    rows = [
        ("Vehicles", metrics["total_vehicles"]),
        ("Windows Completed", metrics["total_windows"]),
        ("Redos", metrics["total_redos"]),
        ("Window Success Rate (%)", windows["success_rate"]),
        ("Avg Time Variance (min)", metrics["avg_time_variance"]),
        ("Active Installers", metrics["active_installers"]),
        ("Jobs Without Redos", metrics["jobs_without_redos"]),
    ]
    for row in rows:
        ws.append(list(row))
    counts[ws.title] = len(rows)
    _autofit(ws)

    ws = wb.create_sheet("Top Performers")
    _header(ws, ["Rank", "Installer", "Vehicles", "Windows", "Redos",
                 "Success Rate (%)"])
    performers = repo.get_top_performers(limit, **filters)
    for rank, p in enumerate(performers, start=1):
        ws.append([
            rank, p["installer"].display_name, p["vehicle_count"],
            p["total_windows"], p["redo_count"], p["success_rate"],
        ])
    counts[ws.title] = len(performers)
    _autofit(ws)

    ws = wb.create_sheet("Redo Breakdown")
    _header(ws, ["Part", "Count", "Sq Ft", "Material Cost",
                 "Avg Time (min)"])
    breakdown = repo.get_redo_breakdown(**filters)
    for r in breakdown:
        ws.append([
            REDO_PART_LABELS.get(r["part"], r["part"]), r["count"],
            r["total_sqft"], r["total_cost"], r["avg_time_minutes"],
        ])
    counts[ws.title] = len(breakdown)
    _autofit(ws)

    ws = wb.create_sheet("Time Performance")
    _header(ws, ["Installer", "Jobs", "Windows", "Minutes",
                 "Avg Min / Window"])
    timing = repo.get_installer_time_performance(**filters)
    for t in timing:
        ws.append([
            t["installer"].display_name, t["job_count"], t["total_windows"],
            t["total_minutes"], t["avg_time_per_window"],
        ])
    counts[ws.title] = len(timing)
    _autofit(ws)

    ws = wb.create_sheet("Film Consumption")
    _header(ws, ["Film", "Jobs", "Job Sq Ft", "Job Cost", "Redo Sq Ft",
                 "Redo Cost", "Total Sq Ft", "Total Cost"])
    consumption = repo.get_film_consumption(**filters)
    for c in consumption:
        ws.append([
            c["film"].name, c["job_count"], c["job_sqft"], c["job_cost"],
            c["redo_sqft"], c["redo_cost"], c["total_sqft"],
            c["total_cost"],
        ])
    counts[ws.title] = len(consumption)
    _autofit(ws)

    # Stock is a snapshot, not filtered by period
    ws = wb.create_sheet("Inventory")
    _header(ws, ["Film", "Type", "Current Stock", "Minimum", "Status"])
    inventory = repo.get_films_with_inventory()
    for item in inventory:
        ws.append([
            item["film"].name, item["film"].type,
            item["inventory"].current_stock,
            item["inventory"].minimum_stock,
            STOCK_STATUS_LABELS.get(item["status"], item["status"]),
        ])
    counts[ws.title] = len(inventory)
    _autofit(ws)

    wb.save(filepath)
    return counts
