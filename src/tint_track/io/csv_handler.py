"""CSV export for jobs and the inventory ledger."""

import csv
from pathlib import Path
from typing import Optional

from tint_track.database.repository import Repository

JOB_CSV_COLUMNS = [
    "job_number", "date", "vehicle", "installers", "total_windows",
    "windows_completed", "windows_source", "duration_minutes",
    "total_sqft", "film_cost", "redo_count", "notes",
]

TRANSACTION_CSV_COLUMNS = [
    "id", "created_at", "film", "type", "quantity", "previous_stock",
    "new_stock", "job_entry_id", "created_by", "notes",
]


def export_jobs_csv(
    repo: Repository,
    filepath: str | Path,
    installer_id: Optional[int] = None,
    date_from=None,
    date_to=None,
) -> int:
    """Export jobs to CSV. Returns the number of rows written."""
    jobs = repo.get_job_entries(installer_id, date_from, date_to)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=JOB_CSV_COLUMNS)
        writer.writeheader()
        for job in jobs:
            writer.writerow({
                "job_number": job.job_number,
                "date": job.date,
                "vehicle": job.vehicle,
                "installers": "; ".join(
                    i.installer_name for i in job.installers
                ),
                "total_windows": job.total_windows,
                "windows_completed": job.windows_completed,
                "windows_source": job.windows_source,
                "duration_minutes": (
                    "" if job.duration_minutes is None
                    else job.duration_minutes
                ),
                "total_sqft": job.total_sqft,
                "film_cost": job.film_cost,
                "redo_count": job.redo_count,
                "notes": job.notes or "",
            })
    return len(jobs)


def export_inventory_transactions_csv(
    repo: Repository,
    filepath: str | Path,
    film_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> int:
    """Export ledger rows (newest first) to CSV. Returns row count."""
    transactions = repo.get_inventory_transactions(film_id, limit)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=TRANSACTION_CSV_COLUMNS)
        writer.writeheader()
        for tx in transactions:
            writer.writerow({
                "id": tx.id,
                "created_at": tx.created_at,
                "film": tx.film_name,
                "type": tx.type,
                "quantity": tx.quantity,
                "previous_stock": tx.previous_stock,
                "new_stock": tx.new_stock,
                "job_entry_id": tx.job_entry_id or "",
                "created_by": tx.created_by_name,
                "notes": tx.notes or "",
            })
    return len(transactions)
