"""Repository layer: all persistence operations, reports, and the stock ledger."""

import json
import logging
import math
from datetime import date, datetime
from typing import Optional

from tint_track.config import Config
from tint_track.io.validators import validate_job_payload
from tint_track.utils.allocation import allocate_minutes, count_windows_by_installer
from tint_track.utils.constants import (
    NOTIFICATION_SEVERITIES,
    SQ_INCHES_PER_SQFT,
    USER_ROLES,
)
from tint_track.utils.metrics import (
    avg_per_window,
    performer_sort_key,
    stock_status,
    success_rate,
)
from tint_track.utils.windows import (
    ParsedAssignments,
    installer_window_credits,
    parse_window_assignments,
    resolve_windows_completed,
    serialize_window_assignments,
)

from .connection import DatabaseConnection
from .errors import NotFoundError, ValidationError
from .models import (
    Film,
    FilmInventory,
    InstallerTimeEntry,
    InventoryTransaction,
    JobDimension,
    JobEntry,
    JobInstaller,
    Notification,
    RedoEntry,
    User,
)

logger = logging.getLogger(__name__)

_USER_NAME_SQL = "TRIM(u.first_name || ' ' || u.last_name)"


def _to_model(cls, row):
    """Build a dataclass from a row, ignoring columns it doesn't declare."""
    return cls(**{
        k: row[k] for k in row.keys() if k in cls.__dataclass_fields__
    })


def _iso(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value).strip()


def _iso_date(value) -> str:
    """Normalise a job or filter date to ``YYYY-MM-DD``.

    SQLite's DATE() only understands the extended form, so compact or
    week-date strings must be rewritten before they are stored or compared.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return datetime.fromisoformat(str(value).strip()).date().isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'")


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


class Repository:
    """Provides all database operations for the application."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Users ───────────────────────────────────────────────────

    def create_user(self, user: User) -> int:
        if user.role not in USER_ROLES:
            raise ValidationError(f"Invalid role '{user.role}'")
        if user.hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative")
        with self.db.get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO users
                    (email, first_name, last_name, role, hourly_rate, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                user.email, user.first_name, user.last_name,
                user.role, user.hourly_rate, user.is_active,
            ))
            return cursor.lastrowid

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        rows = self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return User(**dict(rows[0])) if rows else None

    def get_all_users(self, active_only: bool = True) -> list[User]:
        where = "WHERE is_active = 1" if active_only else ""
        rows = self.db.execute(
            f"SELECT * FROM users {where} ORDER BY first_name, last_name"
        )
        return [User(**dict(r)) for r in rows]

    def get_installers(self, active_only: bool = True) -> list[User]:
        active = "AND is_active = 1" if active_only else ""
        rows = self.db.execute(f"""
            SELECT * FROM users WHERE role = 'installer' {active}
            ORDER BY first_name, last_name
        """)
        return [User(**dict(r)) for r in rows]

    def update_user_role(self, user_id: int, role: str) -> User:
        if role not in USER_ROLES:
            raise ValidationError(
                f"Invalid role '{role}'. Must be one of {', '.join(USER_ROLES)}"
            )
        with self.db.get_connection() as conn:
            self._require_user(conn, user_id)
            conn.execute(
                "UPDATE users SET role = ? WHERE id = ?", (role, user_id)
            )
        return self.get_user_by_id(user_id)

    def update_hourly_rate(self, user_id: int, hourly_rate: float) -> User:
        if not _is_number(hourly_rate) or hourly_rate < 0:
            raise ValidationError("Hourly rate must be a non-negative number")
        with self.db.get_connection() as conn:
            self._require_user(conn, user_id)
            conn.execute(
                "UPDATE users SET hourly_rate = ? WHERE id = ?",
                (hourly_rate, user_id),
            )
        return self.get_user_by_id(user_id)

    def deactivate_user(self, user_id: int):
        with self.db.get_connection() as conn:
            self._require_user(conn, user_id)
            conn.execute(
                "UPDATE users SET is_active = 0 WHERE id = ?", (user_id,)
            )

    def _require_user(self, conn, user_id: int, entity: str = "User"):
        row = conn.execute(
            "SELECT id FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if not row:
            raise NotFoundError(entity, user_id)

    # ── Films ───────────────────────────────────────────────────

    def create_film(self, film: Film) -> int:
        """Create a film and its empty inventory row."""
        if not film.name.strip():
            raise ValidationError("Film name is required")
        if not _is_number(film.cost_per_sqft) or film.cost_per_sqft <= 0:
            raise ValidationError("Cost per sq ft must be greater than 0")
        with self.db.get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO films
                    (name, type, cost_per_sqft, is_active, total_sqft,
                     gross_weight, core_weight, net_weight)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                film.name.strip(), film.type, film.cost_per_sqft,
                film.is_active, film.total_sqft, film.gross_weight,
                film.core_weight, film.net_weight,
            ))
            film_id = cursor.lastrowid
            conn.execute(
                "INSERT INTO film_inventory (film_id) VALUES (?)", (film_id,)
            )
            return film_id

    def get_film_by_id(self, film_id: int) -> Optional[Film]:
        rows = self.db.execute("SELECT * FROM films WHERE id = ?", (film_id,))
        return Film(**dict(rows[0])) if rows else None

    def get_active_films(self) -> list[Film]:
        rows = self.db.execute(
            "SELECT * FROM films WHERE is_active = 1 ORDER BY name"
        )
        return [Film(**dict(r)) for r in rows]

    def get_all_films(self) -> list[Film]:
        rows = self.db.execute("SELECT * FROM films ORDER BY name")
        return [Film(**dict(r)) for r in rows]

    def update_film(self, film: Film):
        if not _is_number(film.cost_per_sqft) or film.cost_per_sqft <= 0:
            raise ValidationError("Cost per sq ft must be greater than 0")
        with self.db.get_connection() as conn:
            self._require_film(conn, film.id)
            conn.execute("""
                UPDATE films SET
                    name = ?, type = ?, cost_per_sqft = ?, is_active = ?,
                    total_sqft = ?, gross_weight = ?, core_weight = ?,
                    net_weight = ?
                WHERE id = ?
            """, (
                film.name, film.type, film.cost_per_sqft, film.is_active,
                film.total_sqft, film.gross_weight, film.core_weight,
                film.net_weight, film.id,
            ))

    def deactivate_film(self, film_id: int):
        """Hide a film from selection; its ledger history stays intact."""
        with self.db.get_connection() as conn:
            self._require_film(conn, film_id)
            conn.execute(
                "UPDATE films SET is_active = 0 WHERE id = ?", (film_id,)
            )

    def _require_film(self, conn, film_id: int) -> Film:
        row = conn.execute(
            "SELECT * FROM films WHERE id = ?", (film_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Film", film_id)
        return Film(**dict(row))

    # ── Notifications ───────────────────────────────────────────

    def create_notification(self, notification: Notification) -> int:
        if notification.severity not in NOTIFICATION_SEVERITIES:
            raise ValidationError(
                f"Invalid severity '{notification.severity}'"
            )
        with self.db.get_connection() as conn:
            return self._notify(conn, notification)

    def _notify(self, conn, notification: Notification) -> int:
        cursor = conn.execute("""
            INSERT INTO notifications
                (title, message, severity, source, job_entry_id, film_id)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            notification.title, notification.message, notification.severity,
            notification.source, notification.job_entry_id,
            notification.film_id,
        ))
        return cursor.lastrowid

    def get_notifications(self, unread_only: bool = False,
                          source: Optional[str] = None,
                          limit: int = 50) -> list[Notification]:
        conditions = []
        params: list = []
        if unread_only:
            conditions.append("is_read = 0")
        if source:
            conditions.append("source = ?")
            params.append(source)
        where = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)
        rows = self.db.execute(f"""
            SELECT * FROM notifications WHERE {where}
            ORDER BY created_at DESC, id DESC LIMIT ?
        """, tuple(params))
        return [Notification(**dict(r)) for r in rows]

    def mark_notification_read(self, notification_id: int):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE id = ?",
                (notification_id,),
            )

    # ── Job Numbers ─────────────────────────────────────────────

    def next_job_number(self) -> str:
        """Reserve the next job number (e.g. JOB-42) in its own transaction."""
        with self.db.get_connection(immediate=True) as conn:
            return self._reserve_job_number(conn)

    def _reserve_job_number(self, conn) -> str:
        """Increment the job counter inside the caller's transaction."""
        conn.execute(
            "INSERT OR IGNORE INTO sequences (name, value) "
            "VALUES ('job_number', 0)"
        )
        row = conn.execute(
            "UPDATE sequences SET value = value + 1 "
            "WHERE name = 'job_number' RETURNING value"
        ).fetchall()[0]
        return f"{Config.JOB_NUMBER_PREFIX}-{row['value']}"

    # ── Job Entries ─────────────────────────────────────────────

    def create_job_entry(self, payload: dict) -> JobEntry:
        """Create a job with its installers, dimensions, redos, and time split.

        Everything, including the job number, is written in one
        transaction; any failure leaves no rows behind.
        """
        parsed = parse_window_assignments(payload.get("window_assignments"))
        errors = validate_job_payload(payload, parsed)
        if errors:
            raise ValidationError(errors)

        with self.db.get_connection(immediate=True) as conn:
            prepared = self._prepare_job(conn, payload, parsed)
            job_number = self._reserve_job_number(conn)
            cursor = conn.execute("""
                INSERT INTO job_entries
                    (job_number, date, vehicle_year, vehicle_make,
                     vehicle_model, total_windows, windows_completed,
                     windows_source, start_time, end_time, duration_minutes,
                     total_sqft, film_cost, window_assignments, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (job_number, *self._job_columns(payload, prepared)))
            job_id = cursor.lastrowid
            self._write_job_children(conn, job_id, job_number,
                                     payload, prepared)

        logger.info(f"Created job {job_number} (id {job_id}) with "
                    f"{len(payload['installer_ids'])} installer(s)")
        return self.get_job_entry(job_id)

    def update_job_entry(self, job_id: int, payload: dict) -> JobEntry:
        """Replace a job's fields and all of its child records."""
        parsed = parse_window_assignments(payload.get("window_assignments"))
        errors = validate_job_payload(payload, parsed)
        if errors:
            raise ValidationError(errors)

        with self.db.get_connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT job_number FROM job_entries WHERE id = ?", (job_id,)
            ).fetchone()
            if not row:
                raise NotFoundError("Job", job_id)
            job_number = row["job_number"]
            prepared = self._prepare_job(conn, payload, parsed)
            conn.execute("""
                UPDATE job_entries SET
                    date = ?, vehicle_year = ?, vehicle_make = ?,
                    vehicle_model = ?, total_windows = ?,
                    windows_completed = ?, windows_source = ?,
                    start_time = ?, end_time = ?, duration_minutes = ?,
                    total_sqft = ?, film_cost = ?, window_assignments = ?,
                    notes = ?
                WHERE id = ?
            """, (*self._job_columns(payload, prepared), job_id))
            for table in ("job_installers", "job_dimensions",
                          "redo_entries", "installer_time_entries"):
                conn.execute(
                    f"DELETE FROM {table} WHERE job_entry_id = ?", (job_id,)
                )
            self._write_job_children(conn, job_id, job_number,
                                     payload, prepared)

        logger.info(f"Updated job {job_number} (id {job_id})")
        return self.get_job_entry(job_id)

    def delete_job_entry(self, job_id: int):
        """Delete a job; installers, dimensions, redos and time entries go with it."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT job_number FROM job_entries WHERE id = ?", (job_id,)
            ).fetchone()
            if not row:
                raise NotFoundError("Job", job_id)
            conn.execute("DELETE FROM job_entries WHERE id = ?", (job_id,))
        logger.info(f"Deleted job {row['job_number']} (id {job_id})")

    def get_job_entry(self, job_id: int) -> Optional[JobEntry]:
        rows = self.db.execute(
            "SELECT * FROM job_entries WHERE id = ?", (job_id,)
        )
        if not rows:
            return None
        job = JobEntry(**dict(rows[0]))
        self._load_job_children(job)
        return job

    def get_job_by_number(self, job_number: str) -> Optional[JobEntry]:
        rows = self.db.execute(
            "SELECT id FROM job_entries WHERE job_number = ?", (job_number,)
        )
        return self.get_job_entry(rows[0]["id"]) if rows else None

    def get_job_entries(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[JobEntry]:
        where, params = self._job_scope(installer_id, date_from, date_to)
        sql = f"""
            SELECT je.* FROM job_entries je
            WHERE {where}
            ORDER BY je.date DESC, je.id DESC
        """
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [limit, offset]
        rows = self.db.execute(sql, tuple(params))
        jobs = [JobEntry(**dict(r)) for r in rows]
        for job in jobs:
            self._load_job_children(job)
        return jobs

    def _load_job_children(self, job: JobEntry):
        rows = self.db.execute(f"""
            SELECT ji.*, {_USER_NAME_SQL} AS installer_name
            FROM job_installers ji
            JOIN users u ON ji.installer_id = u.id
            WHERE ji.job_entry_id = ?
            ORDER BY ji.id
        """, (job.id,))
        job.installers = [_to_model(JobInstaller, r) for r in rows]

        rows = self.db.execute("""
            SELECT d.*, COALESCE(f.name, '') AS film_name
            FROM job_dimensions d
            LEFT JOIN films f ON d.film_id = f.id
            WHERE d.job_entry_id = ?
            ORDER BY d.id
        """, (job.id,))
        job.dimensions = [_to_model(JobDimension, r) for r in rows]

        rows = self.db.execute(f"""
            SELECT r.*, {_USER_NAME_SQL} AS installer_name
            FROM redo_entries r
            JOIN users u ON r.installer_id = u.id
            WHERE r.job_entry_id = ?
            ORDER BY r.id
        """, (job.id,))
        job.redo_entries = [_to_model(RedoEntry, r) for r in rows]

        rows = self.db.execute(f"""
            SELECT t.*, {_USER_NAME_SQL} AS installer_name
            FROM installer_time_entries t
            JOIN users u ON t.installer_id = u.id
            WHERE t.job_entry_id = ?
            ORDER BY t.id
        """, (job.id,))
        job.time_entries = [_to_model(InstallerTimeEntry, r) for r in rows]

    def _prepare_job(self, conn, payload: dict,
                     parsed: ParsedAssignments) -> dict:
        """Resolve references and compute every derived value for a job.

        Runs inside the write transaction, before anything is inserted.
        """
        for installer_id in payload["installer_ids"]:
            self._require_user(conn, installer_id, entity="Installer")

        films: dict[int, Film] = {}

        def film_for(film_id):
            if film_id is None:
                return None
            if film_id not in films:
                films[film_id] = self._require_film(conn, film_id)
            return films[film_id]

        dimensions = []
        for dim in payload.get("dimensions") or []:
            sqft = round(
                dim["length_inches"] * dim["width_inches"]
                / SQ_INCHES_PER_SQFT, 4
            )
            film = film_for(dim.get("film_id"))
            cost = round(sqft * film.cost_per_sqft, 2) if film else None
            dimensions.append({
                "film_id": dim.get("film_id"),
                "length_inches": dim["length_inches"],
                "width_inches": dim["width_inches"],
                "sqft": sqft,
                "film_cost": cost,
                "description": dim.get("description") or "",
            })

        redos = []
        default_installer = payload["installer_ids"][0]
        for redo in payload.get("redo_entries") or []:
            length = redo.get("length_inches")
            width = redo.get("width_inches")
            sqft = (
                round(length * width / SQ_INCHES_PER_SQFT, 4)
                if length and width else None
            )
            film = film_for(redo.get("film_id"))
            if film and sqft:
                material_cost = round(sqft * film.cost_per_sqft, 2)
            else:
                material_cost = redo.get("material_cost")
            redos.append({
                "installer_id": redo.get("installer_id") or default_installer,
                "part": redo["part"],
                "length_inches": length,
                "width_inches": width,
                "sqft": sqft,
                "film_id": redo.get("film_id"),
                "material_cost": material_cost,
                "time_minutes": redo.get("time_minutes") or 0,
                "timestamp": _iso(redo.get("timestamp") or datetime.now()),
            })

        if dimensions:
            total_sqft = round(sum(d["sqft"] for d in dimensions), 4)
        else:
            total_sqft = payload.get("total_sqft") or 0.0
        if any(d["film_cost"] is not None for d in dimensions):
            film_cost = round(
                sum(d["film_cost"] or 0 for d in dimensions), 2
            )
        else:
            film_cost = payload.get("film_cost") or 0.0

        total_windows = payload.get("total_windows")
        if total_windows is None:
            total_windows = Config.DEFAULT_TOTAL_WINDOWS
        windows = resolve_windows_completed(parsed.assignments, total_windows)
        window_counts = count_windows_by_installer(parsed.assignments)

        raw = payload.get("window_assignments")
        if not parsed.valid:
            stored_assignments = raw if isinstance(raw, str) else json.dumps(
                raw, default=str
            )
        elif raw is None:
            stored_assignments = None
        else:
            stored_assignments = serialize_window_assignments(
                parsed.assignments
            )

        return {
            "parsed": parsed,
            "dimensions": dimensions,
            "redos": redos,
            "total_sqft": total_sqft,
            "film_cost": film_cost,
            "total_windows": total_windows,
            "windows": windows,
            "window_counts": window_counts,
            "window_assignments": stored_assignments,
        }

    @staticmethod
    def _job_columns(payload: dict, prepared: dict) -> tuple:
        return (
            _iso_date(payload["date"]),
            str(payload["vehicle_year"]).strip(),
            str(payload["vehicle_make"]).strip(),
            str(payload["vehicle_model"]).strip(),
            prepared["total_windows"],
            prepared["windows"].count,
            prepared["windows"].source,
            _iso(payload["start_time"]) if payload.get("start_time") else None,
            _iso(payload["end_time"]) if payload.get("end_time") else None,
            payload.get("duration_minutes"),
            prepared["total_sqft"],
            prepared["film_cost"],
            prepared["window_assignments"],
            payload.get("notes") or "",
        )

    def _write_job_children(self, conn, job_id: int, job_number: str,
                            payload: dict, prepared: dict):
        variances = payload.get("installer_time_variances") or {}
        windows = prepared["windows"]
        window_counts = prepared["window_counts"]
        credits = installer_window_credits(
            windows, payload["installer_ids"], window_counts
        )

        for installer_id in payload["installer_ids"]:
            # JSON payloads arrive with string keys
            variance = variances.get(
                installer_id, variances.get(str(installer_id), 0)
            )
            conn.execute("""
                INSERT INTO job_installers
                    (job_entry_id, installer_id, time_variance,
                     windows_completed)
                VALUES (?, ?, ?, ?)
            """, (
                job_id, installer_id, variance or 0,
                credits[installer_id],
            ))

        for dim in prepared["dimensions"]:
            conn.execute("""
                INSERT INTO job_dimensions
                    (job_entry_id, film_id, length_inches, width_inches,
                     sqft, film_cost, description)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                job_id, dim["film_id"], dim["length_inches"],
                dim["width_inches"], dim["sqft"], dim["film_cost"],
                dim["description"],
            ))

        for redo in prepared["redos"]:
            conn.execute("""
                INSERT INTO redo_entries
                    (job_entry_id, installer_id, part, length_inches,
                     width_inches, sqft, film_id, material_cost,
                     time_minutes, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job_id, redo["installer_id"], redo["part"],
                redo["length_inches"], redo["width_inches"], redo["sqft"],
                redo["film_id"], redo["material_cost"],
                redo["time_minutes"], redo["timestamp"],
            ))

        duration = payload.get("duration_minutes")
        if duration is not None and window_counts:
            allocated = allocate_minutes(duration, window_counts)
            for installer_id, minutes in allocated.items():
                conn.execute("""
                    INSERT INTO installer_time_entries
                        (job_entry_id, installer_id, windows_completed,
                         time_minutes)
                    VALUES (?, ?, ?, ?)
                """, (job_id, installer_id,
                      window_counts[installer_id], minutes))

        parsed = prepared["parsed"]
        if not parsed.valid:
            logger.warning(f"Job {job_number}: window assignments could not "
                           f"be parsed ({parsed.error}); counting "
                           f"{windows.count} windows from the job total")
            self._notify(conn, Notification(
                title=f"Unreadable window assignments on {job_number}",
                message=(
                    f"The window assignments for {job_number} could not be "
                    f"read ({parsed.error}). Reports use the job's total of "
                    f"{windows.count} windows and no time split was recorded."
                ),
                severity="warning",
                source="data_quality",
                job_entry_id=job_id,
            ))

    # ── Report Filters ──────────────────────────────────────────

    @staticmethod
    def _job_scope(installer_id=None, date_from=None, date_to=None,
                   alias: str = "je") -> tuple[str, list]:
        """WHERE clause selecting the filtered job set."""
        conditions = []
        params: list = []
        if date_from:
            conditions.append(f"DATE({alias}.date) >= DATE(?)")
            params.append(_iso_date(date_from))
        if date_to:
            conditions.append(f"DATE({alias}.date) <= DATE(?)")
            params.append(_iso_date(date_to))
        if installer_id is not None:
            conditions.append(
                f"EXISTS (SELECT 1 FROM job_installers fji "
                f"WHERE fji.job_entry_id = {alias}.id "
                f"AND fji.installer_id = ?)"
            )
            params.append(installer_id)
        where = " AND ".join(conditions) if conditions else "1=1"
        return where, params

    @staticmethod
    def _only_installer(column: str, installer_id) -> tuple[str, list]:
        if installer_id is None:
            return "", []
        return f" AND {column} = ?", [installer_id]

    def _installers_by_id(self) -> dict[int, User]:
        return {u.id: u for u in self.get_all_users(active_only=False)}

    # ── Performance Analytics ───────────────────────────────────

    def get_performance_metrics(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> dict:
        """Headline numbers for the filtered job set.

        With an installer filter the job set is that installer's jobs, and
        windows, redos and time variances are that installer's share.
        """
        where, params = self._job_scope(installer_id, date_from, date_to)

        rows = self.db.execute(
            f"SELECT COUNT(*) AS total_vehicles, "
            f"COALESCE(SUM(je.windows_completed), 0) AS total_windows "
            f"FROM job_entries je WHERE {where}",
            tuple(params),
        )
        total_vehicles = rows[0]["total_vehicles"] if rows else 0
        total_windows = rows[0]["total_windows"] if rows else 0

        ji_only, ji_params = self._only_installer("ji.installer_id",
                                                  installer_id)
        rows = self.db.execute(f"""
            SELECT COALESCE(AVG(ji.time_variance), 0) AS avg_variance,
                   COUNT(DISTINCT ji.installer_id) AS active_installers,
                   COALESCE(SUM(ji.windows_completed), 0) AS windows
            FROM job_installers ji
            JOIN job_entries je ON ji.job_entry_id = je.id
            JOIN users u ON ji.installer_id = u.id
            WHERE {where}{ji_only}
        """, tuple(params + ji_params))
        avg_variance = rows[0]["avg_variance"] if rows else 0
        active_installers = rows[0]["active_installers"] if rows else 0
        if installer_id is not None:
            total_windows = rows[0]["windows"] if rows else 0

        r_only, r_params = self._only_installer("r.installer_id",
                                                installer_id)
        rows = self.db.execute(f"""
            SELECT COUNT(r.id) AS total_redos
            FROM redo_entries r
            JOIN job_entries je ON r.job_entry_id = je.id
            WHERE {where}{r_only}
        """, tuple(params + r_params))
        total_redos = rows[0]["total_redos"] if rows else 0

        rows = self.db.execute(f"""
            SELECT COUNT(*) AS clean_jobs
            FROM job_entries je
            WHERE {where} AND NOT EXISTS (
                SELECT 1 FROM redo_entries r
                WHERE r.job_entry_id = je.id{r_only}
            )
        """, tuple(params + r_params))
        jobs_without_redos = rows[0]["clean_jobs"] if rows else 0

        return {
            "total_vehicles": total_vehicles,
            "total_windows": total_windows,
            "total_redos": total_redos,
            "avg_time_variance": int(round(avg_variance or 0)),
            "active_installers": active_installers,
            "jobs_without_redos": jobs_without_redos,
        }

    def _installer_window_stats(self, installer_id, date_from,
                                date_to) -> dict[int, dict]:
        """Per installer: distinct jobs, credited windows, redo count."""
        where, params = self._job_scope(installer_id, date_from, date_to)
        stats: dict[int, dict] = {}

        rows = self.db.execute(f"""
            SELECT ji.installer_id,
                   COUNT(DISTINCT ji.job_entry_id) AS vehicle_count,
                   COALESCE(SUM(ji.windows_completed), 0) AS windows
            FROM job_installers ji
            JOIN job_entries je ON ji.job_entry_id = je.id
            WHERE {where}
            GROUP BY ji.installer_id
        """, tuple(params))
        for r in rows:
            stats[r["installer_id"]] = {
                "vehicle_count": r["vehicle_count"],
                "windows": r["windows"],
                "redo_count": 0,
            }

        rows = self.db.execute(f"""
            SELECT r.installer_id, COUNT(r.id) AS redo_count
            FROM redo_entries r
            JOIN job_entries je ON r.job_entry_id = je.id
            WHERE {where}
            GROUP BY r.installer_id
        """, tuple(params))
        for r in rows:
            entry = stats.setdefault(r["installer_id"], {
                "vehicle_count": 0, "windows": 0, "redo_count": 0,
            })
            entry["redo_count"] = r["redo_count"]

        return stats

    def get_top_performers(
        self,
        limit: Optional[int] = None,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> list[dict]:
        """Rank installers by clean vehicles (vehicles minus redos).

        Every active installer is listed, including those with no work in
        the period; an installer with no windows has a 100% success rate.
        Deactivated installers appear only when they have work in the period.
        """
        if limit is None:
            limit = Config.TOP_PERFORMERS_LIMIT
        stats = self._installer_window_stats(installer_id, date_from, date_to)

        results = []
        for installer in self.get_installers(active_only=False):
            if installer_id is not None and installer.id != installer_id:
                continue
            s = stats.get(installer.id, {})
            if not installer.is_active and not s.get("vehicle_count"):
                continue
            windows = s.get("windows", 0)
            redo_count = s.get("redo_count", 0)
            results.append({
                "installer": installer,
                "vehicle_count": s.get("vehicle_count", 0),
                "total_windows": windows,
                "redo_count": redo_count,
                "success_rate": success_rate(windows, redo_count),
            })

        results.sort(key=performer_sort_key)
        return results[:max(limit, 0)]

    def get_redo_breakdown(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> list[dict]:
        """Redo counts per vehicle part, most frequent first.

        Parts with the same count are listed alphabetically.
        """
        where, params = self._job_scope(installer_id, date_from, date_to)
        r_only, r_params = self._only_installer("r.installer_id",
                                                installer_id)
        rows = self.db.execute(f"""
            SELECT r.part,
                   COUNT(r.id) AS count,
                   COALESCE(SUM(r.sqft), 0) AS total_sqft,
                   COALESCE(SUM(r.material_cost), 0) AS total_cost,
                   COALESCE(AVG(r.time_minutes), 0) AS avg_time_minutes
            FROM redo_entries r
            JOIN job_entries je ON r.job_entry_id = je.id
            WHERE {where}{r_only}
            GROUP BY r.part
            ORDER BY count DESC, r.part ASC
        """, tuple(params + r_params))
        return [
            {
                "part": r["part"],
                "count": r["count"],
                "total_sqft": round(r["total_sqft"], 2),
                "total_cost": round(r["total_cost"], 2),
                "avg_time_minutes": round(r["avg_time_minutes"], 1),
            }
            for r in rows
        ]

    def get_window_performance_analytics(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> dict:
        """Window-level success rates for the team and each installer.

        Window counts come from what each job stored when it was saved:
        explicit assignments where present, the job's total otherwise.
        Rates are clamped to [0, 100]; ``redo_overflow`` marks the rows where
        redos outnumber windows and the clamp hides the excess.
        """
        metrics = self.get_performance_metrics(installer_id, date_from,
                                               date_to)
        total_windows = metrics["total_windows"]
        total_redos = metrics["total_redos"]

        stats = self._installer_window_stats(installer_id, date_from, date_to)
        users = self._installers_by_id()
        performance = []
        for uid, s in stats.items():
            if installer_id is not None and uid != installer_id:
                continue
            user = users.get(uid)
            if user is None:
                continue
            windows, redos = s["windows"], s["redo_count"]
            if windows == 0 and redos == 0:
                continue
            overflow = redos > windows
            if overflow:
                logger.warning(f"{user.display_name} has {redos} redo(s) "
                               f"against {windows} window(s)")
            performance.append({
                "installer": user,
                "windows_completed": windows,
                "redo_count": redos,
                "success_rate": (
                    0.0 if windows == 0 else success_rate(windows, redos)
                ),
                "redo_overflow": overflow,
            })
        performance.sort(key=lambda p: (
            -p["success_rate"], -p["windows_completed"],
            p["installer"].display_name.lower(),
        ))

        overflow = total_redos > total_windows
        if overflow:
            logger.warning(f"Team redo count ({total_redos}) exceeds "
                           f"windows completed ({total_windows})")
        return {
            "total_windows": total_windows,
            "total_redos": total_redos,
            "success_rate": (
                0.0 if total_windows == 0 and total_redos > 0
                else success_rate(total_windows, total_redos)
            ),
            "redo_overflow": overflow,
            "installer_performance": performance,
        }

    def get_installer_time_performance(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> list[dict]:
        """Minutes per window for each installer, fastest first.

        Built from the per-installer time split; installers without any
        timed windows are left out of the ranking.
        """
        where, params = self._job_scope(installer_id, date_from, date_to)
        t_only, t_params = self._only_installer("t.installer_id",
                                                installer_id)
        rows = self.db.execute(f"""
            SELECT t.installer_id,
                   COALESCE(SUM(t.time_minutes), 0) AS total_minutes,
                   COALESCE(SUM(t.windows_completed), 0) AS total_windows,
                   COUNT(DISTINCT t.job_entry_id) AS job_count
            FROM installer_time_entries t
            JOIN job_entries je ON t.job_entry_id = je.id
            JOIN users u ON t.installer_id = u.id
            WHERE {where}{t_only}
            GROUP BY t.installer_id
            HAVING total_windows > 0
        """, tuple(params + t_params))

        users = self._installers_by_id()
        results = [
            {
                "installer": users[r["installer_id"]],
                "total_minutes": r["total_minutes"],
                "total_windows": r["total_windows"],
                "avg_time_per_window": avg_per_window(
                    r["total_minutes"], r["total_windows"]
                ),
                "job_count": r["job_count"],
            }
            for r in rows
        ]
        results.sort(key=lambda p: (
            p["avg_time_per_window"], -p["total_windows"],
            p["installer"].display_name.lower(),
        ))
        return results

    def get_film_consumption(
        self,
        installer_id: Optional[int] = None,
        date_from=None,
        date_to=None,
    ) -> list[dict]:
        """Square footage and cost of film used per film, on jobs and redos."""
        where, params = self._job_scope(installer_id, date_from, date_to)
        usage: dict[int, dict] = {}

        def entry(film_id):
            return usage.setdefault(film_id, {
                "job_sqft": 0.0, "job_cost": 0.0, "redo_sqft": 0.0,
                "redo_cost": 0.0, "job_count": 0,
            })

        rows = self.db.execute(f"""
            SELECT d.film_id,
                   COALESCE(SUM(d.sqft), 0) AS sqft,
                   COALESCE(SUM(d.film_cost), 0) AS cost,
                   COUNT(DISTINCT d.job_entry_id) AS job_count
            FROM job_dimensions d
            JOIN job_entries je ON d.job_entry_id = je.id
            WHERE {where} AND d.film_id IS NOT NULL
            GROUP BY d.film_id
        """, tuple(params))
        for r in rows:
            e = entry(r["film_id"])
            e["job_sqft"] = r["sqft"]
            e["job_cost"] = r["cost"]
            e["job_count"] = r["job_count"]

        rows = self.db.execute(f"""
            SELECT r.film_id,
                   COALESCE(SUM(r.sqft), 0) AS sqft,
                   COALESCE(SUM(r.material_cost), 0) AS cost
            FROM redo_entries r
            JOIN job_entries je ON r.job_entry_id = je.id
            WHERE {where} AND r.film_id IS NOT NULL
            GROUP BY r.film_id
        """, tuple(params))
        for r in rows:
            e = entry(r["film_id"])
            e["redo_sqft"] = r["sqft"]
            e["redo_cost"] = r["cost"]

        films = {f.id: f for f in self.get_all_films()}
        results = []
        for film_id, e in usage.items():
            if film_id not in films:
                continue
            results.append({
                "film": films[film_id],
                "job_sqft": round(e["job_sqft"], 2),
                "job_cost": round(e["job_cost"], 2),
                "redo_sqft": round(e["redo_sqft"], 2),
                "redo_cost": round(e["redo_cost"], 2),
                "total_sqft": round(e["job_sqft"] + e["redo_sqft"], 2),
                "total_cost": round(e["job_cost"] + e["redo_cost"], 2),
                "job_count": e["job_count"],
            })
        results.sort(key=lambda c: (-c["total_sqft"], c["film"].name))
        return results

    # ── Job Costing ─────────────────────────────────────────────

    def get_job_labor_costs(self, job_id: int) -> list[dict]:
        """Labor cost per installer from the job's time split."""
        if self.get_job_entry(job_id) is None:
            raise NotFoundError("Job", job_id)
        rows = self.db.execute("""
            SELECT t.installer_id, t.time_minutes
            FROM installer_time_entries t
            WHERE t.job_entry_id = ?
            ORDER BY t.id
        """, (job_id,))
        users = self._installers_by_id()
        costs = []
        for r in rows:
            installer = users[r["installer_id"]]
            costs.append({
                "installer": installer,
                "time_minutes": r["time_minutes"],
                "hourly_rate": installer.hourly_rate,
                "labor_cost": round(
                    r["time_minutes"] / 60 * installer.hourly_rate, 2
                ),
            })
        return costs

    def get_job_cost_summary(self, job_id: int) -> dict:
        """Film, redo material, and labor cost for one job."""
        job = self.get_job_entry(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        labor_cost = round(
            sum(c["labor_cost"] for c in self.get_job_labor_costs(job_id)), 2
        )
        redo_cost = round(
            sum(r.material_cost or 0 for r in job.redo_entries), 2
        )
        film_cost = round(job.film_cost or 0, 2)
        return {
            "job_number": job.job_number,
            "film_cost": film_cost,
            "redo_material_cost": redo_cost,
            "labor_cost": labor_cost,
            "total_cost": round(film_cost + redo_cost + labor_cost, 2),
        }

    # ── Inventory Ledger ────────────────────────────────────────

    def add_inventory_stock(
        self,
        film_id: int,
        quantity: float,
        actor_id: int,
        notes: str = "",
        job_entry_id: Optional[int] = None,
    ) -> InventoryTransaction:
        """Receive stock for a film and record an 'addition' ledger row."""
        if not _is_number(quantity) or round(quantity, 2) <= 0:
            raise ValidationError("Quantity must be greater than 0")
        quantity = round(float(quantity), 2)

        with self.db.get_connection(immediate=True) as conn:
            film = self._require_film(conn, film_id)
            self._require_user(conn, actor_id)
            tx = self._apply_stock_delta(
                conn, film, "addition", quantity, actor_id, notes,
                job_entry_id,
            )
        logger.info(f"Added {quantity} sq ft of {film.name}: "
                    f"{tx.previous_stock} -> {tx.new_stock}")
        return tx

    def adjust_inventory_stock(
        self,
        film_id: int,
        new_stock: float,
        actor_id: int,
        notes: str = "",
        job_entry_id: Optional[int] = None,
    ) -> InventoryTransaction:
        """Set a film's stock to a counted value and record the difference."""
        if not _is_number(new_stock) or new_stock < 0:
            raise ValidationError("Stock cannot be negative")
        new_stock = round(float(new_stock), 2)

        with self.db.get_connection(immediate=True) as conn:
            film = self._require_film(conn, film_id)
            self._require_user(conn, actor_id)
            current = self._current_stock(conn, film_id)
            delta = round(new_stock - current, 2)
            tx = self._apply_stock_delta(
                conn, film, "adjustment", delta, actor_id, notes,
                job_entry_id,
            )
        logger.info(f"Adjusted {film.name} stock by {delta:+} sq ft: "
                    f"{tx.previous_stock} -> {tx.new_stock}")
        return tx

    def _current_stock(self, conn, film_id: int) -> float:
        conn.execute(
            "INSERT OR IGNORE INTO film_inventory (film_id) VALUES (?)",
            (film_id,),
        )
        row = conn.execute(
            "SELECT current_stock FROM film_inventory WHERE film_id = ?",
            (film_id,),
        ).fetchone()
        return row["current_stock"]

    def _apply_stock_delta(self, conn, film: Film, tx_type: str,
                           delta: float, actor_id: int, notes: str,
                           job_entry_id: Optional[int]) -> InventoryTransaction:
        """Apply a signed stock change and write its ledger row.

        The stock row is changed by one arithmetic UPDATE that returns the
        stored result, and the ledger insert shares the caller's
        transaction, so the two can never disagree.
        """
        conn.execute(
            "INSERT OR IGNORE INTO film_inventory (film_id) VALUES (?)",
            (film.id,),
        )
        row = conn.execute("""
            UPDATE film_inventory
            SET current_stock = ROUND(current_stock + ?, 2)
            WHERE film_id = ?
            RETURNING current_stock, minimum_stock
        """, (delta, film.id)).fetchall()[0]
        new_stock = row["current_stock"]
        previous_stock = round(new_stock - delta, 2)

        cursor = conn.execute("""
            INSERT INTO inventory_transactions
                (film_id, type, quantity, previous_stock, new_stock,
                 job_entry_id, notes, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            film.id, tx_type, delta, previous_stock, new_stock,
            job_entry_id, notes or "", actor_id,
        ))
        tx_id = cursor.lastrowid

        if stock_status(new_stock, row["minimum_stock"]) == "low":
            logger.warning(f"Low stock: {film.name} at {new_stock} sq ft "
                           f"(min {row['minimum_stock']})")
            self._notify(conn, Notification(
                title=f"Low Stock: {film.name}",
                message=(
                    f"{film.name} is at {new_stock} sq ft "
                    f"(minimum {row['minimum_stock']}). Consider reordering."
                ),
                severity="warning",
                source="inventory",
                film_id=film.id,
            ))

        tx_row = conn.execute(f"""
            SELECT t.*, f.name AS film_name,
                   {_USER_NAME_SQL} AS created_by_name
            FROM inventory_transactions t
            JOIN films f ON t.film_id = f.id
            JOIN users u ON t.created_by = u.id
            WHERE t.id = ?
        """, (tx_id,)).fetchone()
        return _to_model(InventoryTransaction, tx_row)

    def set_minimum_stock(self, film_id: int, minimum: float) -> FilmInventory:
        """Change the low-stock threshold. Not a stock change: no ledger row."""
        if not _is_number(minimum) or minimum < 0:
            raise ValidationError("Minimum stock cannot be negative")
        with self.db.get_connection() as conn:
            self._require_film(conn, film_id)
            conn.execute(
                "INSERT OR IGNORE INTO film_inventory (film_id) VALUES (?)",
                (film_id,),
            )
            conn.execute(
                "UPDATE film_inventory SET minimum_stock = ? "
                "WHERE film_id = ?",
                (round(float(minimum), 2), film_id),
            )
        return self.get_film_inventory(film_id)

    def get_film_inventory(self, film_id: int) -> Optional[FilmInventory]:
        rows = self.db.execute("""
            SELECT fi.*, f.name AS film_name
            FROM film_inventory fi
            JOIN films f ON fi.film_id = f.id
            WHERE fi.film_id = ?
        """, (film_id,))
        return _to_model(FilmInventory, rows[0]) if rows else None

    def get_films_with_inventory(self, active_only: bool = True) -> list[dict]:
        """Every film with its stock row and stock status."""
        where = "WHERE f.is_active = 1" if active_only else ""
        rows = self.db.execute(f"""
            SELECT f.id AS film_id,
                   COALESCE(fi.current_stock, 0) AS current_stock,
                   COALESCE(fi.minimum_stock, 0) AS minimum_stock,
                   f.name AS film_name
            FROM films f
            LEFT JOIN film_inventory fi ON fi.film_id = f.id
            {where}
            ORDER BY f.name
        """)
        films = {f.id: f for f in self.get_all_films()}
        results = []
        for r in rows:
            inventory = _to_model(FilmInventory, r)
            results.append({
                "film": films[r["film_id"]],
                "inventory": inventory,
                "status": inventory.stock_status,
            })
        return results

    def get_low_stock_films(self) -> list[dict]:
        """Active films that are low or approaching their minimum.

        Low films come first, then by current stock.
        """
        flagged = [
            f for f in self.get_films_with_inventory()
            if f["status"] in ("low", "approaching")
        ]
        flagged.sort(key=lambda f: (
            f["status"] != "low", f["inventory"].current_stock,
            f["film"].name,
        ))
        return flagged

    def get_inventory_transactions(
        self,
        film_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[InventoryTransaction]:
        """Ledger rows, newest first."""
        if limit is None:
            limit = Config.TRANSACTION_HISTORY_LIMIT
        conditions = []
        params: list = []
        if film_id is not None:
            conditions.append("t.film_id = ?")
            params.append(film_id)
        where = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)
        rows = self.db.execute(f"""
            SELECT t.*, f.name AS film_name,
                   COALESCE({_USER_NAME_SQL}, '') AS created_by_name
            FROM inventory_transactions t
            JOIN films f ON t.film_id = f.id
            LEFT JOIN users u ON t.created_by = u.id
            WHERE {where}
            ORDER BY t.created_at DESC, t.id DESC
            LIMIT ?
        """, tuple(params))
        return [_to_model(InventoryTransaction, r) for r in rows]

    def verify_ledger(self, film_id: int) -> dict:
        """Check a film's stock against its ledger.

        Consistent means the current stock equals both the newest ledger
        row's ``new_stock`` and the sum of every signed quantity.
        """
        inventory = self.get_film_inventory(film_id)
        if inventory is None:
            raise NotFoundError("Film", film_id)
        rows = self.db.execute("""
            SELECT COALESCE(SUM(quantity), 0) AS total,
                   COUNT(*) AS tx_count
            FROM inventory_transactions WHERE film_id = ?
        """, (film_id,))
        total = round(rows[0]["total"], 2)
        tx_count = rows[0]["tx_count"]
        last = self.db.execute("""
            SELECT new_stock FROM inventory_transactions
            WHERE film_id = ? ORDER BY id DESC LIMIT 1
        """, (film_id,))
        last_new_stock = last[0]["new_stock"] if last else None

        current = round(inventory.current_stock, 2)
        consistent = current == total and (
            last_new_stock is None and current == 0
            or last_new_stock is not None
            and round(last_new_stock, 2) == current
        )
        if not consistent:
            logger.error(f"Ledger mismatch for film {film_id}: stock "
                         f"{current}, last row {last_new_stock}, "
                         f"sum {total}")
        return {
            "film_id": film_id,
            "current_stock": current,
            "last_new_stock": last_new_stock,
            "sum_of_deltas": total,
            "transaction_count": tx_count,
            "consistent": consistent,
        }
