"""Validation rules for job payloads."""

import math
from datetime import date, datetime

from tint_track.utils.constants import REDO_PARTS
from tint_track.utils.windows import ParsedAssignments, parse_window_assignments


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _valid_date(value) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        datetime.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def validate_job_payload(
    payload: dict, parsed: ParsedAssignments | None = None
) -> list[str]:
    """Validate a job create/edit payload. Returns list of error strings.

    Pass ``parsed`` when the caller already parsed the window assignments.
    """
    errors = []

    if not _valid_date(payload.get("date")):
        errors.append("date is required (ISO format)")

    for key in ("vehicle_year", "vehicle_make", "vehicle_model"):
        value = payload.get(key)
        if value is None or not str(value).strip():
            errors.append(f"{key} is required")

    total = payload.get("total_windows")
    if total is not None and (not _is_int(total) or total < 1):
        errors.append("total_windows must be an integer of at least 1")

    duration = payload.get("duration_minutes")
    if duration is not None and (not _is_int(duration) or duration < 0):
        errors.append("duration_minutes must be a non-negative integer")

    installer_ids = payload.get("installer_ids")
    if not isinstance(installer_ids, (list, tuple)) or not installer_ids:
        errors.append("At least one installer must be selected")
        installer_ids = []
    else:
        if not all(_is_int(i) for i in installer_ids):
            errors.append("installer_ids must be integers")
        elif len(set(installer_ids)) != len(installer_ids):
            errors.append("installer_ids contains duplicates")

    variances = payload.get("installer_time_variances") or {}
    if not isinstance(variances, dict):
        errors.append("installer_time_variances must be a mapping")
    else:
        for installer_id, minutes in variances.items():
            if not _is_int(minutes):
                errors.append(
                    f"time variance for installer {installer_id} "
                    f"must be an integer"
                )

    for i, dim in enumerate(payload.get("dimensions") or [], start=1):
        if not isinstance(dim, dict):
            errors.append(f"Dimension {i}: must be an object")
            continue
        for key in ("length_inches", "width_inches"):
            value = dim.get(key)
            if not _is_number(value) or value <= 0:
                errors.append(f"Dimension {i}: {key} must be positive")
        film_id = dim.get("film_id")
        if film_id is not None and not _is_int(film_id):
            errors.append(f"Dimension {i}: film_id must be an integer")

    # Unparsable assignments are a data-quality warning, not an error;
    # parsed ones must point at installers on the job.
    if parsed is None:
        parsed = parse_window_assignments(payload.get("window_assignments"))
    if parsed.valid:
        for a in parsed.assignments:
            if a.installer_id is not None and a.installer_id not in installer_ids:
                errors.append(
                    f"Window '{a.window_id}' is assigned to installer "
                    f"{a.installer_id}, who is not on this job"
                )

    for i, redo in enumerate(payload.get("redo_entries") or [], start=1):
        if not isinstance(redo, dict):
            errors.append(f"Redo {i}: must be an object")
            continue
        if redo.get("part") not in REDO_PARTS:
            errors.append(
                f"Redo {i}: part must be one of {', '.join(REDO_PARTS)}"
            )
        installer = redo.get("installer_id")
        if installer is not None and installer not in installer_ids:
            errors.append(
                f"Redo {i}: installer {installer} is not on this job"
            )
        minutes = redo.get("time_minutes")
        if minutes is not None and (not _is_int(minutes) or minutes < 0):
            errors.append(f"Redo {i}: time_minutes cannot be negative")
        for key in ("length_inches", "width_inches", "material_cost"):
            value = redo.get(key)
            if value is not None and (not _is_number(value) or value < 0):
                errors.append(f"Redo {i}: {key} cannot be negative")

    return errors
