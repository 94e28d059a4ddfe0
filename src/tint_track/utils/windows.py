"""Window-assignment parsing and the windows-completed resolution.

A job records "work completed" two ways: an aggregate ``total_windows``
count, and an optional list of window slots each assigned to an installer.
``resolve_windows_completed`` picks one of the two when the job is stored,
so reporting code never has to reconcile them again.
"""

import json
import logging
from dataclasses import dataclass, field

from tint_track.database.models import WindowAssignment, WindowsCompleted
from tint_track.utils.allocation import apportion

logger = logging.getLogger(__name__)


@dataclass
class ParsedAssignments:
    assignments: list[WindowAssignment] = field(default_factory=list)
    valid: bool = True
    error: str = ""


def _coerce_installer_id(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid installer id {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"invalid installer id {value!r}")


def _parse_item(item) -> WindowAssignment:
    if isinstance(item, WindowAssignment):
        return WindowAssignment(
            window_id=item.window_id,
            installer_id=_coerce_installer_id(item.installer_id),
            window_name=item.window_name,
        )
    if not isinstance(item, dict):
        raise ValueError(f"expected an object, got {type(item).__name__}")

    window_id = item.get("windowId", item.get("window_id"))
    if not window_id:
        raise ValueError("window assignment is missing windowId")
    installer = item.get("installerId", item.get("installer_id"))
    return WindowAssignment(
        window_id=str(window_id),
        installer_id=_coerce_installer_id(installer),
        window_name=str(
            item.get("windowName", item.get("window_name")) or window_id
        ),
    )


def parse_window_assignments(raw) -> ParsedAssignments:
    """Parse a window-assignment payload.

    Accepts ``None``, a list of dicts/``WindowAssignment`` objects, or the
    same list encoded as a JSON string. A payload that cannot be parsed is
    reported as ``valid=False`` with no assignments, which makes the job
    fall back to its aggregate window count.
    """
    if raw is None or raw == "":
        return ParsedAssignments()

    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if data is None:
            return ParsedAssignments()
        if not isinstance(data, (list, tuple)):
            raise ValueError(
                f"expected a list of assignments, got {type(data).__name__}"
            )
        assignments = [_parse_item(item) for item in data]
    except (ValueError, TypeError) as e:
        logger.warning(f"Unparsable window assignments, using total "
                       f"window count instead: {e}")
        return ParsedAssignments(valid=False, error=str(e))

    seen = set()
    for a in assignments:
        if a.window_id in seen:
            logger.warning(f"Duplicate window slot '{a.window_id}' in "
                           f"assignments; using total window count instead")
            return ParsedAssignments(
                valid=False, error=f"duplicate window '{a.window_id}'"
            )
        seen.add(a.window_id)

    return ParsedAssignments(assignments=assignments)


def serialize_window_assignments(
    assignments: list[WindowAssignment],
) -> str:
    return json.dumps([a.to_dict() for a in assignments])


def resolve_windows_completed(
    assignments: list[WindowAssignment], total_windows: int
) -> WindowsCompleted:
    """Pick the job's completed-window count.

    Explicit assignments win when at least one window has an installer;
    otherwise the job's ``total_windows`` is used.
    """
    assigned = sum(1 for a in assignments if a.installer_id is not None)
    if assigned > 0:
        return WindowsCompleted(WindowsCompleted.ASSIGNED, assigned)
    return WindowsCompleted(WindowsCompleted.AGGREGATE_FALLBACK, total_windows)


def installer_window_credits(
    windows: WindowsCompleted,
    installer_ids: list[int],
    window_counts: dict[int, int],
) -> dict[int, int]:
    """Windows credited to each installer on a job.

    Under explicit assignments that is each installer's own count. The
    aggregate fallback has no per-installer breakdown, so the job's window
    total is shared evenly; the credits always add up to the job total.
    """
    if windows.is_assigned:
        return {i: window_counts.get(i, 0) for i in installer_ids}
    shares = apportion(windows.count, {i: 1 for i in installer_ids})
    return {i: shares.get(i, 0) for i in installer_ids}
