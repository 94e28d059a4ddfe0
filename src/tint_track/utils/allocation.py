"""Proportional split of a job's minutes and windows across its installers.

Each installer is credited a share of the job's total minutes in proportion
to the number of windows they were assigned. Shares are whole minutes and
always add up to the job duration exactly: every installer first gets the
floor of their exact share, then the minutes left over go one at a time to
the installers with the largest fractional remainders (largest-remainder
apportionment).
"""

from collections.abc import Iterable, Mapping

from tint_track.database.models import WindowAssignment


def count_windows_by_installer(
    assignments: Iterable[WindowAssignment],
) -> dict[int, int]:
    """Count assigned windows per installer; unassigned windows are skipped.

    Keys keep the order in which installers first appear.
    """
    counts: dict[int, int] = {}
    for assignment in assignments:
        if assignment.installer_id is None:
            continue
        counts[assignment.installer_id] = (
            counts.get(assignment.installer_id, 0) + 1
        )
    return counts


def apportion(total: int, weights: Mapping[int, int]) -> dict[int, int]:
    """Split the whole number ``total`` across keys in proportion to weights.

    Keys with a zero weight are left out. The values sum to ``total``. Ties
    on the fractional remainder go to the larger weight, then to the lower
    key.
    """
    if total < 0:
        raise ValueError("total cannot be negative")
    if any(weight < 0 for weight in weights.values()):
        raise ValueError("weights cannot be negative")

    counts = {k: v for k, v in weights.items() if v > 0}
    total_weight = sum(counts.values())
    if total_weight == 0:
        return {}

    allocated: dict[int, int] = {}
    remainders: dict[int, int] = {}
    for key, weight in counts.items():
        share, remainder = divmod(total * weight, total_weight)
        allocated[key] = share
        remainders[key] = remainder

    leftover = total - sum(allocated.values())
    order = sorted(
        counts,
        key=lambda i: (-remainders[i], -counts[i], i),
    )
    for key in order[:leftover]:
        allocated[key] += 1

    return allocated


def allocate_minutes(
    duration_minutes: int, window_counts: Mapping[int, int]
) -> dict[int, int]:
    """Split ``duration_minutes`` across installers by window count.

    Returns ``{installer_id: minutes}`` for every installer with a non-zero
    window count. The values sum to ``duration_minutes``. Ties on the
    fractional remainder go to the installer with more windows, then to
    the lower installer id.
    """
    return apportion(duration_minutes, window_counts)
