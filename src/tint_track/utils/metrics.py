"""Small calculations shared by the reporting queries."""


def success_rate(completed: int, redos: int,
                 empty_value: float = 100.0) -> float:
    """Percentage of completed windows that needed no redo.

    Clamped to [0, 100] and rounded to one decimal. With nothing completed
    the rate is ``empty_value`` (no work, no defects).
    """
    if completed <= 0:
        return empty_value
    rate = (completed - redos) / completed * 100
    return round(min(max(rate, 0.0), 100.0), 1)


def stock_status(current: float, minimum: float,
                 approaching_factor: float | None = None) -> str:
    """Classify a stock level as unknown, low, approaching, or good."""
    if approaching_factor is None:
        from tint_track.config import Config
        approaching_factor = Config.APPROACHING_STOCK_FACTOR

    if minimum <= 0:
        return "unknown"
    if current <= minimum:
        return "low"
    if current <= minimum * approaching_factor:
        return "approaching"
    return "good"


def performer_sort_key(row: dict) -> tuple:
    """Leaderboard order: net clean vehicles, then success rate, then name."""
    return (
        -(row["vehicle_count"] - row["redo_count"]),
        -row["success_rate"],
        row["installer"].display_name.lower(),
        row["installer"].id or 0,
    )


def avg_per_window(total_minutes: int, total_windows: int) -> float:
    if total_windows <= 0:
        return 0.0
    return round(total_minutes / total_windows, 1)
