"""Formatting utilities for display values."""


def format_currency(value: float) -> str:
    """Format a float as USD currency."""
    return f"${value:,.2f}"


def format_minutes(minutes: int) -> str:
    """Format a duration as '1h 5m', or '45m' under an hour."""
    sign = "-" if minutes < 0 else ""
    hours, mins = divmod(abs(int(minutes)), 60)
    if hours > 0:
        return f"{sign}{hours}h {mins}m"
    return f"{sign}{mins}m"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_stock(value: float, minimum: float = 0.0) -> str:
    """Format a stock level in square feet, flagging low stock."""
    text = f"{value:,.1f} sq ft"
    if minimum > 0 and value <= minimum:
        return f"{text} (LOW)"
    return text
