"""Data models for the database layer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class User:
    id: Optional[int] = None
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    role: str = "installer"  # 'installer' or 'manager'
    hourly_rate: float = 0.0
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email or f"User #{self.id}"

    @property
    def is_manager(self) -> bool:
        return self.role == "manager"


@dataclass
class Film:
    id: Optional[int] = None
    name: str = ""
    type: str = ""
    cost_per_sqft: float = 0.0
    is_active: int = 1
    # Roll specs (optional)
    total_sqft: Optional[float] = None
    gross_weight: Optional[float] = None
    core_weight: Optional[float] = None
    net_weight: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def weight_per_sqft(self) -> float:
        """Net roll weight spread over the roll's area, 0 when unknown."""
        if not self.total_sqft or not self.net_weight:
            return 0.0
        return self.net_weight / self.total_sqft


@dataclass
class FilmInventory:
    id: Optional[int] = None
    film_id: int = 0
    current_stock: float = 0.0
    minimum_stock: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields
    film_name: str = field(default="", repr=False)

    @property
    def stock_status(self) -> str:
        from tint_track.utils.metrics import stock_status
        return stock_status(self.current_stock, self.minimum_stock)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_status == "low"


@dataclass
class InventoryTransaction:
    """Immutable ledger row bracketing one stock change."""
    id: Optional[int] = None
    film_id: int = 0
    type: str = "addition"  # 'addition' or 'adjustment'
    quantity: float = 0.0   # signed delta
    previous_stock: float = 0.0
    new_stock: float = 0.0
    job_entry_id: Optional[int] = None
    notes: str = ""
    created_by: int = 0
    created_at: Optional[datetime] = None
    # Joined fields
    film_name: str = field(default="", repr=False)
    created_by_name: str = field(default="", repr=False)


@dataclass
class WindowAssignment:
    window_id: str = ""
    installer_id: Optional[int] = None
    window_name: str = ""

    def to_dict(self) -> dict:
        return {
            "windowId": self.window_id,
            "installerId": self.installer_id,
            "windowName": self.window_name,
        }


@dataclass(frozen=True)
class WindowsCompleted:
    """How many windows a job counts as completed, and where that came from.

    ``source`` is ``"assigned"`` when the count comes from explicit
    per-window installer assignments, or ``"aggregate_fallback"`` when it
    falls back to the job's ``total_windows``.
    """
    source: str
    count: int

    ASSIGNED = "assigned"
    AGGREGATE_FALLBACK = "aggregate_fallback"

    @property
    def is_assigned(self) -> bool:
        return self.source == self.ASSIGNED


@dataclass
class JobDimension:
    id: Optional[int] = None
    job_entry_id: int = 0
    film_id: Optional[int] = None
    length_inches: float = 0.0
    width_inches: float = 0.0
    sqft: float = 0.0
    film_cost: Optional[float] = None
    description: str = ""
    created_at: Optional[datetime] = None
    # Joined fields
    film_name: str = field(default="", repr=False)


@dataclass
class JobInstaller:
    id: Optional[int] = None
    job_entry_id: int = 0
    installer_id: int = 0
    time_variance: int = 0  # minutes, positive or negative
    windows_completed: int = 0
    created_at: Optional[datetime] = None
    # Joined fields
    installer_name: str = field(default="", repr=False)


@dataclass
class RedoEntry:
    id: Optional[int] = None
    job_entry_id: int = 0
    installer_id: int = 0
    part: str = ""  # windshield, rollups, back_windshield, quarter
    length_inches: Optional[float] = None
    width_inches: Optional[float] = None
    sqft: Optional[float] = None
    film_id: Optional[int] = None
    material_cost: Optional[float] = None
    time_minutes: int = 0
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    # Joined fields
    installer_name: str = field(default="", repr=False)


@dataclass
class InstallerTimeEntry:
    id: Optional[int] = None
    job_entry_id: int = 0
    installer_id: int = 0
    windows_completed: int = 0
    time_minutes: int = 0
    created_at: Optional[datetime] = None
    # Joined fields
    installer_name: str = field(default="", repr=False)


@dataclass
class JobEntry:
    id: Optional[int] = None
    job_number: str = ""
    date: str = ""
    vehicle_year: str = ""
    vehicle_make: str = ""
    vehicle_model: str = ""
    total_windows: int = 7
    windows_completed: int = 0
    windows_source: str = WindowsCompleted.AGGREGATE_FALLBACK
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    total_sqft: float = 0.0
    film_cost: float = 0.0
    window_assignments: Optional[str] = None  # JSON array as received
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Child records (loaded by the repository)
    installers: list[JobInstaller] = field(default_factory=list, repr=False)
    dimensions: list[JobDimension] = field(default_factory=list, repr=False)
    redo_entries: list[RedoEntry] = field(default_factory=list, repr=False)
    time_entries: list[InstallerTimeEntry] = field(
        default_factory=list, repr=False
    )

    @property
    def vehicle(self) -> str:
        return " ".join(
            p for p in (self.vehicle_year, self.vehicle_make,
                        self.vehicle_model) if p
        )

    @property
    def windows(self) -> WindowsCompleted:
        return WindowsCompleted(self.windows_source, self.windows_completed)

    @property
    def installer_ids(self) -> list[int]:
        return [i.installer_id for i in self.installers]

    @property
    def redo_count(self) -> int:
        return len(self.redo_entries)


@dataclass
class Notification:
    id: Optional[int] = None
    title: str = ""
    message: str = ""
    severity: str = "info"  # info, warning, critical
    source: str = "system"  # system, data_quality, inventory
    job_entry_id: Optional[int] = None
    film_id: Optional[int] = None
    is_read: int = 0
    created_at: Optional[datetime] = None
