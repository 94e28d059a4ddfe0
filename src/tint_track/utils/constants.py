"""Application-wide constants."""

APP_NAME = "Tint-Track"
APP_VERSION = "1.0.0"

# User roles
USER_ROLES = ["installer", "manager"]

# Vehicle parts a redo can be recorded against
REDO_PARTS = ["windshield", "rollups", "back_windshield", "quarter"]

REDO_PART_LABELS = {
    "windshield": "Windshield (W.S)",
    "rollups": "Rollups",
    "back_windshield": "Back Windshield (B.W.S)",
    "quarter": "Quarter",
}

# Standard window slots offered when assigning windows to installers
DEFAULT_WINDOWS = [
    ("windshield", "Windshield"),
    ("back_windshield", "Back Windshield"),
    ("front_left", "Front Left"),
    ("front_right", "Front Right"),
    ("rear_left", "Rear Left"),
    ("rear_right", "Rear Right"),
    ("quarter_left", "Quarter Left"),
]

FILM_TYPES = [
    "Window Tint",
    "Paint Protection Film",
    "Ceramic Coating",
    "Vinyl Wrap",
    "Clear Bra",
    "Security Film",
]

STOCK_STATUS_LABELS = {
    "unknown": "No minimum set",
    "low": "Low Stock",
    "approaching": "Approaching Limit",
    "good": "Good Stock",
}

# Square inches per square foot
SQ_INCHES_PER_SQFT = 144

NOTIFICATION_SEVERITIES = ["info", "warning", "critical"]
