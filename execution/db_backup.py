"""Database backup script: creates a timestamped SQLite backup."""

import shutil
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tint_track.config import Config


def backup_database(db_path: Path | None = None,
                    backup_dir: Path | None = None,
                    keep: int | None = None) -> Path | None:
    """Copy the database file to the backup directory with a timestamp.

    Only the newest ``keep`` backups are retained. Returns the new backup
    path, or None when there is no database to copy.
    """
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    keep = Config.BACKUP_KEEP if keep is None else keep
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        print(f"Database not found at {db_path}")
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_file = backup_dir / f"tint_track_{timestamp}.db"
    shutil.copy2(db_path, backup_file)
    print(f"Backup created: {backup_file}")

    backups = sorted(backup_dir.glob("tint_track_*.db"), reverse=True)
    for old in backups[keep:]:
        old.unlink()
        print(f"Removed old backup: {old.name}")
    return backup_file


if __name__ == "__main__":
    backup_database()
