"""Standalone CSV export script: export jobs or the stock ledger."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tint_track.config import Config
from tint_track.database.connection import DatabaseConnection
from tint_track.database.schema import initialize_database
from tint_track.database.repository import Repository
from tint_track.io.csv_handler import (
    export_inventory_transactions_csv,
    export_jobs_csv,
)


def main():
    if len(sys.argv) < 3:
        print("Usage: python export_csv.py <jobs|ledger> <output.csv>")
        sys.exit(1)

    data_type = sys.argv[1].lower()
    filepath = sys.argv[2]

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    if data_type == "jobs":
        count = export_jobs_csv(repo, filepath)
    elif data_type == "ledger":
        count = export_inventory_transactions_csv(repo, filepath)
    else:
        print(f"Unknown data type: {data_type}. Use 'jobs' or 'ledger'.")
        sys.exit(1)

    print(f"Exported {count} {data_type} rows to {filepath}")


if __name__ == "__main__":
    main()
