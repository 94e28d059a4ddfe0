"""Application entry point for the ``tint-track`` command line."""

import argparse
import logging
import sys

from tint_track.config import Config
from tint_track.database.connection import DatabaseConnection
from tint_track.database.errors import TintTrackError
from tint_track.database.repository import Repository
from tint_track.database.schema import initialize_database
from tint_track.utils.constants import APP_NAME, APP_VERSION, REDO_PART_LABELS
from tint_track.utils.formatters import (
    format_currency,
    format_minutes,
    format_percent,
    format_stock,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None):
    """Route log records to stderr at ``Config.LOG_LEVEL``."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_repository(db_path=None) -> Repository:
    db = DatabaseConnection(db_path or Config.DATABASE_PATH)
    initialize_database(db)
    return Repository(db)


def _filters(args) -> dict:
    return dict(
        installer_id=args.installer,
        date_from=args.date_from,
        date_to=args.date_to,
    )


def _cmd_init(repo: Repository, args) -> int:
    print(f"Database ready at {repo.db.db_path}")
    return 0


def _cmd_metrics(repo: Repository, args) -> int:
    metrics = repo.get_performance_metrics(**_filters(args))
    windows = repo.get_window_performance_analytics(**_filters(args))
    print(f"Vehicles:            {metrics['total_vehicles']}")
    print(f"Windows completed:   {metrics['total_windows']}")
    print(f"Redos:               {metrics['total_redos']}")
    print(f"Window success rate: {format_percent(windows['success_rate'])}")
    print(f"Avg time variance:   "
          f"{format_minutes(metrics['avg_time_variance'])}")
    print(f"Active installers:   {metrics['active_installers']}")
    print(f"Jobs without redos:  {metrics['jobs_without_redos']}")

    breakdown = repo.get_redo_breakdown(**_filters(args))
    if breakdown:
        print("\nRedos by part:")
        for r in breakdown:
            label = REDO_PART_LABELS.get(r["part"], r["part"])
            print(f"  {label:<26} {r['count']}")

    consumption = repo.get_film_consumption(**_filters(args))
    if consumption:
        print("\nFilm used:")
        for c in consumption:
            print(f"  {c['film'].name:<26} {c['total_sqft']:>8.1f} sq ft  "
                  f"{format_currency(c['total_cost'])}")
    return 0


def _cmd_performers(repo: Repository, args) -> int:
    performers = repo.get_top_performers(args.limit, **_filters(args))
    if not performers:
        print("No active installers.")
        return 0
    for rank, p in enumerate(performers, start=1):
        print(f"{rank:>2}. {p['installer'].display_name:<24} "
              f"vehicles {p['vehicle_count']:>3}  "
              f"redos {p['redo_count']:>3}  "
              f"success {format_percent(p['success_rate'])}")

    timing = repo.get_installer_time_performance(**_filters(args))
    if timing:
        print("\nMinutes per window (fastest first):")
        for t in timing:
            print(f"    {t['installer'].display_name:<24} "
                  f"{t['avg_time_per_window']:>6.1f}  "
                  f"({t['total_windows']} windows)")
    return 0


def _cmd_low_stock(repo: Repository, args) -> int:
    flagged = repo.get_low_stock_films()
    if not flagged:
        print("All films are above their minimum stock.")
        return 0
    for item in flagged:
        inv = item["inventory"]
        print(f"{item['film'].name:<30} "
              f"{format_stock(inv.current_stock, inv.minimum_stock)}  "
              f"[{item['status']}]")
    return 0


def _cmd_export(repo: Repository, args) -> int:
    if args.kind == "jobs":
        from tint_track.io.csv_handler import export_jobs_csv
        count = export_jobs_csv(repo, args.output, **_filters(args))
        print(f"Exported {count} jobs to {args.output}")
    elif args.kind == "ledger":
        from tint_track.io.csv_handler import (
            export_inventory_transactions_csv,
        )
        count = export_inventory_transactions_csv(repo, args.output,
                                                  limit=args.limit)
        print(f"Exported {count} ledger rows to {args.output}")
    else:
        from tint_track.io.excel_handler import (
            export_performance_report_excel,
        )
        counts = export_performance_report_excel(
            repo, args.output, limit=args.limit, **_filters(args)
        )
        print(f"Wrote {len(counts)} sheets to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tint-track",
        description=f"{APP_NAME} {APP_VERSION}: job performance and film "
                    f"inventory reports",
    )
    parser.add_argument("--db", help="Path to the SQLite database")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    filters = argparse.ArgumentParser(add_help=False)
    filters.add_argument("--installer", type=int,
                         help="Only jobs worked by this installer id")
    filters.add_argument("--from", dest="date_from",
                         help="First job date (YYYY-MM-DD)")
    filters.add_argument("--to", dest="date_to",
                         help="Last job date (YYYY-MM-DD)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the database schema")
    sub.add_parser("metrics", parents=[filters],
                   help="Show headline performance metrics")
    performers = sub.add_parser("performers", parents=[filters],
                                help="Show the installer leaderboard")
    performers.add_argument("--limit", type=int, default=None)
    sub.add_parser("low-stock", help="List films at or near minimum stock")
    export = sub.add_parser("export", parents=[filters],
                            help="Export jobs, the ledger, or a report")
    export.add_argument("kind", choices=["jobs", "ledger", "report"])
    export.add_argument("output", help="Destination file")
    export.add_argument("--limit", type=int, default=None)
    return parser


_COMMANDS = {
    "init": _cmd_init,
    "metrics": _cmd_metrics,
    "performers": _cmd_performers,
    "low-stock": _cmd_low_stock,
    "export": _cmd_export,
}


def main(argv: list[str] | None = None) -> int:
    """Run the ``tint-track`` command line."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    repo = _open_repository(args.db)
    try:
        return _COMMANDS[args.command](repo, args)
    except TintTrackError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
