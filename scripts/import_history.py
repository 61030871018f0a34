#!/usr/bin/env python3
"""
Import a EuroMillions history CSV into the draws table.

The file is semicolon separated: date;n1;n2;n3;n4;n5;e1;e2 with one
header row. Existing dates are replaced.

Usage:
    python scripts/import_history.py [path/to/history.csv]
"""
import os
import sys

from loguru import logger

from dotenv import load_dotenv

# Load environment variables from .env if available
load_dotenv()


def ensure_project_root_on_path() -> None:
    """Ensure repository root is on sys.path when running from subdirs."""
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        ensure_project_root_on_path()

        from vivier.config import load_config
        from vivier.database import bulk_insert_draws, get_latest_draw_date, initialize_database
        from vivier.loader import read_history_csv

        config = load_config()
        csv_path = argv[0] if argv else config.resolve_path(config.history_csv)
        if not os.path.exists(csv_path):
            logger.error(f"History file not found: {csv_path}")
            return 1

        initialize_database()
        df = read_history_csv(csv_path)
        count = bulk_insert_draws(df)
        logger.info(f"Imported {count} draws (latest: {get_latest_draw_date()})")
        return 0

    except KeyboardInterrupt:
        logger.warning("Import interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"History import failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
