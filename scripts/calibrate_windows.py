#!/usr/bin/env python3
"""
Run the window calibration on the stored history and print, per signal
family, the standard window, the sub-series band and the dynamic window.

Usage:
    python scripts/calibrate_windows.py
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


def main() -> int:
    try:
        ensure_project_root_on_path()

        from vivier.config import load_config
        from vivier.database import get_history
        from vivier.engine.calibration import CalibrationState

        history = get_history()
        if not history:
            logger.error("No draws in the database; run scripts/import_history.py first")
            return 1

        config = load_config()
        state = CalibrationState()
        windows, _ = state.windows(history, config.static_windows())
        results = state.results(history)

        print(f"Calibration over {len(history)} draws (latest {history[0].draw_date})")
        for family, spec in windows.items():
            result = results.get(family)
            if result is None:
                print(f"  {family.value:<18} {spec.describe():<22} static default")
                continue
            values = [p.window for p in result.series if p is not None]
            print(
                f"  {family.value:<18} {spec.describe():<22} "
                f"standard={result.standard.window} band=[{result.band.low}, {result.band.high}] "
                f"sub-series={values}"
            )
        return 0

    except KeyboardInterrupt:
        logger.warning("Calibration interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Calibration failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
