"""
Vivier - Configuration
======================

Reads config/config.ini (or the file named by VIVIER_CONFIG). Every value
has a fallback so a missing or unreadable file degrades to defaults.
"""

import configparser
import os
from dataclasses import dataclass
from typing import Dict

from loguru import logger

from .models import SignalFamily, WindowSpec


REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def get_config_path() -> str:
    """Path of the ini file, overridable through VIVIER_CONFIG"""
    return os.getenv("VIVIER_CONFIG", os.path.join(REPO_ROOT, "config", "config.ini"))


@dataclass
class VivierConfig:
    database_file: str = "data/vivier.db"
    history_csv: str = "data/euromillions_history.csv"
    high_draws: int = 600
    surrepresentation_draws: int = 200
    trend_draws: int = 120
    trend_recent_draws: int = 40
    dormant_draws: int = 80
    max_attempts: int = 180
    default_vivier_level: int = 10
    calibration_enabled: bool = True

    def static_windows(self) -> Dict[SignalFamily, WindowSpec]:
        """Configured fallback window for each signal family"""
        return {
            SignalFamily.HIGH: WindowSpec.last_n_draws(self.high_draws),
            SignalFamily.SURREPRESENTATION: WindowSpec.last_n_draws(self.surrepresentation_draws),
            SignalFamily.TREND: WindowSpec.last_n_draws(self.trend_draws, recent_period=self.trend_recent_draws),
            SignalFamily.DORMANT: WindowSpec.last_n_draws(self.dormant_draws),
        }

    def resolve_path(self, relative: str) -> str:
        if os.path.isabs(relative):
            return relative
        return os.path.join(REPO_ROOT, relative)


def load_config(path: str = None) -> VivierConfig:
    """
    Load configuration from the ini file.

    Args:
        path: Optional explicit ini path (defaults to get_config_path())

    Returns:
        VivierConfig with file values, or defaults where missing
    """
    config_path = path or get_config_path()
    defaults = VivierConfig()
    try:
        parser = configparser.ConfigParser()
        parser.read(config_path)
        cfg = VivierConfig(
            database_file=parser.get("paths", "database_file", fallback=defaults.database_file),
            history_csv=parser.get("paths", "history_csv", fallback=defaults.history_csv),
            high_draws=parser.getint("windows", "high_draws", fallback=defaults.high_draws),
            surrepresentation_draws=parser.getint(
                "windows", "surrepresentation_draws", fallback=defaults.surrepresentation_draws
            ),
            trend_draws=parser.getint("windows", "trend_draws", fallback=defaults.trend_draws),
            trend_recent_draws=parser.getint("windows", "trend_recent_draws", fallback=defaults.trend_recent_draws),
            dormant_draws=parser.getint("windows", "dormant_draws", fallback=defaults.dormant_draws),
            max_attempts=parser.getint("generation", "max_attempts", fallback=defaults.max_attempts),
            default_vivier_level=parser.getint(
                "generation", "default_vivier_level", fallback=defaults.default_vivier_level
            ),
            calibration_enabled=parser.getboolean("calibration", "enabled", fallback=defaults.calibration_enabled),
        )
        logger.info(f"Configuration loaded from {config_path}")
        return cfg
    except (configparser.Error, ValueError, OSError) as e:
        logger.error(f"Error reading config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return defaults
