"""
Tourney Progression Configuration

Centralized settings, paths, and constants for the progression engine.
"""

import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

import appdirs


# Application info
APP_NAME = "TourneyProgression"
APP_AUTHOR = "TourneyDesk"
APP_VERSION = "1.0.0"


@dataclass(frozen=True)
class Paths:
    """Application paths."""
    # Data directory (stores database)
    data_dir: Path = Path(appdirs.user_data_dir(APP_NAME, APP_AUTHOR))

    # Config directory (stores user preferences)
    config_dir: Path = Path(appdirs.user_config_dir(APP_NAME, APP_AUTHOR))

    # Log directory
    log_dir: Path = Path(appdirs.user_log_dir(APP_NAME, APP_AUTHOR))

    @property
    def database(self) -> Path:
        return self.data_dir / "progression.db"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "progression.log"

    def ensure_directories(self) -> None:
        """Create all required directories."""
        for dir_path in [self.data_dir, self.config_dir, self.log_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class ScoringSettings:
    """League table points."""
    points_win: int = 3
    points_draw: int = 1
    points_loss: int = 0


@dataclass(frozen=True)
class SeedingSettings:
    """Defaults used when a stage config leaves a value out."""
    # Top N per group feeding a knockout stage
    advancers_per_group: int = 2

    # Top N of a league feeding a knockout stage
    league_advancers: int = 8

    # A bracket needs at least a final
    min_league_advancers: int = 2


@dataclass(frozen=True)
class GridSettings:
    """Bracket designer canvas grid."""
    # Column width and row height in canvas units
    col_w: int = 220
    row_h: int = 110

    # Canvas origin of round 1, position 1
    x0: int = 60
    y0: int = 60

    # Nodes closer than this on the x axis share a column (round)
    column_gap: int = 120

    # A bracket match has two sides
    max_parents: int = 2


@dataclass(frozen=True)
class LogSettings:
    """Logging settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Singleton instances
PATHS = Paths()
SCORING = ScoringSettings()
SEEDING_SETTINGS = SeedingSettings()
GRID_SETTINGS = GridSettings()
LOG_SETTINGS = LogSettings()


def setup_logging(level: Optional[str] = None, to_file: bool = True) -> None:
    """Configure root logging for the application."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if to_file:
        PATHS.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(PATHS.log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, (level or LOG_SETTINGS.level).upper()),
        format=LOG_SETTINGS.format,
        handlers=handlers,
    )


def init_config(log_level: Optional[str] = None) -> None:
    """Initialize configuration and create required directories."""
    PATHS.ensure_directories()
    setup_logging(log_level)
