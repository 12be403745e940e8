"""
Configuration for the trip engine, read from environment variables.
"""

import os
from dataclasses import dataclass, field

from trip_album.error_handling import InvalidInput

DATABASE_PATH = "trip_album.db"

DEFAULT_MAX_DISTANCE_KM = 50.0
DEFAULT_MAX_TIME_GAP_HOURS = 24.0
DEFAULT_MIN_SIZE = 3


@dataclass
class ClusterOptions:
    """Thresholds for auto-clustering a user's photos into trips."""
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
    max_time_gap_hours: float = DEFAULT_MAX_TIME_GAP_HOURS
    min_size: int = DEFAULT_MIN_SIZE

    def validate(self) -> "ClusterOptions":
        if self.max_distance_km is None or self.max_distance_km <= 0:
            raise InvalidInput(f"max_distance_km must be positive, got {self.max_distance_km}")
        if self.max_time_gap_hours is None or self.max_time_gap_hours <= 0:
            raise InvalidInput(f"max_time_gap_hours must be positive, got {self.max_time_gap_hours}")
        if self.min_size is None or self.min_size <= 0:
            raise InvalidInput(f"min_size must be positive, got {self.min_size}")
        return self


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise InvalidInput(f"{name} must be a number, got {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidInput(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    db_path: str = DATABASE_PATH
    log_level: str = "INFO"
    log_file: str = ""
    cluster: ClusterOptions = field(default_factory=ClusterOptions)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from TRIP_ALBUM_* environment variables."""
        cluster = ClusterOptions(
            max_distance_km=_env_float("TRIP_ALBUM_MAX_DISTANCE_KM", DEFAULT_MAX_DISTANCE_KM),
            max_time_gap_hours=_env_float("TRIP_ALBUM_MAX_TIME_GAP_HOURS", DEFAULT_MAX_TIME_GAP_HOURS),
            min_size=_env_int("TRIP_ALBUM_MIN_SIZE", DEFAULT_MIN_SIZE),
        ).validate()
        return cls(
            db_path=os.getenv("TRIP_ALBUM_DB_PATH", DATABASE_PATH),
            log_level=os.getenv("TRIP_ALBUM_LOG_LEVEL", "INFO"),
            log_file=os.getenv("TRIP_ALBUM_LOG_FILE", ""),
            cluster=cluster,
        )
