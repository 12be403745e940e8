"""
Tests for environment-driven configuration.
"""

import pytest

from trip_album.config import ClusterOptions, Settings, DATABASE_PATH
from trip_album.error_handling import InvalidInput, StoreFailure, DatabaseError


class TestClusterOptions:

    def test_defaults(self):
        options = ClusterOptions().validate()
        assert (options.max_distance_km, options.max_time_gap_hours, options.min_size) == (50.0, 24.0, 3)

    @pytest.mark.parametrize("kwargs", [
        {"max_distance_km": 0},
        {"max_time_gap_hours": -2},
        {"min_size": 0},
    ])
    def test_non_positive_rejected(self, kwargs):
        with pytest.raises(InvalidInput):
            ClusterOptions(**kwargs).validate()


class TestSettings:

    def test_from_env_defaults(self, monkeypatch):
        for name in ("TRIP_ALBUM_DB_PATH", "TRIP_ALBUM_MAX_DISTANCE_KM",
                     "TRIP_ALBUM_MAX_TIME_GAP_HOURS", "TRIP_ALBUM_MIN_SIZE"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.db_path == DATABASE_PATH
        assert settings.cluster == ClusterOptions()

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRIP_ALBUM_DB_PATH", "/tmp/trips.db")
        monkeypatch.setenv("TRIP_ALBUM_MAX_DISTANCE_KM", "12.5")
        monkeypatch.setenv("TRIP_ALBUM_MAX_TIME_GAP_HOURS", "6")
        monkeypatch.setenv("TRIP_ALBUM_MIN_SIZE", "5")

        settings = Settings.from_env()

        assert settings.db_path == "/tmp/trips.db"
        assert settings.cluster == ClusterOptions(12.5, 6.0, 5)

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("TRIP_ALBUM_MIN_SIZE", "three")
        with pytest.raises(InvalidInput):
            Settings.from_env()


class TestStoreFailure:

    def test_message_names_step_and_cause(self):
        error = StoreFailure("Store operation failed", "insert_trip", DatabaseError("disk full"))
        assert str(error) == "Store operation failed (step=insert_trip: disk full)"
        assert error.step == "insert_trip"
