"""
Tests for the distance function and the cluster engine.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest
from datetime import datetime, timedelta
from trip_album.models import Photo
from trip_album.clustering import (
    haversine_distance,
    calculate_gps_distance,
    calculate_time_difference,
    are_photos_proximate,
    split_into_runs,
    cluster_photos,
)


def make_photo(photo_id, lat, lon, when):
    return Photo(id=photo_id, owner_id="alice", latitude=lat, longitude=lon, captured_at=when)


class TestGPSDistance:
    """Test great-circle distance calculations."""

    def test_haversine_distance_same_point(self):
        """Distance between same point should be 0."""
        distance = haversine_distance(40.7128, -74.0060, 40.7128, -74.0060)
        assert distance == 0.0

    def test_haversine_distance_known_distance(self):
        """Lower Manhattan to Times Square is about 5.4 km."""
        distance = haversine_distance(40.7128, -74.0060, 40.7589, -73.9851)
        assert 5.0 <= distance <= 6.0

    def test_haversine_distance_new_york_to_los_angeles(self):
        """NYC to LA is roughly 3940 km."""
        distance = haversine_distance(40.7128, -74.0060, 34.0522, -118.2437)
        assert 3900 <= distance <= 3980

    def test_haversine_distance_is_symmetric(self):
        d1 = haversine_distance(10, 20, 10.2, 20.2)
        d2 = haversine_distance(10.2, 20.2, 10, 20)
        assert d1 == pytest.approx(d2)

    def test_calculate_gps_distance_missing_coordinates(self):
        """Photos without coordinates are infinitely far apart."""
        photo1 = Photo(id="1")
        photo2 = Photo(id="2", latitude=40.7128, longitude=-74.0060)

        assert calculate_gps_distance(photo1, photo2) == float('inf')


class TestTimeDifference:
    """Test time difference calculations."""

    def test_calculate_time_difference_one_hour(self):
        time1 = datetime(2025, 10, 29, 10, 0, 0)
        photo1 = Photo(id="1", captured_at=time1)
        photo2 = Photo(id="2", captured_at=time1 + timedelta(hours=1))

        assert calculate_time_difference(photo1, photo2) == 1.0

    def test_calculate_time_difference_missing_timestamp(self):
        photo1 = Photo(id="1")
        photo2 = Photo(id="2", captured_at=datetime(2025, 10, 29, 10, 0, 0))

        assert calculate_time_difference(photo1, photo2) == float('inf')

    def test_are_photos_proximate_thresholds_are_inclusive(self):
        """A gap exactly equal to the threshold still chains."""
        time1 = datetime(2025, 10, 29, 10, 0, 0)
        photo1 = make_photo("1", 10.0, 20.0, time1)
        photo2 = make_photo("2", 10.0, 20.0, time1 + timedelta(hours=24))

        assert are_photos_proximate(photo1, photo2, max_distance_km=50, max_time_gap_hours=24) is True


class TestClusterEngine:
    """Test the greedy chaining cluster engine."""

    def test_empty_input_yields_no_groups(self):
        assert cluster_photos([], 50, 24, 3) == []

    def test_single_photo_below_min_size(self):
        photo = make_photo("1", 10.0, 20.0, datetime(2025, 10, 29, 10))
        assert cluster_photos([photo], 50, 24, 3) == []

    def test_single_photo_with_min_size_one(self):
        photo = make_photo("1", 10.0, 20.0, datetime(2025, 10, 29, 10))
        assert cluster_photos([photo], 50, 24, 1) == [[photo]]

    def test_three_nearby_photos_one_hour_apart(self):
        """Three photos 1 hour and ~15 km apart form one group."""
        base = datetime(2025, 10, 29, 10)
        photos = [
            make_photo("1", 10.0, 20.0, base),
            make_photo("2", 10.1, 20.1, base + timedelta(hours=1)),
            make_photo("3", 10.2, 20.2, base + timedelta(hours=2)),
        ]

        groups = cluster_photos(photos, 50, 24, 3)

        assert len(groups) == 1
        assert [p.id for p in groups[0]] == ["1", "2", "3"]

    def test_time_gap_splits_into_groups_below_min_size(self):
        """A 30 hour gap splits the run; both halves are too small."""
        base = datetime(2025, 10, 29, 10)
        photos = [
            make_photo("1", 10.0, 20.0, base),
            make_photo("2", 10.1, 20.1, base + timedelta(hours=30)),
            make_photo("3", 10.2, 20.2, base + timedelta(hours=31)),
        ]

        assert cluster_photos(photos, 50, 24, 3) == []
        runs = split_into_runs(photos, 50, 24)
        assert [[p.id for p in run] for run in runs] == [["1"], ["2", "3"]]

    def test_chain_drifts_across_consecutive_short_hops(self):
        """Each hop is ~11 km, but first and last photo are ~89 km apart."""
        base = datetime(2025, 10, 29, 8)
        photos = [make_photo(str(i), 10.0 + i * 0.1, 20.0, base + timedelta(hours=i)) for i in range(9)]

        groups = cluster_photos(photos, 20, 24, 3)

        assert len(groups) == 1
        assert len(groups[0]) == 9
        assert calculate_gps_distance(photos[0], photos[-1]) > 20

    def test_distance_jump_starts_new_group(self):
        base = datetime(2025, 10, 29, 10)
        nyc = [make_photo(f"nyc{i}", 40.7128, -74.0060, base + timedelta(minutes=10 * i)) for i in range(3)]
        la = [make_photo(f"la{i}", 34.0522, -118.2437, base + timedelta(hours=6, minutes=10 * i)) for i in range(3)]

        groups = cluster_photos(nyc + la, 50, 24, 3)

        assert [[p.id for p in g] for g in groups] == [
            ["nyc0", "nyc1", "nyc2"],
            ["la0", "la1", "la2"],
        ]


class TestClusterProperties:
    """Invariants that hold for any engine output."""

    @pytest.fixture
    def mixed_photos(self):
        base = datetime(2025, 6, 1, 9)
        offsets = [
            (0, 48.85, 2.35), (1, 48.86, 2.34), (2, 48.87, 2.33),
            (40, 48.87, 2.33),
            (80, 41.90, 12.49), (81, 41.91, 12.50), (82, 41.89, 12.48), (83, 41.90, 12.47),
            (84, 45.46, 9.19),
            (200, 45.46, 9.19), (201, 45.47, 9.18),
        ]
        return [make_photo(str(i), lat, lon, base + timedelta(hours=h))
                for i, (h, lat, lon) in enumerate(offsets)]

    def test_runs_reconstruct_input(self, mixed_photos):
        runs = split_into_runs(mixed_photos, 50, 24)
        flattened = [p for run in runs for p in run]
        assert flattened == mixed_photos

    def test_groups_are_contiguous_slices(self, mixed_photos):
        groups = cluster_photos(mixed_photos, 50, 24, 2)
        for group in groups:
            indices = [mixed_photos.index(p) for p in group]
            assert indices == list(range(indices[0], indices[0] + len(indices)))

    def test_adjacent_members_respect_thresholds(self, mixed_photos):
        for group in cluster_photos(mixed_photos, 50, 24, 1):
            for previous, photo in zip(group, group[1:]):
                assert calculate_gps_distance(previous, photo) <= 50
                assert calculate_time_difference(previous, photo) <= 24

    def test_no_group_below_min_size(self, mixed_photos):
        for min_size in (1, 2, 3, 4):
            for group in cluster_photos(mixed_photos, 50, 24, min_size):
                assert len(group) >= min_size

    def test_deterministic(self, mixed_photos):
        first = cluster_photos(mixed_photos, 50, 24, 2)
        second = cluster_photos(list(mixed_photos), 50, 24, 2)
        assert [[p.id for p in g] for g in first] == [[p.id for p in g] for g in second]

    def test_expected_grouping(self, mixed_photos):
        groups = cluster_photos(mixed_photos, 50, 24, 3)
        assert [[p.id for p in g] for g in groups] == [["0", "1", "2"], ["4", "5", "6", "7"]]
