"""
Tests for trip summary attributes derived from member photos.
"""

import pytest
from datetime import datetime, timedelta

from trip_album.aggregation import (
    aggregate_trip,
    build_trip_name,
    calculate_location,
    format_coordinates,
)
from trip_album.error_handling import InvalidInput
from trip_album.models import Photo


class TestLocation:
    """Centroid and bounding box."""

    def test_centroid_and_bounding_box(self):
        photos = [
            Photo(id="a", latitude=10.0, longitude=20.0),
            Photo(id="b", latitude=12.0, longitude=18.0),
            Photo(id="c", latitude=11.0, longitude=25.0),
        ]

        location = calculate_location(photos)

        assert location.centroid_lat == pytest.approx(11.0)
        assert location.centroid_lng == pytest.approx(21.0)
        box = location.bounding_box
        assert (box.north, box.south, box.east, box.west) == (12.0, 10.0, 25.0, 18.0)

    def test_box_contains_members_and_centroid(self):
        photos = [Photo(id=str(i), latitude=40 + i * 0.37, longitude=-74 + i * 0.11) for i in range(6)]

        location = calculate_location(photos)

        for photo in photos:
            assert location.bounding_box.contains(photo.latitude, photo.longitude)
        assert location.bounding_box.contains(location.centroid_lat, location.centroid_lng)

    def test_members_without_coordinates_are_ignored(self):
        photos = [
            Photo(id="a", latitude=10.0, longitude=20.0),
            Photo(id="b"),
        ]

        location = calculate_location(photos)

        assert location.centroid_lat == 10.0
        assert location.bounding_box.north == location.bounding_box.south == 10.0

    def test_no_coordinates_means_no_location(self):
        assert calculate_location([Photo(id="a"), Photo(id="b")]) is None


class TestAggregateTrip:
    """Full derived field computation."""

    def test_empty_members_rejected(self):
        with pytest.raises(InvalidInput):
            aggregate_trip([])

    def test_dates_and_cover(self):
        base = datetime(2025, 10, 29, 10)
        photos = [
            Photo(id="late", latitude=1.0, longitude=1.0, captured_at=base + timedelta(hours=5)),
            Photo(id="early", latitude=1.0, longitude=1.0, captured_at=base),
            Photo(id="undated", latitude=1.0, longitude=1.0),
        ]

        derived = aggregate_trip(photos)

        assert derived.start_at == base
        assert derived.end_at == base + timedelta(hours=5)
        assert derived.start_at <= derived.end_at
        assert derived.cover_id == "early"

    def test_cover_tie_goes_to_first_in_input_order(self):
        when = datetime(2025, 10, 29, 10)
        photos = [Photo(id="second", captured_at=when), Photo(id="first", captured_at=when)]

        assert aggregate_trip(photos).cover_id == "second"

    def test_undated_members_fall_back_to_first_member(self):
        derived = aggregate_trip([Photo(id="x"), Photo(id="y")])

        assert derived.cover_id == "x"
        assert derived.start_at is None
        assert derived.end_at is None
        assert derived.location is None
        assert derived.name == "Unknown location trip"

    def test_name_from_earliest_member(self):
        base = datetime(2025, 10, 29, 10)
        photos = [
            Photo(id="b", latitude=38.72, longitude=-9.14, captured_at=base + timedelta(days=1),
                  city="Lisbon", country="Portugal"),
            Photo(id="a", latitude=41.15, longitude=-8.61, captured_at=base,
                  city="Porto", country="Portugal"),
        ]

        assert aggregate_trip(photos).name == "Porto, Portugal - 2025-10-29"


class TestTripName:
    """Best-effort display names."""

    def test_coordinate_fallback(self):
        photo = Photo(id="1", latitude=40.7128, longitude=-74.0060, captured_at=datetime(2025, 10, 29))
        assert build_trip_name(photo) == "40.7128N 74.0060W - 2025-10-29"

    def test_city_only(self):
        photo = Photo(id="1", city="Kyoto", captured_at=datetime(2024, 4, 2, 9))
        assert build_trip_name(photo) == "Kyoto - 2024-04-02"

    def test_no_date(self):
        photo = Photo(id="1", latitude=-33.8688, longitude=151.2093)
        assert build_trip_name(photo) == "33.8688S 151.2093E trip"

    def test_no_photo(self):
        assert build_trip_name(None) == "Unknown location trip"

    def test_format_coordinates(self):
        assert format_coordinates(0.0, 0.0) == "0.0000N 0.0000E"
