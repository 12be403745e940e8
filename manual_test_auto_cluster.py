#!/usr/bin/env python3
"""
Manual Testing Script: auto-clustering a sample photo library into trips

Seeds a temporary database with a two-day coastal road trip, a city break
and a few stray photos, runs auto-clustering and prints the resulting trips
for manual review.
"""

import os
import tempfile
from datetime import datetime, timedelta

from trip_album.config import ClusterOptions
from trip_album.database import Database, PhotoStore, TripStore
from trip_album.models import Photo
from trip_album.trip_manager import TripManager

OWNER = "manual-tester"

def create_sample_library(photos: PhotoStore):
    """Add sample photos and return how many were created."""
    start = datetime(2025, 7, 1, 9, 0)
    count = 0

    # Road trip along the coast: hops of 15 to 75 km, a few hours apart
    coast = [
        (43.2965, 5.3698, "Marseille"), (43.1242, 5.9280, "Toulon"),
        (43.4204, 6.7665, "Saint-Raphael"), (43.5528, 7.0174, "Cannes"),
        (43.7102, 7.2620, "Nice"), (43.7384, 7.4246, "Monaco"),
    ]
    for day, (lat, lon, city) in enumerate(coast):
        for shot in range(3):
            photos.add(Photo(
                owner_id=OWNER,
                filename=f"coast_{day}_{shot}.jpg",
                latitude=lat + shot * 0.002,
                longitude=lon + shot * 0.002,
                captured_at=start + timedelta(hours=day * 8 + shot),
                city=city,
                country="France",
            ))
            count += 1

    # City break two weeks later
    city_start = start + timedelta(days=14)
    for shot in range(5):
        photos.add(Photo(
            owner_id=OWNER,
            filename=f"rome_{shot}.jpg",
            latitude=41.9028 + shot * 0.003,
            longitude=12.4964 - shot * 0.002,
            captured_at=city_start + timedelta(hours=shot * 3),
            city="Rome",
            country="Italy",
        ))
        count += 1

    # Stray photos: one lonely geotagged shot, one without GPS
    photos.add(Photo(owner_id=OWNER, filename="lonely.jpg", latitude=51.5074, longitude=-0.1278,
                     captured_at=start + timedelta(days=30)))
    photos.add(Photo(owner_id=OWNER, filename="no_gps.jpg", captured_at=start + timedelta(days=31)))
    return count + 2

def test_auto_cluster():
    with tempfile.NamedTemporaryFile(delete=False, suffix='.db') as tmp:
        db_path = tmp.name

    try:
        db = Database(db_path)
        photos, trips = PhotoStore(db), TripStore(db)
        manager = TripManager(photos, trips)

        total = create_sample_library(photos)
        print(f"Seeded {total} photos for {OWNER}\n")

        options = ClusterOptions(max_distance_km=100, max_time_gap_hours=24, min_size=3)
        result = manager.auto_cluster(OWNER, options)

        print("="*80)
        print(result.summary)
        print("="*80)

        for trip in result.trips:
            print(f"\n🗺️ {trip.name}")
            print(f"   {trip.description}")
            print(f"   {trip.start_at} -> {trip.end_at}")
            if trip.location:
                box = trip.location.bounding_box
                print(f"   centroid=({trip.location.centroid_lat:.4f}, {trip.location.centroid_lng:.4f}) "
                      f"box N{box.north:.3f} S{box.south:.3f} E{box.east:.3f} W{box.west:.3f}")
            cover = photos.get(trip.cover_id)
            print(f"   cover: {cover.filename if cover else trip.cover_id}")

        for failure in result.failures:
            print(f"\n❌ Group {failure.group_index} failed at {failure.step}: {failure.error}")

        unassigned = [p.filename for p in photos.find(OWNER, unassigned=True)]
        print(f"\nUnassigned photos: {unassigned}")

        print("\n" + "="*80)
        print("MANUAL VERIFICATION CHECKLIST")
        print("="*80)

        checklist = [
            ("Coastal road trip is one trip",
             "Marseille to Monaco chains hop by hop even though the ends are ~165 km apart"),
            ("City break is its own trip",
             "The Rome photos two weeks later start a new trip"),
            ("Stray photos stay unassigned",
             "lonely.jpg is below min_size and no_gps.jpg is not a candidate"),
            ("Cover is the earliest photo",
             "coast_0_0.jpg and rome_0.jpg"),
        ]

        for idx, (check, description) in enumerate(checklist, 1):
            print(f"\n□ {idx}. {check}")
            print(f"   → {description}")

        print(f"\nReconcile after clean run: {manager.reconcile(OWNER)}")

    finally:
        if os.path.exists(db_path):
            os.unlink(db_path)

if __name__ == "__main__":
    test_auto_cluster()
