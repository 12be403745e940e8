#!/usr/bin/env python3
"""Debug script to check trip database contents and back-reference health."""

import json
import sqlite3
import sys
from pathlib import Path

from trip_album.config import Settings

db_path = Path(sys.argv[1] if len(sys.argv) > 1 else Settings.from_env().db_path)

if not db_path.exists():
    print(f"❌ Database file not found: {db_path}")
    sys.exit(1)

conn = sqlite3.connect(db_path)
cursor = conn.cursor()

cursor.execute("SELECT COUNT(*) FROM photos")
photo_count = cursor.fetchone()[0]
print(f"📸 Photos in DB: {photo_count}")

cursor.execute("SELECT COUNT(*) FROM trips")
trip_count = cursor.fetchone()[0]
print(f"🗺️ Trips in DB: {trip_count}")

# Show first few trips
if trip_count > 0:
    cursor.execute("SELECT id, owner_id, name, member_ids, auto_created FROM trips ORDER BY created_at DESC LIMIT 5")
    trips = cursor.fetchall()
    print(f"\n📋 Latest {len(trips)} trips:")
    for trip_id, owner_id, name, member_ids, auto_created in trips:
        origin = "auto" if auto_created else "manual"
        print(f"  ID={trip_id}, Owner={owner_id}, Name={name}, Members={len(json.loads(member_ids))} ({origin})")

cursor.execute("SELECT COUNT(*) FROM photos WHERE trip_id IS NOT NULL")
assigned = cursor.fetchone()[0]
print(f"\n🔗 Photos with trip_id: {assigned}/{photo_count}")

cursor.execute("""
    SELECT COUNT(*) FROM photos
    WHERE latitude IS NOT NULL AND longitude IS NOT NULL
      AND captured_at IS NOT NULL AND trip_id IS NULL
""")
print(f"🧭 Unassigned clustering candidates: {cursor.fetchone()[0]}")

# Photos pointing at a trip that no longer exists
cursor.execute("""
    SELECT p.id, p.trip_id FROM photos p
    LEFT JOIN trips t ON t.id = p.trip_id
    WHERE p.trip_id IS NOT NULL AND t.id IS NULL
""")
dangling = cursor.fetchall()
if dangling:
    print(f"\n⚠️ {len(dangling)} photos reference missing trips (run TripManager.reconcile):")
    for photo_id, trip_id in dangling[:10]:
        print(f"  Photo {photo_id} -> {trip_id}")
else:
    print("\n✅ No dangling trip references")

conn.close()
