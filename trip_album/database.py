import json
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime

from trip_album.config import DATABASE_PATH
from trip_album.models import Photo, Trip, TripLocation, BoundingBox
from trip_album.error_handling import DatabaseError

# Fields batch_update may set on photos
PHOTO_MUTABLE_FIELDS = {"trip_id", "updated_at"}

# Trip attribute -> column, for scalar fields
TRIP_SCALAR_COLUMNS = {
    "name": "name",
    "description": "description",
    "start_at": "start_at",
    "end_at": "end_at",
    "cover_id": "cover_id",
    "updated_at": "updated_at",
    "auto_created": "auto_created",
}

def new_id() -> str:
    return uuid.uuid4().hex

def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value

def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None

def _sort_key(value: Optional[datetime]) -> Optional[float]:
    """Epoch seconds, so photos taken under different UTC offsets sort by instant."""
    return value.timestamp() if value is not None else None

class Database:
    def __init__(self, db_path: str = DATABASE_PATH):
        self.db_path = db_path
        self.init_db()

    def get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self):
        """Open a connection, commit on success and roll back on error."""
        conn = self.get_connection()
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise DatabaseError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def init_db(self):
        """Initialize database tables"""
        with self.connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS photos (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    filename TEXT NOT NULL DEFAULT '',
                    latitude REAL,
                    longitude REAL,
                    captured_at TEXT,
                    captured_ts REAL,
                    trip_id TEXT,
                    updated_at TEXT,
                    city TEXT,
                    country TEXT
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS trips (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    member_ids TEXT NOT NULL DEFAULT '[]',
                    centroid_lat REAL,
                    centroid_lng REAL,
                    bbox_north REAL,
                    bbox_south REAL,
                    bbox_east REAL,
                    bbox_west REAL,
                    start_at TEXT,
                    end_at TEXT,
                    cover_id TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    auto_created BOOLEAN DEFAULT FALSE
                )
            ''')

            columns = {row["name"] for row in conn.execute('PRAGMA table_info(photos)')}
            if "captured_ts" not in columns:
                # Databases created before capture instants were stored
                conn.execute('ALTER TABLE photos ADD COLUMN captured_ts REAL')
                rows = conn.execute('SELECT id, captured_at FROM photos WHERE captured_at IS NOT NULL').fetchall()
                conn.executemany('UPDATE photos SET captured_ts = ? WHERE id = ?',
                                 [(_sort_key(_from_db_time(row["captured_at"])), row["id"]) for row in rows])

            conn.execute('CREATE INDEX IF NOT EXISTS idx_photos_owner ON photos (owner_id, captured_ts)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_photos_trip ON photos (trip_id)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_trips_owner ON trips (owner_id, created_at)')

class PhotoStore:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_photo(row: sqlite3.Row) -> Photo:
        return Photo(
            id=row["id"],
            owner_id=row["owner_id"],
            filename=row["filename"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            captured_at=_from_db_time(row["captured_at"]),
            trip_id=row["trip_id"],
            updated_at=_from_db_time(row["updated_at"]),
            city=row["city"],
            country=row["country"],
        )

    def add(self, photo: Photo) -> str:
        photo_id = photo.id or new_id()
        with self.db.connection() as conn:
            conn.execute('''
                INSERT INTO photos (id, owner_id, filename, latitude, longitude, captured_at, captured_ts,
                                    trip_id, updated_at, city, country)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (photo_id, photo.owner_id, photo.filename, photo.latitude, photo.longitude,
                  _to_db(photo.captured_at), _sort_key(photo.captured_at), photo.trip_id, _to_db(photo.updated_at),
                  photo.city, photo.country))
        return photo_id

    def get(self, photo_id: str) -> Optional[Photo]:
        with self.db.connection() as conn:
            row = conn.execute('SELECT * FROM photos WHERE id = ?', (photo_id,)).fetchone()
            if row:
                return self._row_to_photo(row)
            return None

    def find(self, owner_id: str,
             has_coordinates: bool = False,
             has_timestamp: bool = False,
             unassigned: bool = False,
             trip_id: Optional[str] = None,
             order_by_captured: bool = False) -> List[Photo]:
        clauses = ["owner_id = ?"]
        params: List[Any] = [owner_id]

        if has_coordinates:
            clauses.append("latitude IS NOT NULL AND longitude IS NOT NULL")
        if has_timestamp:
            clauses.append("captured_at IS NOT NULL")
        if unassigned:
            clauses.append("trip_id IS NULL")
        if trip_id is not None:
            clauses.append("trip_id = ?")
            params.append(trip_id)

        query = f"SELECT * FROM photos WHERE {' AND '.join(clauses)}"
        if order_by_captured:
            query += " ORDER BY captured_ts ASC, rowid ASC"

        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_photo(row) for row in rows]

    def batch_update(self, photo_ids: Iterable[str], fields: Dict[str, Any],
                     require_unassigned: bool = False) -> int:
        """
        Set the same fields on every listed photo in one transaction.

        Either every photo is updated or none is. With require_unassigned,
        a photo that already has a trip_id fails the whole batch, which lets
        concurrent auto-clustering runs claim candidates safely.

        Raises:
            DatabaseError: On a missing photo, a lost claim or a sqlite error
        """
        ids = list(dict.fromkeys(photo_ids))
        if not ids:
            return 0

        unknown = set(fields) - PHOTO_MUTABLE_FIELDS
        if unknown:
            raise DatabaseError(f"Photo fields not updatable in batch: {sorted(unknown)}")

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [_to_db(value) for value in fields.values()]
        placeholders = ", ".join("?" for _ in ids)
        query = f"UPDATE photos SET {assignments} WHERE id IN ({placeholders})"
        if require_unassigned:
            query += " AND trip_id IS NULL"

        with self.db.connection() as conn:
            cursor = conn.execute(query, values + ids)
            if cursor.rowcount != len(ids):
                # Raising inside the transaction rolls back the partial update
                reason = "already assigned or missing" if require_unassigned else "missing"
                raise DatabaseError(
                    f"Batch update touched {cursor.rowcount} of {len(ids)} photos; "
                    f"some photos are {reason}"
                )
            return cursor.rowcount

class TripStore:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_trip(row: sqlite3.Row) -> Trip:
        location = None
        if row["centroid_lat"] is not None:
            location = TripLocation(
                centroid_lat=row["centroid_lat"],
                centroid_lng=row["centroid_lng"],
                bounding_box=BoundingBox(
                    north=row["bbox_north"],
                    south=row["bbox_south"],
                    east=row["bbox_east"],
                    west=row["bbox_west"],
                ),
            )
        return Trip(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            description=row["description"],
            member_ids=json.loads(row["member_ids"]),
            location=location,
            start_at=_from_db_time(row["start_at"]),
            end_at=_from_db_time(row["end_at"]),
            cover_id=row["cover_id"],
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
            auto_created=bool(row["auto_created"]),
        )

    @staticmethod
    def _location_columns(location: Optional[TripLocation]) -> Dict[str, Optional[float]]:
        if location is None:
            return dict.fromkeys(
                ["centroid_lat", "centroid_lng", "bbox_north", "bbox_south", "bbox_east", "bbox_west"])
        box = location.bounding_box
        return {
            "centroid_lat": location.centroid_lat,
            "centroid_lng": location.centroid_lng,
            "bbox_north": box.north,
            "bbox_south": box.south,
            "bbox_east": box.east,
            "bbox_west": box.west,
        }

    def insert(self, trip: Trip) -> str:
        trip_id = trip.id or new_id()
        columns = {
            "id": trip_id,
            "owner_id": trip.owner_id,
            "name": trip.name,
            "description": trip.description or "",
            "member_ids": json.dumps(list(trip.member_ids)),
            "start_at": _to_db(trip.start_at),
            "end_at": _to_db(trip.end_at),
            "cover_id": trip.cover_id,
            "created_at": _to_db(trip.created_at),
            "updated_at": _to_db(trip.updated_at),
            "auto_created": trip.auto_created,
        }
        columns.update(self._location_columns(trip.location))

        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        with self.db.connection() as conn:
            conn.execute(f"INSERT INTO trips ({names}) VALUES ({placeholders})", list(columns.values()))
        return trip_id

    def get(self, trip_id: str) -> Optional[Trip]:
        with self.db.connection() as conn:
            row = conn.execute('SELECT * FROM trips WHERE id = ?', (trip_id,)).fetchone()
            if row:
                return self._row_to_trip(row)
            return None

    def update(self, trip_id: str, fields: Dict[str, Any]) -> bool:
        columns: Dict[str, Any] = {}
        for name, value in fields.items():
            if name == "member_ids":
                columns["member_ids"] = json.dumps(list(value))
            elif name == "location":
                columns.update(self._location_columns(value))
            elif name in TRIP_SCALAR_COLUMNS:
                columns[TRIP_SCALAR_COLUMNS[name]] = _to_db(value)
            else:
                raise DatabaseError(f"Unknown trip field: {name}")

        if not columns:
            return False

        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self.db.connection() as conn:
            cursor = conn.execute(f"UPDATE trips SET {assignments} WHERE id = ?",
                                  list(columns.values()) + [trip_id])
            return cursor.rowcount > 0

    def delete(self, trip_id: str) -> bool:
        with self.db.connection() as conn:
            cursor = conn.execute('DELETE FROM trips WHERE id = ?', (trip_id,))
            return cursor.rowcount > 0

    def find_by_owner(self, owner_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Trip]:
        query = 'SELECT * FROM trips WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC'
        params: List[Any] = [owner_id]
        if limit is not None:
            query += ' LIMIT ? OFFSET ?'
            params.extend([limit, offset])

        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_trip(row) for row in rows]

    def count_by_owner(self, owner_id: str) -> int:
        with self.db.connection() as conn:
            row = conn.execute('SELECT COUNT(*) FROM trips WHERE owner_id = ?', (owner_id,)).fetchone()
            return row[0]
