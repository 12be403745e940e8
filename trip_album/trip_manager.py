"""
Trip lifecycle and auto-clustering on top of the photo and trip stores.

Photo.trip_id is a denormalized back-reference to Trip.member_ids. Neither
store enforces it, so every operation here writes both sides in a fixed
order:

- create / add: trip record first, then the photo batch
- remove: trip record first, then the photo batch
- delete: photo batch first, then the trip record

The two writes are not atomic together. A crash between them is repaired by
reconcile().
"""

import time
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from trip_album.aggregation import aggregate_trip
from trip_album.app_insights import app_insights
from trip_album.clustering import cluster_photos
from trip_album.config import ClusterOptions
from trip_album.database import PhotoStore, TripStore, new_id
from trip_album.error_handling import (
    Forbidden,
    InvalidInput,
    NotFound,
    StoreFailure,
    TripAlbumError,
    handle_error,
    logger,
)
from trip_album.models import AutoClusterResult, ClusterFailure, Photo, Trip, TripPage

# Fields update_trip may change; membership has its own operations
UPDATABLE_FIELDS = {"name", "description", "start_at", "end_at", "cover_id"}


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(pid for pid in ids if pid))


class TripManager:
    def __init__(self, photo_store: PhotoStore, trip_store: TripStore,
                 clock: Callable[[], datetime] = datetime.now,
                 telemetry=None):
        self.photos = photo_store
        self.trips = trip_store
        self.clock = clock
        self.telemetry = telemetry if telemetry is not None else app_insights

    # Helpers

    def _store_call(self, step: str, func: Callable, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StoreFailure:
            raise
        except Exception as e:
            # DatabaseError, or whatever an injected store raises
            raise StoreFailure(f"Store operation '{step}' failed", step, e) from e

    def _load_trip(self, trip_id: str, owner_id: str) -> Trip:
        if not trip_id:
            raise InvalidInput("trip_id is required")
        trip = self._store_call("load_trip", self.trips.get, trip_id)
        if trip is None:
            raise NotFound(f"Trip {trip_id} not found")
        if trip.owner_id != owner_id:
            raise Forbidden(f"Trip {trip_id} does not belong to user {owner_id}")
        return trip

    def _load_owned_photos(self, owner_id: str, photo_ids: Sequence[str]) -> List[Photo]:
        """Existing photos owned by owner_id, in request order, without duplicates."""
        photos = []
        for photo_id in _unique(photo_ids):
            photo = self._store_call("load_photos", self.photos.get, photo_id)
            if photo is not None and photo.owner_id == owner_id:
                photos.append(photo)

        skipped = len(_unique(photo_ids)) - len(photos)
        if skipped:
            logger.info(f"Ignored {skipped} missing or foreign photo ids for user {owner_id}")
        return photos

    def _member_photos(self, trip: Trip) -> List[Photo]:
        return self._store_call("load_photos", self.photos.find, trip.owner_id, trip_id=trip.id)

    def _derived_updates(self, trip: Trip, members: List[Photo],
                         widen_dates: bool = False) -> Dict[str, Any]:
        """Location, date span and cover for trip recomputed over members."""
        if not members:
            return {"location": None, "cover_id": None}

        derived = aggregate_trip(members)
        member_ids = {p.id for p in members}
        updates: Dict[str, Any] = {
            "location": derived.location,
            "cover_id": trip.cover_id if trip.cover_id in member_ids else derived.cover_id,
        }

        if widen_dates:
            starts = [t for t in (trip.start_at, derived.start_at) if t is not None]
            ends = [t for t in (trip.end_at, derived.end_at) if t is not None]
            updates["start_at"] = min(starts) if starts else None
            updates["end_at"] = max(ends) if ends else None
        elif derived.start_at is not None:
            updates["start_at"] = derived.start_at
            updates["end_at"] = derived.end_at
        return updates

    def _release_from_previous_trips(self, owner_id: str, photos: List[Photo], new_trip_id: str):
        """Drop moved photos from the member lists of the trips they used to belong to."""
        moved = defaultdict(set)
        for photo in photos:
            if photo.trip_id and photo.trip_id != new_trip_id:
                moved[photo.trip_id].add(photo.id)

        for old_trip_id, photo_ids in moved.items():
            old_trip = self._store_call("release_previous", self.trips.get, old_trip_id)
            if old_trip is None or old_trip.owner_id != owner_id:
                continue

            remaining = [pid for pid in old_trip.member_ids if pid not in photo_ids]
            fields = self._derived_updates(old_trip, self._member_photos(old_trip))
            fields.update(member_ids=remaining, updated_at=self.clock())
            self._store_call("release_previous", self.trips.update, old_trip_id, fields)
            logger.info(f"Moved {len(photo_ids)} photos out of trip {old_trip_id}")

    # Operations

    def create_trip(self, owner_id: str, name: str = "", description: str = "",
                    photo_ids: Sequence[str] = (),
                    start_at: Optional[datetime] = None,
                    end_at: Optional[datetime] = None,
                    claim_unassigned: bool = False,
                    auto_created: bool = False) -> Trip:
        """
        Create a trip from existing photos and point them at it.

        Photo ids that do not exist or belong to another user are ignored.
        Explicit start_at/end_at override the span derived from the photos.

        Args:
            owner_id: Owning user
            name: Display name; derived from the earliest photo when blank
            description: Free text
            photo_ids: Candidate member ids
            start_at: Optional explicit start of the trip
            end_at: Optional explicit end of the trip
            claim_unassigned: Only assign photos whose trip_id is still unset;
                the whole batch fails if any photo was claimed meanwhile
            auto_created: Mark the trip as produced by auto-clustering

        Raises:
            InvalidInput: No valid photo ids, or start_at after end_at
            StoreFailure: A store read or write failed; step names which
        """
        if not owner_id:
            raise InvalidInput("owner_id is required")
        if not _unique(photo_ids):
            raise InvalidInput("At least one photo id is required")
        if start_at is not None and end_at is not None and start_at > end_at:
            raise InvalidInput("start_at must not be after end_at")

        photos = self._load_owned_photos(owner_id, photo_ids)
        if not photos:
            raise InvalidInput(f"None of the photo ids belong to user {owner_id}")

        derived = aggregate_trip(photos)
        now = self.clock()
        trip = Trip(
            id=new_id(),
            owner_id=owner_id,
            name=name.strip() if name and name.strip() else derived.name,
            description=description or "",
            member_ids=[p.id for p in photos],
            location=derived.location,
            start_at=start_at if start_at is not None else derived.start_at,
            end_at=end_at if end_at is not None else derived.end_at,
            cover_id=derived.cover_id,
            created_at=now,
            updated_at=now,
            auto_created=auto_created,
        )

        self._store_call("insert_trip", self.trips.insert, trip)
        self._store_call(
            "claim_photos" if claim_unassigned else "assign_photos",
            self.photos.batch_update,
            trip.member_ids,
            {"trip_id": trip.id, "updated_at": now},
            require_unassigned=claim_unassigned,
        )
        if not claim_unassigned:
            self._release_from_previous_trips(owner_id, photos, trip.id)

        logger.info(f"Created trip {trip.id} '{trip.name}' with {len(trip.member_ids)} photos")
        return trip

    def create_empty_trip(self, owner_id: str, name: str, description: str = "") -> Trip:
        """Create a named trip with no photos yet."""
        if not owner_id:
            raise InvalidInput("owner_id is required")
        if not name or not name.strip():
            raise InvalidInput("A name is required for a trip without photos")

        now = self.clock()
        trip = Trip(
            id=new_id(),
            owner_id=owner_id,
            name=name.strip(),
            description=description or "",
            created_at=now,
            updated_at=now,
        )
        self._store_call("insert_trip", self.trips.insert, trip)
        logger.info(f"Created empty trip {trip.id} '{trip.name}'")
        return trip

    def get_trip(self, trip_id: str, owner_id: str) -> Trip:
        return self._load_trip(trip_id, owner_id)

    def list_trips(self, owner_id: str, limit: int = 50, page: int = 1) -> TripPage:
        """Trips of a user, newest first."""
        if limit <= 0:
            raise InvalidInput("limit must be positive")
        if page < 1:
            raise InvalidInput("page starts at 1")

        total = self._store_call("list_trips", self.trips.count_by_owner, owner_id)
        trips = self._store_call("list_trips", self.trips.find_by_owner,
                                 owner_id, limit=limit, offset=(page - 1) * limit)
        return TripPage(trips=trips, total=total, page=page, limit=limit)

    def update_trip(self, trip_id: str, owner_id: str, fields: Dict[str, Any]) -> Trip:
        """
        Edit name, description, start_at, end_at or cover_id.

        A cover_id of None resets the cover to the earliest member photo.

        Raises:
            InvalidInput: For any other field, a blank name, a cover photo
                that is not a member, or start_at after end_at
        """
        disallowed = set(fields) - UPDATABLE_FIELDS
        if disallowed:
            raise InvalidInput(f"Fields cannot be updated: {sorted(disallowed)}")
        if "name" in fields and (not fields["name"] or not str(fields["name"]).strip()):
            raise InvalidInput("name must not be blank")

        trip = self._load_trip(trip_id, owner_id)
        if not fields:
            return trip

        start_at = fields.get("start_at", trip.start_at)
        end_at = fields.get("end_at", trip.end_at)
        if start_at is not None and end_at is not None and start_at > end_at:
            raise InvalidInput("start_at must not be after end_at")

        updates = dict(fields)
        if "cover_id" in fields:
            if fields["cover_id"] is None:
                # Hand the cover back to the earliest member
                members = self._member_photos(trip)
                updates["cover_id"] = aggregate_trip(members).cover_id if members else None
            elif fields["cover_id"] not in trip.member_ids:
                raise InvalidInput(f"Photo {fields['cover_id']} is not a member of trip {trip_id}")

        updates["updated_at"] = self.clock()
        self._store_call("update_trip", self.trips.update, trip_id, updates)
        return replace(trip, **updates)

    def delete_trip(self, trip_id: str, owner_id: str) -> None:
        """Detach every member photo, then remove the trip."""
        trip = self._load_trip(trip_id, owner_id)

        members = self._member_photos(trip)
        if members:
            self._store_call("detach_photos", self.photos.batch_update,
                             [p.id for p in members],
                             {"trip_id": None, "updated_at": self.clock()})
        self._store_call("delete_trip", self.trips.delete, trip_id)
        logger.info(f"Deleted trip {trip_id}, detached {len(members)} photos")

    def add_photos_to_trip(self, trip_id: str, owner_id: str, photo_ids: Sequence[str]) -> Trip:
        """
        Add photos to a trip; photos already in it are left alone.

        Raises:
            InvalidInput: If no id refers to an existing photo of owner_id
        """
        if not _unique(photo_ids):
            raise InvalidInput("At least one photo id is required")

        trip = self._load_trip(trip_id, owner_id)
        photos = self._load_owned_photos(owner_id, photo_ids)
        if not photos:
            raise InvalidInput(f"None of the photo ids belong to user {owner_id}")

        existing = set(trip.member_ids)
        added = [p for p in photos if p.id not in existing]
        if not added:
            return trip

        now = self.clock()
        fields = self._derived_updates(trip, self._member_photos(trip) + added, widen_dates=True)
        fields.update(member_ids=trip.member_ids + [p.id for p in added], updated_at=now)

        self._store_call("update_trip", self.trips.update, trip_id, fields)
        self._store_call("assign_photos", self.photos.batch_update,
                         [p.id for p in added], {"trip_id": trip_id, "updated_at": now})
        self._release_from_previous_trips(owner_id, added, trip_id)

        logger.info(f"Added {len(added)} photos to trip {trip_id}")
        return replace(trip, **fields)

    def remove_photos_from_trip(self, trip_id: str, owner_id: str, photo_ids: Sequence[str]) -> Trip:
        """Take photos out of a trip; ids that are not members are ignored."""
        if not _unique(photo_ids):
            raise InvalidInput("At least one photo id is required")

        trip = self._load_trip(trip_id, owner_id)
        removing = {pid for pid in _unique(photo_ids) if pid in trip.member_ids}
        if not removing:
            return trip

        now = self.clock()
        current = self._member_photos(trip)
        remaining = [pid for pid in trip.member_ids if pid not in removing]
        fields = self._derived_updates(trip, [p for p in current if p.id not in removing])
        fields.update(member_ids=remaining, updated_at=now)

        self._store_call("update_trip", self.trips.update, trip_id, fields)

        detach = [p.id for p in current if p.id in removing]
        if detach:
            self._store_call("detach_photos", self.photos.batch_update,
                             detach, {"trip_id": None, "updated_at": now})

        logger.info(f"Removed {len(removing)} photos from trip {trip_id}")
        return replace(trip, **fields)

    def auto_cluster(self, owner_id: str, options: Optional[ClusterOptions] = None) -> AutoClusterResult:
        """
        Group a user's unassigned, geotagged, dated photos into new trips.

        A group that fails to become a trip is recorded in the result and the
        remaining groups are still processed.
        """
        if not owner_id:
            raise InvalidInput("owner_id is required")
        options = (options or ClusterOptions()).validate()
        started = time.perf_counter()

        candidates = self._store_call(
            "load_candidates", self.photos.find, owner_id,
            has_coordinates=True, has_timestamp=True, unassigned=True, order_by_captured=True,
        )
        logger.info(f"Auto-clustering {len(candidates)} candidate photos for user {owner_id}")

        groups = cluster_photos(candidates, options.max_distance_km,
                                options.max_time_gap_hours, options.min_size)
        result = AutoClusterResult(candidate_groups=len(groups))

        for index, group in enumerate(groups):
            photo_ids = [p.id for p in group]
            try:
                trip = self.create_trip(
                    owner_id,
                    description=f"Automatically created trip with {len(group)} photos",
                    photo_ids=photo_ids,
                    claim_unassigned=True,
                    auto_created=True,
                )
            except TripAlbumError as e:
                handle_error(e, context=f"auto-cluster group {index} for user {owner_id}", raise_error=False)
                result.failures.append(ClusterFailure(
                    group_index=index,
                    photo_ids=photo_ids,
                    error=str(e),
                    step=getattr(e, "step", None),
                ))
                continue
            result.trips.append(trip)

        self.telemetry.track_photos_clustered(len(candidates))
        self.telemetry.track_trips_created(len(result.trips))
        if result.failures:
            self.telemetry.track_cluster_failures(len(result.failures))
        self.telemetry.track_processing_time(time.perf_counter() - started)
        self.telemetry.track_event("auto_cluster_completed", {
            "owner_id": owner_id,
            "candidate_groups": result.candidate_groups,
            "trips_created": len(result.trips),
            "failed_groups": len(result.failures),
        })

        if result.failures:
            logger.warning(f"{result.summary} for user {owner_id}; {len(result.failures)} groups failed")
        else:
            logger.info(f"{result.summary} for user {owner_id}")
        return result

    def reconcile(self, owner_id: str) -> Dict[str, int]:
        """
        Repair back-references left inconsistent by an interrupted operation.

        - a listed member whose photo has no trip is pointed back at the trip
        - a listed member that is gone or belongs to another trip is dropped
        - a photo pointing at a trip that does not list it, or at a missing
          trip, is detached
        - an auto-created trip left without members is deleted

        Returns:
            Counts of repointed, detached and dropped photos and deleted trips
        """
        if not owner_id:
            raise InvalidInput("owner_id is required")

        stats = {"repointed": 0, "detached": 0, "dropped": 0, "deleted_trips": 0}
        trips = self._store_call("reconcile", self.trips.find_by_owner, owner_id)
        photos = {p.id: p for p in self._store_call("reconcile", self.photos.find, owner_id)}
        trip_ids = {t.id for t in trips}
        now = self.clock()

        for trip in trips:
            keep, repoint = [], []
            for photo_id in trip.member_ids:
                photo = photos.get(photo_id)
                if photo is None or (photo.trip_id and photo.trip_id != trip.id):
                    continue
                keep.append(photo_id)
                if photo.trip_id is None:
                    repoint.append(photo_id)

            listed = set(trip.member_ids)
            stray = [p.id for p in photos.values() if p.trip_id == trip.id and p.id not in listed]

            if repoint:
                self._store_call("reconcile", self.photos.batch_update, repoint,
                                 {"trip_id": trip.id, "updated_at": now}, require_unassigned=True)
                stats["repointed"] += len(repoint)
            if stray:
                self._store_call("reconcile", self.photos.batch_update, stray,
                                 {"trip_id": None, "updated_at": now})
                stats["detached"] += len(stray)

            # Later trips must see the repairs made so far
            for photo_id in repoint:
                photos[photo_id].trip_id = trip.id
            for photo_id in stray:
                photos[photo_id].trip_id = None

            if keep == trip.member_ids:
                continue
            stats["dropped"] += len(trip.member_ids) - len(keep)

            if not keep and trip.auto_created:
                self._store_call("reconcile", self.trips.delete, trip.id)
                stats["deleted_trips"] += 1
                logger.warning(f"Reconcile deleted empty auto-created trip {trip.id}")
                continue

            fields = self._derived_updates(trip, [photos[pid] for pid in keep])
            fields.update(member_ids=keep, updated_at=now)
            self._store_call("reconcile", self.trips.update, trip.id, fields)
            logger.warning(f"Reconcile dropped {len(trip.member_ids) - len(keep)} members from trip {trip.id}")

        dangling = [p.id for p in photos.values() if p.trip_id and p.trip_id not in trip_ids]
        if dangling:
            self._store_call("reconcile", self.photos.batch_update, dangling,
                             {"trip_id": None, "updated_at": now})
            stats["detached"] += len(dangling)

        logger.info(f"Reconcile for user {owner_id}: {stats}")
        return stats
