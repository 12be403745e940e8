from typing import List, Optional
from dataclasses import dataclass, field
from datetime import datetime

@dataclass
class Photo:
    """A user's photo, reduced to the fields trip clustering needs."""
    id: Optional[str] = None
    owner_id: str = ""
    filename: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    captured_at: Optional[datetime] = None
    trip_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def place_name(self) -> Optional[str]:
        parts = [p for p in (self.city, self.country) if p]
        return ", ".join(parts) if parts else None

@dataclass
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (self.south <= latitude <= self.north and
                self.west <= longitude <= self.east)

@dataclass
class TripLocation:
    centroid_lat: float
    centroid_lng: float
    bounding_box: BoundingBox

@dataclass
class Trip:
    """A group of photos from one outing, owned by a single user."""
    id: Optional[str] = None
    owner_id: str = ""
    name: str = ""
    description: str = ""
    member_ids: List[str] = field(default_factory=list)
    location: Optional[TripLocation] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    cover_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    auto_created: bool = False

@dataclass
class TripDerivedFields:
    """Summary attributes computed from a trip's member photos."""
    name: str
    cover_id: Optional[str]
    location: Optional[TripLocation] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None

@dataclass
class ClusterFailure:
    """A candidate group that could not be turned into a trip."""
    group_index: int
    photo_ids: List[str]
    error: str
    step: Optional[str] = None

@dataclass
class AutoClusterResult:
    trips: List[Trip] = field(default_factory=list)
    failures: List[ClusterFailure] = field(default_factory=list)
    candidate_groups: int = 0

    @property
    def summary(self) -> str:
        return f"Created {len(self.trips)} of {self.candidate_groups} candidate trips"

@dataclass
class TripPage:
    trips: List[Trip]
    total: int
    page: int
    limit: int
