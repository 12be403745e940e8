from typing import List, Optional, Sequence

from trip_album.models import Photo, BoundingBox, TripLocation, TripDerivedFields
from trip_album.error_handling import InvalidInput, logger

UNKNOWN_LOCATION = "Unknown location"

def format_coordinates(latitude: float, longitude: float) -> str:
    lat_ref = "N" if latitude >= 0 else "S"
    lon_ref = "E" if longitude >= 0 else "W"
    return f"{abs(latitude):.4f}{lat_ref} {abs(longitude):.4f}{lon_ref}"

def calculate_location(photos: Sequence[Photo]) -> Optional[TripLocation]:
    """Centroid and bounding box of the geotagged photos, or None if there are none."""
    coords = [(p.latitude, p.longitude) for p in photos if p.has_coordinates]
    if not coords:
        return None

    lats = [lat for lat, _ in coords]
    lngs = [lng for _, lng in coords]

    return TripLocation(
        centroid_lat=sum(lats) / len(lats),
        centroid_lng=sum(lngs) / len(lngs),
        bounding_box=BoundingBox(
            north=max(lats),
            south=min(lats),
            east=max(lngs),
            west=min(lngs),
        ),
    )

def earliest_photo(photos: Sequence[Photo]) -> Photo:
    # min() keeps the first of equal keys, so ties go to input order
    dated = [p for p in photos if p.captured_at is not None]
    if not dated:
        return photos[0]
    return min(dated, key=lambda p: p.captured_at)

def build_trip_name(photo: Optional[Photo]) -> str:
    """
    Display name for a trip, e.g. "Lisbon, Portugal - 2025-10-29".

    Uses the photo's place name when the upload pipeline resolved one and
    falls back to its coordinates. Never raises.
    """
    if photo is None:
        return f"{UNKNOWN_LOCATION} trip"

    try:
        if photo.place_name:
            location_name = photo.place_name
        elif photo.has_coordinates:
            location_name = format_coordinates(photo.latitude, photo.longitude)
        else:
            location_name = UNKNOWN_LOCATION

        if photo.captured_at is not None:
            return f"{location_name} - {photo.captured_at.strftime('%Y-%m-%d')}"
        return f"{location_name} trip"
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not build trip name for photo {photo.id}: {e}")
        return f"{UNKNOWN_LOCATION} trip"

def aggregate_trip(members: List[Photo]) -> TripDerivedFields:
    """
    Derive a trip's summary attributes from its member photos.

    Args:
        members: Non-empty list of member photos, in input order

    Returns:
        TripDerivedFields with location (omitted when no member is
        geotagged), capture span, cover photo and display name

    Raises:
        InvalidInput: If members is empty
    """
    if not members:
        raise InvalidInput("Cannot aggregate a trip with no photos")

    times = [p.captured_at for p in members if p.captured_at is not None]
    first = earliest_photo(members)

    return TripDerivedFields(
        name=build_trip_name(first),
        cover_id=first.id,
        location=calculate_location(members),
        start_at=min(times) if times else None,
        end_at=max(times) if times else None,
    )
