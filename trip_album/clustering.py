import math
from typing import List, Sequence

from trip_album.models import Photo
from trip_album.error_handling import logger

EARTH_RADIUS_KM = 6371.0

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # Convert degrees to radians
    lat1_rad, lon1_rad = math.radians(lat1), math.radians(lon1)
    lat2_rad, lon2_rad = math.radians(lat2), math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat/2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return c * EARTH_RADIUS_KM

def calculate_gps_distance(photo1: Photo, photo2: Photo) -> float:
    if not photo1.has_coordinates or not photo2.has_coordinates:
        return float('inf')

    return haversine_distance(
        photo1.latitude, photo1.longitude,
        photo2.latitude, photo2.longitude
    )

def calculate_time_difference(photo1: Photo, photo2: Photo) -> float:
    if photo1.captured_at is None or photo2.captured_at is None:
        return float('inf')

    time_diff = abs(photo2.captured_at - photo1.captured_at)
    return time_diff.total_seconds() / 3600.0

def are_photos_proximate(photo1: Photo, photo2: Photo,
                         max_distance_km: float = 50.0,
                         max_time_gap_hours: float = 24.0) -> bool:
    gps_ok = calculate_gps_distance(photo1, photo2) <= max_distance_km
    time_ok = calculate_time_difference(photo1, photo2) <= max_time_gap_hours

    return gps_ok and time_ok

def split_into_runs(photos: Sequence[Photo],
                    max_distance_km: float,
                    max_time_gap_hours: float) -> List[List[Photo]]:
    """
    Split time-sorted photos into contiguous runs.

    Each photo is compared with the photo taken just before it, not with the
    run's centre, so a run may drift across several nearby places as long as
    every hop stays within both thresholds. Runs of any size are returned;
    concatenating them gives back the input.

    Args:
        photos: Photos sorted ascending by captured_at, all geotagged
        max_distance_km: Largest allowed hop between consecutive photos
        max_time_gap_hours: Largest allowed time gap between consecutive photos

    Returns:
        List of runs in input order
    """
    if not photos:
        return []

    runs = []
    current = [photos[0]]

    for previous, photo in zip(photos, photos[1:]):
        if are_photos_proximate(previous, photo, max_distance_km, max_time_gap_hours):
            current.append(photo)
        else:
            runs.append(current)
            current = [photo]

    runs.append(current)
    return runs

def cluster_photos(photos: Sequence[Photo],
                   max_distance_km: float = 50.0,
                   max_time_gap_hours: float = 24.0,
                   min_size: int = 3) -> List[List[Photo]]:
    """
    Partition time-sorted, geotagged photos into trip groups.

    Runs shorter than min_size are discarded. The caller filters out photos
    without coordinates or timestamps and sorts by capture time beforehand.
    """
    runs = split_into_runs(photos, max_distance_km, max_time_gap_hours)
    groups = [run for run in runs if len(run) >= min_size]

    discarded = sum(len(run) for run in runs if len(run) < min_size)
    logger.info(f"Clustering completed: {len(photos)} photos -> {len(groups)} groups "
                f"({len(runs) - len(groups)} runs / {discarded} photos below min_size={min_size})")
    return groups
