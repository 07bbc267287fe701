"""
Geolocation check used to confirm a user is actually at a place when checking in.
"""

import logging
import math

from kissa.models.schemas import Coordinates
from kissa.utils import constants
from kissa.utils.geo_utils import calculate_distance_meters

logger = logging.getLogger(__name__)


class LocationServiceError(Exception):
    """The distance check could not be performed (as opposed to failing)."""


def _check_point(point: Coordinates, label: str) -> None:
    for value in (point.latitude, point.longitude):
        if value is None or not math.isfinite(value):
            raise LocationServiceError(f"{label} has a non-finite coordinate")
    if not (constants.MIN_LATITUDE <= point.latitude <= constants.MAX_LATITUDE):
        raise LocationServiceError(f"{label} latitude out of range: {point.latitude}")
    if not (constants.MIN_LONGITUDE <= point.longitude <= constants.MAX_LONGITUDE):
        raise LocationServiceError(f"{label} longitude out of range: {point.longitude}")


class HaversineLocationValidator:
    """
    Great-circle distance check between a user and a place.

    ``validate_user_location`` returns True when the user is within
    ``max_distance_meters`` of the place and False when they are too far.
    It raises ``LocationServiceError`` when the inputs cannot be evaluated.
    """

    async def validate_user_location(
        self,
        user_location: Coordinates,
        place_location: Coordinates,
        max_distance_meters: float,
    ) -> bool:
        _check_point(user_location, "User location")
        _check_point(place_location, "Place location")
        if max_distance_meters is None or max_distance_meters <= 0:
            raise LocationServiceError(f"Invalid maximum distance: {max_distance_meters}")

        distance = calculate_distance_meters(
            user_location.latitude,
            user_location.longitude,
            place_location.latitude,
            place_location.longitude,
        )
        logger.debug(
            f"Check-in distance {distance:.1f}m (limit {max_distance_meters}m)"
        )
        return distance <= max_distance_meters
