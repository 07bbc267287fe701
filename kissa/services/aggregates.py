"""
Derived counters kept consistent by recomputing them from source rows.

These run inside the caller's transaction, so a failure here rolls back the
mutation that triggered it.
"""

import logging

from kissa.models.schemas import PlaceStats

logger = logging.getLogger(__name__)


async def recompute_place_stats(repos, place_id: str) -> PlaceStats:
    """Recompute and store a place's checkin_count and average_rating."""
    stats = await repos.checkins.get_place_stats(place_id)
    await repos.places.update_checkin_count(place_id, stats.checkin_count)
    await repos.places.update_rating(place_id, stats.average_rating)
    logger.debug(
        f"Place {place_id} stats: {stats.checkin_count} checkins, rating {stats.average_rating}"
    )
    return stats


async def recompute_region_place_count(repos, region_id: str) -> int:
    """Recompute and store a region's place_count."""
    place_count = await repos.places.count_by_region(region_id)
    await repos.regions.update_place_count(region_id, place_count)
    return place_count
