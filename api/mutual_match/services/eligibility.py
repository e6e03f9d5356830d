import logging

from ..errors import StoreUnavailable
from ..schemas import ProfileSnapshot
from .profiles import ProfileStore

logger = logging.getLogger(__name__)


def is_eligible(profile: ProfileSnapshot, requester_id: str) -> bool:
    return bool(
        profile.has_matching_consent
        and profile.matching_enabled
        and profile.is_public
        and profile.id != requester_id
    )


def can_request_matches(profile: ProfileSnapshot | None) -> bool:
    if profile is None:
        return False
    return bool(profile.has_matching_consent and profile.matching_enabled)


def eligible_pool(profiles: ProfileStore, requester_id: str) -> list[ProfileSnapshot]:
    try:
        candidates = profiles.query_eligible_profiles(exclude_id=requester_id)
    except StoreUnavailable as exc:
        logger.warning("[eligibility] profile store unavailable for %s, using empty pool: %s", requester_id, exc)
        return []
    return [p for p in candidates if is_eligible(p, requester_id)]
