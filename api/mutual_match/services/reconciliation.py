import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..errors import MalformedRecord, NotAParticipant, StoreUnavailable
from ..schemas import MatchEntry, ProfileCard, ProfileSnapshot
from .pairs import MatchPairStore, side_of
from .profiles import ProfileStore
from .state_machine import derive_pair_status, transition_entry_status
from .views import UserViewStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    user_id: str
    epoch_id: str
    checked: int = 0
    updated: int = 0
    missing_pairs: list[str] = field(default_factory=list)
    failed: bool = False


def refresh_card(card: ProfileCard, profile: ProfileSnapshot | None) -> ProfileCard:
    """Overlay the live profile on a cached card; empty profile fields keep the cached value."""
    if profile is None:
        return card
    update = {}
    for name in ProfileCard.model_fields:
        value = getattr(profile, name, None)
        if value:
            update[name] = list(value) if isinstance(value, list) else value
    return card.model_copy(update=update)


class Reconciler:
    def __init__(self, pairs: MatchPairStore, views: UserViewStore, profiles: ProfileStore) -> None:
        self._pairs = pairs
        self._views = views
        self._profiles = profiles

    def _sync_entry(self, user_id: str, entry: MatchEntry, result: ReconcileResult) -> MatchEntry:
        try:
            pair = self._pairs.find(entry.match_id)
            if pair is None:
                result.missing_pairs.append(entry.match_id)
                return entry
            side_of(pair, user_id)
        except (MalformedRecord, NotAParticipant) as exc:
            logger.warning("[reconcile] leaving entry %s for %s as is: %s", entry.match_id, user_id, exc)
            return entry

        pair_status = derive_pair_status(pair.user_a_accepted, pair.user_b_accepted)
        status = transition_entry_status(entry.status, "sync", pair_status)
        try:
            profile = self._profiles.get_profile(entry.counterpart_user_id)
        except MalformedRecord as exc:
            logger.warning("[reconcile] keeping cached profile for %s: %s", entry.counterpart_user_id, exc.reason)
            profile = None
        snapshot = refresh_card(entry.counterpart_snapshot, profile)
        return entry.model_copy(update={"status": status, "counterpart_snapshot": snapshot})

    def reconcile(self, user_id: str, epoch_id: str, now: datetime) -> ReconcileResult:
        result = ReconcileResult(user_id=user_id, epoch_id=epoch_id)
        try:
            view = self._views.get_view(user_id, epoch_id)
            if view is None:
                return result

            entries: list[MatchEntry] = []
            for entry in view.matches:
                result.checked += 1
                synced = self._sync_entry(user_id, entry, result)
                if synced != entry:
                    result.updated += 1
                entries.append(synced)

            if result.updated:
                self._views.replace_entries(user_id, epoch_id, entries, now)
                logger.info("[reconcile] %s %s: %d of %d entries refreshed", user_id, epoch_id, result.updated, result.checked)
        except StoreUnavailable as exc:
            logger.warning("[reconcile] %s %s skipped this cycle: %s", user_id, epoch_id, exc)
            result.updated = 0
            result.failed = True
        return result
