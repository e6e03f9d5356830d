"""
Weekly mutual matching.

``MatchingService`` is the entry point used by the HTTP routes and by client
sessions. Each user's client drives its own generation and reconciliation; there
is no central scheduler. Generation writes the pair, the initiator's entry and
the counterpart's entry as separate documents, so an interrupted run leaves
whatever already landed (see ``PartialGenerationFailure``). Setting
``atomic_generation`` routes those writes through a single store transaction.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ..config import (
    ATOMIC_GENERATION,
    COUNTDOWN_TICK_SECONDS,
    MATCH_COUNT_MAX,
    MATCH_COUNT_MIN,
    MATCH_TIMEZONE,
    SYNC_INTERVAL_SECONDS,
)
from ..errors import MalformedRecord, NotMutual, PartialGenerationFailure, StoreUnavailable
from ..schemas import MatchEntry, ProfileSnapshot
from ..store import DocumentStore
from .eligibility import can_request_matches, eligible_pool
from .epochs import Epoch, current_epoch
from .pairs import MatchPairStore, counterpart_of, epoch_id_from_pair_id, side_of
from .profiles import ProfileStore
from .reconciliation import ReconcileResult, Reconciler
from .selection import draw_match_count, select_candidates
from .state_machine import EntryStatus, MatchStatus, transition_entry_status
from .timers import EpochTimer, PeriodicTask
from .views import UserViewStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatHandoff:
    match_id: str
    user_ids: tuple[str, str]
    mutual_at: datetime


class MatchingService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
        tz: str = MATCH_TIMEZONE,
        match_count: tuple[int, int] = (MATCH_COUNT_MIN, MATCH_COUNT_MAX),
        atomic_generation: bool = ATOMIC_GENERATION,
    ) -> None:
        self.store = store
        self.clock = clock or _utcnow
        self.rng = rng or random.Random()
        self.tz = tz
        self.match_count = match_count
        self.atomic_generation = atomic_generation
        self.profiles = ProfileStore(store)
        self.pairs = MatchPairStore(store)
        self.views = UserViewStore(store)
        self.reconciler = Reconciler(self.pairs, self.views, self.profiles)

    def current_epoch(self) -> Epoch:
        return current_epoch(self.clock(), self.tz)

    def current_epoch_id(self) -> str:
        return self.current_epoch().id

    def has_view(self, user_id: str, epoch_id: str | None = None) -> bool:
        return self.views.get_view(user_id, epoch_id or self.current_epoch_id()) is not None

    def list_entries(self, user_id: str, epoch_id: str | None = None) -> list[MatchEntry]:
        return self.views.list_entries(user_id, epoch_id or self.current_epoch_id())

    def get_or_generate(self, user_id: str) -> list[MatchEntry]:
        now = self.clock()
        epoch = current_epoch(now, self.tz)
        view = self.views.get_view(user_id, epoch.id)
        if view is None:
            return self._generate(user_id, epoch, now)
        result = self.reconciler.reconcile(user_id, epoch.id, now)
        if result.updated:
            return self.views.list_entries(user_id, epoch.id)
        return list(view.matches)

    def generate(self, user_id: str) -> list[MatchEntry]:
        """Generates this epoch's matches. A user who already has a view gets its entries back unchanged."""
        now = self.clock()
        epoch = current_epoch(now, self.tz)
        if self.has_view(user_id, epoch.id):
            logger.info("[matching] %s already has a view for %s, nothing generated", user_id, epoch.id)
            return self.views.list_entries(user_id, epoch.id)
        return self._generate(user_id, epoch, now)

    def _generate(self, user_id: str, epoch: Epoch, now: datetime) -> list[MatchEntry]:
        try:
            requester = self.profiles.get_profile(user_id)
        except StoreUnavailable as exc:
            logger.warning("[matching] generation for %s skipped, profile store unavailable: %s", user_id, exc)
            return []
        if not can_request_matches(requester):
            logger.info("[matching] %s has not opted in to matching, nothing generated", user_id)
            return []

        pool = eligible_pool(self.profiles, user_id)
        requested = draw_match_count(self.rng, *self.match_count)
        selected = select_candidates(pool, requested, self.rng, exclude_id=user_id)
        if not selected:
            logger.info("[matching] no candidates for %s in %s (pool=%d)", user_id, epoch.id, len(pool))
            return []

        logger.info("[matching] generating %d of %d requested matches for %s in %s", len(selected), requested, user_id, epoch.id)
        if not self.atomic_generation:
            return self._write_matches(self.pairs, self.views, requester, selected, epoch, now)
        try:
            with self.store.transaction() as tx:
                return self._write_matches(MatchPairStore(tx), UserViewStore(tx), requester, selected, epoch, now)
        except PartialGenerationFailure as exc:
            raise StoreUnavailable(f"generation rolled back: {exc}") from exc

    def _write_matches(
        self,
        pairs: MatchPairStore,
        views: UserViewStore,
        requester: ProfileSnapshot,
        selected: list[ProfileSnapshot],
        epoch: Epoch,
        now: datetime,
    ) -> list[MatchEntry]:
        entries: list[MatchEntry] = []
        try:
            views.ensure_view(requester.id, epoch.id, now)
            for counterpart in selected:
                pair = pairs.create_pair(requester, counterpart, epoch, now)
                own = MatchEntry(
                    match_id=pair.id,
                    counterpart_user_id=counterpart.id,
                    counterpart_snapshot=pair.snapshot_b,
                )
                views.append_entry(requester.id, epoch.id, own, now)
                views.append_entry(
                    counterpart.id,
                    epoch.id,
                    MatchEntry(match_id=pair.id, counterpart_user_id=requester.id, counterpart_snapshot=pair.snapshot_a),
                    now,
                )
                entries.append(own)
        except (StoreUnavailable, MalformedRecord) as exc:
            logger.error("[matching] generation for %s in %s interrupted after %d matches: %s", requester.id, epoch.id, len(entries), exc)
            raise PartialGenerationFailure(requester.id, epoch.id, len(entries), len(selected)) from exc
        return entries

    def accept(self, user_id: str, match_id: str) -> MatchEntry:
        now = self.clock()
        epoch_id = epoch_id_from_pair_id(match_id)
        entry = self.views.find_entry(user_id, epoch_id, match_id)
        if entry is not None and entry.status == EntryStatus.REJECTED:
            logger.info("[matching] %s already passed on %s, accept ignored", user_id, match_id)
            return entry

        pair = self.pairs.accept(match_id, user_id, now)
        status = transition_entry_status(entry.status if entry else EntryStatus.PENDING, "accept", pair.status)
        if entry is None:
            logger.warning("[matching] %s accepted %s with no entry in their %s view", user_id, match_id, epoch_id)
            counterpart_id, card = counterpart_of(pair, user_id)
            return MatchEntry(match_id=match_id, counterpart_user_id=counterpart_id, counterpart_snapshot=card, status=status)
        return self.views.set_entry_status(user_id, epoch_id, match_id, status, now)

    def reject(self, user_id: str, match_id: str) -> MatchEntry:
        # only the rejecting user's view changes; the pair and the counterpart never see it
        now = self.clock()
        epoch_id = epoch_id_from_pair_id(match_id)
        return self.views.set_entry_status(user_id, epoch_id, match_id, EntryStatus.REJECTED, now)

    def reconcile(self, user_id: str, epoch_id: str | None = None) -> ReconcileResult:
        now = self.clock()
        return self.reconciler.reconcile(user_id, epoch_id or current_epoch(now, self.tz).id, now)

    def chat_handoff(self, user_id: str, match_id: str) -> ChatHandoff:
        pair = self.pairs.get(match_id)
        side_of(pair, user_id)
        if pair.status != MatchStatus.MUTUAL:
            raise NotMutual(match_id)
        return ChatHandoff(match_id=pair.id, user_ids=(pair.user_id_a, pair.user_id_b), mutual_at=pair.mutual_at)

    def open_session(
        self,
        user_id: str,
        *,
        tick_seconds: float = COUNTDOWN_TICK_SECONDS,
        sync_seconds: float = SYNC_INTERVAL_SECONDS,
    ) -> "MatchingSession":
        return MatchingSession(self, user_id, tick_seconds=tick_seconds, sync_seconds=sync_seconds)


class MatchingSession:
    """
    One active client: loads the week's matches, counts down to the next epoch
    and polls reconciliation. Both timers stop on ``close()``; store calls that
    are already running finish on their own.
    """

    def __init__(self, service: MatchingService, user_id: str, *, tick_seconds: float, sync_seconds: float) -> None:
        self.service = service
        self.user_id = user_id
        self.timer = EpochTimer(service.clock, service.tz)
        self.entries: list[MatchEntry] = []
        self.countdown = PeriodicTask(f"countdown:{user_id}", tick_seconds, self.on_tick)
        self.sync = PeriodicTask(f"sync:{user_id}", sync_seconds, self.on_sync)

    def refresh(self) -> list[MatchEntry]:
        self.entries = self.service.get_or_generate(self.user_id)
        self.timer.arm(has_view=self.service.has_view(self.user_id))
        return self.entries

    def open(self) -> "MatchingSession":
        try:
            self.refresh()
        except (StoreUnavailable, PartialGenerationFailure) as exc:
            logger.warning("[session] initial load for %s failed: %s", self.user_id, exc)
            self.timer.arm(has_view=False)
        self.countdown.start()
        self.sync.start()
        return self

    def on_tick(self) -> None:
        if self.timer.tick():
            self.refresh()

    def on_sync(self) -> None:
        if not self.entries:
            return
        result = self.service.reconcile(self.user_id, self.timer.epoch_id)
        if result.updated:
            self.entries = self.service.list_entries(self.user_id, self.timer.epoch_id)

    def close(self) -> None:
        self.countdown.cancel()
        self.sync.cancel()

    def __enter__(self) -> "MatchingSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
