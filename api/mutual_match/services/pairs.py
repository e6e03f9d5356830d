import logging
from datetime import datetime

from ..config import PAIRS_COLLECTION
from ..errors import NotAParticipant, PairNotFound
from ..schemas import MatchPair, ProfileCard, ProfileSnapshot, dump_record, load_record
from ..store import DocumentStore
from .epochs import Epoch
from .state_machine import MatchStatus, derive_pair_status

logger = logging.getLogger(__name__)


def pair_id(initiator_id: str, counterpart_id: str, epoch_id: str) -> str:
    # order dependent: B initiating against A in the same week yields a second pair
    return f"{initiator_id}_{counterpart_id}_{epoch_id}"


def epoch_id_from_pair_id(match_id: str) -> str:
    parts = match_id.rsplit("_", 1)
    if len(parts) != 2 or not parts[1]:
        raise PairNotFound(match_id)
    return parts[1]


def side_of(pair: MatchPair, user_id: str) -> str:
    if user_id == pair.user_id_a:
        return "a"
    if user_id == pair.user_id_b:
        return "b"
    raise NotAParticipant(pair.id, user_id)


def counterpart_of(pair: MatchPair, user_id: str) -> tuple[str, ProfileCard]:
    if side_of(pair, user_id) == "a":
        return pair.user_id_b, pair.snapshot_b
    return pair.user_id_a, pair.snapshot_a


def _status_from_flags(match_id: str, data: dict) -> dict:
    """
    The acceptance flags are canonical. Two accepts racing on one pair can
    store a status computed from a stale flag, so the stored status and
    ``mutual_at`` are re-derived here rather than trusted.
    """
    a_accepted = data.get("user_a_accepted", False)
    b_accepted = data.get("user_b_accepted", False)
    if not isinstance(a_accepted, bool) or not isinstance(b_accepted, bool):
        return data
    expected = derive_pair_status(a_accepted, b_accepted)
    is_mutual = expected == MatchStatus.MUTUAL
    if data.get("status") == expected.value and is_mutual == (data.get("mutual_at") is not None):
        return data

    logger.warning("[pairs] %s stored status %s disagrees with acceptance flags, reading as %s", match_id, data.get("status"), expected.value)
    data = {**data, "status": expected.value}
    if not is_mutual:
        data["mutual_at"] = None
    elif data.get("mutual_at") is None:
        stamps = [s for s in (data.get("user_a_accepted_at"), data.get("user_b_accepted_at")) if s]
        data["mutual_at"] = max(stamps) if stamps else data.get("created_at")
    return data


class MatchPairStore:
    def __init__(self, store: DocumentStore, collection: str = PAIRS_COLLECTION) -> None:
        self._store = store
        self._collection = collection

    def create_pair(self, initiator: ProfileSnapshot, counterpart: ProfileSnapshot, epoch: Epoch, now: datetime) -> MatchPair:
        pair = MatchPair(
            id=pair_id(initiator.id, counterpart.id, epoch.id),
            week_id=epoch.id,
            user_id_a=initiator.id,
            user_id_b=counterpart.id,
            snapshot_a=initiator.card(),
            snapshot_b=counterpart.card(),
            status=MatchStatus.PENDING,
            created_at=now,
            expires_at=epoch.end,
        )
        self._store.set_document(self._collection, pair.id, dump_record(pair))
        return pair

    def find(self, match_id: str) -> MatchPair | None:
        data = self._store.get_document(self._collection, match_id)
        if data is None:
            return None
        return load_record(MatchPair, self._collection, match_id, _status_from_flags(match_id, data))

    def get(self, match_id: str) -> MatchPair:
        pair = self.find(match_id)
        if pair is None:
            raise PairNotFound(match_id)
        return pair

    def accept(self, match_id: str, acting_user_id: str, now: datetime) -> MatchPair:
        pair = self.get(match_id)
        side = side_of(pair, acting_user_id)
        fields = {f"user_{side}_accepted": True}
        if getattr(pair, f"user_{side}_accepted_at") is None:
            fields[f"user_{side}_accepted_at"] = now.isoformat()
        self._store.update_document(self._collection, match_id, fields)

        # the other side may have accepted since the first read
        fresh = self._store.get_document(self._collection, match_id)
        if fresh is None:
            raise PairNotFound(match_id)
        status = derive_pair_status(bool(fresh.get("user_a_accepted")), bool(fresh.get("user_b_accepted")))
        fields = {"status": status.value}
        if status == MatchStatus.MUTUAL and fresh.get("mutual_at") is None:
            fields["mutual_at"] = now.isoformat()
        if fresh.get("status") != status.value or "mutual_at" in fields:
            self._store.update_document(self._collection, match_id, fields)

        if status != pair.status:
            logger.info("[pairs] %s %s -> %s by %s", match_id, pair.status.value, status.value, acting_user_id)
        return self.get(match_id)
