import logging
from datetime import datetime

from ..config import VIEWS_COLLECTION
from ..errors import EntryNotFound
from ..schemas import MatchEntry, UserView, dump_record, load_record
from ..store import DocumentStore
from .state_machine import EntryStatus

logger = logging.getLogger(__name__)


def view_id(user_id: str, epoch_id: str) -> str:
    return f"{user_id}_{epoch_id}"


class UserViewStore:
    """
    Per-user, per-week list of match summaries.

    Every mutation is a read-modify-write of the whole view document and is not
    coordinated with the pair writes that accompany it.
    """

    def __init__(self, store: DocumentStore, collection: str = VIEWS_COLLECTION) -> None:
        self._store = store
        self._collection = collection

    def get_view(self, user_id: str, epoch_id: str) -> UserView | None:
        vid = view_id(user_id, epoch_id)
        data = self._store.get_document(self._collection, vid)
        if data is None:
            return None
        return load_record(UserView, self._collection, vid, data)

    def _create(self, user_id: str, epoch_id: str, entries: list[MatchEntry], now: datetime) -> UserView:
        view = UserView(
            id=view_id(user_id, epoch_id),
            user_id=user_id,
            week_id=epoch_id,
            matches=entries,
            total_matches=len(entries),
            created_at=now,
        )
        self._store.set_document(self._collection, view.id, dump_record(view))
        return view

    def ensure_view(self, user_id: str, epoch_id: str, now: datetime) -> UserView:
        view = self.get_view(user_id, epoch_id)
        if view is not None:
            return view
        return self._create(user_id, epoch_id, [], now)

    def replace_entries(self, user_id: str, epoch_id: str, entries: list[MatchEntry], now: datetime) -> UserView:
        view = self.get_view(user_id, epoch_id)
        if view is None:
            return self._create(user_id, epoch_id, entries, now)
        self._store.update_document(
            self._collection,
            view.id,
            {
                "matches": [dump_record(e) for e in entries],
                "total_matches": len(entries),
                "updated_at": now.isoformat(),
            },
        )
        return view.model_copy(update={"matches": list(entries), "total_matches": len(entries), "updated_at": now})

    def append_entry(self, user_id: str, epoch_id: str, entry: MatchEntry, now: datetime) -> UserView:
        view = self.get_view(user_id, epoch_id)
        if view is None:
            return self._create(user_id, epoch_id, [entry], now)
        return self.replace_entries(user_id, epoch_id, [*view.matches, entry], now)

    def find_entry(self, user_id: str, epoch_id: str, match_id: str) -> MatchEntry | None:
        view = self.get_view(user_id, epoch_id)
        if view is None:
            return None
        return view.entry(match_id)

    def set_entry_status(self, user_id: str, epoch_id: str, match_id: str, status: EntryStatus, now: datetime) -> MatchEntry:
        view = self.get_view(user_id, epoch_id)
        if view is None or view.entry(match_id) is None:
            raise EntryNotFound(user_id, epoch_id, match_id)
        updated: MatchEntry | None = None
        entries: list[MatchEntry] = []
        for item in view.matches:
            if item.match_id == match_id:
                item = item.model_copy(update={"status": status})
                updated = item
            entries.append(item)
        self.replace_entries(user_id, epoch_id, entries, now)
        return updated

    def list_entries(self, user_id: str, epoch_id: str) -> list[MatchEntry]:
        view = self.get_view(user_id, epoch_id)
        return list(view.matches) if view is not None else []
