import logging

from ..config import PROFILES_COLLECTION
from ..errors import MalformedRecord
from ..schemas import ProfileSnapshot, load_record
from ..store import DocumentStore

logger = logging.getLogger(__name__)

CONSENT_FILTERS = {"has_matching_consent": True, "matching_enabled": True, "is_public": True}


class ProfileStore:
    """Read side of the profile collection. The engine never edits consent flags."""

    def __init__(self, store: DocumentStore, collection: str = PROFILES_COLLECTION) -> None:
        self._store = store
        self._collection = collection

    def get_profile(self, user_id: str) -> ProfileSnapshot | None:
        data = self._store.get_document(self._collection, user_id)
        if data is None:
            return None
        return load_record(ProfileSnapshot, self._collection, user_id, {**data, "id": user_id})

    def query_eligible_profiles(self, exclude_id: str | None = None) -> list[ProfileSnapshot]:
        out: list[ProfileSnapshot] = []
        for doc_id, data in self._store.query_documents(self._collection, CONSENT_FILTERS):
            if doc_id == exclude_id:
                continue
            try:
                out.append(load_record(ProfileSnapshot, self._collection, doc_id, {**data, "id": doc_id}))
            except MalformedRecord as exc:
                logger.warning("[profiles] skipping unreadable profile %s: %s", doc_id, exc.reason)
        return out

    def upsert_profile(self, profile: ProfileSnapshot) -> None:
        self._store.set_document(
            self._collection,
            profile.id,
            profile.model_dump(mode="json", exclude={"id"}),
            merge=True,
        )
