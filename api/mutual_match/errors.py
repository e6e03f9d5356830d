class MatchingError(Exception):
    """Base class for matching engine failures."""


class DocumentNotFound(MatchingError):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")


class StoreUnavailable(MatchingError):
    """The document store could not be reached. Callers may retry."""


class MalformedRecord(MatchingError):
    def __init__(self, collection: str, doc_id: str, reason: str):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"{collection}/{doc_id} is malformed: {reason}")


class PairNotFound(MatchingError):
    def __init__(self, pair_id: str):
        self.pair_id = pair_id
        super().__init__(f"match {pair_id} not found")


class NotAParticipant(MatchingError):
    def __init__(self, pair_id: str, user_id: str):
        self.pair_id = pair_id
        self.user_id = user_id
        super().__init__(f"user {user_id} is not part of match {pair_id}")


class EntryNotFound(MatchingError):
    def __init__(self, user_id: str, epoch_id: str, match_id: str):
        self.user_id = user_id
        self.epoch_id = epoch_id
        self.match_id = match_id
        super().__init__(f"match {match_id} is not in the {epoch_id} view of user {user_id}")


class NotMutual(MatchingError):
    def __init__(self, pair_id: str):
        self.pair_id = pair_id
        super().__init__(f"match {pair_id} is not mutual")


class PartialGenerationFailure(MatchingError):
    """Generation stopped after some writes landed. Nothing is rolled back."""

    def __init__(self, user_id: str, epoch_id: str, written: int, requested: int):
        self.user_id = user_id
        self.epoch_id = epoch_id
        self.written = written
        self.requested = requested
        super().__init__(
            f"generation for {user_id} in {epoch_id} stopped after {written} of {requested} matches"
        )
