from enum import Enum


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    MUTUAL = "mutual"


class EntryStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    MUTUAL = "mutual"
    REJECTED = "rejected"


def derive_pair_status(user_a_accepted: bool, user_b_accepted: bool) -> MatchStatus:
    if user_a_accepted and user_b_accepted:
        return MatchStatus.MUTUAL
    if user_a_accepted or user_b_accepted:
        return MatchStatus.ACCEPTED
    return MatchStatus.PENDING


def transition_entry_status(current: EntryStatus, action: str, pair_status: MatchStatus | None = None) -> EntryStatus:
    # rejected never leaves the view it was set in
    if current == EntryStatus.REJECTED:
        return EntryStatus.REJECTED

    if action == "reject":
        return EntryStatus.REJECTED

    if action in {"accept", "sync"}:
        if pair_status is None:
            return current
        return EntryStatus(MatchStatus(pair_status).value)

    return current
