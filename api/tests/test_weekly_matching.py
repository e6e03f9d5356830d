from datetime import timedelta

import pytest

from mutual_match.errors import NotAParticipant, NotMutual, PartialGenerationFailure, StoreUnavailable
from mutual_match.services.state_machine import EntryStatus, MatchStatus

from conftest import CountingStore, opted_in

PAIRS = "weeklyMatches"


def _pair_ids(store):
    return [doc_id for doc_id, _ in store.query_documents(PAIRS)]


@pytest.fixture
def trio(add_profiles, make_service):
    """ana generates against exactly luis and carla."""
    add_profiles(opted_in("ana"), opted_in("luis"), opted_in("carla"))
    service = make_service(match_count=(2, 2))
    entries = service.get_or_generate("ana")
    by_counterpart = {e.counterpart_user_id: e.match_id for e in entries}
    return service, by_counterpart["luis"], by_counterpart["carla"]


@pytest.mark.parametrize("seed", range(8))
def test_generate_from_pool_of_five(seed, store, add_profiles, make_service):
    add_profiles(opted_in("me"), *[opted_in(f"p{i}") for i in range(5)])
    entries = make_service(seed=seed).get_or_generate("me")
    assert 1 <= len(entries) <= 3
    assert all(e.status == EntryStatus.PENDING for e in entries)
    counterparts = [e.counterpart_user_id for e in entries]
    assert len(set(counterparts)) == len(counterparts)
    assert "me" not in counterparts
    assert len(_pair_ids(store)) == len(entries)


def test_generation_writes_both_sides(store, trio):
    service, m_luis, _ = trio
    luis_view = service.list_entries("luis")
    assert [e.match_id for e in luis_view] == [m_luis]
    assert luis_view[0].counterpart_user_id == "ana"
    assert luis_view[0].counterpart_snapshot.display_name == "Ana"
    pair = service.pairs.get(m_luis)
    assert (pair.user_id_a, pair.user_id_b) == ("ana", "luis")
    assert pair.week_id == service.current_epoch_id()


def test_second_call_in_same_epoch_is_read_only(store, trio):
    service, _, _ = trio
    first = service.list_entries("ana")
    pairs_before = _pair_ids(store)
    store.writes.clear()

    again = service.get_or_generate("ana")

    assert again == first
    assert store.writes == []
    assert _pair_ids(store) == pairs_before


def test_counterpart_with_view_does_not_generate(store, trio):
    service, m_luis, _ = trio
    store.writes.clear()
    entries = service.get_or_generate("luis")
    assert [e.match_id for e in entries] == [m_luis]
    assert store.writes == []


def test_first_accept_marks_pair_accepted_only_for_caller(trio):
    service, m_luis, _ = trio
    entry = service.accept("ana", m_luis)

    pair = service.pairs.get(m_luis)
    assert pair.user_a_accepted is True
    assert pair.status == MatchStatus.ACCEPTED
    assert entry.status == EntryStatus.ACCEPTED
    ana_entry = next(e for e in service.list_entries("ana") if e.match_id == m_luis)
    luis_entry = next(e for e in service.list_entries("luis") if e.match_id == m_luis)
    assert ana_entry.status == EntryStatus.ACCEPTED
    assert luis_entry.status == EntryStatus.PENDING


def test_second_accept_goes_mutual_and_reconcile_repairs_other_side(trio, clock):
    service, m_luis, _ = trio
    service.accept("ana", m_luis)
    clock.advance(minutes=5)
    entry = service.accept("luis", m_luis)

    pair = service.pairs.get(m_luis)
    assert pair.status == MatchStatus.MUTUAL
    assert pair.mutual_at == clock.now
    assert entry.status == EntryStatus.MUTUAL
    ana_entry = next(e for e in service.list_entries("ana") if e.match_id == m_luis)
    assert ana_entry.status == EntryStatus.ACCEPTED

    result = service.reconcile("ana")
    assert result.updated == 1
    ana_entry = next(e for e in service.list_entries("ana") if e.match_id == m_luis)
    assert ana_entry.status == EntryStatus.MUTUAL


def test_reject_is_local_to_the_rejecting_view(store, trio):
    service, _, m_carla = trio
    before = service.pairs.get(m_carla)
    store.writes.clear()

    entry = service.reject("ana", m_carla)

    assert entry.status == EntryStatus.REJECTED
    assert store.writes == [("userWeeklyMatches", f"ana_{service.current_epoch_id()}")]
    assert service.pairs.get(m_carla) == before
    assert service.list_entries("carla")[0].status == EntryStatus.PENDING


def test_rejected_entry_survives_counterpart_accept_and_reconcile(trio):
    service, _, m_carla = trio
    service.reject("ana", m_carla)
    service.accept("carla", m_carla)
    service.reconcile("ana")
    entry = next(e for e in service.list_entries("ana") if e.match_id == m_carla)
    assert entry.status == EntryStatus.REJECTED
    assert service.accept("ana", m_carla).status == EntryStatus.REJECTED
    assert service.pairs.get(m_carla).user_a_accepted is False


def test_accept_by_outsider_fails(trio, add_profiles):
    service, m_luis, _ = trio
    with pytest.raises(NotAParticipant):
        service.accept("carla", m_luis)


def test_chat_handoff_only_for_mutual_participants(trio):
    service, m_luis, _ = trio
    with pytest.raises(NotMutual):
        service.chat_handoff("ana", m_luis)
    service.accept("ana", m_luis)
    service.accept("luis", m_luis)
    handoff = service.chat_handoff("luis", m_luis)
    assert handoff.user_ids == ("ana", "luis")
    assert handoff.match_id == m_luis
    with pytest.raises(NotAParticipant):
        service.chat_handoff("carla", m_luis)


def test_gated_requester_gets_nothing(store, add_profiles, make_service):
    add_profiles(opted_in("ana", has_matching_consent=False), opted_in("luis"))
    service = make_service()
    assert service.get_or_generate("ana") == []
    assert service.get_or_generate("ghost") == []
    assert store.writes == []
    assert service.has_view("ana") is False


def test_empty_pool_writes_nothing_and_retries_later(store, add_profiles, make_service):
    add_profiles(opted_in("ana"), opted_in("luis", is_public=False))
    service = make_service()
    assert service.get_or_generate("ana") == []
    assert store.writes == []

    add_profiles(opted_in("luis"))
    assert len(service.get_or_generate("ana")) == 1


def test_both_sides_generating_can_duplicate_pairs(store, add_profiles, make_service, monkeypatch):
    add_profiles(opted_in("ana"), opted_in("luis"))
    service = make_service()
    service.generate("ana")
    # luis checked for a view before ana's entry reached it
    monkeypatch.setattr(service, "has_view", lambda *args, **kwargs: False)
    service.generate("luis")
    pair_ids = sorted(_pair_ids(store))
    epoch = service.current_epoch_id()
    assert pair_ids == [f"ana_luis_{epoch}", f"luis_ana_{epoch}"]
    assert len(service.list_entries("ana")) == 2


def test_interrupted_generation_leaves_orphan_pair(session_factory, store, add_profiles, make_service):
    add_profiles(opted_in("ana"), opted_in("luis"))
    # writes: ana view, pair, ana append, luis append (fails)
    failing = CountingStore(session_factory, fail_on=4)
    service = make_service(target=failing)

    with pytest.raises(PartialGenerationFailure) as exc_info:
        service.generate("ana")

    assert exc_info.value.written == 0
    epoch = service.current_epoch_id()
    assert _pair_ids(store) == [f"ana_luis_{epoch}"]
    assert [e.counterpart_user_id for e in service.list_entries("ana")] == ["luis"]
    assert service.has_view("luis") is False


def test_atomic_generation_leaves_nothing_behind(session_factory, store, add_profiles, make_service):
    add_profiles(opted_in("ana"), opted_in("luis"))
    failing = CountingStore(session_factory, fail_on=4)
    service = make_service(target=failing, atomic=True)

    with pytest.raises(StoreUnavailable):
        service.generate("ana")

    assert _pair_ids(store) == []
    assert service.has_view("ana") is False
    assert service.has_view("luis") is False


def test_atomic_generation_commits_when_all_writes_land(store, add_profiles, make_service):
    add_profiles(opted_in("ana"), opted_in("luis"))
    service = make_service(atomic=True)
    entries = service.generate("ana")
    assert len(entries) == 1
    assert service.list_entries("luis")[0].match_id == entries[0].match_id


def test_generate_again_keeps_existing_pair_state(store, trio):
    service, m_luis, m_carla = trio
    service.accept("luis", m_luis)
    store.writes.clear()

    entries = service.generate("ana")

    assert {e.match_id for e in entries} == {m_luis, m_carla}
    assert store.writes == []
    assert service.pairs.get(m_luis).user_b_accepted is True


def test_accepts_racing_on_one_pair_still_end_mutual(store, trio, clock, monkeypatch):
    service, m_luis, _ = trio
    real_update = store.update_document
    raced = []

    def update_with_luis_racing(collection, doc_id, fields):
        # luis accepts between ana's flag write and ana's stale status write
        if doc_id == m_luis and "status" in fields and not raced:
            raced.append(doc_id)
            service.pairs.accept(m_luis, "luis", clock())
        return real_update(collection, doc_id, fields)

    monkeypatch.setattr(store, "update_document", update_with_luis_racing)
    pair = service.pairs.accept(m_luis, "ana", clock())

    assert raced == [m_luis]
    assert store.get_document(PAIRS, m_luis)["status"] == "accepted"
    assert (pair.user_a_accepted, pair.user_b_accepted) == (True, True)
    assert pair.status == MatchStatus.MUTUAL
    assert pair.mutual_at == clock.now
    assert service.chat_handoff("luis", m_luis).user_ids == ("ana", "luis")

    service.reconcile("luis")
    luis_entry = next(e for e in service.list_entries("luis") if e.match_id == m_luis)
    assert luis_entry.status == EntryStatus.MUTUAL

    clock.advance(minutes=1)
    service.accept("luis", m_luis)
    assert store.get_document(PAIRS, m_luis)["status"] == "mutual"
    assert service.pairs.get(m_luis).mutual_at == clock.now - timedelta(minutes=1)
