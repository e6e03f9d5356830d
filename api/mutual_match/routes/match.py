from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..auth.deps import get_current_user
from ..errors import (
    EntryNotFound,
    MalformedRecord,
    MatchingError,
    NotAParticipant,
    NotMutual,
    PairNotFound,
    PartialGenerationFailure,
    StoreUnavailable,
)
from ..schemas import MatchEntry
from ..services.epochs import seconds_until
from ..services.matching import MatchingService

router = APIRouter()
scaffold_router = APIRouter()


def get_matching_service() -> MatchingService:
    from .. import main as m

    return m.matching_service


def _http_error(exc: MatchingError) -> HTTPException:
    if isinstance(exc, (PairNotFound, EntryNotFound)):
        return HTTPException(status_code=404, detail="Match not found")
    if isinstance(exc, NotAParticipant):
        return HTTPException(status_code=403, detail="You are not part of this match")
    if isinstance(exc, NotMutual):
        return HTTPException(status_code=409, detail="Chat opens once both of you accept")
    if isinstance(exc, StoreUnavailable):
        return HTTPException(status_code=503, detail="Matching is temporarily unavailable. Please try again.")
    if isinstance(exc, PartialGenerationFailure):
        return HTTPException(status_code=500, detail="Could not generate this week's matches")
    if isinstance(exc, MalformedRecord):
        return HTTPException(status_code=500, detail="Match data is unreadable")
    return HTTPException(status_code=500, detail="Matching failed")


def _entries_payload(service: MatchingService, entries: list[MatchEntry]) -> dict[str, Any]:
    epoch = service.current_epoch()
    return {
        "epoch_id": epoch.id,
        "matches": [e.model_dump(mode="json") for e in entries],
        "total_matches": len(entries),
    }


@scaffold_router.get("/health")
def match_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "match"}


@router.get("/matches/weekly/epoch")
def get_current_epoch(service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    now = service.clock()
    epoch = service.current_epoch()
    return {
        "epoch_id": epoch.id,
        "epoch_end": epoch.end.isoformat(),
        "seconds_remaining": seconds_until(epoch.end, now),
    }


@router.get("/matches/weekly")
def get_weekly_matches(
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    try:
        entries = service.get_or_generate(str(current_user["id"]))
    except MatchingError as exc:
        raise _http_error(exc)
    return _entries_payload(service, entries)


@router.post("/matches/weekly/generate")
def generate_weekly_matches(
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    try:
        entries = service.generate(user_id)
    except MatchingError as exc:
        raise _http_error(exc)
    return _entries_payload(service, entries)


@router.post("/matches/weekly/sync")
def sync_weekly_matches(
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    result = service.reconcile(user_id)
    if result.failed:
        raise HTTPException(status_code=503, detail="Matching is temporarily unavailable. Please try again.")
    try:
        entries = service.list_entries(user_id, result.epoch_id)
    except MatchingError as exc:
        raise _http_error(exc)
    payload = _entries_payload(service, entries)
    payload["updated"] = result.updated
    payload["missing_matches"] = list(result.missing_pairs)
    return payload


@router.post("/matches/weekly/{match_id}/accept")
def accept_weekly_match(
    match_id: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    try:
        entry = service.accept(str(current_user["id"]), match_id)
    except MatchingError as exc:
        raise _http_error(exc)
    return {"match": entry.model_dump(mode="json")}


@router.post("/matches/weekly/{match_id}/reject")
def reject_weekly_match(
    match_id: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    try:
        entry = service.reject(str(current_user["id"]), match_id)
    except MatchingError as exc:
        raise _http_error(exc)
    return {"match": entry.model_dump(mode="json")}


@router.get("/matches/weekly/{match_id}/chat")
def get_chat_handoff(
    match_id: str,
    current_user: dict[str, Any] = Depends(get_current_user),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    try:
        handoff = service.chat_handoff(str(current_user["id"]), match_id)
    except MatchingError as exc:
        raise _http_error(exc)
    return {
        "match_id": handoff.match_id,
        "user_ids": list(handoff.user_ids),
        "mutual_at": handoff.mutual_at.isoformat(),
    }
