import math
import random
from typing import Iterable

from ..config import MATCH_COUNT_MAX, MATCH_COUNT_MIN
from ..schemas import ProfileSnapshot


def draw_match_count(rng: random.Random, low: int = MATCH_COUNT_MIN, high: int = MATCH_COUNT_MAX) -> int:
    if low < 0 or high < low:
        raise ValueError(f"invalid match count range {low}..{high}")
    return low + math.floor(rng.random() * (high - low + 1))


def select_candidates(
    pool: Iterable[ProfileSnapshot],
    requested: int,
    rng: random.Random,
    exclude_id: str | None = None,
) -> list[ProfileSnapshot]:
    unique: dict[str, ProfileSnapshot] = {}
    for profile in pool:
        if profile.id == exclude_id or profile.id in unique:
            continue
        unique[profile.id] = profile
    if requested <= 0 or not unique:
        return []
    candidates = list(unique.values())
    return rng.sample(candidates, min(requested, len(candidates)))
