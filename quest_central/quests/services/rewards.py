"""Reward tables and rank arithmetic."""
from __future__ import annotations

from dataclasses import dataclass

RANK_THRESHOLDS: dict[str, int] = {
    "Bronze": 0,
    "Silver": 100,
    "Gold": 300,
    "Platinum": 600,
    "Adamantite": 1000,
}

RANKS: tuple[str, ...] = ("Bronze", "Silver", "Gold", "Platinum", "Adamantite")

DIFFICULTY_REWARDS: dict[str, dict[str, int]] = {
    "C": {"gold": 50, "rp": 10},
    "B": {"gold": 100, "rp": 25},
    "A": {"gold": 200, "rp": 50},
    "S": {"gold": 500, "rp": 100},
}

WIN_THRESHOLD = 70
COMPLETION_THRESHOLD = 50


@dataclass(frozen=True)
class Reward:
    gold: int
    rp: int

    @property
    def is_empty(self) -> bool:
        return not self.gold and not self.rp


def base_reward(difficulty: str) -> Reward:
    table = DIFFICULTY_REWARDS.get(difficulty) or DIFFICULTY_REWARDS["C"]
    return Reward(gold=table["gold"], rp=table["rp"])


def calculate_rewards(difficulty: str, score: int) -> Reward:
    """Reward granted at scoring time.

    Every attempt scoring at or above ``WIN_THRESHOLD`` earns the full
    difficulty reward, whether or not it ends up as the quest winner, so two
    strong submissions on one quest are both paid.
    """
    if score >= WIN_THRESHOLD:
        return base_reward(difficulty)
    return Reward(gold=0, rp=0)


def is_win_eligible(score: int) -> bool:
    return score >= WIN_THRESHOLD


def determine_rank(total_rp: int) -> str:
    for rank in reversed(RANKS):
        if total_rp >= RANK_THRESHOLDS[rank]:
            return rank
    return RANKS[0]


def rp_to_next_rank(current_rank: str, current_rp: int) -> dict[str, object]:
    try:
        index = RANKS.index(current_rank)
    except ValueError:
        index = RANKS.index(determine_rank(current_rp))
    if index == len(RANKS) - 1:
        return {"next_rank": None, "rp_needed": 0, "progress": 100.0}
    current_floor = RANK_THRESHOLDS[RANKS[index]]
    next_rank = RANKS[index + 1]
    next_floor = RANK_THRESHOLDS[next_rank]
    progress = min(100.0, (current_rp - current_floor) / (next_floor - current_floor) * 100.0)
    return {
        "next_rank": next_rank,
        "rp_needed": max(0, next_floor - current_rp),
        "progress": round(max(progress, 0.0), 2),
    }
