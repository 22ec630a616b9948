"""The Oracle: scores quest attempts.

An LLM judge is asked for ``{"score": int, "feedback": str}`` through
OpenRouter.  When the model is unavailable (no key, quota spent, offline
window, timeout, unparseable reply) or the submission is empty, a
deterministic length heuristic takes over so scoring never fails.
"""
from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

from quests import openrouter

logger = logging.getLogger(__name__)

SOURCE_LLM = "llm"
SOURCE_HEURISTIC = "heuristic"

MAX_RESULT_CHARS = 8000

# (upper bound exclusive, score, label); the last bucket is open-ended.
HEURISTIC_BUCKETS: tuple[tuple[Optional[int], int, str], ...] = (
    (200, 30, "brief response"),
    (1000, 55, "moderate response"),
    (None, 75, "substantial response"),
)

SYSTEM_PROMPT = """You are the Oracle, an impartial judge for Quest Central, an AI agent orchestration marketplace.

Your job is to score a quest attempt from 0 to 100. Be fair, consistent, and calibrate your score to the difficulty level.

Scoring guidelines:
- 90-100: Exceptional, exceeds requirements, elegant solution
- 70-89: Good, meets all acceptance criteria, solid work
- 50-69: Partial, addresses the task but misses some criteria
- 30-49: Weak, minimal effort or missing key requirements
- 0-29: Failed, does not meaningfully address the task

IMPORTANT: Respond ONLY with valid JSON in this exact format:
{"score": <number 0-100>, "feedback": "<one sentence explanation>"}"""

_JSON_OBJECT = re.compile(r"\{.*?\}", re.DOTALL)


class OracleResponseError(ValueError):
    """The model answered but the verdict could not be parsed."""


@dataclass(frozen=True)
class Verdict:
    score: int
    feedback: str
    source: str = SOURCE_LLM


def heuristic_score(result_text: Optional[str], difficulty: str) -> Verdict:
    text = result_text or ""
    if not text.strip():
        return Verdict(
            score=0,
            feedback="No result submitted. Detailed scoring unavailable.",
            source=SOURCE_HEURISTIC,
        )
    length = len(text)
    _, bucket_score, label = next(
        bucket for bucket in HEURISTIC_BUCKETS if bucket[0] is None or length < bucket[0]
    )
    return Verdict(
        score=bucket_score,
        feedback=f"Heuristic score: {label} ({difficulty}-Rank). Detailed scoring unavailable.",
        source=SOURCE_HEURISTIC,
    )


def build_prompt(
    title: str,
    description: str,
    criteria: Optional[str],
    difficulty: str,
    result_text: str,
) -> str:
    criteria_line = (
        f"**Acceptance Criteria:** {criteria}"
        if criteria
        else "**Acceptance Criteria:** None specified, judge based on task description."
    )
    return (
        "## Quest\n"
        f"**Title:** {title}\n"
        f"**Difficulty:** {difficulty}-Rank\n"
        f"**Description:** {description}\n"
        f"{criteria_line}\n\n"
        "## Submitted Result\n"
        f"{result_text[:MAX_RESULT_CHARS]}\n\n"
        "Score this attempt now."
    )


def parse_verdict(text: str) -> Verdict:
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise OracleResponseError("Oracle response was not valid JSON")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise OracleResponseError(str(exc)) from exc
    if not isinstance(payload, dict):
        raise OracleResponseError("Oracle response was not a JSON object")
    try:
        raw_score = float(payload["score"])
    except (KeyError, TypeError, ValueError) as exc:
        raise OracleResponseError("Oracle response is missing a numeric score") from exc
    # json.loads accepts NaN and Infinity.
    if not math.isfinite(raw_score):
        raise OracleResponseError(f"Oracle score {raw_score!r} is not a finite number")
    score = max(0, min(100, int(round(raw_score))))
    feedback = str(payload.get("feedback") or "No feedback provided.")
    return Verdict(score=score, feedback=feedback, source=SOURCE_LLM)


def score(
    quest_title: str,
    quest_description: str,
    acceptance_criteria: Optional[str],
    difficulty: str,
    result_text: Optional[str],
) -> Verdict:
    """Score one submission; never raises."""
    if not result_text or not result_text.strip():
        return heuristic_score(result_text, difficulty)

    try:
        response = openrouter.generate_completion(
            build_prompt(quest_title, quest_description, acceptance_criteria, difficulty, result_text),
            system=SYSTEM_PROMPT,
            max_tokens=256,
            temperature=0.2,
        )
        if not response.get("success"):
            logger.info("Oracle unavailable (%s); using heuristic.", response.get("error"))
            return heuristic_score(result_text, difficulty)
        return parse_verdict(response.get("text") or "")
    except OracleResponseError as exc:
        logger.warning("Oracle reply unusable (%s); using heuristic.", exc)
    except Exception:
        logger.exception("Oracle scoring failed unexpectedly; using heuristic.")
    return heuristic_score(result_text, difficulty)
