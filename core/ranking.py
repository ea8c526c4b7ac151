from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .errors import ValidationFailed
from .matching_logic import ScoredMentor, normalize_weights, score_mentors
from .profiles import MentorProfile, StudentProfile

logger = logging.getLogger(__name__)


SCORE_THRESHOLD = 60
MIN_RESULTS = 3
MAX_RESULTS = 5
RESULTS_CEILING = 10

BELOW_THRESHOLD_DISCLAIMER = (
    "No mentors met the preferred compatibility threshold; showing best available matches."
)


@dataclass
class MatchRun:
    matches: List[ScoredMentor]
    weights: dict
    threshold: float
    total_considered: int
    excluded: int = 0
    disclaimer: Optional[str] = None

    @property
    def below_threshold(self) -> bool:
        return self.disclaimer is not None

    def as_dict(self) -> dict:
        return {
            "matches": [match.as_dict() for match in self.matches],
            "metadata": {
                "weights": self.weights,
                "threshold": self.threshold,
                "disclaimer": self.disclaimer,
                "total_considered": self.total_considered,
                "total_returned": len(self.matches),
                "excluded": self.excluded,
            },
        }


def _result_bounds(min_results, max_results):
    min_results = MIN_RESULTS if min_results is None else int(min_results)
    max_results = MAX_RESULTS if max_results is None else int(max_results)
    min_results = max(min_results, 1)
    max_results = min(max_results, RESULTS_CEILING)
    if min_results > max_results:
        raise ValidationFailed(
            "min_results cannot be greater than max_results.",
            detail={"min_results": [f"Must be at most {max_results}."]},
        )
    return min_results, max_results


def rank_mentors(
    scored: Iterable[ScoredMentor],
    *,
    min_results: Optional[int] = None,
    max_results: Optional[int] = None,
) -> List[ScoredMentor]:
    min_results, max_results = _result_bounds(min_results, max_results)
    ordered = sorted(scored, key=lambda item: (-item.composite, item.mentor_id))
    desired = min(max_results, max(min_results, min(len(ordered), max_results)))
    return ordered[:desired]


def match_mentors(
    student: StudentProfile,
    mentors: Iterable[MentorProfile],
    *,
    weights: Optional[dict] = None,
    threshold: Optional[float] = None,
    min_results: Optional[int] = None,
    max_results: Optional[int] = None,
    at: Optional[datetime] = None,
) -> MatchRun:
    mentors = list(mentors)
    normalized = normalize_weights(weights)
    threshold = SCORE_THRESHOLD if threshold is None else threshold

    scored = score_mentors(student, mentors, normalized, at)
    matches = rank_mentors(scored, min_results=min_results, max_results=max_results)

    best = matches[0].composite if matches else 0
    disclaimer = BELOW_THRESHOLD_DISCLAIMER if best < threshold else None
    logger.info(
        "Matched student %s: %d considered, %d eligible, %d returned, best %.2f",
        student.student_id or "-",
        len(mentors),
        len(scored),
        len(matches),
        best,
    )
    return MatchRun(
        matches=matches,
        weights=normalized,
        threshold=threshold,
        total_considered=len(mentors),
        excluded=len(mentors) - len(scored),
        disclaimer=disclaimer,
    )
