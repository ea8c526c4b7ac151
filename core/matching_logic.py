from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from numbers import Real
from typing import Iterable, List, Optional

from .errors import ValidationFailed
from .profiles import MentorProfile, StudentProfile
from .timezones import offset_hours

logger = logging.getLogger(__name__)


DEFAULT_WEIGHTS = {
    "support_goals": 40,
    "communication": 20,
    "availability": 15,
    "mentoring_style": 15,
    "neuro_experience": 10,
}

REASON_BAR = 60
NEUTRAL_SCORE = 50

GUIDANCE_TO_APPROACH = {
    "step_by_step": ("structured_guidance",),
    "open_discussion": ("open_discussion", "collaborative_problem_solving"),
    "visual_examples": ("hands_on", "collaborative_problem_solving"),
    "trial_error": ("hands_on", "collaborative_problem_solving"),
}

EXPERIENCED_LEVELS = {"experienced", "some_experience", "self_identified"}

MATCH_REASONS = (
    ("support_goals", "Aligned support goals and mentor expertise"),
    ("communication", "Matching communication preferences"),
    ("availability", "Compatible availability and time zones"),
    ("mentoring_style", "Mentoring style fits requested guidance"),
    ("neuro_experience", "Experienced supporting neurodivergent students"),
)


@dataclass(frozen=True)
class CompatibilityBreakdown:
    support_goals: int
    communication: int
    availability: int
    mentoring_style: int
    neuro_experience: int

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoredMentor:
    mentor: MentorProfile
    composite: float
    breakdown: CompatibilityBreakdown
    reasons: List[str] = field(default_factory=list)

    @property
    def mentor_id(self) -> str:
        return self.mentor.mentor_id

    @property
    def score(self) -> float:
        return round(self.composite, 2)

    def as_dict(self) -> dict:
        return {
            "mentor_id": self.mentor.mentor_id,
            "mentor_name": self.mentor.full_name,
            "compatibility_score": self.score,
            "match_reasons": list(self.reasons),
            "breakdown": self.breakdown.as_dict(),
        }


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def normalize_weights(weights: Optional[dict] = None) -> dict:
    merged = dict(DEFAULT_WEIGHTS)
    for key, value in (weights or {}).items():
        if key not in DEFAULT_WEIGHTS:
            raise ValidationFailed(f"Unknown weight: {key!r}.", detail={"weights": [f"Unknown key {key!r}."]})
        if isinstance(value, bool) or not isinstance(value, Real) or value < 0:
            raise ValidationFailed(
                f"Weight {key!r} must be a non-negative number.",
                detail={"weights": [f"{key} must be a non-negative number."]},
            )
        merged[key] = float(value)

    total = sum(merged.values())
    if not total:
        logger.warning("All matching weights are zero; falling back to default weights.")
        merged = dict(DEFAULT_WEIGHTS)
        total = sum(merged.values())
    return {key: (value / total) * 100 for key, value in merged.items()}


def overlap_score(preferred: Iterable[str], offered: Iterable[str]) -> int:
    wanted = list(preferred or ())
    if not wanted:
        return 0
    available = set(offered or ())
    if not available:
        return 0
    hits = sum(1 for item in wanted if item in available)
    return _round_half_up(hits / len(wanted) * 100)


def timezone_score(student_tz, mentor_tz, at: Optional[datetime] = None) -> int:
    student_offset = offset_hours(student_tz, at)
    mentor_offset = offset_hours(mentor_tz, at)
    if student_offset is None or mentor_offset is None:
        return NEUTRAL_SCORE

    diff = abs(student_offset - mentor_offset)
    if diff < 0.5:
        return 100
    if diff <= 1:
        return 85
    if diff <= 2:
        return 70
    if diff <= 3:
        return 55
    return 30


def availability_score(student: StudentProfile, mentor: MentorProfile, at: Optional[datetime] = None) -> int:
    tz_score = timezone_score(student.timezone, mentor.timezone, at)
    if student.availability_slots:
        slot_score = overlap_score(student.availability_slots, mentor.availability_slots)
    else:
        slot_score = NEUTRAL_SCORE
    return _round_half_up(tz_score * 0.7 + slot_score * 0.3)


def mentoring_style_score(student: StudentProfile, mentor: MentorProfile) -> int:
    if not student.guidance_style or not mentor.mentoring_approach:
        return 0
    acceptable = GUIDANCE_TO_APPROACH.get(student.guidance_style, ())
    return 100 if any(approach in acceptable for approach in mentor.mentoring_approach) else 0


def neurodivergence_score(student: StudentProfile, mentor: MentorProfile) -> int:
    if not student.discloses_neurodivergence:
        return NEUTRAL_SCORE
    if not mentor.neurodivergence_experience:
        return 0
    return 100 if mentor.neurodivergence_experience in EXPERIENCED_LEVELS else 0


def deterministic_jitter(identifier: str) -> float:
    """Stable tie-breaker below 0.01 derived from the mentor id."""
    if not identifier:
        return 0.0
    value = 0
    for char in identifier:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return (value % 1000) / 100000


def has_slot_overlap(student: StudentProfile, mentor: MentorProfile) -> bool:
    if not student.availability_slots or not mentor.availability_slots:
        return True
    return any(slot in mentor.availability_slots for slot in student.availability_slots)


def within_age_range(student: StudentProfile, mentor: MentorProfile) -> bool:
    bucket = student.age_bucket
    if not bucket or not mentor.mentee_age_range:
        return True
    return bucket in mentor.mentee_age_range


def is_accepting_mentees(mentor: MentorProfile) -> bool:
    return mentor.is_active and not mentor.at_capacity


def hard_filter_failure(student: StudentProfile, mentor: MentorProfile) -> Optional[str]:
    if not has_slot_overlap(student, mentor):
        return "no_availability_overlap"
    if not within_age_range(student, mentor):
        return "age_range"
    if not is_accepting_mentees(mentor):
        return "inactive_or_full"
    return None


def filter_mentors(student: StudentProfile, mentors: Iterable[MentorProfile]) -> List[MentorProfile]:
    filtered = []
    for mentor in mentors:
        failure = hard_filter_failure(student, mentor)
        if failure:
            logger.debug("Mentor %s excluded by hard filter %s", mentor.mentor_id, failure)
            continue
        filtered.append(mentor)
    return filtered


def compute_breakdown(
    student: StudentProfile, mentor: MentorProfile, at: Optional[datetime] = None
) -> CompatibilityBreakdown:
    return CompatibilityBreakdown(
        support_goals=overlap_score(student.support_goals, mentor.expertise_tags),
        communication=overlap_score(student.communication_methods, mentor.communication_methods),
        availability=availability_score(student, mentor, at),
        mentoring_style=mentoring_style_score(student, mentor),
        neuro_experience=neurodivergence_score(student, mentor),
    )


def composite_score(weights: dict, breakdown: CompatibilityBreakdown) -> float:
    values = breakdown.as_dict()
    return sum(values[key] * (weight / 100) for key, weight in weights.items())


def build_match_reasons(breakdown: CompatibilityBreakdown) -> List[str]:
    values = breakdown.as_dict()
    return [reason for key, reason in MATCH_REASONS if values[key] >= REASON_BAR]


def score_mentors(
    student: StudentProfile,
    mentors: Iterable[MentorProfile],
    weights: Optional[dict] = None,
    at: Optional[datetime] = None,
) -> List[ScoredMentor]:
    """Apply hard filters, then score every surviving mentor.

    ``weights`` must already be normalized; pass the output of
    ``normalize_weights``. Results are returned unsorted.
    """
    weights = weights or normalize_weights()
    results: List[ScoredMentor] = []
    for mentor in filter_mentors(student, mentors):
        breakdown = compute_breakdown(student, mentor, at)
        composite = composite_score(weights, breakdown) + deterministic_jitter(mentor.mentor_id)
        results.append(
            ScoredMentor(
                mentor=mentor,
                composite=composite,
                breakdown=breakdown,
                reasons=build_match_reasons(breakdown),
            )
        )
    return results
