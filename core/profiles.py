"""
Normalization of raw student and mentor profile input.

Raw payloads come from the matching API, the stored Student/Mentor rows or
legacy clients that still send camelCase keys. Everything downstream works on
the frozen records produced here, so absent optional fields are filled with
explicit neutral defaults instead of being treated as falsy later on.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .errors import ValidationFailed
from .timezones import is_valid_zone


NOT_DISCLOSED = "prefer_not_to_say"

GRADE_TO_AGE_BUCKET = {
    "middle_school": "middle_school",
    "high_school": "high_school",
    "college": "college",
    "other": "adult",
}

AGE_BUCKETS = ("middle_school", "high_school", "college", "adult")


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _pick(raw: Mapping, *keys):
    for key in keys:
        for candidate in (key, _camel(key)):
            if candidate in raw and raw[candidate] is not None:
                return raw[candidate]
    return None


def normalize_tag(value) -> str:
    text = re.sub(r"[\s\-]+", "_", str(value).strip().lower())
    return text.strip("_")


def normalize_tags(value, field: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValidationFailed(f"{field} must be a list.", detail={field: ["Must be a list of strings."]})
    seen = []
    for item in value:
        if item is None:
            continue
        tag = normalize_tag(item)
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


def _optional_tag(value) -> Optional[str]:
    if value is None:
        return None
    tag = normalize_tag(value)
    return tag or None


def _optional_count(value, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    invalid = ValidationFailed(
        f"{field} must be a non-negative whole number.", detail={field: ["Must be a non-negative integer."]}
    )
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise invalid
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise invalid
    if number < 0:
        raise invalid
    return number


def _optional_timezone(value, field: str = "timezone") -> Optional[str]:
    if value is None:
        return None
    name = str(value).strip()
    if not name:
        return None
    if not is_valid_zone(name):
        raise ValidationFailed(f"Unknown timezone: {name!r}.", detail={field: ["Unknown timezone."]})
    return name


def _require_mapping(raw, label: str) -> Mapping:
    if not isinstance(raw, Mapping):
        raise ValidationFailed(f"{label} must be an object.")
    return raw


@dataclass(frozen=True)
class StudentProfile:
    student_id: Optional[str] = None
    full_name: str = ""
    support_goals: Tuple[str, ...] = ()
    learning_styles: Tuple[str, ...] = ()
    communication_methods: Tuple[str, ...] = ()
    meeting_frequency: Optional[str] = None
    mentor_traits: Tuple[str, ...] = ()
    guidance_style: Optional[str] = None
    neurodivergence: str = NOT_DISCLOSED
    timezone: Optional[str] = None
    availability_slots: Tuple[str, ...] = ()
    age: Optional[int] = None
    grade_level: Optional[str] = None

    @property
    def discloses_neurodivergence(self) -> bool:
        return self.neurodivergence != NOT_DISCLOSED

    @property
    def age_bucket(self) -> Optional[str]:
        if self.age is not None:
            if self.age < 15:
                return "middle_school"
            if self.age < 19:
                return "high_school"
            if self.age < 23:
                return "college"
            return "adult"
        if self.grade_level:
            return GRADE_TO_AGE_BUCKET.get(self.grade_level)
        return None


@dataclass(frozen=True)
class MentorProfile:
    mentor_id: str
    full_name: str = ""
    focus_areas: Tuple[str, ...] = ()
    expertise_areas: Tuple[str, ...] = ()
    mentee_age_range: Tuple[str, ...] = ()
    communication_methods: Tuple[str, ...] = ()
    availability_slots: Tuple[str, ...] = ()
    mentoring_approach: Tuple[str, ...] = ()
    neurodivergence_experience: Optional[str] = None
    timezone: Optional[str] = None
    current_mentees: Optional[int] = None
    max_mentees: Optional[int] = None
    is_active: bool = True

    @property
    def expertise_tags(self) -> Tuple[str, ...]:
        return self.focus_areas + tuple(tag for tag in self.expertise_areas if tag not in self.focus_areas)

    @property
    def at_capacity(self) -> bool:
        if self.current_mentees is None or self.max_mentees is None:
            return False
        return self.current_mentees >= self.max_mentees


def normalize_student_profile(raw) -> StudentProfile:
    raw = _require_mapping(raw, "student_profile")
    neurodivergence = _optional_tag(_pick(raw, "neurodivergence")) or NOT_DISCLOSED
    student_id = _pick(raw, "student_id", "id")
    return StudentProfile(
        student_id=str(student_id) if student_id is not None else None,
        full_name=str(_pick(raw, "full_name", "name") or "").strip(),
        support_goals=normalize_tags(_pick(raw, "support_goals"), "support_goals"),
        learning_styles=normalize_tags(_pick(raw, "learning_styles"), "learning_styles"),
        communication_methods=normalize_tags(_pick(raw, "communication_methods"), "communication_methods"),
        meeting_frequency=_optional_tag(_pick(raw, "meeting_frequency")),
        mentor_traits=normalize_tags(_pick(raw, "mentor_traits"), "mentor_traits"),
        guidance_style=_optional_tag(_pick(raw, "guidance_style")),
        neurodivergence=neurodivergence,
        timezone=_optional_timezone(_pick(raw, "timezone")),
        availability_slots=normalize_tags(_pick(raw, "availability_slots"), "availability_slots"),
        age=_optional_count(_pick(raw, "age"), "age"),
        grade_level=_optional_tag(_pick(raw, "grade_level")),
    )


def _mentor_is_active(raw: Mapping) -> bool:
    for key in ("is_active", "active"):
        value = _pick(raw, key)
        if value is not None:
            if not isinstance(value, bool):
                raise ValidationFailed(f"{key} must be a boolean.", detail={key: ["Must be true or false."]})
            if value is False:
                return False
    status = _pick(raw, "status")
    return not (isinstance(status, str) and status.strip().lower() == "inactive")


def normalize_mentor_profile(raw) -> MentorProfile:
    raw = _require_mapping(raw, "mentor_profile")
    mentor_id = _pick(raw, "mentor_id", "id")
    if mentor_id is None or str(mentor_id).strip() == "":
        raise ValidationFailed("Mentor profile is missing an id.", detail={"id": ["This field is required."]})
    return MentorProfile(
        mentor_id=str(mentor_id).strip(),
        full_name=str(_pick(raw, "full_name", "name") or "").strip(),
        focus_areas=normalize_tags(_pick(raw, "focus_areas"), "focus_areas"),
        expertise_areas=normalize_tags(_pick(raw, "expertise_areas"), "expertise_areas"),
        mentee_age_range=normalize_tags(_pick(raw, "mentee_age_range"), "mentee_age_range"),
        communication_methods=normalize_tags(_pick(raw, "communication_methods"), "communication_methods"),
        availability_slots=normalize_tags(_pick(raw, "availability_slots"), "availability_slots"),
        mentoring_approach=normalize_tags(_pick(raw, "mentoring_approach"), "mentoring_approach"),
        neurodivergence_experience=_optional_tag(_pick(raw, "neurodivergence_experience")),
        timezone=_optional_timezone(_pick(raw, "timezone")),
        current_mentees=_optional_count(_pick(raw, "current_mentees", "active_mentees"), "current_mentees"),
        max_mentees=_optional_count(_pick(raw, "max_mentees", "capacity"), "max_mentees"),
        is_active=_mentor_is_active(raw),
    )


def normalize_mentor_profiles(raw_list) -> list:
    if isinstance(raw_list, (str, bytes, Mapping)) or not isinstance(raw_list, Iterable):
        raise ValidationFailed("mentor_profiles must be a list.")
    profiles = []
    seen_ids = set()
    for raw in raw_list:
        profile = normalize_mentor_profile(raw)
        if profile.mentor_id in seen_ids:
            continue
        seen_ids.add(profile.mentor_id)
        profiles.append(profile)
    return profiles
