from datetime import datetime, timezone as dt_timezone

from django.test import SimpleTestCase

from core.errors import ValidationFailed
from core.matching_logic import (
    DEFAULT_WEIGHTS,
    CompatibilityBreakdown,
    ScoredMentor,
    availability_score,
    build_match_reasons,
    deterministic_jitter,
    hard_filter_failure,
    is_accepting_mentees,
    normalize_weights,
    overlap_score,
    score_mentors,
    timezone_score,
)
from core.profiles import (
    MentorProfile,
    StudentProfile,
    normalize_mentor_profile,
    normalize_mentor_profiles,
    normalize_student_profile,
)
from core.ranking import BELOW_THRESHOLD_DISCLAIMER, match_mentors, rank_mentors


# January avoids DST edges between the Pacific and Eastern zones.
AT = datetime(2025, 1, 15, 18, 0, tzinfo=dt_timezone.utc)

JORDAN = {
    "fullName": "Jordan Lee",
    "age": 17,
    "gradeLevel": "high_school",
    "timezone": "America/Los_Angeles",
    "supportGoals": ["academic_support", "career_guidance"],
    "learningStyles": ["visual"],
    "communicationMethods": ["text", "video"],
    "meetingFrequency": "weekly",
    "mentorTraits": ["patient", "structured"],
    "guidanceStyle": "step_by_step",
    "neurodivergence": "adhd",
    "availabilitySlots": ["tue_evening", "thu_evening"],
}

AISHA = {
    "id": "mentor-123",
    "fullName": "Dr. Aisha Smith",
    "timezone": "America/Los_Angeles",
    "focusAreas": ["academic_support", "executive_functioning"],
    "communicationMethods": ["text", "video"],
    "availabilitySlots": ["tue_evening"],
    "mentoringApproach": ["structured_guidance"],
    "menteeAgeRange": ["high_school", "college"],
    "neurodivergenceExperience": "experienced",
    "maxMentees": 4,
    "currentMentees": 2,
    "isActive": True,
}

MARCUS = {
    "id": "mentor-456",
    "fullName": "Marcus Williams",
    "timezone": "America/New_York",
    "focusAreas": ["career_guidance", "social_emotional"],
    "communicationMethods": ["video", "audio"],
    "availabilitySlots": ["wed_evening"],
    "mentoringApproach": ["open_discussion"],
    "menteeAgeRange": ["high_school"],
    "neurodivergenceExperience": "some_experience",
    "maxMentees": 3,
    "currentMentees": 3,
    "isActive": True,
}


def scored(mentor_id, composite):
    breakdown = CompatibilityBreakdown(0, 0, 0, 0, 0)
    return ScoredMentor(mentor=MentorProfile(mentor_id=mentor_id), composite=composite, breakdown=breakdown)


class ProfileNormalizationTests(SimpleTestCase):
    def test_camel_case_keys_and_tags_are_normalized(self):
        student = normalize_student_profile(
            {"supportGoals": ["Academic Support", "academic-support", "Career Guidance"], "age": 17}
        )
        self.assertEqual(student.support_goals, ("academic_support", "career_guidance"))
        self.assertEqual(student.age_bucket, "high_school")

    def test_absent_fields_get_neutral_defaults(self):
        student = normalize_student_profile({})
        self.assertEqual(student.neurodivergence, "prefer_not_to_say")
        self.assertFalse(student.discloses_neurodivergence)
        self.assertIsNone(student.timezone)
        self.assertIsNone(student.age_bucket)

    def test_grade_maps_to_age_bucket_when_age_missing(self):
        self.assertEqual(normalize_student_profile({"grade_level": "other"}).age_bucket, "adult")
        self.assertEqual(normalize_student_profile({"grade_level": "college"}).age_bucket, "college")

    def test_unknown_timezone_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            normalize_student_profile({"timezone": "Mars/Olympus_Mons"})

    def test_non_list_tags_are_rejected(self):
        with self.assertRaises(ValidationFailed):
            normalize_student_profile({"support_goals": "academic_support"})

    def test_mentor_requires_id(self):
        with self.assertRaises(ValidationFailed):
            normalize_mentor_profile({"full_name": "No Id"})

    def test_mentor_inactive_status_and_expertise_union(self):
        mentor = normalize_mentor_profile(
            {
                "id": 7,
                "status": "inactive",
                "focus_areas": ["academic_support"],
                "expertise_areas": ["academic_support", "college_prep"],
            }
        )
        self.assertEqual(mentor.mentor_id, "7")
        self.assertFalse(mentor.is_active)
        self.assertEqual(mentor.expertise_tags, ("academic_support", "college_prep"))

    def test_duplicate_mentor_ids_are_dropped(self):
        mentors = normalize_mentor_profiles([AISHA, dict(AISHA, fullName="Copy")])
        self.assertEqual(len(mentors), 1)
        self.assertEqual(mentors[0].full_name, "Dr. Aisha Smith")


class WeightNormalizationTests(SimpleTestCase):
    def test_defaults_sum_to_one_hundred(self):
        weights = normalize_weights()
        self.assertAlmostEqual(sum(weights.values()), 100)
        self.assertEqual(weights["support_goals"], 40)

    def test_arbitrary_overrides_sum_to_one_hundred(self):
        for override in (
            {"support_goals": 1},
            {"communication": 250, "availability": 0.5},
            {key: 3 for key in DEFAULT_WEIGHTS},
        ):
            with self.subTest(override=override):
                self.assertAlmostEqual(sum(normalize_weights(override).values()), 100)

    def test_all_zero_weights_fall_back_to_defaults(self):
        with self.assertLogs("core.matching_logic", level="WARNING"):
            weights = normalize_weights({key: 0 for key in DEFAULT_WEIGHTS})
        self.assertEqual(weights, normalize_weights())

    def test_unknown_or_negative_weights_are_rejected(self):
        with self.assertRaises(ValidationFailed):
            normalize_weights({"charisma": 10})
        with self.assertRaises(ValidationFailed):
            normalize_weights({"support_goals": -1})


class SubScoreTests(SimpleTestCase):
    def test_overlap_score_rounds_half_up(self):
        self.assertEqual(overlap_score(["a", "b", "c"], ["a"]), 33)
        self.assertEqual(overlap_score(["a", "b"], ["a"]), 50)
        self.assertEqual(overlap_score(["a", "b", "c", "d", "e", "f", "g", "h"], ["a"]), 13)
        self.assertEqual(overlap_score([], ["a"]), 0)
        self.assertEqual(overlap_score(["a"], []), 0)

    def test_timezone_steps(self):
        self.assertEqual(timezone_score("America/Los_Angeles", "America/Los_Angeles", AT), 100)
        self.assertEqual(timezone_score("America/Los_Angeles", "America/Denver", AT), 85)
        self.assertEqual(timezone_score("America/Los_Angeles", "America/Chicago", AT), 70)
        self.assertEqual(timezone_score("America/Los_Angeles", "America/New_York", AT), 55)
        self.assertEqual(timezone_score("America/Los_Angeles", "Europe/London", AT), 30)
        self.assertEqual(timezone_score(None, "Europe/London", AT), 50)

    def test_availability_without_student_slots_is_neutral_on_slots(self):
        student = StudentProfile(timezone="America/Los_Angeles")
        mentor = MentorProfile(mentor_id="m", timezone="America/Los_Angeles", availability_slots=("tue_evening",))
        self.assertEqual(availability_score(student, mentor, AT), 85)

    def test_jitter_is_stable_and_tiny(self):
        self.assertEqual(deterministic_jitter("mentor-123"), deterministic_jitter("mentor-123"))
        self.assertLess(deterministic_jitter("mentor-123"), 0.01)
        self.assertEqual(deterministic_jitter(""), 0.0)

    def test_reasons_only_for_sub_scores_at_or_above_sixty(self):
        reasons = build_match_reasons(CompatibilityBreakdown(59, 60, 0, 100, 50))
        self.assertEqual(
            reasons,
            ["Matching communication preferences", "Mentoring style fits requested guidance"],
        )


class ScenarioATests(SimpleTestCase):
    def setUp(self):
        self.student = normalize_student_profile(JORDAN)
        self.aisha = normalize_mentor_profile(AISHA)
        self.marcus = normalize_mentor_profile(MARCUS)

    def test_full_mentor_is_excluded(self):
        self.assertFalse(is_accepting_mentees(self.marcus))
        reachable = normalize_mentor_profile(dict(MARCUS, availabilitySlots=["tue_evening"]))
        self.assertEqual(hard_filter_failure(self.student, reachable), "inactive_or_full")

    def test_aisha_is_the_sole_top_match(self):
        run = match_mentors(self.student, [self.aisha, self.marcus], at=AT)
        self.assertEqual([match.mentor_id for match in run.matches], ["mentor-123"])
        self.assertEqual(run.total_considered, 2)
        self.assertEqual(run.excluded, 1)

        top = run.matches[0]
        self.assertEqual(top.breakdown.support_goals, 50)
        self.assertEqual(top.breakdown.communication, 100)
        self.assertEqual(top.breakdown.availability, 85)
        self.assertEqual(top.breakdown.mentoring_style, 100)
        self.assertEqual(top.breakdown.neuro_experience, 100)
        self.assertAlmostEqual(top.composite, 77.75, delta=0.01)
        self.assertIsNone(run.disclaimer)
        self.assertNotIn("Aligned support goals and mentor expertise", top.reasons)
        self.assertIn("Mentoring style fits requested guidance", top.reasons)

    def test_payload_shape(self):
        payload = match_mentors(self.student, [self.aisha], at=AT).as_dict()
        match = payload["matches"][0]
        self.assertEqual(match["mentor_id"], "mentor-123")
        self.assertEqual(match["mentor_name"], "Dr. Aisha Smith")
        self.assertEqual(match["compatibility_score"], round(match["compatibility_score"], 2))
        self.assertEqual(payload["metadata"]["total_returned"], 1)
        self.assertEqual(payload["metadata"]["threshold"], 60)


STAR = dict(
    AISHA,
    id="mentor-star",
    fullName="Priya Natarajan",
    focusAreas=["academic_support", "career_guidance"],
    availabilitySlots=["tue_evening", "thu_evening"],
)


class HardFilterRankingTests(SimpleTestCase):
    def setUp(self):
        self.student = normalize_student_profile(JORDAN)
        self.aisha = normalize_mentor_profile(AISHA)

    def ranked_ids(self, student, raw_mentors):
        mentors = [self.aisha] + [normalize_mentor_profile(raw) for raw in raw_mentors]
        return [match.mentor_id for match in match_mentors(student, mentors, at=AT).matches]

    def test_star_outranks_aisha_when_eligible(self):
        self.assertEqual(self.ranked_ids(self.student, [STAR]), ["mentor-star", "mentor-123"])

    def test_disjoint_slot_tags_exclude_the_best_scorer(self):
        star = dict(STAR, availabilitySlots=["sat_morning"])
        self.assertEqual(
            hard_filter_failure(self.student, normalize_mentor_profile(star)), "no_availability_overlap"
        )
        self.assertEqual(self.ranked_ids(self.student, [star]), ["mentor-123"])

    def test_unaccepted_age_bucket_excludes_the_best_scorer(self):
        star = dict(STAR, menteeAgeRange=["adult"])
        self.assertEqual(hard_filter_failure(self.student, normalize_mentor_profile(star)), "age_range")
        self.assertEqual(self.ranked_ids(self.student, [star]), ["mentor-123"])

        by_grade = normalize_student_profile(dict(JORDAN, age=None, gradeLevel="middle_school"))
        young_star = dict(STAR, menteeAgeRange=["middle_school"])
        self.assertEqual(self.ranked_ids(by_grade, [young_star]), ["mentor-star"])

    def test_missing_slot_tags_pass_by_default(self):
        untagged_mentor = dict(STAR, availabilitySlots=[])
        self.assertEqual(self.ranked_ids(self.student, [untagged_mentor])[0], "mentor-star")

        untagged_student = normalize_student_profile(dict(JORDAN, availabilitySlots=[]))
        star = dict(STAR, availabilitySlots=["sat_morning"])
        self.assertIn("mentor-star", self.ranked_ids(untagged_student, [star]))


class RankingTests(SimpleTestCase):
    def test_ties_break_on_mentor_id(self):
        ranked = rank_mentors([scored("b", 70), scored("a", 70), scored("c", 90)])
        self.assertEqual([item.mentor_id for item in ranked], ["c", "a", "b"])

    def test_result_count_is_clamped(self):
        pool = [scored(f"m{i}", 50 + i) for i in range(8)]
        self.assertEqual(len(rank_mentors(pool)), 5)
        self.assertEqual(len(rank_mentors(pool, max_results=50)), 8)
        self.assertEqual(len(rank_mentors(pool[:2])), 2)
        with self.assertRaises(ValidationFailed):
            rank_mentors(pool, min_results=6, max_results=4)

    def test_disclaimer_when_best_is_below_threshold(self):
        student = normalize_student_profile({"support_goals": ["robotics"]})
        mentor = normalize_mentor_profile({"id": "m1", "focus_areas": ["poetry"]})
        run = match_mentors(student, [mentor], at=AT)
        self.assertEqual(len(run.matches), 1)
        self.assertEqual(run.disclaimer, BELOW_THRESHOLD_DISCLAIMER)
        self.assertTrue(run.below_threshold)

    def test_empty_pool_returns_no_matches(self):
        run = match_mentors(normalize_student_profile({}), [], at=AT)
        self.assertEqual(run.matches, [])
        self.assertEqual(run.as_dict()["metadata"]["total_returned"], 0)

    def test_score_mentors_is_deterministic(self):
        student = normalize_student_profile(JORDAN)
        mentors = [normalize_mentor_profile(AISHA)]
        first = score_mentors(student, mentors, normalize_weights(), AT)[0].composite
        second = score_mentors(student, mentors, normalize_weights(), AT)[0].composite
        self.assertEqual(first, second)
