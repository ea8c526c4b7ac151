from rest_framework import serializers

from .errors import ValidationFailed
from .lifecycle import CONNECTION_PREFERENCES, RescheduleOption, allowed_actions
from .models import Mentor, Session, SessionNote, Student
from .profiles import normalize_tags
from .repositories import session_to_record
from .timezones import is_valid_zone


TAG_LIST_FIELDS = {
    Student: [
        "support_goals",
        "learning_styles",
        "communication_methods",
        "mentor_traits",
        "availability_slots",
    ],
    Mentor: [
        "focus_areas",
        "expertise_areas",
        "mentee_age_range",
        "communication_methods",
        "availability_slots",
        "mentoring_approach",
    ],
}


class ProfileTagsMixin:
    """Normalizes tag lists and checks the timezone before a profile is saved."""

    def validate_timezone(self, value):
        if value and not is_valid_zone(value):
            raise serializers.ValidationError("Must be an IANA timezone name such as 'America/New_York'.")
        return value

    def validate(self, attrs):
        attrs = super().validate(attrs)
        for field in TAG_LIST_FIELDS[self.Meta.model]:
            if field not in attrs:
                continue
            try:
                attrs[field] = list(normalize_tags(attrs[field], field))
            except ValidationFailed as exc:
                raise serializers.ValidationError(exc.detail)
        return attrs


class StudentSerializer(ProfileTagsMixin, serializers.ModelSerializer):
    class Meta:
        model = Student
        fields = "__all__"


class MentorSerializer(ProfileTagsMixin, serializers.ModelSerializer):
    class Meta:
        model = Mentor
        fields = "__all__"


class SessionSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    mentor_name = serializers.CharField(source="mentor.full_name", read_only=True)
    allowed_actions = serializers.SerializerMethodField()

    class Meta:
        model = Session
        fields = "__all__"
        read_only_fields = [field.name for field in Session._meta.fields]

    def get_allowed_actions(self, obj):
        actor = self.context.get("actor")
        if actor is None:
            return []
        return allowed_actions(session_to_record(obj), actor)


class SessionRequestSerializer(serializers.Serializer):
    mentor = serializers.IntegerField(min_value=1)
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    connection_preference = serializers.ChoiceField(choices=CONNECTION_PREFERENCES, default="chat")
    student_notes = serializers.CharField(required=False, allow_blank=True, default="")
    student_timezone = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError({"end": ["End time must be after start time."]})
        return attrs


class DeclineSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, default="")


class RescheduleOptionSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()

    def to_internal_value(self, data):
        values = super().to_internal_value(data)
        return RescheduleOption(start=values["start"], end=values["end"])


class ProposeRescheduleSerializer(serializers.Serializer):
    options = RescheduleOptionSerializer(many=True, allow_empty=True)


class AcceptRescheduleSerializer(serializers.Serializer):
    option_index = serializers.IntegerField()


class SessionNoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = SessionNote
        fields = ["id", "session", "mentor", "note", "follow_ups", "created_at"]
        read_only_fields = ["id", "session", "mentor", "created_at"]


class MatchRequestSerializer(serializers.Serializer):
    student_profile = serializers.DictField()
    mentor_profiles = serializers.ListField(child=serializers.DictField(), allow_empty=True)
    weights = serializers.DictField(child=serializers.FloatField(), required=False)
    threshold = serializers.FloatField(required=False, min_value=0, max_value=100)
    min_results = serializers.IntegerField(required=False, min_value=1)
    max_results = serializers.IntegerField(required=False, min_value=1)


class SlotQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    duration = serializers.IntegerField(required=False, min_value=1)


class NextAvailableQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=60)
