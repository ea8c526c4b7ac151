from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.views import APIView

from . import scheduling
from .actors import ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT, Actor
from .availability import availability_to_dict
from .errors import NotFound
from .models import Mentor, Session, Student
from .permissions import (
    IsAdminRole,
    IsAuthenticatedWithAppRole,
    IsStudentOrAdminRole,
    user_role,
)
from .profiles import normalize_mentor_profiles, normalize_student_profile
from .ranking import match_mentors
from .serializers import (
    AcceptRescheduleSerializer,
    DeclineSerializer,
    MatchRequestSerializer,
    MentorSerializer,
    NextAvailableQuerySerializer,
    ProposeRescheduleSerializer,
    SessionNoteSerializer,
    SessionRequestSerializer,
    SessionSerializer,
    SlotQuerySerializer,
    StudentSerializer,
)


def current_student_id(request):
    if not request.user.is_authenticated:
        return None
    return Student.objects.filter(email=request.user.email).values_list("id", flat=True).first()


def current_mentor_id(request):
    if not request.user.is_authenticated:
        return None
    return Mentor.objects.filter(email=request.user.email).values_list("id", flat=True).first()


def require_role(request, allowed_roles):
    role = user_role(request.user)
    if role not in allowed_roles:
        raise PermissionDenied("You do not have permission to access this endpoint.")


def actor_for_request(request) -> Actor:
    role = user_role(request.user)
    if role == ROLE_ADMIN:
        return Actor(request.user.pk, ROLE_ADMIN)
    if role == ROLE_STUDENT:
        student_id = current_student_id(request)
        if not student_id:
            raise PermissionDenied("Student profile not found for this user.")
        return Actor(student_id, ROLE_STUDENT)
    if role == ROLE_MENTOR:
        mentor_id = current_mentor_id(request)
        if not mentor_id:
            raise PermissionDenied("Mentor profile not found for this user.")
        return Actor(mentor_id, ROLE_MENTOR)
    raise PermissionDenied("You do not have permission to access this endpoint.")


class MatchView(APIView):
    """Rank caller-supplied mentor profiles for a caller-supplied student profile."""

    permission_classes = [IsAuthenticatedWithAppRole]

    def post(self, request):
        serializer = MatchRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        student = normalize_student_profile(data["student_profile"])
        mentors = normalize_mentor_profiles(data["mentor_profiles"])
        options = scheduling.matching_defaults()
        for key in ("weights", "threshold", "min_results", "max_results"):
            if key in data:
                options[key] = data[key]
        run = match_mentors(student, mentors, **options)
        return Response(run.as_dict())


class StudentViewSet(viewsets.ModelViewSet):
    queryset = Student.objects.all().order_by("-created_at")
    serializer_class = StudentSerializer
    permission_classes = [IsStudentOrAdminRole]

    def get_permissions(self):
        if self.action in {"create", "destroy"}:
            return [IsAdminRole()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = super().get_queryset()
        role = user_role(self.request.user)
        if role == ROLE_ADMIN:
            email = self.request.query_params.get("email")
            if email:
                queryset = queryset.filter(email=email)
            return queryset
        if role == ROLE_STUDENT:
            my_id = current_student_id(self.request)
            return queryset.filter(id=my_id) if my_id else queryset.none()
        return queryset.none()


class MentorViewSet(viewsets.ModelViewSet):
    queryset = Mentor.objects.all().order_by("-created_at")
    serializer_class = MentorSerializer
    permission_classes = [IsAuthenticatedWithAppRole]

    def get_permissions(self):
        if self.action in {"create", "destroy"}:
            return [IsAdminRole()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.request.query_params.get("active") in {"1", "true", "True"}:
            queryset = queryset.filter(is_active=True)
        return queryset

    def perform_update(self, serializer):
        role = user_role(self.request.user)
        if role == ROLE_MENTOR and serializer.instance.id != current_mentor_id(self.request):
            raise PermissionDenied("You can only edit your own mentor profile.")
        if role not in {ROLE_MENTOR, ROLE_ADMIN}:
            raise PermissionDenied("Only mentors and admins can edit mentor profiles.")
        serializer.save()

    @action(detail=False, methods=["get"], url_path="recommended")
    def recommended(self, request):
        require_role(request, {ROLE_STUDENT, ROLE_ADMIN})
        actor = actor_for_request(request)
        student_id = actor.user_id if actor.role == ROLE_STUDENT else request.query_params.get("student_id")
        if not student_id:
            return Response({"detail": "Provide student_id."}, status=status.HTTP_400_BAD_REQUEST)
        student = Student.objects.filter(id=student_id).first() if str(student_id).isdigit() else None
        if student is None:
            raise NotFound(f"Student {student_id} not found.")

        run = scheduling.recommend_for_student(
            actor, normalize_student_profile(student.as_profile_input())
        )
        return Response(run.as_dict())

    @action(detail=True, methods=["get", "put"], url_path="availability")
    def availability(self, request, pk=None):
        mentor = self.get_object()
        if request.method == "PUT":
            saved = scheduling.save_mentor_availability(actor_for_request(request), mentor.id, request.data)
            return Response(availability_to_dict(saved))
        current = scheduling.get_mentor_availability(mentor.id)
        if current is None:
            raise NotFound("This mentor has not set availability yet.")
        return Response(availability_to_dict(current))

    @action(detail=True, methods=["get"], url_path="slots")
    def slots(self, request, pk=None):
        mentor = self.get_object()
        query = SlotQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        target_date = query.validated_data["date"]
        duration = query.validated_data.get("duration")

        available = scheduling.get_available_slots(mentor.id, target_date, duration)
        return Response(
            {
                "mentor_id": mentor.id,
                "date": target_date.isoformat(),
                "duration": duration,
                "slots": [slot.as_dict() for slot in available],
            }
        )

    @action(detail=True, methods=["get"], url_path="next-available")
    def next_available(self, request, pk=None):
        mentor = self.get_object()
        query = NextAvailableQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        found = scheduling.next_available(mentor.id, days=query.validated_data.get("days"))
        return Response(
            {
                "mentor_id": mentor.id,
                "has_availability": found is not None,
                "next_available_date": found.isoformat() if found else None,
            }
        )


class SessionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Session.objects.all().select_related("mentor", "student").order_by("-requested_start")
    serializer_class = SessionSerializer
    permission_classes = [IsAuthenticatedWithAppRole]

    def get_queryset(self):
        queryset = super().get_queryset()
        role = user_role(self.request.user)
        if role == ROLE_ADMIN:
            pass
        elif role == ROLE_STUDENT:
            my_id = current_student_id(self.request)
            queryset = queryset.filter(student_id=my_id) if my_id else queryset.none()
        elif role == ROLE_MENTOR:
            my_id = current_mentor_id(self.request)
            queryset = queryset.filter(mentor_id=my_id) if my_id else queryset.none()
        else:
            queryset = queryset.none()
        status_value = self.request.query_params.get("status")
        if status_value:
            queryset = queryset.filter(status=status_value)
        return queryset

    def get_serializer_context(self):
        context = super().get_serializer_context()
        request = self.request
        if request is not None and user_role(request.user) is not None:
            context["actor"] = actor_for_request(request)
        return context

    def _respond(self, record, status_code=status.HTTP_200_OK):
        session = Session.objects.select_related("mentor", "student").get(pk=record.session_id)
        return Response(self.get_serializer(session).data, status=status_code)

    def create(self, request, *args, **kwargs):
        require_role(request, {ROLE_STUDENT})
        serializer = SessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = scheduling.create_session_request(
            actor_for_request(request),
            mentor_id=data["mentor"],
            start=data["start"],
            end=data["end"],
            connection_preference=data["connection_preference"],
            student_notes=data["student_notes"],
            student_timezone=data["student_timezone"],
        )
        return self._respond(record, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="confirm")
    def confirm(self, request, pk=None):
        return self._respond(scheduling.confirm_session(actor_for_request(request), pk))

    @action(detail=True, methods=["post"], url_path="decline")
    def decline(self, request, pk=None):
        serializer = DeclineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = scheduling.decline_session(
            actor_for_request(request), pk, serializer.validated_data["reason"]
        )
        return self._respond(record)

    @action(detail=True, methods=["post"], url_path="propose-reschedule")
    def propose_reschedule(self, request, pk=None):
        serializer = ProposeRescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = scheduling.propose_reschedule(
            actor_for_request(request), pk, serializer.validated_data["options"]
        )
        return self._respond(record)

    @action(detail=True, methods=["post"], url_path="accept-reschedule")
    def accept_reschedule(self, request, pk=None):
        serializer = AcceptRescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = scheduling.accept_reschedule(
            actor_for_request(request), pk, serializer.validated_data["option_index"]
        )
        return self._respond(record)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        return self._respond(scheduling.cancel_session(actor_for_request(request), pk))

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        return self._respond(scheduling.complete_session(actor_for_request(request), pk))

    @action(detail=True, methods=["get", "post"], url_path="notes")
    def notes(self, request, pk=None):
        actor = actor_for_request(request)
        if request.method == "POST":
            serializer = SessionNoteSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            note = scheduling.add_session_note(
                actor,
                pk,
                serializer.validated_data["note"],
                serializer.validated_data.get("follow_ups", ""),
            )
            return Response(note.as_dict(), status=status.HTTP_201_CREATED)
        return Response([note.as_dict() for note in scheduling.list_session_notes(actor, pk)])

    @action(detail=False, methods=["post"], url_path="reminder-sweep", permission_classes=[IsAdminRole])
    def reminder_sweep(self, request):
        flagged = scheduling.run_reminder_sweep()
        return Response(
            {
                "processed": len(flagged),
                "reminders": [
                    {"session_id": due.session_id, "horizon": due.horizon, "start": due.start.isoformat()}
                    for due in flagged
                ],
            }
        )
