from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.models import update_last_login
from rest_framework import exceptions, serializers
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView

from .actors import ROLE_MENTOR, ROLE_STUDENT
from .models import Mentor, Student
from .permissions import user_role


def profile_id_for(user, role):
    """Id of the Student or Mentor row linked to ``user`` by email."""
    model = {ROLE_STUDENT: Student, ROLE_MENTOR: Mentor}.get(role)
    if model is None or not user.email:
        return None
    return model.objects.filter(email__iexact=user.email).values_list("id", flat=True).first()


class MentorMatchTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Email + password login. Tokens carry the app role and profile id."""

    default_error_messages = {
        "no_active_account": "No active account found with the given credentials",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields.pop(self.username_field, None)
        self.fields["email"] = serializers.EmailField(write_only=True)
        self.fields["password"] = serializers.CharField(write_only=True)

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        role = user_role(user)
        token["role"] = role
        token["email"] = user.email
        token["profile_id"] = profile_id_for(user, role)
        return token

    def _fail(self):
        raise exceptions.AuthenticationFailed(
            self.error_messages["no_active_account"],
            "no_active_account",
        )

    def validate(self, attrs):
        email = attrs.get("email", "").strip().lower()
        user_model = get_user_model()
        candidate = user_model.objects.filter(email__iexact=email).first()
        if candidate is None:
            self._fail()

        credentials = {
            user_model.USERNAME_FIELD: getattr(candidate, user_model.USERNAME_FIELD),
            "password": attrs.get("password", ""),
        }
        request = self.context.get("request")
        if request is not None:
            credentials["request"] = request
        self.user = authenticate(**credentials)
        if not api_settings.USER_AUTHENTICATION_RULE(self.user):
            self._fail()

        refresh = self.get_token(self.user)
        if api_settings.UPDATE_LAST_LOGIN:
            update_last_login(None, self.user)
        return {
            "refresh": str(refresh),
            "access": str(refresh.access_token),
            "role": refresh["role"],
            "profile_id": refresh["profile_id"],
        }


class MentorMatchTokenObtainPairView(TokenObtainPairView):
    serializer_class = MentorMatchTokenObtainPairSerializer
