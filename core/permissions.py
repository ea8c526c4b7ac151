from django.core.exceptions import ObjectDoesNotExist
from rest_framework.permissions import BasePermission

from .actors import APP_ROLES, ROLE_ADMIN, ROLE_STUDENT


def user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return ROLE_ADMIN
    try:
        return user.userprofile.role
    except ObjectDoesNotExist:
        return None


class IsAuthenticatedWithAppRole(BasePermission):
    def has_permission(self, request, view):
        role = user_role(request.user)
        return bool(role in APP_ROLES)


class IsAdminRole(BasePermission):
    def has_permission(self, request, view):
        return user_role(request.user) == ROLE_ADMIN


class IsStudentOrAdminRole(BasePermission):
    def has_permission(self, request, view):
        role = user_role(request.user)
        return bool(role in {ROLE_STUDENT, ROLE_ADMIN})
