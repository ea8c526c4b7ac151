from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api_views import MatchView, MentorViewSet, SessionViewSet, StudentViewSet

router = DefaultRouter()
router.register(r"students", StudentViewSet, basename="student")
router.register(r"mentors", MentorViewSet, basename="mentor")
router.register(r"sessions", SessionViewSet, basename="session")


urlpatterns = [
    path("match/", MatchView.as_view(), name="match"),
    path("", include(router.urls)),
]
