"""
URL configuration for mentormatch_backend project.
"""
from django.http import JsonResponse
from django.urls import include, path
from rest_framework_simplejwt.views import TokenRefreshView

from core.auth import MentorMatchTokenObtainPairView
from core.schema import MentorMatchSchemaView


def api_root(_request):
    return JsonResponse({
        'status': 'ok',
        'message': 'MentorMatch backend is running',
        'schema': '/api/schema/',
    })


urlpatterns = [
    path('', api_root, name='api_root'),
    path('api/login/', MentorMatchTokenObtainPairView.as_view(), name='api_login'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/schema/', MentorMatchSchemaView.as_view(), name='api-schema'),
    path('api/', include('core.urls')),
]
