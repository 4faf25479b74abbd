"""Root URL configuration for the clinic portal API."""
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView

urlpatterns = [
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("auth/", include("authentication.urls")),
    path("", include("access_control.urls")),
    path("wiki/", include("wiki.urls")),
    path("lms/", include("lms.urls")),
]
