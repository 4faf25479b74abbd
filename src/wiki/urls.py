"""Routing for wiki articles, reviews, and capability flags."""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ArticleViewSet, ReviewViewSet, WikiPermissionsView

router = DefaultRouter()
router.register(r"articles", ArticleViewSet, basename="wiki-article")
router.register(r"reviews", ReviewViewSet, basename="wiki-review")

urlpatterns = [
    path("permissions/", WikiPermissionsView.as_view(), name="wiki-permissions"),
    path("", include(router.urls)),
]
