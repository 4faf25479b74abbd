"""In-app notification rows written by the default dispatcher."""

from django.conf import settings
from django.db import models


class Notification(models.Model):
    class Type(models.TextChoices):
        ARTICLE_SUBMITTED_FOR_REVIEW = "ARTICLE_SUBMITTED_FOR_REVIEW"
        ARTICLE_REVIEW_ASSIGNED = "ARTICLE_REVIEW_ASSIGNED"
        ARTICLE_APPROVED = "ARTICLE_APPROVED"
        ARTICLE_REJECTED = "ARTICLE_REJECTED"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=40, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    reference_type = models.CharField(max_length=30, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    action_url = models.CharField(max_length=255, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["user", "is_read"], name="notification_user_unread")]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.type} -> {self.user_id}"


__all__ = ["Notification"]
