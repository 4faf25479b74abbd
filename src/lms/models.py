"""Courses whose visibility can be narrowed to specific roles."""

from django.conf import settings
from django.db import models

from core.text import unique_slug


class Course(models.Model):
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    is_published = models.BooleanField(default=False)
    restrict_by_role = models.BooleanField(default=False)
    allowed_roles = models.ManyToManyField(
        "access_control.Role",
        through="CourseRoleAccess",
        related_name="courses",
        blank=True,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="courses_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["title"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.title

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(self, self.title, "course")
        super().save(*args, **kwargs)


class CourseRoleAccess(models.Model):
    """A role allowed to see a role-restricted course."""

    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="role_access")
    role = models.ForeignKey("access_control.Role", on_delete=models.CASCADE, related_name="course_access")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("course", "role")


__all__ = ["Course", "CourseRoleAccess"]
