"""Wiki articles and their review records.

An article's lifecycle is one explicit ``status`` plus at most one
``open_review`` reference. The reference is set when the article enters
IN_REVIEW and cleared by the same conditional update that closes the review,
so "is there an open review" is answered by the row itself. The partial
unique constraint on ``ArticleReview`` backs this up at the database level.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.text import unique_slug


class ArticleStatus(models.TextChoices):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ReviewStatus(models.TextChoices):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


OPEN_REVIEW_STATUSES = (ReviewStatus.PENDING, ReviewStatus.IN_PROGRESS)


class WikiArticle(models.Model):
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    content = models.TextField(blank=True)
    excerpt = models.CharField(max_length=500, blank=True)
    status = models.CharField(max_length=20, choices=ArticleStatus.choices, default=ArticleStatus.DRAFT)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="wiki_articles")
    open_review = models.OneToOneField(
        "ArticleReview",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.title

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(self, self.title, "article")
        if not self.excerpt and self.content:
            self.excerpt = self.content[:200]
        super().save(*args, **kwargs)


class ArticleReview(models.Model):
    """One review cycle of an article, closed exactly once."""

    article = models.ForeignKey(WikiArticle, on_delete=models.CASCADE, related_name="reviews")
    status = models.CharField(max_length=20, choices=ReviewStatus.choices, default=ReviewStatus.PENDING)
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="submitted_reviews"
    )
    submitted_at = models.DateTimeField(auto_now_add=True)
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_reviews",
    )
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="completed_reviews",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    feedback = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)

    class Meta:
        ordering = ["submitted_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["article"],
                condition=Q(status__in=["PENDING", "IN_PROGRESS"]),
                name="wiki_one_open_review_per_article",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Review of {self.article_id} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REVIEW_STATUSES


__all__ = ["ArticleReview", "ArticleStatus", "OPEN_REVIEW_STATUSES", "ReviewStatus", "WikiArticle"]
