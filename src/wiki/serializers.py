"""Serializers for wiki articles, reviews, and workflow requests."""

from rest_framework import serializers

from .models import ArticleReview, WikiArticle


class WikiArticleSerializer(serializers.ModelSerializer):
    """Article fields; ``status`` only changes through the transition endpoints."""

    author = serializers.PrimaryKeyRelatedField(read_only=True)
    author_name = serializers.CharField(source="author.display_name", read_only=True)
    open_review = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = WikiArticle
        fields = [
            "id",
            "title",
            "slug",
            "content",
            "excerpt",
            "status",
            "author",
            "author_name",
            "open_review",
            "published_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "slug",
            "status",
            "author",
            "open_review",
            "published_at",
            "created_at",
            "updated_at",
        ]


class ArticleSummarySerializer(serializers.ModelSerializer):
    author_name = serializers.CharField(source="author.display_name", read_only=True)

    class Meta:
        model = WikiArticle
        fields = ["id", "title", "slug", "status", "author", "author_name"]
        read_only_fields = fields


class ArticleReviewSerializer(serializers.ModelSerializer):
    article = ArticleSummarySerializer(read_only=True)

    class Meta:
        model = ArticleReview
        fields = [
            "id",
            "article",
            "status",
            "submitted_by",
            "submitted_at",
            "assigned_to",
            "assigned_by",
            "assigned_at",
            "reviewed_by",
            "reviewed_at",
            "feedback",
            "internal_notes",
        ]
        read_only_fields = fields


class TransitionSerializer(serializers.Serializer):
    """Input for ``POST /wiki/articles/{id}/transition/``.

    Status values are checked by the workflow so every rejection carries the
    same error shape.
    """

    from_status = serializers.CharField()
    to_status = serializers.CharField()
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    internal_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AssignReviewerSerializer(serializers.Serializer):
    reviewer_id = serializers.UUIDField()


class ReviewDecisionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["approve", "reject"])
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    internal_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


__all__ = [
    "ArticleReviewSerializer",
    "ArticleSummarySerializer",
    "AssignReviewerSerializer",
    "ReviewDecisionSerializer",
    "TransitionSerializer",
    "WikiArticleSerializer",
]
