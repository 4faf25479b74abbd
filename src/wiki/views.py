"""Wiki article CRUD, workflow endpoints, and the review queue.

Views translate HTTP into workflow calls; every guard lives in
``wiki.workflow.ReviewWorkflow``.
"""

from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import action

from access_control.constants import WikiPermissions
from access_control.permissions import AUTHENTICATED, RBACPermission
from access_control.resolver import get_request_permissions
from core.exceptions import ValidationError
from core.response import BaseAPIView, BaseReadOnlyViewSet, BaseViewSet, api_response
from .models import OPEN_REVIEW_STATUSES, ArticleReview, ArticleStatus, ReviewStatus, WikiArticle
from .serializers import (
    ArticleReviewSerializer,
    AssignReviewerSerializer,
    ReviewDecisionSerializer,
    TransitionSerializer,
    WikiArticleSerializer,
)
from .workflow import ReviewWorkflow

# Holders of any of these see every article, not just published and their own.
_SEE_ALL_PERMISSIONS = (
    WikiPermissions.EDIT,
    WikiPermissions.REVIEW_ARTICLES,
    WikiPermissions.VIEW_REVIEW_QUEUE,
)


def _result_payload(result) -> dict:
    return {"status": result.status, "review_id": result.review_id}


class ArticleViewSet(BaseViewSet):
    serializer_class = WikiArticleSerializer
    permission_classes = [RBACPermission]
    required_permissions = {
        "list": WikiPermissions.VIEW,
        "retrieve": WikiPermissions.VIEW,
        "create": WikiPermissions.CREATE,
        "update": WikiPermissions.EDIT,
        "partial_update": WikiPermissions.EDIT,
        "destroy": WikiPermissions.DELETE,
        "transition": AUTHENTICATED,
        "submit_for_review": AUTHENTICATED,
        "can_edit": AUTHENTICATED,
    }
    owner_actions = ("retrieve", "update", "partial_update", "destroy")
    workflow_class = ReviewWorkflow

    def get_queryset(self):
        queryset = WikiArticle.objects.select_related("author")
        permissions = get_request_permissions(self.request)
        if not any(pid in permissions for pid in _SEE_ALL_PERMISSIONS):
            queryset = queryset.filter(Q(status=ArticleStatus.PUBLISHED) | Q(author=self.request.user))

        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if self.request.query_params.get("mine") in ("1", "true"):
            queryset = queryset.filter(author=self.request.user)
        return queryset

    def get_workflow(self) -> ReviewWorkflow:
        return self.workflow_class()

    def perform_create(self, serializer):
        serializer.save(author=self.request.user)

    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = self.get_workflow().request_transition(
            request.user.pk,
            pk,
            data["from_status"],
            data["to_status"],
            feedback=data.get("feedback"),
            internal_notes=data.get("internal_notes"),
        )
        return api_response(_result_payload(result))

    @action(detail=True, methods=["post"], url_path="submit-for-review")
    def submit_for_review(self, request, pk=None):
        result = self.get_workflow().request_transition(
            request.user.pk, pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
        )
        return api_response(_result_payload(result), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="can-edit")
    def can_edit(self, request, pk=None):
        article = self.get_object()
        workflow = self.get_workflow()
        return api_response(
            {
                "can_edit": workflow.can_edit(request.user.pk, article),
                "allowed_transitions": workflow.allowed_targets(request.user.pk, article),
            }
        )


class ReviewViewSet(BaseReadOnlyViewSet):
    """Review queue plus reviewer assignment and decisions."""

    serializer_class = ArticleReviewSerializer
    permission_classes = [RBACPermission]
    required_permissions = {
        "list": WikiPermissions.VIEW_REVIEW_QUEUE,
        "retrieve": WikiPermissions.VIEW_REVIEW_QUEUE,
        "assign": AUTHENTICATED,
        "decision": AUTHENTICATED,
    }
    workflow_class = ReviewWorkflow

    def get_queryset(self):
        queryset = ArticleReview.objects.select_related("article__author")
        if self.action != "list":
            return queryset

        wanted = self.request.query_params.get("status", "open")
        if wanted == "open":
            queryset = queryset.filter(status__in=OPEN_REVIEW_STATUSES)
        elif wanted in ReviewStatus.values:
            queryset = queryset.filter(status=wanted)
        elif wanted != "all":
            raise ValidationError(f'"{wanted}" is not a valid review status filter.')

        if self.request.query_params.get("assigned") == "me":
            queryset = queryset.filter(assigned_to=self.request.user)
        return queryset

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        serializer = AssignReviewerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = self.workflow_class().assign_reviewer(
            request.user.pk, pk, serializer.validated_data["reviewer_id"]
        )
        return api_response(ArticleReviewSerializer(review).data)

    @action(detail=True, methods=["post"])
    def decision(self, request, pk=None):
        serializer = ReviewDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = self.workflow_class().decide(
            request.user.pk,
            pk,
            data["action"],
            feedback=data.get("feedback"),
            internal_notes=data.get("internal_notes"),
        )
        return api_response(_result_payload(result))


class WikiPermissionsView(BaseAPIView):
    """Wiki capability flags for the caller, used to drive the UI."""

    permission_classes = [RBACPermission]
    required_permissions = {"GET": AUTHENTICATED}

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        permissions = get_request_permissions(request)
        flags = {
            "can_view": WikiPermissions.VIEW,
            "can_create": WikiPermissions.CREATE,
            "can_edit": WikiPermissions.EDIT,
            "can_delete": WikiPermissions.DELETE,
            "can_submit_for_review": WikiPermissions.SUBMIT_FOR_REVIEW,
            "can_view_review_queue": WikiPermissions.VIEW_REVIEW_QUEUE,
            "can_review": WikiPermissions.REVIEW_ARTICLES,
            "can_publish_directly": WikiPermissions.PUBLISH_DIRECTLY,
            "can_assign_reviewers": WikiPermissions.ASSIGN_REVIEWERS,
        }
        return api_response({name: pid in permissions for name, pid in flags.items()})


__all__ = ["ArticleViewSet", "ReviewViewSet", "WikiPermissionsView"]
