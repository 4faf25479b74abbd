"""Notification collaborator used by the review workflow.

The workflow only talks to ``BaseNotificationDispatcher``; which concrete
class runs is chosen by ``settings.NOTIFICATION_DISPATCHER``. Dispatch is
best-effort: the workflow calls it after its transaction commits and logs,
rather than propagates, any failure.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

from .models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArticleRef:
    id: int
    title: str
    slug: str


class BaseNotificationDispatcher:
    """No-op dispatcher; subclasses deliver somewhere."""

    def notify_submission(self, article: ArticleRef, submitter_id, submitter_name: str, reviewer_ids: Iterable) -> None:
        pass

    def notify_assignment(self, article: ArticleRef, review_id: int, assignee_id, assigner_name: str) -> None:
        pass

    def notify_approval(self, article: ArticleRef, author_id, reviewer_name: str) -> None:
        pass

    def notify_rejection(self, article: ArticleRef, author_id, reviewer_name: str, feedback: Optional[str]) -> None:
        pass


class InAppNotificationDispatcher(BaseNotificationDispatcher):
    """Write ``Notification`` rows shown in the portal's notification tray."""

    def notify_submission(self, article, submitter_id, submitter_name, reviewer_ids):
        recipients = [rid for rid in reviewer_ids if str(rid) != str(submitter_id)]
        if not recipients:
            return
        self._create_many(
            recipients,
            type=Notification.Type.ARTICLE_SUBMITTED_FOR_REVIEW,
            title="New Article Awaiting Review",
            message=f'{submitter_name} has submitted "{article.title}" for review.',
            reference_type="article",
            reference_id=str(article.id),
            action_url="/wiki/review",
        )

    def notify_assignment(self, article, review_id, assignee_id, assigner_name):
        self._create_many(
            [assignee_id],
            type=Notification.Type.ARTICLE_REVIEW_ASSIGNED,
            title="Article Review Assigned",
            message=f'{assigner_name} has assigned you to review "{article.title}".',
            reference_type="review",
            reference_id=str(review_id),
            action_url=f"/wiki/review/{review_id}",
        )

    def notify_approval(self, article, author_id, reviewer_name):
        self._create_many(
            [author_id],
            type=Notification.Type.ARTICLE_APPROVED,
            title="Article Approved",
            message=f'Your article "{article.title}" has been approved and published by {reviewer_name}.',
            reference_type="article",
            reference_id=str(article.id),
            action_url=f"/wiki/article/{article.slug}",
        )

    def notify_rejection(self, article, author_id, reviewer_name, feedback):
        detail = f' Feedback: "{feedback}"' if feedback else " Please review the feedback and make revisions."
        self._create_many(
            [author_id],
            type=Notification.Type.ARTICLE_REJECTED,
            title="Article Needs Revision",
            message=f'Your article "{article.title}" was returned by {reviewer_name}.{detail}',
            reference_type="article",
            reference_id=str(article.id),
            action_url="/wiki/my-articles",
        )

    @staticmethod
    def _create_many(user_ids, **fields) -> None:
        # Own savepoint: a failed insert must not poison the caller's transaction.
        with transaction.atomic():
            Notification.objects.bulk_create([Notification(user_id=uid, **fields) for uid in user_ids])


def get_dispatcher() -> BaseNotificationDispatcher:
    """Instantiate the dispatcher named by ``settings.NOTIFICATION_DISPATCHER``."""
    path = getattr(settings, "NOTIFICATION_DISPATCHER", None)
    if not path:
        return BaseNotificationDispatcher()
    return import_string(path)()


__all__ = ["ArticleRef", "BaseNotificationDispatcher", "InAppNotificationDispatcher", "get_dispatcher"]
