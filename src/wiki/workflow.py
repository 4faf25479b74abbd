"""Article review workflow.

Every article status change goes through :class:`ReviewWorkflow`. A request
names the status the caller saw (``from_status``) and the one it wants
(``to_status``); the pair must be one of ``TRANSITIONS``. The write is a
compare-and-swap: ``UPDATE ... WHERE status = from_status`` on the article and,
for review-closing intents, ``WHERE status IN (open)`` on the review, both in
one transaction. When either update touches no row somebody else got there
first and the whole change rolls back.

Notifications are registered with ``transaction.on_commit``, so they go out
only once the outermost transaction commits. A failing dispatcher is logged
and never undoes the transition.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from access_control.constants import WikiPermissions
from access_control.hierarchy import HierarchyGate
from access_control.resolver import PermissionResolver
from core.exceptions import (
    Forbidden,
    InvalidTransition,
    NotFound,
    ReviewAlreadyClosed,
    TransitionFailed,
    Unauthorized,
    ValidationError,
)
from notifications.dispatch import ArticleRef, BaseNotificationDispatcher, get_dispatcher
from .models import OPEN_REVIEW_STATUSES, ArticleReview, ArticleStatus, ReviewStatus, WikiArticle

logger = logging.getLogger(__name__)

User = get_user_model()

SUBMIT = "submit"
PUBLISH = "publish"
APPROVE = "approve"
REJECT = "reject"
CANCEL = "cancel"
ARCHIVE = "archive"
RESTORE = "restore"

CANCEL_NOTE = "Review cancelled by the author."
ARCHIVE_NOTE = "Article was archived before the review completed."


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    intent: str


TRANSITIONS: tuple[Transition, ...] = (
    Transition(ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW, SUBMIT),
    Transition(ArticleStatus.DRAFT, ArticleStatus.PUBLISHED, PUBLISH),
    Transition(ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED, APPROVE),
    Transition(ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, REJECT),
    Transition(ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, CANCEL),
    Transition(ArticleStatus.DRAFT, ArticleStatus.ARCHIVED, ARCHIVE),
    Transition(ArticleStatus.IN_REVIEW, ArticleStatus.ARCHIVED, ARCHIVE),
    Transition(ArticleStatus.PUBLISHED, ArticleStatus.ARCHIVED, ARCHIVE),
    Transition(ArticleStatus.ARCHIVED, ArticleStatus.DRAFT, RESTORE),
)


@dataclass(frozen=True)
class TransitionResult:
    status: str
    review_id: Optional[int] = None


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


class ReviewWorkflow:
    """State machine over ``WikiArticle.status`` with permission guards."""

    def __init__(
        self,
        resolver: Optional[PermissionResolver] = None,
        hierarchy: Optional[HierarchyGate] = None,
        dispatcher: Optional[BaseNotificationDispatcher] = None,
    ):
        self.resolver = resolver or PermissionResolver()
        self.hierarchy = hierarchy or HierarchyGate(self.resolver)
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> BaseNotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_dispatcher()
        return self._dispatcher

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_transition(
        self,
        user_id,
        article_id,
        from_status: str,
        to_status: str,
        feedback: Optional[str] = None,
        internal_notes: Optional[str] = None,
    ) -> TransitionResult:
        """Move ``article_id`` from ``from_status`` to ``to_status`` on behalf of ``user_id``.

        Raises ``ValidationError`` for unknown statuses or missing reject
        feedback, ``InvalidTransition`` when the pair is not in the table or
        the article is no longer in ``from_status``, ``Forbidden`` when the
        guard fails, ``NotFound`` for a missing article or open review,
        ``ReviewAlreadyClosed`` when a concurrent call closed the review
        first, and ``TransitionFailed`` when the write itself fails.
        """
        return self._run(user_id, article_id, from_status, to_status, feedback, internal_notes)

    def decide(
        self,
        user_id,
        review_id,
        action: str,
        feedback: Optional[str] = None,
        internal_notes: Optional[str] = None,
    ) -> TransitionResult:
        """Approve or reject the review ``review_id``."""
        if action not in (APPROVE, REJECT):
            raise ValidationError('Invalid action. Must be "approve" or "reject".')
        if user_id is None:
            raise Unauthorized()

        review = self._get_review(review_id)
        if not review.is_open:
            raise ReviewAlreadyClosed()

        target = ArticleStatus.PUBLISHED if action == APPROVE else ArticleStatus.DRAFT
        return self._run(
            user_id,
            review.article_id,
            ArticleStatus.IN_REVIEW,
            target,
            feedback,
            internal_notes,
            intent=action,
            review_id=review.pk,
        )

    def _run(
        self,
        user_id,
        article_id,
        from_status,
        to_status,
        feedback,
        internal_notes,
        intent: Optional[str] = None,
        review_id: Optional[int] = None,
    ) -> TransitionResult:
        if user_id is None:
            raise Unauthorized()

        for value in (from_status, to_status):
            if value not in ArticleStatus.values:
                raise ValidationError(f'"{value}" is not a valid article status.')

        candidates = [t for t in TRANSITIONS if t.source == from_status and t.target == to_status]
        if intent is not None:
            candidates = [t for t in candidates if t.intent == intent]
        if not candidates:
            raise InvalidTransition(f"Cannot move an article from {from_status} to {to_status}.")

        article = self._get_article(article_id)
        if article.status != from_status:
            raise InvalidTransition(
                f"Article is {article.status}, not {from_status}. Refresh and try again."
            )

        if review_id is not None and article.open_review_id != review_id:
            raise ReviewAlreadyClosed()

        transition = self._pick(candidates, article, user_id, feedback)
        permissions = self.resolver.resolve(user_id)
        reason = self._guard_reason(transition, article, user_id, permissions)
        if reason:
            logger.info(
                "Transition %s denied for user %s on article %s: %s",
                transition.intent,
                user_id,
                article.pk,
                reason,
            )
            raise Forbidden(reason)

        if transition.intent == REJECT and _is_blank(feedback):
            raise ValidationError("Feedback is required when rejecting an article.")

        if transition.intent in (APPROVE, REJECT, CANCEL) and article.open_review_id is None:
            raise NotFound("No open review exists for this article.")

        actor = User.objects.filter(pk=user_id).first()
        if actor is None:
            raise Unauthorized()

        result = self._apply(transition, article, actor, feedback, internal_notes)
        logger.info(
            "Article %s moved %s -> %s by %s (%s)",
            article.pk,
            transition.source,
            transition.target,
            actor.pk,
            transition.intent,
        )
        transaction.on_commit(lambda: self._notify(transition, article, actor, result, feedback))
        return result

    @staticmethod
    def _pick(candidates, article, user_id, feedback) -> Transition:
        if len(candidates) == 1:
            return candidates[0]
        # IN_REVIEW -> DRAFT: the author withdrawing without feedback cancels,
        # anything else is a rejection.
        is_author = str(article.author_id) == str(user_id)
        wanted = CANCEL if is_author and _is_blank(feedback) else REJECT
        return next(t for t in candidates if t.intent == wanted)

    @staticmethod
    def _guard_reason(transition: Transition, article: WikiArticle, user_id, permissions) -> Optional[str]:
        """Return why ``user_id`` may not take ``transition``, or None if allowed."""
        is_author = str(article.author_id) == str(user_id)
        intent = transition.intent

        if intent == SUBMIT:
            if not is_author:
                return "Only the author can submit their article for review"
            if WikiPermissions.SUBMIT_FOR_REVIEW not in permissions:
                return "You do not have permission to submit articles for review"
        elif intent == PUBLISH:
            if WikiPermissions.PUBLISH_DIRECTLY not in permissions:
                return "You do not have permission to publish directly. Please submit for review."
        elif intent == APPROVE:
            if WikiPermissions.REVIEW_ARTICLES not in permissions:
                return "You do not have permission to approve articles"
        elif intent == REJECT:
            if WikiPermissions.REVIEW_ARTICLES not in permissions:
                return "You do not have permission to reject articles"
        elif intent == CANCEL:
            if not is_author:
                return "Only the author can cancel their review request"
        elif intent == ARCHIVE:
            if not (is_author or WikiPermissions.EDIT in permissions):
                return "You do not have permission to archive this article"
        elif intent == RESTORE:
            if not (is_author or WikiPermissions.EDIT in permissions):
                return "You do not have permission to restore this article"
        return None

    def _apply(self, transition, article, actor, feedback, internal_notes) -> TransitionResult:
        now = timezone.now()
        intent = transition.intent
        try:
            with transaction.atomic():
                article_qs = WikiArticle.objects.filter(pk=article.pk, status=transition.source)

                if intent == SUBMIT:
                    moved = article_qs.filter(open_review__isnull=True).update(
                        status=transition.target, updated_at=now
                    )
                    if not moved:
                        raise InvalidTransition("Article changed while submitting. Refresh and try again.")
                    review = ArticleReview.objects.create(
                        article_id=article.pk, submitted_by=actor, status=ReviewStatus.PENDING
                    )
                    WikiArticle.objects.filter(pk=article.pk).update(open_review=review)
                    return TransitionResult(status=transition.target, review_id=review.pk)

                review_id = article.open_review_id
                if review_id is not None and transition.source == ArticleStatus.IN_REVIEW:
                    review_fields = self._closing_fields(intent, actor, now, feedback, internal_notes)
                    closed = ArticleReview.objects.filter(pk=review_id, status__in=OPEN_REVIEW_STATUSES).update(
                        **review_fields
                    )
                    article_fields = {"status": transition.target, "open_review": None, "updated_at": now}
                    if transition.target == ArticleStatus.PUBLISHED:
                        article_fields["published_at"] = now
                    moved = article_qs.filter(open_review_id=review_id).update(**article_fields)
                    if not (closed and moved):
                        logger.warning(
                            "Lost race closing review %s on article %s (%s)", review_id, article.pk, intent
                        )
                        raise ReviewAlreadyClosed()
                    return TransitionResult(status=transition.target, review_id=review_id)

                article_fields = {"status": transition.target, "updated_at": now}
                if transition.target == ArticleStatus.PUBLISHED:
                    article_fields["published_at"] = now
                if not article_qs.update(**article_fields):
                    logger.warning("Lost race moving article %s (%s)", article.pk, intent)
                    raise InvalidTransition("Article changed while updating. Refresh and try again.")
                return TransitionResult(status=transition.target)
        except IntegrityError:
            logger.warning("Article %s already has an open review", article.pk)
            raise InvalidTransition("This article already has an open review.")
        except DatabaseError:
            logger.exception("Persisting transition %s for article %s failed", intent, article.pk)
            raise TransitionFailed()

    @staticmethod
    def _closing_fields(intent, actor, now, feedback, internal_notes) -> dict:
        fields = {"reviewed_by": actor, "reviewed_at": now}
        if intent == APPROVE:
            fields["status"] = ReviewStatus.APPROVED
            fields["feedback"] = feedback or ""
        elif intent == REJECT:
            fields["status"] = ReviewStatus.REJECTED
            fields["feedback"] = feedback.strip()
        elif intent == CANCEL:
            fields["status"] = ReviewStatus.REJECTED
            fields["feedback"] = CANCEL_NOTE
        else:
            fields["status"] = ReviewStatus.REJECTED
            fields["feedback"] = ARCHIVE_NOTE
        if internal_notes:
            fields["internal_notes"] = internal_notes
        return fields

    # ------------------------------------------------------------------
    # Reviewer assignment
    # ------------------------------------------------------------------

    def assign_reviewer(self, user_id, review_id, assignee_id) -> ArticleReview:
        """Assign ``assignee_id`` to an open review and move it to IN_PROGRESS."""
        if user_id is None:
            raise Unauthorized()

        review = self._get_review(review_id)
        if not self.resolver.has_permission(user_id, WikiPermissions.ASSIGN_REVIEWERS):
            raise Forbidden("You do not have permission to assign reviewers")
        if not review.is_open:
            raise ReviewAlreadyClosed("Cannot assign a reviewer to a completed review.")

        if assignee_id in (None, ""):
            raise ValidationError("A reviewer must be selected.")
        assignee = self._get_user(assignee_id, "Reviewer not found.")
        if not self.resolver.has_permission(assignee.pk, WikiPermissions.REVIEW_ARTICLES):
            raise ValidationError("The selected user does not have permission to review articles")
        if str(assignee.pk) != str(user_id) and not self.hierarchy.can_manage(user_id, assignee.pk):
            raise Forbidden("You can only assign reviewers with lower authority than your own.")

        actor = self._get_user(user_id, "User not found.")
        try:
            with transaction.atomic():
                updated = ArticleReview.objects.filter(pk=review.pk, status__in=OPEN_REVIEW_STATUSES).update(
                    status=ReviewStatus.IN_PROGRESS,
                    assigned_to=assignee,
                    assigned_by=actor,
                    assigned_at=timezone.now(),
                )
                if not updated:
                    raise ReviewAlreadyClosed("Cannot assign a reviewer to a completed review.")
        except DatabaseError:
            logger.exception("Assigning reviewer to review %s failed", review.pk)
            raise TransitionFailed()

        review.refresh_from_db()
        logger.info("Review %s assigned to %s by %s", review.pk, assignee.pk, actor.pk)
        ref = self._ref(review.article)
        transaction.on_commit(
            lambda: self._safe_dispatch("notify_assignment", ref, review.pk, assignee.pk, actor.display_name)
        )
        return review

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    def allowed_targets(self, user_id, article: WikiArticle) -> list[str]:
        """Statuses ``user_id`` could move ``article`` to right now."""
        if user_id is None:
            return []
        permissions = self.resolver.resolve(user_id)
        targets = set()
        for transition in TRANSITIONS:
            if transition.source != article.status:
                continue
            if transition.intent in (APPROVE, REJECT, CANCEL) and article.open_review_id is None:
                continue
            if self._guard_reason(transition, article, user_id, permissions) is None:
                targets.add(transition.target)
        return sorted(targets)

    def can_edit(self, user_id, article: WikiArticle) -> bool:
        if user_id is None:
            return False
        if str(article.author_id) == str(user_id):
            return True
        return self.resolver.has_permission(user_id, WikiPermissions.EDIT)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _get_article(article_id) -> WikiArticle:
        try:
            article = WikiArticle.objects.filter(pk=article_id).first()
        except (DjangoValidationError, ValueError, TypeError):
            article = None
        if article is None:
            raise NotFound("Article not found.")
        return article

    @staticmethod
    def _get_review(review_id) -> ArticleReview:
        try:
            review = ArticleReview.objects.select_related("article").filter(pk=review_id).first()
        except (DjangoValidationError, ValueError, TypeError):
            review = None
        if review is None:
            raise NotFound("Review not found.")
        return review

    @staticmethod
    def _get_user(user_id, message: str):
        try:
            user = User.objects.filter(pk=user_id, is_active=True).first()
        except (DjangoValidationError, ValueError, TypeError):
            user = None
        if user is None:
            raise NotFound(message)
        return user

    @staticmethod
    def _ref(article: WikiArticle) -> ArticleRef:
        return ArticleRef(id=article.pk, title=article.title, slug=article.slug)

    def _notify(self, transition, article, actor, result, feedback) -> None:
        ref = self._ref(article)
        if transition.intent == SUBMIT:
            try:
                reviewer_ids = [u.pk for u in self.resolver.users_with_permission(WikiPermissions.REVIEW_ARTICLES)]
            except DatabaseError:
                logger.exception("Looking up reviewers for article %s failed", article.pk)
                return
            self._safe_dispatch("notify_submission", ref, actor.pk, actor.display_name, reviewer_ids)
        elif transition.intent == APPROVE:
            self._safe_dispatch("notify_approval", ref, article.author_id, actor.display_name)
        elif transition.intent == REJECT:
            self._safe_dispatch("notify_rejection", ref, article.author_id, actor.display_name, feedback.strip())

    def _safe_dispatch(self, method: str, *args) -> None:
        try:
            getattr(self.dispatcher, method)(*args)
        except Exception:
            logger.exception("Notification %s failed", method)


__all__ = [
    "TRANSITIONS",
    "Transition",
    "TransitionResult",
    "ReviewWorkflow",
]
