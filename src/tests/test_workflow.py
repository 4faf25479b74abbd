"""ReviewWorkflow transitions, guards, concurrency, and notifications."""

from __future__ import annotations

from unittest import mock

from django.db import DatabaseError, IntegrityError, transaction
from django.test import TestCase

from core.exceptions import (
    Forbidden,
    InvalidTransition,
    NotFound,
    ReviewAlreadyClosed,
    TransitionFailed,
    Unauthorized,
    ValidationError,
)
from notifications.dispatch import BaseNotificationDispatcher, InAppNotificationDispatcher
from notifications.models import Notification
from tests.utils import create_article, create_article_in_review, create_role, create_user, grant
from wiki.models import ArticleReview, ArticleStatus, ReviewStatus
from wiki.workflow import ARCHIVE_NOTE, CANCEL_NOTE, ReviewWorkflow


class RecordingDispatcher(BaseNotificationDispatcher):
    def __init__(self):
        self.calls = []

    def notify_submission(self, article, submitter_id, submitter_name, reviewer_ids):
        self.calls.append(("submission", article, submitter_id, submitter_name, list(reviewer_ids)))

    def notify_assignment(self, article, review_id, assignee_id, assigner_name):
        self.calls.append(("assignment", article, review_id, assignee_id, assigner_name))

    def notify_approval(self, article, author_id, reviewer_name):
        self.calls.append(("approval", article, author_id, reviewer_name))

    def notify_rejection(self, article, author_id, reviewer_name, feedback):
        self.calls.append(("rejection", article, author_id, reviewer_name, feedback))


class BrokenDispatcher(BaseNotificationDispatcher):
    def notify_approval(self, article, author_id, reviewer_name):
        raise RuntimeError("mail server down")


class WorkflowTestCase(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.staff_role = create_role(
            "Staff", 3, ["wiki.view", "wiki.create", "wiki.submit_for_review"], user_type_name="Staff"
        )
        cls.editor_role = create_role(
            "Editor",
            2,
            ["wiki.view", "wiki.edit", "wiki.view_review_queue", "wiki.review_articles"],
            user_type_name="Editor",
        )
        cls.manager_role = create_role(
            "Manager",
            1,
            ["wiki.view", "wiki.publish_directly", "wiki.assign_reviewers", "wiki.review_articles"],
            user_type_name="Manager",
        )
        cls.author = create_user("author@example.com", roles=[cls.staff_role], name="Ann Author")
        cls.reviewer = create_user("reviewer@example.com", roles=[cls.editor_role], name="Rita Reviewer")
        cls.reviewer2 = create_user("reviewer2@example.com", roles=[cls.editor_role])
        cls.manager = create_user("manager@example.com", roles=[cls.manager_role], name="Max Manager")
        cls.outsider = create_user("outsider@example.com")

    def setUp(self):
        self.dispatcher = RecordingDispatcher()
        self.workflow = ReviewWorkflow(dispatcher=self.dispatcher)

    def assertStatus(self, article, expected):
        article.refresh_from_db()
        self.assertEqual(article.status, expected)


class SubmitTests(WorkflowTestCase):
    def test_author_submits_draft(self):
        article = create_article(self.author)

        result = self.workflow.request_transition(
            self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
        )

        article.refresh_from_db()
        self.assertEqual(result.status, ArticleStatus.IN_REVIEW)
        self.assertEqual(article.status, ArticleStatus.IN_REVIEW)
        self.assertEqual(article.open_review_id, result.review_id)
        review = ArticleReview.objects.get(pk=result.review_id)
        self.assertEqual(review.status, ReviewStatus.PENDING)
        self.assertEqual(review.submitted_by, self.author)

    def test_submission_notifies_reviewers(self):
        article = create_article(self.author, title="Hand hygiene")

        with self.captureOnCommitCallbacks(execute=True):
            self.workflow.request_transition(
                self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
            )

        kind, ref, submitter_id, submitter_name, reviewer_ids = self.dispatcher.calls[0]
        self.assertEqual(kind, "submission")
        self.assertEqual(ref.title, "Hand hygiene")
        self.assertEqual(submitter_id, self.author.pk)
        self.assertEqual(submitter_name, "Ann Author")
        self.assertEqual(set(reviewer_ids), {self.reviewer.pk, self.reviewer2.pk, self.manager.pk})

    def test_author_without_submit_permission_is_forbidden(self):
        author = create_user("plain@example.com")
        article = create_article(author)

        with self.assertRaises(Forbidden) as ctx:
            self.workflow.request_transition(author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)

        self.assertEqual(str(ctx.exception.detail), "You do not have permission to submit articles for review")
        self.assertStatus(article, ArticleStatus.DRAFT)
        self.assertFalse(ArticleReview.objects.exists())

    def test_only_author_can_submit(self):
        article = create_article(self.author)
        grant(self.reviewer, "wiki.submit_for_review")

        with self.assertRaises(Forbidden) as ctx:
            self.workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
            )

        self.assertEqual(str(ctx.exception.detail), "Only the author can submit their article for review")
        self.assertStatus(article, ArticleStatus.DRAFT)

    def test_write_failure_rolls_back_and_raises_transition_failed(self):
        article = create_article(self.author)

        with mock.patch.object(ArticleReview.objects, "create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(TransitionFailed):
                self.workflow.request_transition(
                    self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
                )

        self.assertStatus(article, ArticleStatus.DRAFT)
        self.assertEqual(self.dispatcher.calls, [])

    def test_database_allows_only_one_open_review(self):
        article, _ = create_article_in_review(self.author)

        with self.assertRaises(IntegrityError), transaction.atomic():
            ArticleReview.objects.create(article=article, submitted_by=self.author, status=ReviewStatus.IN_PROGRESS)


class TableTests(WorkflowTestCase):
    def test_publish_directly_requires_permission(self):
        article = create_article(self.author)

        with self.assertRaises(Forbidden):
            self.workflow.request_transition(self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.PUBLISHED)

        self.assertStatus(article, ArticleStatus.DRAFT)

    def test_publish_directly_sets_published_at(self):
        article = create_article(self.author)

        result = self.workflow.request_transition(
            self.manager.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.PUBLISHED
        )

        article.refresh_from_db()
        self.assertEqual(result.status, ArticleStatus.PUBLISHED)
        self.assertIsNone(result.review_id)
        self.assertIsNotNone(article.published_at)

    def test_pairs_outside_the_table_are_invalid(self):
        article = create_article(self.author, status=ArticleStatus.PUBLISHED)
        for source, target in [
            (ArticleStatus.PUBLISHED, ArticleStatus.IN_REVIEW),
            (ArticleStatus.PUBLISHED, ArticleStatus.DRAFT),
            (ArticleStatus.ARCHIVED, ArticleStatus.PUBLISHED),
            (ArticleStatus.DRAFT, ArticleStatus.DRAFT),
        ]:
            with self.subTest(source=source, target=target), self.assertRaises(InvalidTransition):
                self.workflow.request_transition(self.manager.pk, article.pk, source, target)

        self.assertStatus(article, ArticleStatus.PUBLISHED)

    def test_unknown_status_is_a_validation_error(self):
        article = create_article(self.author)

        with self.assertRaises(ValidationError):
            self.workflow.request_transition(self.author.pk, article.pk, "DRAFT", "DELETED")

    def test_stale_from_status_is_invalid(self):
        article = create_article(self.author)

        with self.assertRaises(InvalidTransition):
            self.workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )

    def test_missing_article_is_not_found(self):
        with self.assertRaises(NotFound):
            self.workflow.request_transition(self.author.pk, 999999, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)
        with self.assertRaises(NotFound):
            self.workflow.request_transition(self.author.pk, "abc", ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)

    def test_anonymous_caller_is_unauthorized(self):
        article = create_article(self.author)

        with self.assertRaises(Unauthorized):
            self.workflow.request_transition(None, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)

    def test_archive_and_restore_by_author(self):
        article = create_article(self.author)

        self.workflow.request_transition(self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.ARCHIVED)
        self.assertStatus(article, ArticleStatus.ARCHIVED)

        self.workflow.request_transition(self.author.pk, article.pk, ArticleStatus.ARCHIVED, ArticleStatus.DRAFT)
        self.assertStatus(article, ArticleStatus.DRAFT)

    def test_archive_published_needs_author_or_edit(self):
        article = create_article(self.author, status=ArticleStatus.PUBLISHED)

        with self.assertRaises(Forbidden):
            self.workflow.request_transition(
                self.outsider.pk, article.pk, ArticleStatus.PUBLISHED, ArticleStatus.ARCHIVED
            )

        self.workflow.request_transition(self.reviewer.pk, article.pk, ArticleStatus.PUBLISHED, ArticleStatus.ARCHIVED)
        self.assertStatus(article, ArticleStatus.ARCHIVED)

    def test_archiving_in_review_closes_the_review(self):
        article, review = create_article_in_review(self.author)

        result = self.workflow.request_transition(
            self.author.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.ARCHIVED
        )

        article.refresh_from_db()
        review.refresh_from_db()
        self.assertEqual(result.review_id, review.pk)
        self.assertEqual(article.status, ArticleStatus.ARCHIVED)
        self.assertIsNone(article.open_review_id)
        self.assertEqual(review.status, ReviewStatus.REJECTED)
        self.assertEqual(review.feedback, ARCHIVE_NOTE)


class ReviewDecisionTests(WorkflowTestCase):
    def test_approve_publishes_and_closes_review(self):
        article, review = create_article_in_review(self.author)

        result = self.workflow.request_transition(
            self.reviewer.pk,
            article.pk,
            ArticleStatus.IN_REVIEW,
            ArticleStatus.PUBLISHED,
            internal_notes="Checked against policy v3",
        )

        article.refresh_from_db()
        review.refresh_from_db()
        self.assertEqual(result.status, ArticleStatus.PUBLISHED)
        self.assertEqual(article.status, ArticleStatus.PUBLISHED)
        self.assertIsNotNone(article.published_at)
        self.assertIsNone(article.open_review_id)
        self.assertEqual(review.status, ReviewStatus.APPROVED)
        self.assertEqual(review.reviewed_by, self.reviewer)
        self.assertIsNotNone(review.reviewed_at)
        self.assertEqual(review.internal_notes, "Checked against policy v3")

    def test_approval_notifies_author(self):
        article, _ = create_article_in_review(self.author, title="Triage guide")

        with self.captureOnCommitCallbacks(execute=True):
            self.workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )

        kind, ref, author_id, reviewer_name = self.dispatcher.calls[0]
        self.assertEqual((kind, author_id, reviewer_name), ("approval", self.author.pk, "Rita Reviewer"))
        self.assertEqual((ref.id, ref.title, ref.slug), (article.pk, "Triage guide", article.slug))

    def test_approve_requires_review_permission(self):
        article, review = create_article_in_review(self.author)

        with self.assertRaises(Forbidden):
            self.workflow.request_transition(
                self.outsider.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )

        self.assertStatus(article, ArticleStatus.IN_REVIEW)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.PENDING)

    def test_approve_without_open_review_is_not_found(self):
        article = create_article(self.author, status=ArticleStatus.IN_REVIEW)

        with self.assertRaises(NotFound):
            self.workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )

    def test_reject_with_empty_feedback_is_validation_error(self):
        article, review = create_article_in_review(self.author)

        for feedback in (None, "", "   "):
            with self.subTest(feedback=feedback), self.assertRaises(ValidationError):
                self.workflow.request_transition(
                    self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, feedback=feedback
                )

        self.assertStatus(article, ArticleStatus.IN_REVIEW)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.PENDING)

    def test_reject_returns_to_draft_with_feedback(self):
        article, review = create_article_in_review(self.author)

        with self.captureOnCommitCallbacks(execute=True):
            result = self.workflow.request_transition(
                self.reviewer.pk,
                article.pk,
                ArticleStatus.IN_REVIEW,
                ArticleStatus.DRAFT,
                feedback="Please cite the source.",
            )

        review.refresh_from_db()
        self.assertEqual(result.status, ArticleStatus.DRAFT)
        self.assertStatus(article, ArticleStatus.DRAFT)
        self.assertEqual(review.status, ReviewStatus.REJECTED)
        self.assertEqual(review.feedback, "Please cite the source.")
        self.assertEqual(
            self.dispatcher.calls[0][0::2],
            ("rejection", self.author.pk, "Please cite the source."),
        )

    def test_reject_requires_review_permission(self):
        article, _ = create_article_in_review(self.author)

        with self.assertRaises(Forbidden) as ctx:
            self.workflow.request_transition(
                self.outsider.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, feedback="No."
            )

        self.assertEqual(str(ctx.exception.detail), "You do not have permission to reject articles")

    def test_author_cancel_without_feedback(self):
        article, review = create_article_in_review(self.author)

        with self.captureOnCommitCallbacks(execute=True):
            result = self.workflow.request_transition(
                self.author.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT
            )

        review.refresh_from_db()
        self.assertEqual(result.status, ArticleStatus.DRAFT)
        self.assertEqual(review.status, ReviewStatus.REJECTED)
        self.assertEqual(review.feedback, CANCEL_NOTE)
        self.assertEqual(self.dispatcher.calls, [])

    def test_author_with_feedback_is_treated_as_reject(self):
        article, _ = create_article_in_review(self.author)

        with self.assertRaises(Forbidden):
            self.workflow.request_transition(
                self.author.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, feedback="Never mind"
            )

        self.assertStatus(article, ArticleStatus.IN_REVIEW)

    def test_decide_by_review_id(self):
        article, review = create_article_in_review(self.author)

        result = self.workflow.decide(self.reviewer.pk, review.pk, "approve")

        self.assertEqual(result.status, ArticleStatus.PUBLISHED)
        self.assertEqual(result.review_id, review.pk)
        self.assertStatus(article, ArticleStatus.PUBLISHED)

    def test_decide_reject_by_author_reviewer_still_needs_feedback(self):
        article, review = create_article_in_review(self.reviewer)

        with self.assertRaises(ValidationError):
            self.workflow.decide(self.reviewer.pk, review.pk, "reject")

        self.assertStatus(article, ArticleStatus.IN_REVIEW)

    def test_decide_on_closed_review(self):
        _, review = create_article_in_review(self.author)
        self.workflow.decide(self.reviewer.pk, review.pk, "approve")

        with self.assertRaises(ReviewAlreadyClosed):
            self.workflow.decide(self.reviewer.pk, review.pk, "reject", feedback="Too late")

    def test_decide_rejects_unknown_action(self):
        _, review = create_article_in_review(self.author)

        with self.assertRaises(ValidationError):
            self.workflow.decide(self.reviewer.pk, review.pk, "escalate")

    def test_decide_missing_review(self):
        with self.assertRaises(NotFound):
            self.workflow.decide(self.reviewer.pk, 424242, "approve")


class ConcurrencyTests(WorkflowTestCase):
    def test_second_decision_on_same_state_loses(self):
        article, review = create_article_in_review(self.author)

        self.workflow.request_transition(self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED)
        with self.assertRaises(InvalidTransition):
            self.workflow.request_transition(
                self.reviewer2.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, feedback="Wait"
            )

        article.refresh_from_db()
        review.refresh_from_db()
        self.assertEqual(article.status, ArticleStatus.PUBLISHED)
        self.assertEqual(review.status, ReviewStatus.APPROVED)
        self.assertEqual(review.reviewed_by, self.reviewer)

    def test_racing_reader_with_stale_state_gets_review_already_closed(self):
        article, review = create_article_in_review(self.author)
        # Second request read the article before the first one committed.
        stale = type(article).objects.get(pk=article.pk)

        with self.captureOnCommitCallbacks(execute=True):
            self.workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )
        with mock.patch.object(ReviewWorkflow, "_get_article", return_value=stale):
            with self.assertLogs("wiki.workflow", level="WARNING"), self.captureOnCommitCallbacks(execute=True):
                with self.assertRaises(ReviewAlreadyClosed):
                    self.workflow.request_transition(
                        self.reviewer2.pk,
                        article.pk,
                        ArticleStatus.IN_REVIEW,
                        ArticleStatus.DRAFT,
                        feedback="Needs work",
                    )

        article.refresh_from_db()
        review.refresh_from_db()
        self.assertEqual(article.status, ArticleStatus.PUBLISHED)
        self.assertEqual(review.status, ReviewStatus.APPROVED)
        self.assertEqual(review.feedback, "")
        self.assertEqual(len(self.dispatcher.calls), 1)

    def test_stale_draft_read_cannot_double_submit(self):
        article = create_article(self.author)
        stale = type(article).objects.get(pk=article.pk)

        self.workflow.request_transition(self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)
        with mock.patch.object(ReviewWorkflow, "_get_article", return_value=stale):
            with self.assertRaises(InvalidTransition):
                self.workflow.request_transition(
                    self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW
                )

        self.assertEqual(ArticleReview.objects.filter(article=article).count(), 1)


class NotificationFailureTests(WorkflowTestCase):
    def test_dispatch_failure_is_logged_not_raised(self):
        workflow = ReviewWorkflow(dispatcher=BrokenDispatcher())
        article, _ = create_article_in_review(self.author)

        with self.assertLogs("wiki.workflow", level="ERROR") as logs, self.captureOnCommitCallbacks(execute=True):
            result = workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
            )

        self.assertEqual(result.status, ArticleStatus.PUBLISHED)
        self.assertStatus(article, ArticleStatus.PUBLISHED)
        self.assertIn("notify_approval", logs.output[0])

    def test_in_app_dispatcher_skips_submitter(self):
        grant(self.author, "wiki.review_articles")
        workflow = ReviewWorkflow(dispatcher=InAppNotificationDispatcher())
        article = create_article(self.author)

        with self.captureOnCommitCallbacks(execute=True):
            workflow.request_transition(self.author.pk, article.pk, ArticleStatus.DRAFT, ArticleStatus.IN_REVIEW)

        recipients = set(
            Notification.objects.filter(type=Notification.Type.ARTICLE_SUBMITTED_FOR_REVIEW).values_list(
                "user_id", flat=True
            )
        )
        self.assertEqual(recipients, {self.reviewer.pk, self.reviewer2.pk, self.manager.pk})

    def test_in_app_rejection_message_includes_feedback(self):
        workflow = ReviewWorkflow(dispatcher=InAppNotificationDispatcher())
        article, _ = create_article_in_review(self.author, title="Sterilisation")

        with self.captureOnCommitCallbacks(execute=True):
            workflow.request_transition(
                self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.DRAFT, feedback="Add photos"
            )

        notification = Notification.objects.get(user=self.author)
        self.assertEqual(notification.type, Notification.Type.ARTICLE_REJECTED)
        self.assertIn("Add photos", notification.message)
        self.assertIn("Rita Reviewer", notification.message)

    def test_dispatch_waits_for_outer_transaction_commit(self):
        article, _ = create_article_in_review(self.author)

        with self.captureOnCommitCallbacks() as callbacks:
            with transaction.atomic():
                self.workflow.request_transition(
                    self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
                )
                self.assertEqual(self.dispatcher.calls, [])

        self.assertEqual(self.dispatcher.calls, [])
        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        self.assertEqual(self.dispatcher.calls[0][0], "approval")

    def test_rolled_back_outer_transaction_sends_nothing(self):
        article, _ = create_article_in_review(self.author)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(RuntimeError), transaction.atomic():
                self.workflow.request_transition(
                    self.reviewer.pk, article.pk, ArticleStatus.IN_REVIEW, ArticleStatus.PUBLISHED
                )
                raise RuntimeError("caller aborted")

        self.assertEqual(callbacks, [])
        self.assertEqual(self.dispatcher.calls, [])
        self.assertStatus(article, ArticleStatus.IN_REVIEW)


class AssignmentTests(WorkflowTestCase):
    def test_manager_assigns_lower_reviewer(self):
        article, review = create_article_in_review(self.author)

        with self.captureOnCommitCallbacks(execute=True):
            updated = self.workflow.assign_reviewer(self.manager.pk, review.pk, self.reviewer.pk)

        self.assertEqual(updated.status, ReviewStatus.IN_PROGRESS)
        self.assertEqual(updated.assigned_to, self.reviewer)
        self.assertEqual(updated.assigned_by, self.manager)
        self.assertEqual(
            self.dispatcher.calls[0][0::2],
            ("assignment", review.pk, "Max Manager"),
        )
        self.assertEqual(self.dispatcher.calls[0][3], self.reviewer.pk)

    def test_assign_requires_permission(self):
        _, review = create_article_in_review(self.author)

        with self.assertRaises(Forbidden):
            self.workflow.assign_reviewer(self.reviewer.pk, review.pk, self.reviewer2.pk)

    def test_assignee_must_be_able_to_review(self):
        _, review = create_article_in_review(self.author)

        with self.assertRaises(ValidationError):
            self.workflow.assign_reviewer(self.manager.pk, review.pk, self.author.pk)

    def test_cannot_assign_higher_ranked_reviewer(self):
        _, review = create_article_in_review(self.author)
        grant(self.reviewer, "wiki.assign_reviewers")

        with self.assertRaises(Forbidden):
            self.workflow.assign_reviewer(self.reviewer.pk, review.pk, self.manager.pk)

    def test_self_assignment_skips_hierarchy(self):
        _, review = create_article_in_review(self.author)
        grant(self.reviewer, "wiki.assign_reviewers")

        updated = self.workflow.assign_reviewer(self.reviewer.pk, review.pk, self.reviewer.pk)

        self.assertEqual(updated.assigned_to, self.reviewer)

    def test_cannot_assign_closed_review(self):
        article, review = create_article_in_review(self.author)
        self.workflow.decide(self.reviewer.pk, review.pk, "approve")

        with self.assertRaises(ReviewAlreadyClosed):
            self.workflow.assign_reviewer(self.manager.pk, review.pk, self.reviewer.pk)

    def test_in_progress_review_can_still_be_approved(self):
        article, review = create_article_in_review(self.author)
        self.workflow.assign_reviewer(self.manager.pk, review.pk, self.reviewer.pk)

        self.workflow.decide(self.reviewer.pk, review.pk, "approve")

        self.assertStatus(article, ArticleStatus.PUBLISHED)


class AffordanceTests(WorkflowTestCase):
    def test_allowed_targets_for_author_on_draft(self):
        article = create_article(self.author)

        self.assertEqual(self.workflow.allowed_targets(self.author.pk, article), ["ARCHIVED", "IN_REVIEW"])

    def test_allowed_targets_for_publisher_on_someone_elses_draft(self):
        article = create_article(self.author)

        self.assertEqual(self.workflow.allowed_targets(self.manager.pk, article), ["PUBLISHED"])

    def test_allowed_targets_for_reviewer_in_review(self):
        article, _ = create_article_in_review(self.author)

        self.assertEqual(
            self.workflow.allowed_targets(self.reviewer.pk, article), ["ARCHIVED", "DRAFT", "PUBLISHED"]
        )

    def test_can_edit(self):
        article = create_article(self.author)

        self.assertTrue(self.workflow.can_edit(self.author.pk, article))
        self.assertTrue(self.workflow.can_edit(self.reviewer.pk, article))
        self.assertFalse(self.workflow.can_edit(self.manager.pk, article))
        self.assertFalse(self.workflow.can_edit(None, article))
