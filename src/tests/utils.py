"""Shared helpers for tests (RBAC fixtures, user creation, fake Redis)."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple
from unittest import mock

from django.contrib.auth import get_user_model

from access_control.models import (
    Location,
    Permission,
    Role,
    RolePermission,
    UserLocation,
    UserPermission,
    UserRole,
    UserType,
)
from authentication.services import TokenService
from scripts.management.commands.seed_portal import seed_rbac
from wiki.models import ArticleReview, ArticleStatus, ReviewStatus, WikiArticle

User = get_user_model()


class FakeRedis:
    """Minimal Redis stub supporting the commands used by TokenService."""

    def __init__(self):
        self._store: Dict[str, str] = {}

    def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        """Mimic Redis SETEX; TTL is ignored in tests, value stored in-memory."""
        self._store[key] = value

    def get(self, key: str):
        return self._store.get(key)


class FakeRedisMixin:
    """Patch both Redis lookups with one in-memory ``FakeRedis`` per test class."""

    fake_redis: FakeRedis

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.fake_redis = FakeRedis()
        cls.redis_patchers = [
            mock.patch("core.redis_client.get_redis_client", return_value=cls.fake_redis),
            mock.patch("authentication.services.get_redis_client", return_value=cls.fake_redis),
        ]
        for patcher in cls.redis_patchers:
            patcher.start()

    @classmethod
    def tearDownClass(cls):
        for patcher in cls.redis_patchers:
            patcher.stop()
        super().tearDownClass()


def seed_portal_basics() -> Tuple[dict, dict]:
    """Create seeded user types, permissions, and roles for tests.

    Delegates to the helpers used by the ``seed_portal`` management command so
    RBAC setup logic lives in a single place.
    """
    return seed_rbac()


def create_user(email: str, password: str = "StrongPass123", roles: Iterable[Role] = (), **extra):
    """Create a user with a bcrypt-hashed password and active role assignments."""
    user = User.objects.create_user(email=email, password=password, **extra)
    for role in roles:
        UserRole.objects.create(user=user, role=role)
    return user


def create_role(
    name: str,
    level: int,
    permission_ids: Iterable[str] = (),
    user_type_name: Optional[str] = None,
    **extra,
):
    """Create a role on a (possibly new) user type at ``level`` granting ``permission_ids``."""
    user_type, _ = UserType.objects.get_or_create(
        name=user_type_name or f"Level {level}", defaults={"hierarchy_level": level}
    )
    role = Role.objects.create(name=name, user_type=user_type, **extra)
    for pid in permission_ids:
        Permission.objects.get_or_create(id=pid, defaults={"category": pid.split(".")[0]})
        RolePermission.objects.create(role=role, permission_id=pid)
    return role


def link_location(user, name: str, **extra) -> Location:
    """Link ``user`` to the location called ``name``, creating it when missing."""
    location, _ = Location.objects.get_or_create(name=name)
    UserLocation.objects.create(user=user, location=location, **extra)
    return location


def grant(user, permission_id: str, expires_at: Optional[datetime] = None) -> UserPermission:
    Permission.objects.get_or_create(id=permission_id, defaults={"category": permission_id.split(".")[0]})
    return UserPermission.objects.create(user=user, permission_id=permission_id, expires_at=expires_at)


def deny(user, permission_id: str) -> UserPermission:
    """Add an explicit revoke row for ``permission_id``."""
    Permission.objects.get_or_create(id=permission_id, defaults={"category": permission_id.split(".")[0]})
    return UserPermission.objects.create(user=user, permission_id=permission_id, granted=False)


def create_article(author, title: str = "Article", status: str = ArticleStatus.DRAFT, **extra) -> WikiArticle:
    return WikiArticle.objects.create(author=author, title=title, content=f"{title} body", status=status, **extra)


def create_article_in_review(author, title: str = "In review") -> Tuple[WikiArticle, ArticleReview]:
    """Article in IN_REVIEW with its open PENDING review wired up."""
    article = create_article(author, title=title, status=ArticleStatus.IN_REVIEW)
    review = ArticleReview.objects.create(article=article, submitted_by=author, status=ReviewStatus.PENDING)
    article.open_review = review
    article.save(update_fields=["open_review"])
    return article, review


def auth_header(user) -> dict:
    """Credentials kwargs for ``APIClient.credentials`` with a fresh access token."""
    access, _ = TokenService.generate_tokens(user)
    return {"HTTP_AUTHORIZATION": f"Bearer {access}"}
