"""User manager handling bcrypt hashing and verification."""

import uuid

import bcrypt
from django.contrib.auth.base_user import BaseUserManager


class UserManager(BaseUserManager):
    """Create portal users with bcrypt password hashes.

    Authority is never a flag on the user row: it comes from role assignments
    and direct permission grants in ``access_control``.
    """

    use_in_migrations = True

    def create_user(self, email: str, password: str | None = None, **extra_fields):
        """Create an active user with a bcrypt-hashed password."""
        if not email:
            raise ValueError("The Email must be set")
        if password is None:
            raise ValueError("Password must be provided")
        extra_fields.setdefault("is_active", True)
        user = self.model(id=uuid.uuid4(), email=self.normalize_email(email), **extra_fields)
        user.password_hash = self.hash_password(password)
        user.save(using=self._db)
        return user

    def active(self):
        return self.filter(is_active=True)

    @staticmethod
    def hash_password(raw_password: str) -> str:
        """Hash a raw password using bcrypt and return the utf-8 string."""
        return bcrypt.hashpw(raw_password.encode(), bcrypt.gensalt()).decode()

    @staticmethod
    def verify_password(user, raw_password: str) -> bool:
        """Verify raw password against stored bcrypt hash."""

        if not user.password_hash:
            return False
        return bcrypt.checkpw(raw_password.encode(), user.password_hash.encode("utf-8"))


__all__ = ["UserManager"]
