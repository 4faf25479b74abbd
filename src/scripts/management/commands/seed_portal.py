"""Seed user types, the permission catalogue, roles, and demo content.

The module-level ``create_seed_*`` helpers are shared with the test suite so
both build the same RBAC fixture.
"""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from access_control.constants import PERMISSION_CATALOGUE, AdminPermissions, LmsPermissions, WikiPermissions
from access_control.models import (
    DataScope,
    Location,
    Permission,
    Role,
    RolePermission,
    UserLocation,
    UserRole,
    UserType,
)
from lms.models import Course, CourseRoleAccess
from wiki.models import ArticleStatus, WikiArticle

# name -> (hierarchy_level, description)
USER_TYPES = {
    "Administrator": (0, "Full control of the portal"),
    "Manager": (1, "Manages teams and content"),
    "Editor": (2, "Writes and reviews content"),
    "Staff": (3, "Reads content and drafts articles"),
}

_ALL_PERMISSIONS = [pid for pid, _, _ in PERMISSION_CATALOGUE]

# name -> (user type, display order, data scope, permission ids)
ROLES = {
    "Super Admin": ("Administrator", 0, DataScope.GLOBAL, _ALL_PERMISSIONS),
    "Content Manager": (
        "Manager",
        0,
        DataScope.ALL_LOCATIONS,
        [
            WikiPermissions.VIEW,
            WikiPermissions.CREATE,
            WikiPermissions.EDIT,
            WikiPermissions.DELETE,
            WikiPermissions.SUBMIT_FOR_REVIEW,
            WikiPermissions.VIEW_REVIEW_QUEUE,
            WikiPermissions.REVIEW_ARTICLES,
            WikiPermissions.PUBLISH_DIRECTLY,
            WikiPermissions.ASSIGN_REVIEWERS,
            LmsPermissions.VIEW,
            AdminPermissions.VIEW_ROLES,
            AdminPermissions.MANAGE_ROLE_PERMISSIONS,
            AdminPermissions.MANAGE_USER_ROLES,
            AdminPermissions.MANAGE_USER_LOCATIONS,
        ],
    ),
    "Editor": (
        "Editor",
        0,
        DataScope.LOCATION,
        [
            WikiPermissions.VIEW,
            WikiPermissions.CREATE,
            WikiPermissions.EDIT,
            WikiPermissions.SUBMIT_FOR_REVIEW,
            WikiPermissions.VIEW_REVIEW_QUEUE,
            WikiPermissions.REVIEW_ARTICLES,
            LmsPermissions.VIEW,
        ],
    ),
    "Staff": (
        "Staff",
        0,
        DataScope.LOCATION,
        [
            WikiPermissions.VIEW,
            WikiPermissions.CREATE,
            WikiPermissions.SUBMIT_FOR_REVIEW,
            LmsPermissions.VIEW,
        ],
    ),
}

# Roles whose permission set cannot be edited through the API.
PROTECTED_ROLES = {"Super Admin"}

# name -> (address, city)
LOCATIONS = {
    "Main Clinic": ("1 Harbour Road", "Springfield"),
    "Northside Clinic": ("48 Hill Street", "Springfield"),
}

# email -> (name, password, role, primary location)
DEMO_USERS = {
    "admin@example.com": ("Admin", "adminpass", "Super Admin", None),
    "manager@example.com": ("Morgan Manager", "managerpass", "Content Manager", None),
    "editor@example.com": ("Eddie Editor", "editorpass", "Editor", "Main Clinic"),
    "staff@example.com": ("Sam Staff", "staffpass", "Staff", "Main Clinic"),
}

DEMO_COURSES = {
    "portal-onboarding": ("Portal Onboarding", False, []),
    "manager-essentials": ("Manager Essentials", True, ["Super Admin", "Content Manager"]),
}


def create_seed_user_types() -> dict:
    """Create or update the seeded user types; return a name->UserType map."""
    user_types = {}
    for name, (level, description) in USER_TYPES.items():
        user_type, _ = UserType.objects.update_or_create(
            name=name, defaults={"hierarchy_level": level, "description": description, "is_active": True}
        )
        user_types[name] = user_type
    return user_types


def create_seed_permissions() -> dict:
    permissions = {}
    for pid, category, description in PERMISSION_CATALOGUE:
        permission, _ = Permission.objects.update_or_create(
            id=pid, defaults={"category": category, "description": description, "is_active": True}
        )
        permissions[pid] = permission
    return permissions


def create_seed_roles(user_types: dict) -> dict:
    roles = {}
    for name, (type_name, order, data_scope, _) in ROLES.items():
        role, _ = Role.objects.update_or_create(
            name=name,
            defaults={
                "user_type": user_types[type_name],
                "display_order": order,
                "data_scope": data_scope,
                "is_protected": name in PROTECTED_ROLES,
                "is_active": True,
            },
        )
        roles[name] = role
    return roles


def create_seed_role_permissions(roles: dict) -> None:
    """Grant each seeded role exactly its listed permissions."""
    for name, (_, _, _, permission_ids) in ROLES.items():
        role = roles[name]
        for pid in permission_ids:
            RolePermission.objects.update_or_create(role=role, permission_id=pid, defaults={"granted": True})
        RolePermission.objects.filter(role=role).exclude(permission_id__in=permission_ids).delete()


def create_seed_locations() -> dict:
    locations = {}
    for name, (address, city) in LOCATIONS.items():
        location, _ = Location.objects.update_or_create(
            name=name, defaults={"address": address, "city": city, "is_active": True}
        )
        locations[name] = location
    return locations


def seed_rbac() -> tuple[dict, dict]:
    """Create the full RBAC fixture and return ``(user_types, roles)``."""
    user_types = create_seed_user_types()
    create_seed_permissions()
    roles = create_seed_roles(user_types)
    create_seed_role_permissions(roles)
    return user_types, roles


class Command(BaseCommand):
    help = (
        "Seed user types, permissions, roles, and demo users, articles, and courses. "
        "Use --reset to clear previously seeded data first."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Remove seeded roles, user types, locations, demo users and their content before seeding.",
        )

    def handle(self, *args, **options):
        with transaction.atomic():
            if options.get("reset"):
                self._reset_seeded_data()

            self.stdout.write("Seeding portal data...")
            _, roles = seed_rbac()
            locations = create_seed_locations()
            users = self._create_demo_users(roles, locations)
            self._create_demo_articles(users)
            self._create_demo_courses(roles, users)
        self.stdout.write(self.style.SUCCESS("Portal seed completed."))

    def _reset_seeded_data(self) -> None:
        self.stdout.write("Resetting previously seeded data...")
        User = get_user_model()
        demo_emails = list(DEMO_USERS)

        # Articles protect their authors, so they go first.
        WikiArticle.objects.filter(author__email__in=demo_emails).delete()
        Course.objects.filter(slug__in=list(DEMO_COURSES)).delete()
        User.objects.filter(email__in=demo_emails).delete()
        Role.objects.filter(name__in=list(ROLES)).delete()
        UserType.objects.filter(name__in=list(USER_TYPES)).delete()
        Location.objects.filter(name__in=list(LOCATIONS)).delete()

        self.stdout.write(self.style.WARNING("Seeded data cleared."))

    @staticmethod
    def _create_demo_users(roles: dict, locations: dict) -> dict:
        User = get_user_model()
        users = {}
        for email, (name, password, role_name, location_name) in DEMO_USERS.items():
            user = User.objects.filter(email=email).first()
            if user is None:
                user = User.objects.create_user(email=email, password=password, name=name)
            UserRole.objects.update_or_create(user=user, role=roles[role_name], defaults={"is_active": True})
            if location_name:
                UserLocation.objects.update_or_create(
                    user=user,
                    location=locations[location_name],
                    defaults={"is_active": True, "is_primary": True},
                )
            users[email] = user
        return users

    @staticmethod
    def _create_demo_articles(users: dict) -> None:
        admin = users["admin@example.com"]
        staff = users["staff@example.com"]
        WikiArticle.objects.get_or_create(
            slug="welcome-to-the-portal",
            defaults={
                "title": "Welcome to the Portal",
                "content": "Start here for an overview of the wiki and courses.",
                "author": admin,
                "status": ArticleStatus.PUBLISHED,
                "published_at": timezone.now(),
            },
        )
        WikiArticle.objects.get_or_create(
            slug="expense-policy-draft",
            defaults={
                "title": "Expense Policy (Draft)",
                "content": "How to file expenses. Needs review before publishing.",
                "author": staff,
            },
        )

    @staticmethod
    def _create_demo_courses(roles: dict, users: dict) -> None:
        creator = users["admin@example.com"]
        for slug, (title, restricted, role_names) in DEMO_COURSES.items():
            course, _ = Course.objects.update_or_create(
                slug=slug,
                defaults={
                    "title": title,
                    "is_published": True,
                    "restrict_by_role": restricted,
                    "created_by": creator,
                },
            )
            for role_name in role_names:
                CourseRoleAccess.objects.get_or_create(course=course, role=roles[role_name])
