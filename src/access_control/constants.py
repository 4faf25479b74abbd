"""Permission ids referenced by code, plus the seeded permission catalogue."""


class WikiPermissions:
    VIEW = "wiki.view"
    CREATE = "wiki.create"
    EDIT = "wiki.edit"
    DELETE = "wiki.delete"
    SUBMIT_FOR_REVIEW = "wiki.submit_for_review"
    VIEW_REVIEW_QUEUE = "wiki.view_review_queue"
    REVIEW_ARTICLES = "wiki.review_articles"
    PUBLISH_DIRECTLY = "wiki.publish_directly"
    ASSIGN_REVIEWERS = "wiki.assign_reviewers"


class LmsPermissions:
    VIEW = "lms.view"


class AdminPermissions:
    VIEW_ROLES = "roles.view"
    MANAGE_ROLE_PERMISSIONS = "roles.manage_permissions"
    MANAGE_USER_ROLES = "users.manage_roles"
    MANAGE_USER_LOCATIONS = "users.manage_locations"
    SUPER_ADMIN = "system.super_admin"


# (id, category, description) rows created by the seed command.
PERMISSION_CATALOGUE = [
    (WikiPermissions.VIEW, "wiki", "Read published wiki articles"),
    (WikiPermissions.CREATE, "wiki", "Create wiki articles"),
    (WikiPermissions.EDIT, "wiki", "Edit, archive, and restore any wiki article"),
    (WikiPermissions.DELETE, "wiki", "Delete any wiki article"),
    (WikiPermissions.SUBMIT_FOR_REVIEW, "wiki", "Submit own articles for review"),
    (WikiPermissions.VIEW_REVIEW_QUEUE, "wiki", "See the review queue"),
    (WikiPermissions.REVIEW_ARTICLES, "wiki", "Approve or reject articles in review"),
    (WikiPermissions.PUBLISH_DIRECTLY, "wiki", "Publish without review"),
    (WikiPermissions.ASSIGN_REVIEWERS, "wiki", "Assign reviewers to open reviews"),
    (LmsPermissions.VIEW, "lms", "Browse courses that are not role-restricted"),
    (AdminPermissions.VIEW_ROLES, "admin", "List roles, user types, and the permission catalogue"),
    (AdminPermissions.MANAGE_ROLE_PERMISSIONS, "admin", "Change which permissions a role grants"),
    (AdminPermissions.MANAGE_USER_ROLES, "admin", "Assign and revoke user roles"),
    (AdminPermissions.MANAGE_USER_LOCATIONS, "admin", "Link users to clinic locations"),
    (AdminPermissions.SUPER_ADMIN, "system", "Bypass hierarchy checks"),
]

__all__ = ["AdminPermissions", "LmsPermissions", "PERMISSION_CATALOGUE", "WikiPermissions"]
