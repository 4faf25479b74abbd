"""System checks for RBAC configuration."""

from django.conf import settings
from django.core.checks import Error, Warning, register
from django.urls import URLResolver, get_resolver

from access_control.permissions import RBACPermission


def _iter_view_classes(patterns):
    for entry in patterns:
        if isinstance(entry, URLResolver):
            yield from _iter_view_classes(entry.url_patterns)
            continue
        # DRF sets ``cls`` on both APIView and viewset callbacks; plain Django views set ``view_class``.
        view_cls = getattr(entry.callback, "cls", None) or getattr(entry.callback, "view_class", None)
        if view_cls is not None:
            yield view_cls


def _rbac_views():
    """Every class-based view routed by the root URLconf, each listed once."""
    return list(dict.fromkeys(_iter_view_classes(get_resolver().url_patterns)))


@register()
def rbac_views_declare_required_permissions(app_configs, **kwargs):
    """Ensure RBAC-protected views declare a non-empty ``required_permissions``."""
    errors: list[Error] = []

    for view_cls in _rbac_views():
        if RBACPermission not in getattr(view_cls, "permission_classes", []):
            continue
        if not getattr(view_cls, "required_permissions", None):
            errors.append(
                Error(
                    f"{view_cls.__name__} uses RBACPermission but does not "
                    f"define required_permissions.",
                    obj=view_cls,
                    id="access_control.E001",
                )
            )

    return errors


@register()
def hierarchy_exemptions_configured(app_configs, **kwargs):
    """Warn when no permission can bypass the hierarchy (no one can manage peers)."""
    if getattr(settings, "HIERARCHY_EXEMPT_PERMISSIONS", None):
        return []
    return [
        Warning(
            "HIERARCHY_EXEMPT_PERMISSIONS is empty; top-level administrators "
            "will not be able to manage each other's roles.",
            id="access_control.W001",
        )
    ]
