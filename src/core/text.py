"""Text helpers shared by content models."""

from django.utils.text import slugify


def unique_slug(instance, source: str, fallback: str, field: str = "slug") -> str:
    """Slugify ``source`` and append ``-2``, ``-3``... until no other row uses it."""
    max_length = type(instance)._meta.get_field(field).max_length
    base = slugify(source)[: max_length - 15] or fallback
    others = type(instance)._default_manager.exclude(pk=instance.pk)
    slug, suffix = base, 2
    while others.filter(**{field: slug}).exists():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug
