"""
Loading taxonomy data (categories and tags) into the Taxonomy Store.

Tag identity is (category, slug): reloading a file updates display metadata
in place and never deletes tags.
"""
import logging
from dataclasses import dataclass

from django.db import transaction

from .conf import AXIS_CATEGORIES
from .exceptions import ConstraintViolation
from .models import Tag, TagCategory, TaxonomyVersion

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ('label', 'single_select', 'is_premium', 'sensitive_by_default', 'display_order')
TAG_FIELDS = ('name', 'description', 'sensitive_flag', 'requires_evidence', 'is_premium')


@dataclass
class LoadReport:
    categories_created: int = 0
    categories_updated: int = 0
    tags_created: int = 0
    tags_updated: int = 0
    version: TaxonomyVersion = None


def load_taxonomy(data, version=None, activate=False):
    """
    `data` is {"version": ..., "notes": ..., "categories": [{key, label, ..., "tags": [...]}]}.
    Tags may name a "parent" slug; parents are resolved after every tag exists.
    """
    categories = data.get('categories')
    if not isinstance(categories, list):
        raise ConstraintViolation("Taxonomy data needs a 'categories' list.")

    report = LoadReport()
    parents = []

    with transaction.atomic():
        for position, entry in enumerate(categories):
            key = entry.get('key')
            if not key:
                raise ConstraintViolation(f"Category #{position} has no key.")

            defaults = {field: entry[field] for field in CATEGORY_FIELDS if field in entry}
            defaults.setdefault('label', key.replace('_', ' ').title())
            if key in AXIS_CATEGORIES:
                defaults['single_select'] = True

            category, created = TagCategory.objects.update_or_create(key=key, defaults=defaults)
            if created:
                report.categories_created += 1
            else:
                report.categories_updated += 1

            for order, tag_entry in enumerate(entry.get('tags', []), start=1):
                slug = tag_entry.get('slug')
                if not slug:
                    raise ConstraintViolation(f"A tag in '{key}' has no slug.")
                tag_defaults = {field: tag_entry[field] for field in TAG_FIELDS if field in tag_entry}
                tag_defaults.setdefault('name', slug)
                tag_defaults['display_order'] = tag_entry.get('display_order', order)

                tag, created = Tag.objects.update_or_create(
                    category=category,
                    slug=slug,
                    defaults=tag_defaults,
                )
                if created:
                    report.tags_created += 1
                else:
                    report.tags_updated += 1

                if tag_entry.get('parent'):
                    parents.append((tag, tag_entry['parent']))

        for tag, parent_slug in parents:
            # Parents are matched by slug across categories (kink detail -> kink bundle)
            parent = Tag.objects.filter(slug=parent_slug).exclude(pk=tag.pk).order_by('category__display_order').first()
            if parent is None:
                raise ConstraintViolation(f"Tag '{tag.slug}' names unknown parent '{parent_slug}'.")
            if tag.parent_id != parent.pk:
                tag.parent = parent
                tag.save(update_fields=['parent'])

        version_name = version or data.get('version')
        if version_name:
            report.version, _ = TaxonomyVersion.objects.get_or_create(
                version=str(version_name),
                defaults={'notes': data.get('notes', '')},
            )
            if activate:
                report.version.activate()

    logger.info(
        "Taxonomy loaded: %d/%d categories created/updated, %d/%d tags created/updated",
        report.categories_created, report.categories_updated, report.tags_created, report.tags_updated,
    )
    return report
