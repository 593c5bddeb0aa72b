"""
Tag assignment with per-category caps and single-select replacement.

The axis slots on BookAxes and the book's BookTag rows for the axis
categories always hold the same tag.
"""
import logging

from django.db import transaction

from .audit import record_event
from .conf import AXIS_CATEGORIES, get_category_caps
from .exceptions import CapExceeded, ConstraintViolation, NotFound
from .models import Book, BookAxes, BookTag, Tag

logger = logging.getLogger(__name__)


def _lock_book(book):
    # Row lock so concurrent adds against one book count against committed state
    return Book.objects.select_for_update().get(pk=book.pk)


def _actor_id(actor):
    return actor.actor_id if actor else ''


def add_tag(book, tag, actor=None, caps=None, enforce_cap=True):
    """
    Attaches `tag` to `book`. Returns True when a row was inserted and False
    when the tag was already attached.

    Raises CapExceeded when the tag's category already holds its cap.
    """
    caps = get_category_caps() if caps is None else caps
    category = tag.category

    with transaction.atomic():
        _lock_book(book)

        if BookTag.objects.filter(book=book, tag=tag).exists():
            return False

        if category.single_select:
            # Silent replace: a single-select category holds one tag at most
            BookTag.objects.filter(book=book, tag__category=category).delete()

        cap = caps.get(category.key)
        if enforce_cap and cap is not None:
            count = BookTag.objects.filter(book=book, tag__category=category).count()
            if count >= cap:
                raise CapExceeded(category.key, cap)

        BookTag.objects.create(book=book, tag=tag, added_by=_actor_id(actor))

        if category.key in AXIS_CATEGORIES:
            axes, _ = BookAxes.objects.get_or_create(book=book)
            setattr(axes, category.key, tag)
            axes.save(update_fields=[category.key])

    record_event('book', book.pk, 'tag_added', actor, {
        'tag_id': tag.pk,
        'category': category.key,
        'slug': tag.slug,
    })
    return True


def remove_tag(book, tag_id, actor=None):
    """Removal is always allowed; removing can never break a cap."""
    with transaction.atomic():
        link = BookTag.objects.select_related('tag').filter(book=book, tag_id=tag_id).first()
        if link is None:
            return False
        tag = link.tag
        link.delete()

        if tag.category_id in AXIS_CATEGORIES:
            BookAxes.objects.filter(book=book, **{f"{tag.category_id}_id": tag.pk}).update(
                **{tag.category_id: None}
            )

    record_event('book', book.pk, 'tag_removed', actor, {
        'tag_id': tag.pk,
        'category': tag.category_id,
        'slug': tag.slug,
    })
    return True


def set_axes(book, actor=None, **slots):
    """
    Updates one or more axis slots, e.g. set_axes(book, heat_level=tag).
    Passing None clears a slot.
    """
    unknown = set(slots) - set(AXIS_CATEGORIES)
    if unknown:
        raise ConstraintViolation(f"Unknown axes: {', '.join(sorted(unknown))}", axes=sorted(unknown))

    for axis, tag in slots.items():
        if tag is not None and tag.category_id != axis:
            raise ConstraintViolation(
                f"Tag '{tag.slug}' belongs to '{tag.category_id}', not axis '{axis}'.",
                axis=axis,
                tag_id=tag.pk,
            )

    changes = {}
    with transaction.atomic():
        _lock_book(book)
        axes, _ = BookAxes.objects.get_or_create(book=book)

        for axis, tag in slots.items():
            previous = getattr(axes, axis)
            stale = BookTag.objects.filter(book=book, tag__category_id=axis)
            if tag is not None:
                stale = stale.exclude(tag=tag)
                BookTag.objects.get_or_create(book=book, tag=tag, defaults={'added_by': _actor_id(actor)})
            stale.delete()
            setattr(axes, axis, tag)

            if (previous.pk if previous else None) != (tag.pk if tag else None):
                changes[axis] = {
                    'from': previous.slug if previous else None,
                    'to': tag.slug if tag else None,
                }

        axes.save()

    if changes:
        record_event('book', book.pk, 'axes_updated', actor, {'axes': changes})
    return axes


def get_tag(tag_id):
    try:
        return Tag.objects.select_related('category').get(pk=tag_id)
    except (Tag.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Tag {tag_id} not found")
