"""
Publication Engine: preview, publish and snapshot diffs.
"""
import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.utils import timezone

from catalog.audit import SYSTEM, record_event
from catalog.conf import AXIS_CATEGORIES
from catalog.exceptions import ConcurrentModification, PublishRejected, TaxonomyNotConfigured
from catalog.models import Book, BookAxes, BookStatus, CoverAsset, TaxonomyVersion

from .models import Publication
from .validation import has_ready_cover, load_book_state, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishPreview:
    validation: object
    diff: dict
    previous_publication_id: int = None

    def as_dict(self):
        return {
            'validation': self.validation.as_dict(),
            'diff': self.diff,
            'previous_publication_id': self.previous_publication_id,
        }


@dataclass(frozen=True)
class PublishResult:
    publication_id: int
    first_publish: bool
    diff: dict

    def as_dict(self):
        return {
            'publication_id': self.publication_id,
            'first_publish': self.first_publish,
            'diff': self.diff,
        }


# --- Snapshot ---

def _tag_dict(tag):
    return {'id': tag.pk, 'slug': tag.slug, 'name': tag.name}


def build_snapshot(book, taxonomy_version=None):
    """Serializes the book's full curated state into plain JSON data."""
    identifiers = getattr(book, 'identifiers', None)
    metadata = getattr(book, 'metadata', None)
    axes = BookAxes.objects.select_related(*AXIS_CATEGORIES).filter(book=book).first()
    cover = CoverAsset.objects.ready_for(book)

    tags = {}
    for tag in book.tags.order_by('category_id', 'display_order', 'slug'):
        tags.setdefault(tag.category_id, []).append(_tag_dict(tag))

    evidence = []
    for item in book.evidence.prefetch_related('links'):
        evidence.append({
            'id': item.pk,
            'type': item.evidence_type,
            'quote_text': item.quote_text,
            'url': item.url,
            'chapter': item.chapter,
            'page': item.page,
            'location': item.location,
            'note': item.note,
            'visibility': item.visibility,
            'spoiler': item.spoiler,
            'policy_status': item.policy_status,
            'links': [
                {'target_type': link.target_type, 'tag_id': link.tag_id}
                for link in item.links.all()
            ],
        })

    return {
        'book': {
            'id': book.pk,
            'slug': book.slug,
            'title': book.title,
            'series_name': book.series_name,
            'series_position': book.series_position,
            'publication_date': book.publication_date.isoformat() if book.publication_date else None,
            'published_year': book.published_year,
        },
        'authors': [{'id': a.pk, 'name': a.name} for a in book.authors.order_by('pk')],
        'identifiers': {
            'asin': identifiers.asin if identifiers else None,
            'isbn13': identifiers.isbn13 if identifiers else None,
        },
        'metadata': {
            'description': metadata.description,
            'publisher': metadata.publisher,
            'page_count': metadata.page_count,
            'kindle_unlimited': metadata.kindle_unlimited,
            'amazon_url': metadata.amazon_url,
            'goodreads_url': metadata.goodreads_url,
        } if metadata else {},
        'cover': {
            'id': cover.pk,
            'version': cover.version,
            'storage_key': cover.storage_key,
        } if cover else None,
        'axes': {
            axis: (_tag_dict(getattr(axes, axis)) if axes and getattr(axes, axis) else None)
            for axis in AXIS_CATEGORIES
        },
        'tags': tags,
        'evidence': evidence,
        'standout_quotes': [
            {
                'id': quote.pk,
                'label': quote.label,
                'quote_text': quote.quote_text,
                'use_in_drop_email': quote.use_in_drop_email,
                'visibility': quote.visibility,
                'spoiler': quote.spoiler,
                'policy_status': quote.policy_status,
            }
            for quote in book.standout_quotes.all()
        ],
        'taxonomy_version': taxonomy_version.version if taxonomy_version else None,
    }


# --- Diff ---

def _tag_index(snapshot):
    index = {}
    for category, tags in (snapshot.get('tags') or {}).items():
        for tag in tags:
            index[tag['id']] = (category, tag['slug'])
    return index


def compute_diff(current, baseline):
    """
    Compares two snapshots by id membership. Returns None when there is no
    baseline to compare against.
    """
    if baseline is None:
        return None

    now_tags = _tag_index(current)
    then_tags = _tag_index(baseline)
    added_ids = set(now_tags) - set(then_tags)
    removed_ids = set(then_tags) - set(now_tags)

    by_category = {}
    for ids, index, key in ((added_ids, now_tags, 'added'), (removed_ids, then_tags, 'removed')):
        for tag_id in ids:
            category, slug = index[tag_id]
            entry = by_category.setdefault(category, {'added': [], 'removed': []})
            entry[key].append(slug)
    for entry in by_category.values():
        entry['added'].sort()
        entry['removed'].sort()

    now_evidence = {item['id'] for item in current.get('evidence') or []}
    then_evidence = {item['id'] for item in baseline.get('evidence') or []}

    now_cover = (current.get('cover') or {}).get('version')
    then_cover = (baseline.get('cover') or {}).get('version')
    cover_changed = now_cover != then_cover

    diff = {
        'tags': {
            'added': sorted(now_tags[i][1] for i in added_ids),
            'removed': sorted(then_tags[i][1] for i in removed_ids),
            'by_category': by_category,
        },
        'evidence': {
            'added': sorted(now_evidence - then_evidence),
            'removed': sorted(then_evidence - now_evidence),
        },
        'cover': {'changed': cover_changed, 'from': then_cover, 'to': now_cover},
    }
    diff['has_changes'] = bool(
        added_ids or removed_ids
        or diff['evidence']['added'] or diff['evidence']['removed']
        or cover_changed
    )
    return diff


# --- Engine ---

def latest_publication(book):
    return Publication.objects.filter(book=book).order_by('-published_at', '-pk').first()


def preview_publish(book):
    """Validation plus the diff a publish would record. Writes nothing."""
    validation = validate(load_book_state(book))
    previous = latest_publication(book)
    diff = compute_diff(build_snapshot(book), previous.snapshot if previous else None)
    return PublishPreview(
        validation=validation,
        diff=diff,
        previous_publication_id=previous.pk if previous else None,
    )


def publish(book, actor=None):
    actor = actor or SYSTEM

    # --- STEP 1: Full validation against current state ---
    validation = validate(load_book_state(book))
    if not validation.publishable:
        logger.info("Publish of book %s rejected: %s", book.pk,
                    [g.name for g in validation.failing_gates()])
        raise PublishRejected(validation)

    # --- STEP 2: Pin to the active taxonomy ---
    taxonomy_version = TaxonomyVersion.active()
    if taxonomy_version is None:
        logger.error("Publish of book %s refused: no active taxonomy version", book.pk)
        raise TaxonomyNotConfigured("No active taxonomy version is configured.")

    with transaction.atomic():
        locked = Book.objects.select_for_update().get(pk=book.pk)

        # --- STEP 3: Re-check the hard gates against the rows being committed ---
        axes = BookAxes.objects.filter(book=locked).first()
        missing_axes = axes.missing() if axes is not None else list(AXIS_CATEGORIES)
        cover_ready = has_ready_cover(locked)
        if missing_axes or not cover_ready:
            logger.warning("Book %s changed during publish (axes missing: %s, cover ready: %s)",
                           locked.pk, missing_axes, cover_ready)
            raise ConcurrentModification(missing_axes=missing_axes, cover_ready=cover_ready)

        # --- STEP 4: Snapshot and diff against the prior publication ---
        previous = latest_publication(locked)
        snapshot = build_snapshot(locked, taxonomy_version=taxonomy_version)
        diff = compute_diff(snapshot, previous.snapshot if previous else None)
        first_publish = previous is None

        try:
            with transaction.atomic():
                publication = Publication.objects.create(
                    book=locked,
                    taxonomy_version=taxonomy_version,
                    published_by=actor.actor_id,
                    snapshot=snapshot,
                    previous_publication=previous,
                    diff_summary=diff,
                )
        except IntegrityError:
            # Another publish linked itself to the same predecessor first
            raise ConcurrentModification()

        # --- STEP 5: Flip the book live ---
        now = timezone.now()
        locked.status = BookStatus.PUBLISHED
        if locked.first_published_at is None:
            locked.first_published_at = now
        locked.last_published_at = now
        locked.live_publication = publication
        locked.save(update_fields=[
            'status', 'first_published_at', 'last_published_at', 'live_publication', 'updated_at',
        ])

        record_event('book', locked.pk, 'published', actor, {
            'publication_id': publication.pk,
            'mode': 'first_publish' if first_publish else 'republish',
            'taxonomy_version': taxonomy_version.version,
            'previous_publication_id': previous.pk if previous else None,
            'diff': diff,
        })

    book.refresh_from_db()
    return PublishResult(publication_id=publication.pk, first_publish=first_publish, diff=diff)
