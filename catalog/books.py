"""
Book creation: duplicate policy, slug reservation and the placeholder rows
every book owns (identifier, axes, metadata). All writes for one book happen
in a single transaction.
"""
import logging
import re
from dataclasses import dataclass, field

from django.db import IntegrityError, transaction
from django.utils.text import slugify

from .audit import record_event
from .conf import get_slug_max_attempts
from .dedupe import find_duplicates, has_high_confidence
from .exceptions import (
    ConcurrentDuplicateError,
    ConstraintViolation,
    JustificationRequired,
    NotFound,
    SlugCollisionError,
)
from .models import Author, Book, BookAxes, BookIdentifier, BookMetadata
from .normalize import normalize_author, normalize_identifier

logger = logging.getLogger(__name__)

CREATED = "created"
DUPLICATES_FOUND = "duplicates_found"


@dataclass
class CreateBookResult:
    status: str
    book: Book = None
    duplicates: list = field(default_factory=list)

    @property
    def created(self):
        return self.status == CREATED

    def as_dict(self):
        data = {
            'status': self.status,
            'duplicates': [candidate.as_dict() for candidate in self.duplicates],
        }
        if self.book is not None:
            data['book'] = {'id': self.book.pk, 'slug': self.book.slug, 'title': self.book.title}
        return data


def parse_year(published):
    """Extracts the first four digits of a date string ('2023-04-01' -> 2023)."""
    if not published:
        return None
    m = re.match(r"(\d{4})", str(published))
    return int(m.group(1)) if m else None


def get_book(book_id=None, slug=None):
    try:
        if slug is not None:
            return Book.objects.get(slug=slug)
        return Book.objects.get(pk=book_id)
    except (Book.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Book {slug or book_id} not found")


def find_or_create_author(name, actor=None):
    normalized = normalize_author(name)
    author = Author.objects.filter(normalized_name=normalized).order_by('pk').first()
    if author is not None:
        return author
    author = Author.objects.create(name=name.strip())
    record_event('author', author.pk, 'author_created', actor, {'name': author.name})
    return author


def _insert_with_unique_slug(title, **fields):
    base = slugify(title)[:200] or 'book'
    for attempt in range(get_slug_max_attempts()):
        candidate = base if attempt == 0 else f"{base}-{attempt + 1}"
        if Book.objects.filter(slug=candidate).exists():
            continue
        try:
            with transaction.atomic():
                return Book.objects.create(slug=candidate, title=title, **fields)
        except IntegrityError:
            # Taken between the check and the insert; try the next suffix
            logger.warning("Slug '%s' was taken concurrently, retrying", candidate)
    raise SlugCollisionError(
        f"Could not reserve a unique slug for '{title}'.",
        base_slug=base,
    )


def create_book_record(title, author_name=None, asin=None, isbn13=None, actor=None, **fields):
    """
    Writes the book, its author link, identifier, axes and metadata rows.
    No duplicate check; callers decide that policy.
    """
    if fields.get('published_year') is None and fields.get('publication_date'):
        fields['published_year'] = parse_year(fields['publication_date'])

    with transaction.atomic():
        book = _insert_with_unique_slug(title, **fields)

        if author_name and author_name.strip():
            book.authors.add(find_or_create_author(author_name, actor))

        try:
            with transaction.atomic():
                BookIdentifier.objects.create(book=book, asin=asin or None, isbn13=isbn13 or None)
        except IntegrityError:
            raise ConcurrentDuplicateError(
                "A book with this identifier was created concurrently.",
                asin=asin,
                isbn13=isbn13,
            )

        BookAxes.objects.create(book=book)
        BookMetadata.objects.create(book=book)

    return book


def create_book(title, actor=None, author_name=None, identifier=None,
                override=False, justification=None, **fields):
    title = (title or '').strip()
    if not title:
        raise ConstraintViolation("A book needs a title.")

    asin = normalize_identifier(identifier)
    duplicates = find_duplicates(title, author_name=author_name, identifier=asin)

    if duplicates and not override:
        record_event('book', '', 'duplicate_detected', actor, {
            'title': title,
            'author_name': author_name,
            'asin': asin,
            'candidates': [candidate.as_dict() for candidate in duplicates],
        })
        return CreateBookResult(status=DUPLICATES_FOUND, duplicates=duplicates)

    justification = (justification or '').strip()
    if duplicates and has_high_confidence(duplicates) and not justification:
        raise JustificationRequired(
            "Overriding a high-confidence duplicate requires a justification.",
            candidates=[candidate.as_dict() for candidate in duplicates],
        )

    # The identifier stays with the book that already holds it
    claimed = asin
    if any(candidate.reason == "identifier_match" for candidate in duplicates):
        claimed = None

    book = create_book_record(title, author_name=author_name, asin=claimed, actor=actor, **fields)

    payload = {'slug': book.slug, 'title': book.title, 'asin': claimed}
    if duplicates:
        if claimed != asin:
            payload['bypassed_identifier'] = asin
        payload['bypassed_duplicates'] = [candidate.as_dict() for candidate in duplicates]
        payload['justification'] = justification
    event_type = 'book_force_created' if duplicates else 'book_created'
    record_event('book', book.pk, event_type, actor, payload)

    return CreateBookResult(status=CREATED, book=book, duplicates=duplicates)
