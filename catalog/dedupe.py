"""
Duplicate detection for book intake.

Every tier runs; a book found by a higher tier is not repeated by a lower one.

    1. identifier exact             -> high
    2. normalized title + author    -> medium
    3. raw title, case-insensitive  -> medium
    4. normalized title only        -> low
"""
from dataclasses import asdict, dataclass

from .models import Book
from .normalize import normalize_author, normalize_identifier, normalize_title

HIGH = "high"
MEDIUM = "medium"
LOW = "low"


@dataclass(frozen=True)
class DuplicateCandidate:
    book_id: int
    slug: str
    title: str
    confidence: str
    reason: str

    def as_dict(self):
        return asdict(self)


def find_duplicates(title, author_name=None, identifier=None):
    asin = normalize_identifier(identifier)
    normalized_title = normalize_title(title)
    normalized_author = normalize_author(author_name)

    found = []
    seen = set()

    def collect(queryset, confidence, reason):
        for book in queryset.distinct().order_by('pk'):
            if book.pk in seen:
                continue
            seen.add(book.pk)
            found.append(DuplicateCandidate(
                book_id=book.pk,
                slug=book.slug,
                title=book.title,
                confidence=confidence,
                reason=reason,
            ))

    if asin:
        collect(Book.objects.filter(identifiers__asin=asin), HIGH, "identifier_match")

    if normalized_title and normalized_author:
        collect(
            Book.objects.filter(
                normalized_title=normalized_title,
                authors__normalized_name=normalized_author,
            ),
            MEDIUM,
            "title_author_match",
        )

    raw_title = (title or '').strip()
    if raw_title:
        collect(Book.objects.filter(title__iexact=raw_title), MEDIUM, "title_exact_match")

    if normalized_title:
        collect(Book.objects.filter(normalized_title=normalized_title), LOW, "title_normalized_match")

    return found


def has_high_confidence(candidates):
    return any(candidate.confidence == HIGH for candidate in candidates)
