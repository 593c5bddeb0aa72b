"""Tests for normalization, duplicate detection and transactional book creation."""

import pytest

from catalog.books import CREATED, DUPLICATES_FOUND, create_book, create_book_record
from catalog.dedupe import HIGH, LOW, MEDIUM, find_duplicates
from catalog.exceptions import (
    ConcurrentDuplicateError,
    ConstraintViolation,
    InvalidIdentifier,
    JustificationRequired,
    SlugCollisionError,
)
from catalog.models import AuditEvent, Author, Book, BookAxes, BookIdentifier, BookMetadata
from catalog.normalize import normalize_author, normalize_identifier, normalize_title


class TestNormalize:

    @pytest.mark.parametrize("raw, expected", [
        ("The Duke's Secret (Regency Hearts #2)", "dukes secret"),
        ("A  Court of   Thorns", "court of thorns"),
        ("An Offer [Special Edition]", "offer"),
        ("Theory of Love", "theory of love"),
        ("Hello, World!", "hello world"),
    ])
    def test_normalize_title(self, raw, expected):
        assert normalize_title(raw) == expected

    def test_normalize_author(self):
        assert normalize_author("  J.R.  Ward ") == "jr ward"

    @pytest.mark.parametrize("raw", ["b0abcdefgh", "B0-ABC DEF-GH", " B0ABCDEFGH "])
    def test_normalize_identifier(self, raw):
        assert normalize_identifier(raw) == "B0ABCDEFGH"

    @pytest.mark.parametrize("raw", ["B0ABC", "B0ABCDEFGHI", "B0ABCDEF!H"])
    def test_invalid_identifier_rejected(self, raw):
        with pytest.raises(InvalidIdentifier):
            normalize_identifier(raw)

    def test_blank_identifier_is_none(self):
        assert normalize_identifier("  ") is None
        assert normalize_identifier(None) is None


class TestFindDuplicates:

    def test_same_identifier_is_high(self, book):
        found = find_duplicates("Something Else", identifier="b0abcdefgh")
        assert [(c.book_id, c.confidence, c.reason) for c in found] == [(book.pk, HIGH, "identifier_match")]

    def test_normalized_title_only_is_low(self, book):
        found = find_duplicates("The Wild Hearts!", author_name="Someone Else", identifier="B0ZZZZZZZZ")
        assert [(c.book_id, c.confidence) for c in found] == [(book.pk, LOW)]

    def test_title_and_author_is_medium(self, book):
        found = find_duplicates("Wild Hearts (Book 1)", author_name="jane doe")
        assert found[0].confidence == MEDIUM
        assert found[0].reason == "title_author_match"

    def test_raw_title_case_insensitive_is_medium(self, book):
        found = find_duplicates("WILD HEARTS")
        assert found[0].confidence == MEDIUM
        assert found[0].reason == "title_exact_match"

    def test_each_book_reported_once_at_highest_tier(self, book):
        found = find_duplicates("Wild Hearts", author_name="Jane Doe", identifier="B0ABCDEFGH")
        assert len(found) == 1
        assert found[0].confidence == HIGH

    def test_all_tiers_returned(self, book, curator):
        other = create_book_record("The Wild Hearts", actor=curator)
        found = find_duplicates("Wild Hearts", identifier="B0ABCDEFGH")

        assert [(c.book_id, c.confidence) for c in found] == [(book.pk, HIGH), (other.pk, LOW)]

    def test_invalid_identifier_rejected_before_matching(self, book):
        with pytest.raises(InvalidIdentifier):
            find_duplicates("Wild Hearts", identifier="nope")

    def test_no_matches(self, book):
        assert find_duplicates("Completely Different") == []


class TestCreateBook:

    def test_creates_book_with_placeholders(self, taxonomy, curator):
        result = create_book("Ember & Ash", curator, author_name="Mira Vale", identifier="B0EMBERASH",
                             series_name="Ash", series_position="1")

        assert result.status == CREATED
        book = result.book
        assert book.slug == "ember-ash"
        assert book.authors.get().name == "Mira Vale"
        assert BookIdentifier.objects.get(book=book).asin == "B0EMBERASH"
        assert BookAxes.objects.filter(book=book).exists()
        assert BookMetadata.objects.filter(book=book).exists()
        assert AuditEvent.objects.filter(event_type='book_created', entity_id=str(book.pk)).exists()
        assert AuditEvent.objects.filter(event_type='author_created').exists()

    def test_duplicates_found_writes_nothing(self, book, curator):
        before = Book.objects.count()

        result = create_book("Wild Hearts", curator, identifier="B0ABCDEFGH")

        assert result.status == DUPLICATES_FOUND
        assert result.book is None
        assert result.duplicates[0].confidence == HIGH
        assert Book.objects.count() == before
        event = AuditEvent.objects.get(event_type='duplicate_detected')
        assert event.payload['candidates'][0]['book_id'] == book.pk

    def test_high_confidence_override_needs_justification(self, book, curator):
        with pytest.raises(JustificationRequired):
            create_book("Wild Hearts", curator, identifier="B0ABCDEFGH", override=True, justification="   ")
        assert Book.objects.count() == 1

    def test_override_records_bypassed_duplicates(self, book, curator):
        result = create_book("Wild Hearts", curator, author_name="Jane Doe", override=True,
                             justification="Different edition of the same story")

        assert result.status == CREATED
        assert result.book.slug == "wild-hearts-2"
        event = AuditEvent.objects.get(event_type='book_force_created')
        assert event.payload['justification'] == "Different edition of the same story"
        assert [d['book_id'] for d in event.payload['bypassed_duplicates']] == [book.pk]

    def test_justified_identifier_override_leaves_identifier_with_holder(self, book, curator):
        result = create_book("Wild Hearts", curator, identifier="B0ABCDEFGH", override=True,
                             justification="Separate audiobook edition")

        assert result.status == CREATED
        assert result.book.pk != book.pk
        assert BookIdentifier.objects.get(asin="B0ABCDEFGH").book_id == book.pk
        assert BookIdentifier.objects.get(book=result.book).asin is None

        event = AuditEvent.objects.get(event_type='book_force_created')
        assert event.entity_id == str(result.book.pk)
        assert event.payload['asin'] is None
        assert event.payload['bypassed_identifier'] == "B0ABCDEFGH"
        assert event.payload['justification'] == "Separate audiobook edition"
        assert event.payload['bypassed_duplicates'][0]['reason'] == "identifier_match"

    def test_low_confidence_override_needs_no_justification(self, book, curator):
        result = create_book("The Wild Hearts", curator, author_name="Other Person", override=True)
        assert result.status == CREATED

    def test_author_reused_by_normalized_name(self, book, curator):
        create_book("Another Story", curator, author_name="jane  doe.")
        assert Author.objects.count() == 1

    def test_slug_suffixes_increment(self, taxonomy, curator):
        slugs = [
            create_book_record("Same Title", actor=curator).slug
            for _ in range(3)
        ]
        assert slugs == ["same-title", "same-title-2", "same-title-3"]

    def test_slug_attempts_are_bounded(self, taxonomy, curator, settings):
        settings.CATALOG_SLUG_MAX_ATTEMPTS = 2
        create_book_record("Crowded", actor=curator)
        create_book_record("Crowded", actor=curator)

        with pytest.raises(SlugCollisionError):
            create_book_record("Crowded", actor=curator)
        assert Book.objects.filter(title="Crowded").count() == 2

    def test_concurrent_identifier_insert_rolls_back(self, book, curator):
        before = Book.objects.count()

        # The duplicate check is skipped, as when another request inserted first
        with pytest.raises(ConcurrentDuplicateError):
            create_book_record("Wild Hearts Again", asin="B0ABCDEFGH", actor=curator)

        assert Book.objects.count() == before
        assert not Book.objects.filter(slug="wild-hearts-again").exists()

    def test_title_required(self, taxonomy, curator):
        with pytest.raises(ConstraintViolation):
            create_book("   ", curator)

    def test_slug_is_immutable(self, book):
        book.slug = "renamed"
        book.title = "Wild Hearts Revised"
        book.save()
        book.refresh_from_db()

        assert book.slug == "wild-hearts"
        assert book.normalized_title == "wild hearts revised"
