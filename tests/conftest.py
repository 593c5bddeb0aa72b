"""Shared test fixtures for the catalog and curation apps."""

import json
from pathlib import Path

import pytest

from catalog.audit import Actor
from catalog.books import create_book_record
from catalog.models import ActorType, AssetState, Author, CoverAsset, Tag, TaxonomyVersion
from catalog.tagging import set_axes
from catalog.taxonomy import load_taxonomy

FIXTURE_FILE = Path(__file__).resolve().parent.parent / 'catalog' / 'fixtures' / 'taxonomy.json'

DEFAULT_AXES = {
    'world_framework': 'contemporary',
    'pairing': 'mf',
    'heat_level': 'hl_3',
    'series_status': 'standalone',
    'consent_mode': 'contextual',
}


@pytest.fixture
def taxonomy_data():
    """The bundled taxonomy file as a dict."""
    return json.loads(FIXTURE_FILE.read_text(encoding='utf-8'))


@pytest.fixture
def taxonomy(db, taxonomy_data):
    """Loads the bundled taxonomy without activating a version."""
    load_taxonomy(taxonomy_data)


@pytest.fixture
def tag(taxonomy):
    """Looks up a tag by category and slug: tag('trope', 'slow_burn')."""
    def lookup(category, slug):
        return Tag.objects.select_related('category').get(category_id=category, slug=slug)
    return lookup


@pytest.fixture
def active_version(db):
    version = TaxonomyVersion.objects.create(version="test-1")
    version.activate()
    return version


@pytest.fixture
def curator():
    return Actor(actor_id="curator-1", actor_type=ActorType.CURATOR)


@pytest.fixture
def author_actor():
    return Actor(actor_id="author-1", actor_type=ActorType.AUTHOR)


@pytest.fixture
def author(db):
    return Author.objects.create(name="Jane Doe")


@pytest.fixture
def book(taxonomy, curator):
    return create_book_record("Wild Hearts", author_name="Jane Doe", asin="B0ABCDEFGH", actor=curator)


@pytest.fixture
def ready_cover():
    def attach(book, version=1):
        return CoverAsset.objects.create(book=book, version=version, state=AssetState.READY,
                                         storage_key=f"covers/{book.slug}/v{version}.jpg")
    return attach


@pytest.fixture
def complete_book(book, tag, curator, ready_cover):
    """A book that passes every gate: all axes, a ready cover, no high-stakes tags."""
    set_axes(book, curator, **{axis: tag(axis, slug) for axis, slug in DEFAULT_AXES.items()})
    ready_cover(book)
    return book


@pytest.fixture
def intake_payload(tag):
    """Builds a valid raw intake payload; keyword arguments override fields."""
    def build(**overrides):
        payload = {
            'title': "Midnight Vows",
            'asin': "B0MIDNIGHT",
            'series_name': "Vows",
            'series_number': "1",
            'publication_date': "2023-04-01",
            'tropes': [
                {'tag_id': tag('trope', 'enemies_to_lovers').pk},
                {'tag_id': tag('trope', 'slow_burn').pk},
            ],
        }
        payload.update({axis: tag(axis, slug).pk for axis, slug in DEFAULT_AXES.items()})
        payload.update(overrides)
        return payload
    return build
