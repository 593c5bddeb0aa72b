"""Tests for the management commands."""

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from catalog.models import Tag, TagCategory, TaxonomyVersion
from curation.models import Publication


def run(*args, **kwargs):
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


class TestSeedTaxonomy:

    def test_seeds_bundled_file(self, db):
        output = run('seed_taxonomy', '--activate')

        assert "Taxonomy seed complete." in output
        assert TagCategory.objects.get(key='heat_level').single_select
        assert Tag.objects.filter(category_id='trope', slug='slow_burn').exists()
        assert TaxonomyVersion.objects.get(is_active=True).version == "3.1"

    def test_reseed_updates_in_place(self, db):
        run('seed_taxonomy')
        tags = Tag.objects.count()

        output = run('seed_taxonomy', '--taxonomy-version', "3.2")

        assert Tag.objects.count() == tags
        assert f"Tags: 0 created, {tags} updated" in output

    def test_missing_file(self, db):
        with pytest.raises(CommandError):
            run('seed_taxonomy', '/nonexistent/taxonomy.json')


class TestListBooks:

    def test_lists_queues(self, book, complete_book):
        output = run('list_books')
        assert "TITLE: Wild Hearts (wild-hearts)" in output
        assert "QUEUES: none" in output

    def test_queue_filter(self, book):
        output = run('list_books', '--queue', 'unfinished')
        assert "REQUIRED_AXES" in output
        assert "Total Books: 1" in output

        assert "Total Books: 0" in run('list_books', '--queue', 'contradiction')


class TestPublishBook:

    def test_dry_run_writes_nothing(self, complete_book, active_version):
        output = run('publish_book', complete_book.slug, '--dry-run')

        assert "REQUIRED_COVER: ok" in output
        assert "No previous publication" in output
        assert Publication.objects.count() == 0

    def test_publish(self, complete_book, active_version):
        output = run('publish_book', complete_book.slug, '--actor', 'ops')

        assert "First publish of 'Wild Hearts'" in output
        assert Publication.objects.get().published_by == "ops"

    def test_rejected_publish_fails(self, book, active_version):
        with pytest.raises(CommandError):
            run('publish_book', book.slug)
