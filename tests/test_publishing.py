"""Tests for preview, publish and snapshot diffs."""

import pytest
from django.core.exceptions import ValidationError
from django.db.models import RestrictedError

from catalog.evidence import create_evidence
from catalog.exceptions import ConcurrentModification, PublishRejected, TaxonomyNotConfigured
from catalog.models import AuditEvent, Book, BookStatus, EvidenceType
from catalog.tagging import add_tag, remove_tag, set_axes
from curation.models import Publication
from curation.publishing import compute_diff, preview_publish, publish


class TestPublish:

    def test_missing_cover_rejected_without_side_effects(self, book, tag, curator, active_version):
        set_axes(book, curator, world_framework=tag('world_framework', 'fantasy'),
                 pairing=tag('pairing', 'mf'), heat_level=tag('heat_level', 'hl_2'),
                 series_status=tag('series_status', 'standalone'),
                 consent_mode=tag('consent_mode', 'contextual'))

        with pytest.raises(PublishRejected) as exc:
            publish(book, curator)

        assert exc.value.status_code == 422
        assert [g['gate'] for g in exc.value.details['failing_gates']] == ['REQUIRED_COVER']
        assert Publication.objects.count() == 0
        book.refresh_from_db()
        assert book.status == BookStatus.DRAFT
        assert book.live_publication is None

    def test_publish_after_fixing_creates_one_publication(self, book, tag, curator, active_version, ready_cover):
        set_axes(book, curator, world_framework=tag('world_framework', 'fantasy'),
                 pairing=tag('pairing', 'mf'), heat_level=tag('heat_level', 'hl_2'),
                 series_status=tag('series_status', 'standalone'),
                 consent_mode=tag('consent_mode', 'contextual'))
        with pytest.raises(PublishRejected):
            publish(book, curator)

        ready_cover(book)
        result = publish(book, curator)

        assert Publication.objects.count() == 1
        assert result.first_publish is True
        assert result.diff is None
        book.refresh_from_db()
        assert book.status == BookStatus.PUBLISHED
        assert book.live_publication_id == result.publication_id
        assert book.first_published_at == book.last_published_at

    def test_publication_snapshot_contents(self, complete_book, curator, active_version):
        result = publish(complete_book, curator)
        publication = Publication.objects.get(pk=result.publication_id)

        assert publication.published_by == "curator-1"
        assert publication.taxonomy_version == active_version
        assert publication.previous_publication is None
        assert publication.diff_summary is None
        snapshot = publication.snapshot
        assert snapshot['book']['slug'] == complete_book.slug
        assert snapshot['identifiers']['asin'] == "B0ABCDEFGH"
        assert snapshot['cover']['version'] == 1
        assert snapshot['axes']['heat_level']['slug'] == 'hl_3'
        assert snapshot['taxonomy_version'] == "test-1"

    def test_requires_active_taxonomy(self, complete_book, curator):
        with pytest.raises(TaxonomyNotConfigured):
            publish(complete_book, curator)
        assert Publication.objects.count() == 0

    def test_hard_contradiction_blocks_publish(self, complete_book, tag, curator, active_version):
        warning = tag('content_warning', 'non_consent')
        add_tag(complete_book, warning, curator)
        create_evidence(complete_book, EvidenceType.SCENE_NOTE, curator, links=[warning], chapter="12")
        set_axes(complete_book, curator, consent_mode=tag('consent_mode', 'clear_explicit'))

        with pytest.raises(PublishRejected) as exc:
            publish(complete_book, curator)

        assert exc.value.details['failing_gates'] == []
        assert exc.value.details['contradictions'][0]['rule_id'] == "CONSENT_WARNING_MISMATCH"

    def test_missing_evidence_blocks_publish(self, complete_book, tag, curator, active_version):
        add_tag(complete_book, tag('content_warning', 'abuse_depicted'), curator)

        with pytest.raises(PublishRejected) as exc:
            publish(complete_book, curator)

        assert exc.value.details['failing_gates'][0]['missing'] == ['Abuse Depicted']

    def test_state_change_inside_transaction(self, complete_book, curator, active_version, monkeypatch):
        # The cover disappears between the pre-check and the locked re-check
        monkeypatch.setattr('curation.publishing.has_ready_cover', lambda book: False)

        with pytest.raises(ConcurrentModification) as exc:
            publish(complete_book, curator)

        assert exc.value.status_code == 409
        assert Publication.objects.count() == 0
        assert not AuditEvent.objects.filter(event_type='published').exists()
        complete_book.refresh_from_db()
        assert complete_book.status == BookStatus.DRAFT

    def test_publications_are_immutable(self, complete_book, curator, active_version):
        result = publish(complete_book, curator)
        publication = Publication.objects.get(pk=result.publication_id)
        publication.published_by = "someone-else"

        with pytest.raises(ValidationError):
            publication.save()


class TestRepublish:

    def test_diff_between_publications(self, complete_book, tag, curator, active_version):
        enemies = tag('trope', 'enemies_to_lovers')
        add_tag(complete_book, enemies, curator)
        first = publish(complete_book, curator)

        add_tag(complete_book, tag('trope', 'slow_burn'), curator)
        remove_tag(complete_book, enemies.pk, curator)
        second = publish(complete_book, curator)

        assert second.first_publish is False
        assert second.diff['tags']['added'] == ['slow_burn']
        assert second.diff['tags']['removed'] == ['enemies_to_lovers']
        assert second.diff['tags']['by_category'] == {
            'trope': {'added': ['slow_burn'], 'removed': ['enemies_to_lovers']},
        }
        assert second.diff['has_changes'] is True

        p2 = Publication.objects.get(pk=second.publication_id)
        assert p2.previous_publication_id == first.publication_id
        assert p2.diff_summary == second.diff

        event = AuditEvent.objects.filter(event_type='published').first()
        assert event.payload['mode'] == 'republish'

    def test_first_published_at_kept(self, complete_book, curator, active_version):
        publish(complete_book, curator)
        complete_book.refresh_from_db()
        first_stamp = complete_book.first_published_at

        publish(complete_book, curator)
        complete_book.refresh_from_db()

        assert complete_book.first_published_at == first_stamp
        assert complete_book.last_published_at >= first_stamp

    def test_unchanged_republish_has_no_changes(self, complete_book, curator, active_version):
        publish(complete_book, curator)
        second = publish(complete_book, curator)
        assert second.diff['has_changes'] is False

    def test_new_cover_version_is_a_change(self, complete_book, curator, active_version, ready_cover):
        publish(complete_book, curator)
        ready_cover(complete_book, version=2)

        diff = publish(complete_book, curator).diff

        assert diff['cover'] == {'changed': True, 'from': 1, 'to': 2}
        assert diff['has_changes'] is True


class TestPreview:

    def test_preview_writes_nothing(self, complete_book, tag, curator, active_version):
        publish(complete_book, curator)
        add_tag(complete_book, tag('trope', 'fake_dating'), curator)
        events = AuditEvent.objects.count()

        preview = preview_publish(complete_book)

        assert preview.validation.publishable
        assert preview.diff['tags']['added'] == ['fake_dating']
        assert Publication.objects.count() == 1
        assert AuditEvent.objects.count() == events

    def test_preview_without_baseline(self, book):
        preview = preview_publish(book)
        assert preview.diff is None
        assert preview.previous_publication_id is None
        assert not preview.validation.publishable


class TestComputeDiff:

    def snapshot(self, tags=(), evidence=(), cover=None):
        grouped = {}
        for tag_id, category, slug in tags:
            grouped.setdefault(category, []).append({'id': tag_id, 'slug': slug, 'name': slug})
        return {
            'tags': grouped,
            'evidence': [{'id': e} for e in evidence],
            'cover': {'version': cover} if cover is not None else None,
        }

    def test_no_baseline(self):
        assert compute_diff(self.snapshot(), None) is None

    def test_membership_ignores_order(self):
        a = self.snapshot(tags=[(1, 'trope', 'x'), (2, 'trope', 'y')], cover=1)
        b = self.snapshot(tags=[(2, 'trope', 'y'), (1, 'trope', 'x')], cover=1)
        assert compute_diff(a, b)['has_changes'] is False

    def test_evidence_by_id(self):
        diff = compute_diff(self.snapshot(evidence=[2, 3], cover=1), self.snapshot(evidence=[1, 2], cover=1))
        assert diff['evidence'] == {'added': [3], 'removed': [1]}
        assert diff['has_changes'] is True


class TestPublicationChain:

    def test_book_with_several_publications_can_be_deleted(self, complete_book, curator, active_version):
        publish(complete_book, curator)
        publish(complete_book, curator)

        Book.objects.get(pk=complete_book.pk).delete()

        assert Publication.objects.count() == 0

    def test_publication_with_successor_cannot_be_deleted_alone(self, complete_book, curator, active_version):
        first = publish(complete_book, curator)
        publish(complete_book, curator)

        with pytest.raises(RestrictedError):
            Publication.objects.get(pk=first.publication_id).delete()
        assert Publication.objects.count() == 2

    def test_predecessor_already_taken(self, complete_book, curator, active_version, monkeypatch):
        first = publish(complete_book, curator)
        p1 = Publication.objects.get(pk=first.publication_id)
        # Another publish linked itself to p1 while this one still saw p1 as latest
        Publication.objects.create(book=complete_book, taxonomy_version=active_version,
                                   published_by="curator-2", snapshot={}, previous_publication=p1)
        monkeypatch.setattr('curation.publishing.latest_publication', lambda book: p1)

        with pytest.raises(ConcurrentModification):
            publish(complete_book, curator)

        assert Publication.objects.count() == 2
        assert AuditEvent.objects.filter(event_type='published').count() == 1
        complete_book.refresh_from_db()
        assert complete_book.live_publication_id == p1.pk
