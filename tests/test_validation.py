"""Tests for the validation engine. These run without a database."""

import pytest

from curation.validation import (
    REQUIRED_AXES,
    REQUIRED_COVER,
    REQUIRED_EVIDENCE,
    BookState,
    Contradiction,
    ContradictionRule,
    CoverRef,
    EvidenceRef,
    TagRef,
    validate,
)

CAPS = {'trope': 8, 'plot_engine': 2, 'setting_wrapper': 2, 'seasonal_wrapper': 1}

AXES = {
    'world_framework': TagRef(1, 'contemporary', 'Contemporary', 'world_framework'),
    'pairing': TagRef(2, 'mf', 'M/F', 'pairing'),
    'heat_level': TagRef(3, 'hl_3', 'Steamy', 'heat_level'),
    'series_status': TagRef(4, 'standalone', 'Standalone', 'series_status'),
    'consent_mode': TagRef(5, 'contextual', 'Contextual', 'consent_mode'),
}

WARNING = TagRef(50, 'abuse_depicted', 'Abuse Depicted', 'content_warning', requires_evidence=True)


def make_state(axes=True, cover=True, evidenced=True, extra_tags=(), consent=None):
    state_axes = dict(AXES) if axes else {axis: None for axis in AXES}
    if consent is not None:
        state_axes['consent_mode'] = consent
    tags = [WARNING, *extra_tags]
    if axes:
        tags.extend(state_axes.values())
    evidence = (EvidenceRef(id=1, tag_ids=frozenset({WARNING.id})),) if evidenced else ()
    return BookState(
        axes=state_axes,
        tags=tuple(tags),
        evidence=evidence,
        cover=CoverRef(id=9, version=1) if cover else None,
    )


class TestGates:
    """Every combination of axes x cover x evidence reports exactly the failing gates."""

    @pytest.mark.parametrize("axes", [True, False])
    @pytest.mark.parametrize("cover", [True, False])
    @pytest.mark.parametrize("evidenced", [True, False])
    def test_gate_combinations(self, axes, cover, evidenced):
        result = validate(make_state(axes, cover, evidenced), caps=CAPS)

        failing = {gate.name for gate in result.failing_gates()}
        expected = set()
        if not axes:
            expected.add(REQUIRED_AXES)
        if not cover:
            expected.add(REQUIRED_COVER)
        if not evidenced:
            expected.add(REQUIRED_EVIDENCE)

        assert failing == expected
        assert result.publishable == (not expected)
        assert result.queues.unfinished == (not axes or not cover)
        assert result.queues.needs_evidence == (not evidenced)

    def test_missing_axes_are_named(self):
        state = make_state()
        state.axes['heat_level'] = None
        state.axes['pairing'] = None

        gate = validate(state, caps=CAPS).gates[REQUIRED_AXES]

        assert not gate.ok
        assert gate.missing == ('pairing', 'heat_level')

    def test_unevidenced_tags_listed_by_name(self):
        gate = validate(make_state(evidenced=False), caps=CAPS).gates[REQUIRED_EVIDENCE]
        assert gate.missing == ('Abuse Depicted',)

    def test_evidence_for_another_tag_does_not_count(self):
        state = make_state(evidenced=False)
        state.evidence = (EvidenceRef(id=2, tag_ids=frozenset({999})),)
        assert not validate(state, caps=CAPS).gates[REQUIRED_EVIDENCE].ok

    def test_no_high_stakes_tags_passes_evidence_gate(self):
        state = BookState(axes=dict(AXES), tags=tuple(AXES.values()), cover=CoverRef(1, 1))
        assert validate(state, caps=CAPS).gates[REQUIRED_EVIDENCE].ok


class TestContradictions:

    def test_clear_explicit_with_non_consent_warning(self):
        consent = TagRef(6, 'clear_explicit', 'Clear/Explicit', 'consent_mode')
        warning = TagRef(51, 'non-consent', 'Non-Consent', 'content_warning')

        result = validate(make_state(consent=consent, extra_tags=[warning]), caps=CAPS)

        assert len(result.contradictions) == 1
        assert result.contradictions[0].rule_id == "CONSENT_WARNING_MISMATCH"
        assert result.contradictions[0].severity == "hard"
        assert result.queues.contradiction
        assert not result.publishable

    @pytest.mark.parametrize("slug", ["noncon", "dubious_consent", "dubcon", "sexual-assault"])
    def test_negotiated_with_each_listed_warning(self, slug):
        consent = TagRef(7, 'negotiated', 'Negotiated', 'consent_mode')
        warning = TagRef(52, slug, slug, 'content_warning')
        result = validate(make_state(consent=consent, extra_tags=[warning]), caps=CAPS)
        assert [c.rule_id for c in result.contradictions] == ["CONSENT_WARNING_MISMATCH"]

    def test_removing_either_side_clears_it(self):
        warning = TagRef(51, 'non_consent', 'Non-Consent', 'content_warning')
        clear = TagRef(6, 'clear_explicit', 'Clear/Explicit', 'consent_mode')

        without_warning = validate(make_state(consent=clear), caps=CAPS)
        other_consent = validate(make_state(extra_tags=[warning]), caps=CAPS)

        assert without_warning.contradictions == ()
        assert other_consent.contradictions == ()

    def test_rule_set_is_pluggable(self):
        class AdvisoryRule(ContradictionRule):
            rule_id = "SOFT_CHECK"
            severity = "soft"
            message = "Advisory only"

            def applies(self, state):
                return True

        result = validate(make_state(), caps=CAPS, rules=[AdvisoryRule()])

        assert result.contradictions == (Contradiction("SOFT_CHECK", "soft", "Advisory only"),)
        assert result.hard_contradictions() == []
        assert result.publishable
        assert not result.queues.contradiction


class TestCaps:

    def test_reports_count_and_max(self):
        tropes = [TagRef(100 + i, f"trope_{i}", f"Trope {i}", 'trope') for i in range(9)]
        result = validate(make_state(extra_tags=tropes), caps=CAPS)

        assert result.caps['trope'].as_dict() == {'count': 9, 'max': 8, 'ok': False}
        assert result.caps['seasonal_wrapper'].as_dict() == {'count': 0, 'max': 1, 'ok': True}

    def test_over_cap_does_not_block_publish(self):
        wrappers = [TagRef(200 + i, f"season_{i}", f"Season {i}", 'seasonal_wrapper') for i in range(2)]
        result = validate(make_state(extra_tags=wrappers), caps=CAPS)
        assert not result.caps['seasonal_wrapper'].ok
        assert result.publishable

    def test_as_dict_shape(self):
        data = validate(make_state(cover=False), caps=CAPS).as_dict()

        assert data['publishable'] is False
        assert data['gates'][REQUIRED_COVER] == {'gate': REQUIRED_COVER, 'ok': False, 'missing': ['cover']}
        assert data['queues'] == {'unfinished': True, 'needs_evidence': False, 'contradiction': False}
