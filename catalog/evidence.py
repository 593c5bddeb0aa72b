"""
Evidence ledger and standout quotes, with the distribution policy checks.
"""
from django.db import transaction

from .audit import record_event
from .exceptions import InvalidEvidence, StandoutQuoteLimit
from .models import (
    Book,
    Evidence,
    EvidenceLink,
    EvidenceType,
    LinkTarget,
    PolicyStatus,
    SpoilerLevel,
    StandoutQuote,
    Visibility,
)

EVIDENCE_QUOTE_LIMIT = 280
DROP_EMAIL_QUOTE_LIMIT = 180
MAX_STANDOUT_QUOTES = 2


def evaluate_policy(text, visibility, spoiler, policy_notes='', length_limit=None):
    """
    Distribution policy for quoted material:
    - over `length_limit` characters when the text leaves the workbench -> too_long
    - a major spoiler outside internal_only with no policy notes -> blocked
    """
    status = PolicyStatus.OK
    if length_limit is not None and len(text or '') > length_limit:
        status = PolicyStatus.TOO_LONG
    if spoiler == SpoilerLevel.MAJOR and visibility != Visibility.INTERNAL_ONLY and not policy_notes:
        status = PolicyStatus.BLOCKED
    return status


def _evidence_policy(evidence):
    limit = None
    if evidence.visibility in (Visibility.EMAIL_OK, Visibility.MEMBER_SAFE):
        limit = EVIDENCE_QUOTE_LIMIT
    return evaluate_policy(
        evidence.quote_text, evidence.visibility, evidence.spoiler, evidence.policy_notes, limit
    )


def _check_fields(evidence_type, fields):
    if evidence_type not in EvidenceType.values:
        raise InvalidEvidence(f"Unknown evidence type '{evidence_type}'.")
    if evidence_type == EvidenceType.QUOTE and not fields.get('quote_text'):
        raise InvalidEvidence("A quote needs quote_text.")
    if evidence_type == EvidenceType.EXTERNAL_LINK and not fields.get('url'):
        raise InvalidEvidence("An external link needs a url.")
    if evidence_type == EvidenceType.SCENE_NOTE and not any(
        fields.get(key) for key in ('note', 'chapter', 'page', 'location')
    ):
        raise InvalidEvidence("A scene note needs a note or a location.")


def _check_link(target_type, tag):
    if target_type not in LinkTarget.values:
        raise InvalidEvidence(f"Unknown link target '{target_type}'.")
    if target_type == LinkTarget.AXIS and not tag.category.single_select:
        raise InvalidEvidence(
            f"Tag '{tag.slug}' is not in a single-select category and cannot back an axis.",
            tag_id=tag.pk,
        )


def create_evidence(book, evidence_type, actor=None, links=(), **fields):
    """
    Records a citation for `book`. `links` is an iterable of Tag objects
    or (target_type, Tag) pairs naming what the citation substantiates.
    """
    _check_fields(evidence_type, fields)

    pairs = []
    for link in links:
        target_type, tag = link if isinstance(link, tuple) else (LinkTarget.TAG, link)
        _check_link(target_type, tag)
        pairs.append((target_type, tag))

    with transaction.atomic():
        evidence = Evidence(
            book=book,
            evidence_type=evidence_type,
            created_by=actor.actor_id if actor else '',
            **fields,
        )
        evidence.policy_status = _evidence_policy(evidence)
        evidence.save()
        for target_type, tag in pairs:
            EvidenceLink.objects.get_or_create(evidence=evidence, target_type=target_type, tag=tag)

    record_event('evidence', evidence.pk, 'evidence_created', actor, {
        'book_id': book.pk,
        'type': evidence_type,
        'links': [{'target_type': t, 'tag_id': tag.pk} for t, tag in pairs],
        'policy_status': evidence.policy_status,
    })
    return evidence


def delete_evidence(evidence, actor=None):
    payload = {
        'book_id': evidence.book_id,
        'type': evidence.evidence_type,
        'tag_ids': list(evidence.links.values_list('tag_id', flat=True)),
    }
    evidence_id = evidence.pk
    evidence.delete()
    record_event('evidence', evidence_id, 'evidence_deleted', actor, payload)


def add_standout_quote(book, quote_text, actor=None, **fields):
    if not (quote_text or '').strip():
        raise InvalidEvidence("A standout quote needs quote_text.")

    with transaction.atomic():
        Book.objects.select_for_update().get(pk=book.pk)
        if StandoutQuote.objects.filter(book=book).count() >= MAX_STANDOUT_QUOTES:
            raise StandoutQuoteLimit(
                f"Maximum {MAX_STANDOUT_QUOTES} standout quotes per book.",
                book_id=book.pk,
            )
        quote = StandoutQuote(
            book=book,
            quote_text=quote_text,
            created_by=actor.actor_id if actor else '',
            **fields,
        )
        limit = DROP_EMAIL_QUOTE_LIMIT if quote.use_in_drop_email else None
        quote.policy_status = evaluate_policy(
            quote.quote_text, quote.visibility, quote.spoiler, quote.policy_notes, limit
        )
        quote.save()

    record_event('book', book.pk, 'standout_quote_added', actor, {
        'quote_id': quote.pk,
        'policy_status': quote.policy_status,
    })
    return quote
