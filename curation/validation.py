"""
Validation Engine.

`validate()` is a pure function over a BookState: it never touches the
database and never raises for "not satisfied". It reports

    gates           REQUIRED_AXES, REQUIRED_COVER, REQUIRED_EVIDENCE
    contradictions  from an open list of ContradictionRule objects
    caps            {count, max, ok} per capped category
    queues          unfinished / needs_evidence / contradiction

`load_book_state()` is the only part that reads the catalog.
"""
from dataclasses import dataclass, field

from catalog.conf import AXIS_CATEGORIES, get_category_caps
from catalog.models import AssetState, BookAxes, CoverAsset

REQUIRED_AXES = "REQUIRED_AXES"
REQUIRED_COVER = "REQUIRED_COVER"
REQUIRED_EVIDENCE = "REQUIRED_EVIDENCE"
GATES = (REQUIRED_AXES, REQUIRED_COVER, REQUIRED_EVIDENCE)

HARD = "hard"
SOFT = "soft"


# --- Inputs ---

@dataclass(frozen=True)
class TagRef:
    id: int
    slug: str
    name: str
    category: str
    requires_evidence: bool = False


@dataclass(frozen=True)
class EvidenceRef:
    id: int
    tag_ids: frozenset = frozenset()


@dataclass(frozen=True)
class CoverRef:
    id: int
    version: int


@dataclass
class BookState:
    axes: dict = field(default_factory=dict)
    tags: tuple = ()
    evidence: tuple = ()
    cover: CoverRef = None
    book_id: int = None

    def tags_by_category(self):
        grouped = {}
        for tag in self.tags:
            grouped.setdefault(tag.category, []).append(tag)
        return grouped


# --- Outputs ---

@dataclass(frozen=True)
class GateResult:
    name: str
    ok: bool
    missing: tuple = ()

    def as_dict(self):
        return {'gate': self.name, 'ok': self.ok, 'missing': list(self.missing)}


@dataclass(frozen=True)
class Contradiction:
    rule_id: str
    severity: str
    message: str

    def as_dict(self):
        return {'rule_id': self.rule_id, 'severity': self.severity, 'message': self.message}


@dataclass(frozen=True)
class CapStatus:
    category: str
    count: int
    max: int

    @property
    def ok(self):
        return self.count <= self.max

    def as_dict(self):
        return {'count': self.count, 'max': self.max, 'ok': self.ok}


@dataclass(frozen=True)
class Queues:
    unfinished: bool
    needs_evidence: bool
    contradiction: bool

    def names(self):
        return [name for name in ('unfinished', 'needs_evidence', 'contradiction') if getattr(self, name)]

    def as_dict(self):
        return {
            'unfinished': self.unfinished,
            'needs_evidence': self.needs_evidence,
            'contradiction': self.contradiction,
        }


@dataclass(frozen=True)
class ValidationResult:
    gates: dict
    contradictions: tuple
    caps: dict
    queues: Queues

    def failing_gates(self):
        return [gate for gate in self.gates.values() if not gate.ok]

    def hard_contradictions(self):
        return [c for c in self.contradictions if c.severity == HARD]

    @property
    def publishable(self):
        return not self.failing_gates() and not self.hard_contradictions()

    def as_dict(self):
        return {
            'publishable': self.publishable,
            'gates': {name: gate.as_dict() for name, gate in self.gates.items()},
            'contradictions': [c.as_dict() for c in self.contradictions],
            'caps': {category: cap.as_dict() for category, cap in self.caps.items()},
            'queues': self.queues.as_dict(),
        }


# --- Contradiction rules ---

def canonical_slug(slug):
    # Seeds use underscores, curators type hyphens
    return (slug or '').strip().lower().replace('_', '-')


class ContradictionRule:
    """
    Base for cross-field checks. Subclasses set rule_id, severity and message
    and implement `applies(state)`.
    """
    rule_id = None
    severity = HARD
    message = ''

    def applies(self, state):
        raise NotImplementedError

    def check(self, state):
        if self.applies(state):
            return Contradiction(self.rule_id, self.severity, self.message)
        return None


class ConsentWarningMismatch(ContradictionRule):
    rule_id = "CONSENT_WARNING_MISMATCH"
    severity = HARD
    message = "Consent Mode conflicts with Non-Consent/Dubious Consent/SA warnings"

    consent_slugs = frozenset({'clear-explicit', 'negotiated'})
    warning_slugs = frozenset({'non-consent', 'noncon', 'dubious-consent', 'dubcon', 'sexual-assault'})
    warning_category = 'content_warning'

    def applies(self, state):
        consent = state.axes.get('consent_mode')
        if consent is None or canonical_slug(consent.slug) not in self.consent_slugs:
            return False
        return any(
            tag.category == self.warning_category and canonical_slug(tag.slug) in self.warning_slugs
            for tag in state.tags
        )


DEFAULT_RULES = (ConsentWarningMismatch(),)


# --- Engine ---

def _axes_gate(state):
    missing = tuple(axis for axis in AXIS_CATEGORIES if state.axes.get(axis) is None)
    return GateResult(REQUIRED_AXES, not missing, missing)


def _cover_gate(state):
    if state.cover is None:
        return GateResult(REQUIRED_COVER, False, ('cover',))
    return GateResult(REQUIRED_COVER, True)


def _evidence_gate(state):
    evidenced = set()
    for evidence in state.evidence:
        evidenced.update(evidence.tag_ids)
    missing = tuple(
        tag.name for tag in state.tags
        if tag.requires_evidence and tag.id not in evidenced
    )
    return GateResult(REQUIRED_EVIDENCE, not missing, missing)


def validate(state, caps=None, rules=None):
    caps = get_category_caps() if caps is None else caps
    rules = DEFAULT_RULES if rules is None else rules

    gates = {}
    for gate in (_axes_gate(state), _cover_gate(state), _evidence_gate(state)):
        gates[gate.name] = gate

    contradictions = []
    for rule in rules:
        found = rule.check(state)
        if found is not None:
            contradictions.append(found)

    grouped = state.tags_by_category()
    cap_report = {
        category: CapStatus(category, len(grouped.get(category, [])), limit)
        for category, limit in caps.items()
    }

    queues = Queues(
        unfinished=not (gates[REQUIRED_AXES].ok and gates[REQUIRED_COVER].ok),
        needs_evidence=not gates[REQUIRED_EVIDENCE].ok,
        contradiction=any(c.severity == HARD for c in contradictions),
    )

    return ValidationResult(
        gates=gates,
        contradictions=tuple(contradictions),
        caps=cap_report,
        queues=queues,
    )


def tag_ref(tag):
    return TagRef(
        id=tag.pk,
        slug=tag.slug,
        name=tag.name,
        category=tag.category_id,
        requires_evidence=tag.requires_evidence,
    )


def load_book_state(book):
    """Reads the current axes, tags, evidence links and ready cover for `book`."""
    axes = BookAxes.objects.select_related(*AXIS_CATEGORIES).filter(book=book).first()
    axis_refs = {}
    for axis in AXIS_CATEGORIES:
        tag = getattr(axes, axis) if axes is not None else None
        axis_refs[axis] = tag_ref(tag) if tag is not None else None

    tags = tuple(tag_ref(tag) for tag in book.tags.order_by('category_id', 'slug'))

    evidence = tuple(
        EvidenceRef(id=item.pk, tag_ids=frozenset(link.tag_id for link in item.links.all()))
        for item in book.evidence.prefetch_related('links')
    )

    ready = CoverAsset.objects.ready_for(book)
    cover = CoverRef(id=ready.pk, version=ready.version) if ready is not None else None

    return BookState(axes=axis_refs, tags=tags, evidence=evidence, cover=cover, book_id=book.pk)


def has_ready_cover(book):
    return CoverAsset.objects.filter(book=book, state=AssetState.READY).exists()
