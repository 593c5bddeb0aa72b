"""
Book Intake Review Workflow and author tag submissions.

Raw JSON from authors is parsed exactly once, by `parse_intake`, into an
IntakeSubmission. Everything downstream works with that typed record; the
stored payload is its `as_payload()` form, which parses back to the same
record.
"""
import logging
from dataclasses import dataclass, field

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from catalog.audit import record_event
from catalog.books import create_book_record
from catalog.conf import AXIS_CATEGORIES
from catalog.evidence import create_evidence
from catalog.exceptions import (
    ConstraintViolation,
    DuplicateIntake,
    IntakeValidationError,
    InvalidIdentifier,
    InvalidTransition,
    NotAuthorOfBook,
    NotFound,
    UnknownTags,
)
from catalog.models import Book, EvidenceType, Tag
from catalog.normalize import normalize_identifier
from catalog.tagging import add_tag, set_axes

from .models import AuthorTagSubmission, BookIntake, IntakeStatus

logger = logging.getLogger(__name__)

# Optional selection groups and how many entries each may hold
SELECTION_GROUPS = {
    'content_warnings': 50,
    'tropes': 100,
    'hero_archetypes': 10,
    'heroine_archetypes': 10,
    'representation': 50,
    'kink_bundles': 20,
    'kink_details': 50,
}

MAX_TITLE_LENGTH = 300
MAX_SERIES_NAME_LENGTH = 200
MAX_SERIES_NUMBER_LENGTH = 10
MAX_NOTES_LENGTH = 1000
MAX_PENDING_SUBMISSIONS = 100

ANCHOR_LIMITS = {'chapter': 64, 'page': 64, 'location': 128, 'notes': 400}


# --- Typed submission ---

@dataclass(frozen=True)
class EvidenceAnchor:
    """Where in the book a tag shows up."""
    chapter: str = ''
    page: str = ''
    location: str = ''
    notes: str = ''

    def is_empty(self):
        return not (self.chapter or self.page or self.location or self.notes)

    def as_dict(self):
        return {key: getattr(self, key) for key in ANCHOR_LIMITS if getattr(self, key)}


@dataclass(frozen=True)
class TagSelection:
    tag_id: int
    anchor: EvidenceAnchor = None

    def as_dict(self):
        data = {'tag_id': self.tag_id}
        if self.anchor is not None:
            data['anchor'] = self.anchor.as_dict()
        return data


@dataclass(frozen=True)
class AxisSelections:
    world_framework: int
    pairing: int
    heat_level: int
    series_status: int
    consent_mode: int

    def items(self):
        return [(axis, getattr(self, axis)) for axis in AXIS_CATEGORIES]


@dataclass(frozen=True)
class IntakeSubmission:
    title: str
    asin: str
    axes: AxisSelections
    selections: dict = field(default_factory=dict)
    series_name: str = ''
    series_number: str = ''
    publication_date: object = None
    notes: str = ''

    def all_selections(self):
        for group in SELECTION_GROUPS:
            yield from self.selections.get(group, ())

    def all_tag_ids(self):
        """Axes first, then every group, each id once."""
        ids = [tag_id for _, tag_id in self.axes.items()]
        ids.extend(selection.tag_id for selection in self.all_selections())
        return list(dict.fromkeys(ids))

    def as_payload(self):
        payload = {
            'title': self.title,
            'asin': self.asin,
            'series_name': self.series_name,
            'series_number': self.series_number,
            'publication_date': self.publication_date.isoformat() if self.publication_date else None,
            'notes': self.notes,
        }
        payload.update(dict(self.axes.items()))
        for group in SELECTION_GROUPS:
            payload[group] = [selection.as_dict() for selection in self.selections.get(group, ())]
        return payload


# --- Parsing ---

def _text(data, key, errors, max_length, required=False):
    value = data.get(key)
    if value is None:
        value = ''
    if not isinstance(value, str):
        errors[key] = "Must be a string."
        return ''
    value = value.strip()
    if required and not value:
        errors[key] = "This field is required."
    elif len(value) > max_length:
        errors[key] = f"At most {max_length} characters."
    return value


def _tag_id(value):
    # bool is an int subclass; True is not a tag id
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, str):
        value = value.strip()
    tag_id = int(value)
    if tag_id <= 0:
        raise ValueError(value)
    return tag_id


def _anchor(raw, path, errors):
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors[path] = "Must be an object."
        return None
    values = {}
    for key, limit in ANCHOR_LIMITS.items():
        value = raw.get(key)
        if value is None and key == 'location':
            value = raw.get('percentage')
        value = '' if value is None else str(value).strip()
        if len(value) > limit:
            errors[f"{path}.{key}"] = f"At most {limit} characters."
        values[key] = value
    anchor = EvidenceAnchor(**values)
    return None if anchor.is_empty() else anchor


def _selection(raw, path, errors):
    anchor = None
    if isinstance(raw, dict):
        anchor = _anchor(raw.get('anchor'), f"{path}.anchor", errors)
        raw = raw.get('tag_id')
    try:
        return TagSelection(tag_id=_tag_id(raw), anchor=anchor)
    except (TypeError, ValueError):
        errors[path] = "Must be a tag id."
        return None


def parse_intake(data):
    """
    Validates a raw intake payload and returns an IntakeSubmission.
    Raises IntakeValidationError with a field -> message map.
    """
    if not isinstance(data, dict):
        raise IntakeValidationError("Invalid payload", errors={'__all__': "Expected a JSON object."})

    errors = {}

    title = _text(data, 'title', errors, MAX_TITLE_LENGTH, required=True)
    series_name = _text(data, 'series_name', errors, MAX_SERIES_NAME_LENGTH)
    series_number = _text(data, 'series_number', errors, MAX_SERIES_NUMBER_LENGTH)
    notes = _text(data, 'notes', errors, MAX_NOTES_LENGTH)

    asin = None
    try:
        asin = normalize_identifier(data.get('asin'))
    except InvalidIdentifier as e:
        errors['asin'] = e.message
    else:
        if asin is None:
            errors['asin'] = "This field is required."

    publication_date = None
    raw_date = data.get('publication_date')
    if raw_date:
        try:
            publication_date = parse_date(str(raw_date))
        except ValueError:
            publication_date = None
        if publication_date is None:
            errors['publication_date'] = "Use YYYY-MM-DD."

    axis_ids = {}
    for axis in AXIS_CATEGORIES:
        try:
            axis_ids[axis] = _tag_id(data.get(axis))
        except (TypeError, ValueError):
            errors[axis] = "A tag id is required for every axis."

    selections = {}
    for group, limit in SELECTION_GROUPS.items():
        raw = data.get(group) or []
        if not isinstance(raw, list):
            errors[group] = "Must be a list."
            continue
        if len(raw) > limit:
            errors[group] = f"At most {limit} selections."
            continue
        parsed = [_selection(item, f"{group}[{i}]", errors) for i, item in enumerate(raw)]
        selections[group] = tuple(s for s in parsed if s is not None)

    if errors:
        raise IntakeValidationError("Invalid payload", errors=errors)

    return IntakeSubmission(
        title=title,
        asin=asin,
        axes=AxisSelections(**axis_ids),
        selections=selections,
        series_name=series_name,
        series_number=series_number,
        publication_date=publication_date,
        notes=notes,
    )


def _resolve_tags(submission):
    tag_ids = submission.all_tag_ids()
    tags = Tag.objects.select_related('category').in_bulk(tag_ids)
    unknown = [tag_id for tag_id in tag_ids if tag_id not in tags]
    if unknown:
        raise UnknownTags(unknown)

    misplaced = {
        axis: tags[tag_id].category_id
        for axis, tag_id in submission.axes.items()
        if tags[tag_id].category_id != axis
    }
    if misplaced:
        raise IntakeValidationError(
            "Axis selections must come from their own category.",
            errors={axis: f"Tag is in '{category}'." for axis, category in misplaced.items()},
        )
    return tags


# --- Intake lifecycle ---

def submit_intake(author, data, submitted_by):
    submission = parse_intake(data)
    _resolve_tags(submission)

    existing = BookIntake.objects.filter(
        author=author,
        asin=submission.asin,
        status__in=[IntakeStatus.PENDING, IntakeStatus.APPROVED],
    ).first()
    if existing is not None:
        raise DuplicateIntake(
            f"You already have a {existing.status} intake for this ASIN.",
            intake_id=existing.pk,
        )

    try:
        with transaction.atomic():
            intake = BookIntake.objects.create(
                author=author,
                submitted_by=submitted_by.actor_id,
                asin=submission.asin,
                title=submission.title,
                payload=submission.as_payload(),
            )
    except IntegrityError:
        raise DuplicateIntake("An intake for this ASIN was submitted concurrently.")

    record_event('intake', intake.pk, 'intake_submitted', submitted_by, {
        'asin': intake.asin,
        'title': intake.title,
        'tag_ids': submission.all_tag_ids(),
    })
    return intake


def get_intake(intake_id):
    try:
        return BookIntake.objects.select_related('author').get(pk=intake_id)
    except (BookIntake.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Intake {intake_id} not found")


def _lock_pending(intake):
    locked = BookIntake.objects.select_for_update().get(pk=intake.pk)
    if locked.status != IntakeStatus.PENDING:
        raise InvalidTransition(
            f"Intake is already {locked.status}.",
            intake_id=locked.pk,
            status=locked.status,
        )
    return locked


def reject_intake(intake, actor, notes=''):
    with transaction.atomic():
        locked = _lock_pending(intake)
        locked.status = IntakeStatus.REJECTED
        locked.admin_notes = notes or "Rejected"
        locked.decided_by = actor.actor_id
        locked.decided_at = timezone.now()
        locked.save(update_fields=['status', 'admin_notes', 'decided_by', 'decided_at'])

        record_event('intake', locked.pk, 'intake_decided', actor, {
            'decision': IntakeStatus.REJECTED,
            'notes': locked.admin_notes,
        })

    intake.refresh_from_db()
    return intake


def approve_intake(intake, actor, notes=''):
    """
    Materializes the intake into the catalog and returns the Book.
    Publishing stays a separate curator action.
    """
    with transaction.atomic():
        locked = _lock_pending(intake)
        submission = parse_intake(locked.payload)
        tags = _resolve_tags(submission)

        # --- STEP 1: Reuse the book with this ASIN or create it ---
        book = Book.objects.filter(identifiers__asin=submission.asin).first()
        reused = book is not None
        if not reused:
            book = create_book_record(
                submission.title,
                asin=submission.asin,
                actor=actor,
                series_name=submission.series_name,
                series_position=submission.series_number,
                publication_date=submission.publication_date,
            )
            record_event('book', book.pk, 'book_created', actor, {
                'slug': book.slug,
                'title': book.title,
                'asin': submission.asin,
                'intake_id': locked.pk,
            })
        book.authors.add(locked.author)

        # --- STEP 2: Axes, then every selected tag ---
        set_axes(book, actor, **{axis: tags[tag_id] for axis, tag_id in submission.axes.items()})
        for selection in submission.all_selections():
            # Overflow shows up in the validation caps report
            add_tag(book, tags[selection.tag_id], actor, enforce_cap=False)

        # --- STEP 3: Anchors become scene notes backing their tag ---
        for selection in submission.all_selections():
            if selection.anchor is None:
                continue
            create_evidence(
                book,
                EvidenceType.SCENE_NOTE,
                actor,
                links=[tags[selection.tag_id]],
                chapter=selection.anchor.chapter,
                page=selection.anchor.page,
                location=selection.anchor.location,
                note=selection.anchor.notes,
            )

        locked.status = IntakeStatus.APPROVED
        locked.admin_notes = notes or ''
        locked.decided_by = actor.actor_id
        locked.decided_at = timezone.now()
        locked.created_book = book
        locked.save(update_fields=['status', 'admin_notes', 'decided_by', 'decided_at', 'created_book'])

        record_event('intake', locked.pk, 'intake_decided', actor, {
            'decision': IntakeStatus.APPROVED,
            'book_id': book.pk,
            'reused_book': reused,
            'tag_ids': submission.all_tag_ids(),
            'notes': locked.admin_notes,
        })

    logger.info("Intake %s approved into book %s (%s)", intake.pk, book.pk, "reused" if reused else "new")
    intake.refresh_from_db()
    return book


# --- Author tag submissions ---

def submit_tag_submission(author, book, tag, actor, evidence=None):
    if not book.authors.filter(pk=author.pk).exists():
        raise NotAuthorOfBook("You are not an author on that book.", book_id=book.pk)

    errors = {}
    anchor = _anchor(evidence, 'evidence', errors)
    if errors:
        raise IntakeValidationError("Invalid payload", errors=errors)

    pending = AuthorTagSubmission.objects.filter(
        author=author, book=book, status=IntakeStatus.PENDING,
    ).exclude(tag=tag).count()
    if pending >= MAX_PENDING_SUBMISSIONS:
        raise ConstraintViolation(
            f"Maximum pending submissions per book reached ({MAX_PENDING_SUBMISSIONS}). Wait for review.",
        )

    # Resubmitting the same tag reopens the earlier submission
    submission, created = AuthorTagSubmission.objects.update_or_create(
        author=author,
        book=book,
        tag=tag,
        defaults={
            'evidence': anchor.as_dict() if anchor else None,
            'status': IntakeStatus.PENDING,
            'submitted_by': actor.actor_id,
            'reviewer_notes': '',
            'decided_by': '',
            'decided_at': None,
        },
    )
    record_event('tag_submission', submission.pk, 'tag_submission_created', actor, {
        'book_id': book.pk,
        'tag_id': tag.pk,
        'resubmitted': not created,
    })
    return submission


def decide_tag_submission(submission, action, actor, notes=None):
    if action not in ('approve', 'reject'):
        raise ConstraintViolation(f"Unknown action '{action}'.", action=action)

    with transaction.atomic():
        locked = AuthorTagSubmission.objects.select_for_update().select_related('tag__category').get(pk=submission.pk)
        if locked.status != IntakeStatus.PENDING:
            raise InvalidTransition(f"Submission is already {locked.status}.", status=locked.status)

        if action == 'approve':
            add_tag(locked.book, locked.tag, actor)
            if locked.evidence:
                anchor = EvidenceAnchor(**{k: v for k, v in locked.evidence.items() if k in ANCHOR_LIMITS})
                create_evidence(
                    locked.book,
                    EvidenceType.SCENE_NOTE,
                    actor,
                    links=[locked.tag],
                    chapter=anchor.chapter,
                    page=anchor.page,
                    location=anchor.location,
                    note=anchor.notes,
                )
            locked.status = IntakeStatus.APPROVED
            locked.reviewer_notes = notes or ''
        else:
            locked.status = IntakeStatus.REJECTED
            locked.reviewer_notes = notes or "Rejected"

        locked.decided_by = actor.actor_id
        locked.decided_at = timezone.now()
        locked.save(update_fields=['status', 'reviewer_notes', 'decided_by', 'decided_at'])

        record_event('tag_submission', locked.pk, 'tag_submission_decided', actor, {
            'decision': locked.status,
            'book_id': locked.book_id,
            'tag_id': locked.tag_id,
        })

    submission.refresh_from_db()
    return submission
