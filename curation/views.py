from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from catalog.api import api_view, int_field
from catalog.books import get_book
from catalog.exceptions import Forbidden, NotFound
from catalog.models import ActorType, Author
from catalog.tagging import get_tag

from .intake import (
    approve_intake,
    decide_tag_submission,
    get_intake,
    reject_intake,
    submit_intake,
    submit_tag_submission,
)
from .models import AuthorTagSubmission, BookIntake
from .publishing import preview_publish, publish
from .validation import load_book_state, validate

CURATOR = ActorType.CURATOR
AUTHOR = ActorType.AUTHOR


def get_author(data, actor):
    author_id = int_field(data, 'author_id')
    # Authors act only for themselves; the verifier puts the author id in actor_id
    if actor.actor_type == AUTHOR and actor.actor_id != str(author_id):
        raise Forbidden("Authors can only submit for themselves.")
    try:
        return Author.objects.get(pk=author_id)
    except Author.DoesNotExist:
        raise NotFound(f"Author {author_id} not found")


def format_intake(intake):
    return {
        'id': intake.pk,
        'asin': intake.asin,
        'title': intake.title,
        'status': intake.status,
        'admin_notes': intake.admin_notes,
        'created_book_id': intake.created_book_id,
        'created_at': intake.created_at.isoformat(),
    }


# --- Validation & publishing ---

@require_GET
@api_view(CURATOR)
def book_validation(request, actor, data, slug):
    book = get_book(slug=slug)
    return JsonResponse(validate(load_book_state(book)).as_dict())


@require_GET
@api_view(CURATOR)
def book_preview(request, actor, data, slug):
    return JsonResponse(preview_publish(get_book(slug=slug)).as_dict())


@require_POST
@api_view(CURATOR)
def book_publish(request, actor, data, slug):
    result = publish(get_book(slug=slug), actor)
    return JsonResponse(result.as_dict(), status=201)


# --- Book intake ---

@require_POST
@api_view(AUTHOR, CURATOR)
def intake_submit(request, actor, data):
    author = get_author(data, actor)
    intake = submit_intake(author, data, submitted_by=actor)
    return JsonResponse({'item': format_intake(intake)}, status=201)


@require_GET
@api_view(CURATOR)
def intake_list(request, actor, data):
    intakes = BookIntake.objects.all()
    status = request.GET.get('status')
    if status:
        intakes = intakes.filter(status=status)
    return JsonResponse({'items': [format_intake(i) for i in intakes[:100]]})


@require_POST
@api_view(CURATOR)
def intake_approve(request, actor, data, intake_id):
    intake = get_intake(intake_id)
    book = approve_intake(intake, actor, notes=data.get('admin_notes') or '')
    return JsonResponse({'item': format_intake(intake), 'book': {'id': book.pk, 'slug': book.slug}})


@require_POST
@api_view(CURATOR)
def intake_reject(request, actor, data, intake_id):
    intake = reject_intake(get_intake(intake_id), actor, notes=data.get('admin_notes') or '')
    return JsonResponse({'item': format_intake(intake)})


# --- Author tag submissions ---

@require_POST
@api_view(AUTHOR, CURATOR)
def tag_submission_create(request, actor, data):
    author = get_author(data, actor)
    book = get_book(book_id=int_field(data, 'book_id'))
    tag = get_tag(int_field(data, 'tag_id'))
    submission = submit_tag_submission(author, book, tag, actor, evidence=data.get('evidence'))
    return JsonResponse({'item': {'id': submission.pk, 'status': submission.status}}, status=201)


@require_POST
@api_view(CURATOR)
def tag_submission_decide(request, actor, data, submission_id):
    try:
        submission = AuthorTagSubmission.objects.get(pk=submission_id)
    except AuthorTagSubmission.DoesNotExist:
        raise NotFound(f"Submission {submission_id} not found")
    submission = decide_tag_submission(submission, data.get('action'), actor, notes=data.get('reviewer_notes'))
    return JsonResponse({'ok': True, 'status': submission.status})
