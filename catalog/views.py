from django.http import JsonResponse
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_GET, require_POST

from .api import api_view, int_field
from .books import DUPLICATES_FOUND, create_book, get_book
from .conf import AXIS_CATEGORIES
from .dedupe import find_duplicates
from .evidence import add_standout_quote, create_evidence, delete_evidence
from .exceptions import ConstraintViolation, NotFound
from .models import ActorType, Evidence, LinkTarget
from .tagging import add_tag, get_tag, remove_tag, set_axes

CURATOR = ActorType.CURATOR

BOOK_DETAIL_FIELDS = ('series_name', 'series_position', 'published_year')
EVIDENCE_FIELDS = ('quote_text', 'url', 'chapter', 'page', 'location', 'note',
                   'visibility', 'spoiler', 'policy_notes', 'redacted_text')
QUOTE_FIELDS = ('label', 'use_in_drop_email', 'visibility', 'spoiler', 'policy_notes')


# --- Utility Functions ---

def format_book(book):
    axes = getattr(book, 'axes', None)
    return {
        'id': book.pk,
        'slug': book.slug,
        'title': book.title,
        'status': book.status,
        'authors': [a.name for a in book.authors.all()],
        'series_name': book.series_name,
        'series_position': book.series_position,
        'published_year': book.published_year,
        'axes': {
            axis: (getattr(axes, f"{axis}_id") if axes else None) for axis in AXIS_CATEGORIES
        },
        'tags': [
            {'id': t.pk, 'category': t.category_id, 'slug': t.slug, 'name': t.name}
            for t in book.tags.order_by('category_id', 'slug')
        ],
        'live_publication_id': book.live_publication_id,
    }


# --- Books ---

@require_GET
@api_view()
def book_detail(request, actor, data, slug):
    return JsonResponse({'item': format_book(get_book(slug=slug))})


@require_GET
@api_view()
def duplicate_check(request, actor, data):
    title = request.GET.get('title', '').strip()
    if not title:
        raise ConstraintViolation("'title' is required.")
    candidates = find_duplicates(
        title,
        author_name=request.GET.get('author'),
        identifier=request.GET.get('identifier'),
    )
    return JsonResponse({'items': [c.as_dict() for c in candidates]})


@require_POST
@api_view(CURATOR)
def book_create(request, actor, data):
    details = {key: data[key] for key in BOOK_DETAIL_FIELDS if data.get(key) is not None}
    if data.get('publication_date'):
        details['publication_date'] = parse_date(str(data['publication_date']))
        if details['publication_date'] is None:
            raise ConstraintViolation("'publication_date' must be YYYY-MM-DD.")

    result = create_book(
        data.get('title'),
        actor=actor,
        author_name=data.get('author_name'),
        identifier=data.get('identifier'),
        override=bool(data.get('override')),
        justification=data.get('justification'),
        **details,
    )
    status = 409 if result.status == DUPLICATES_FOUND else 201
    return JsonResponse(result.as_dict(), status=status)


# --- Tags & axes ---

@require_POST
@api_view(CURATOR)
def book_add_tag(request, actor, data, slug):
    book = get_book(slug=slug)
    tag = get_tag(int_field(data, 'tag_id'))
    added = add_tag(book, tag, actor)
    return JsonResponse({'ok': True, 'added': added}, status=201 if added else 200)


@require_POST
@api_view(CURATOR)
def book_remove_tag(request, actor, data, slug, tag_id):
    book = get_book(slug=slug)
    removed = remove_tag(book, tag_id, actor)
    return JsonResponse({'ok': True, 'removed': removed})


@require_POST
@api_view(CURATOR)
def book_set_axes(request, actor, data, slug):
    book = get_book(slug=slug)
    slots = {}
    for axis, tag_id in data.items():
        if axis not in AXIS_CATEGORIES:
            raise ConstraintViolation(f"Unknown axis '{axis}'.", axis=axis)
        slots[axis] = get_tag(int_field(data, axis)) if tag_id is not None else None
    axes = set_axes(book, actor, **slots)
    return JsonResponse({
        'ok': True,
        'axes': {axis: getattr(axes, f"{axis}_id") for axis in AXIS_CATEGORIES},
    })


# --- Evidence ---

@require_POST
@api_view(CURATOR)
def book_add_evidence(request, actor, data, slug):
    book = get_book(slug=slug)
    links = []
    for link in data.get('links') or []:
        if not isinstance(link, dict):
            raise ConstraintViolation("Each link needs a tag_id.")
        links.append((link.get('target_type', LinkTarget.TAG), get_tag(int_field(link, 'tag_id'))))

    fields = {key: data[key] for key in EVIDENCE_FIELDS if data.get(key) is not None}
    evidence = create_evidence(book, data.get('type'), actor, links=links, **fields)
    return JsonResponse({
        'item': {'id': evidence.pk, 'type': evidence.evidence_type, 'policy_status': evidence.policy_status},
    }, status=201)


@require_POST
@api_view(CURATOR)
def evidence_delete(request, actor, data, evidence_id):
    try:
        evidence = Evidence.objects.get(pk=evidence_id)
    except Evidence.DoesNotExist:
        raise NotFound(f"Evidence {evidence_id} not found")
    delete_evidence(evidence, actor)
    return JsonResponse({'ok': True})


@require_POST
@api_view(CURATOR)
def book_add_standout_quote(request, actor, data, slug):
    book = get_book(slug=slug)
    fields = {key: data[key] for key in QUOTE_FIELDS if data.get(key) is not None}
    quote = add_standout_quote(book, (data.get('quote_text') or '').strip(), actor, **fields)
    return JsonResponse({'item': {'id': quote.pk, 'policy_status': quote.policy_status}}, status=201)
