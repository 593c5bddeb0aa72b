"""
Shared plumbing for the JSON views of both apps.
"""
import functools
import json
import logging

from django.http import JsonResponse

from .audit import resolve_actor
from .exceptions import CatalogError, ConstraintViolation

logger = logging.getLogger(__name__)


def json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except (ValueError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def api_view(*actor_types):
    """
    Resolves the actor, parses the JSON body of POSTs and turns CatalogError
    into a JSON error response. Views are called as
    view(request, actor, data, **kwargs). When actor_types are given, other
    actors get a 403.
    """
    def decorator(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            actor = resolve_actor(request)
            if actor is None:
                return JsonResponse({'error': 'Authentication required', 'code': 'unauthorized'}, status=401)
            if actor_types and actor.actor_type not in actor_types:
                return JsonResponse({'error': 'Forbidden', 'code': 'forbidden'}, status=403)

            data = {}
            if request.method == 'POST':
                data = json_body(request)
                if data is None:
                    return JsonResponse({'error': 'Invalid JSON', 'code': 'invalid_json'}, status=400)

            try:
                return view(request, actor, data, *args, **kwargs)
            except CatalogError as e:
                if e.status_code >= 500:
                    logger.exception("%s %s failed: %s", request.method, request.path, e.message)
                return JsonResponse(e.as_dict(), status=e.status_code)

        return wrapper
    return decorator


def int_field(data, key, required=True):
    value = data.get(key)
    if value is None and not required:
        return None
    try:
        if isinstance(value, bool):
            raise ValueError(value)
        return int(value)
    except (TypeError, ValueError):
        raise ConstraintViolation(f"'{key}' must be an integer id.", field=key)
