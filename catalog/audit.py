"""
Audit sink and the actor identity the core trusts.

The actor always comes from outside (member verifier / session layer); the
core records it on audit rows and `*_by` columns and never re-derives it.
"""
import logging
from dataclasses import dataclass

from django.conf import settings
from django.utils.module_loading import import_string

from .models import ActorType, AuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    actor_id: str
    actor_type: str = ActorType.CURATOR

    @property
    def label(self):
        return f"{self.actor_type}:{self.actor_id}"


SYSTEM = Actor(actor_id='system', actor_type=ActorType.SYSTEM)


def record_event(entity_type, entity_id, event_type, actor=None, payload=None):
    actor = actor or SYSTEM
    event = AuditEvent.objects.create(
        entity_type=entity_type,
        entity_id=str(entity_id or ''),
        event_type=event_type,
        actor_type=actor.actor_type,
        actor_id=actor.actor_id,
        payload=payload or {},
    )
    logger.info("audit %s %s:%s by %s", event_type, entity_type, entity_id, actor.label)
    return event


# --- Member verifier boundary ---

def default_member_verifier(request):
    """Maps a Django auth user onto an Actor. Staff users act as curators."""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None
    actor_type = ActorType.CURATOR if user.is_staff else ActorType.MEMBER
    return Actor(actor_id=str(user.get_username()), actor_type=actor_type)


def resolve_actor(request):
    """
    Returns the authenticated Actor for a request, or None.
    The verifier is swappable with settings.CATALOG_MEMBER_VERIFIER (dotted path).
    """
    path = getattr(settings, 'CATALOG_MEMBER_VERIFIER', None)
    verifier = import_string(path) if path else default_member_verifier
    return verifier(request)
