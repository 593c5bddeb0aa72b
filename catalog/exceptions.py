"""
Error taxonomy for the catalog and curation apps.

Expected "not satisfied" outcomes (validation gates, duplicate candidates) are
returned as data. The classes below cover everything that stops a request,
and each carries the HTTP status the JSON views answer with.
"""


class CatalogError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self):
        data = {'error': self.message, 'code': self.code}
        if self.details:
            data['details'] = self.details
        return data


class NotFound(CatalogError):
    status_code = 404
    code = "not_found"


class ConstraintViolation(CatalogError):
    """A user-correctable violation of a catalog rule or store constraint."""
    status_code = 400
    code = "constraint_violation"


class InvalidIdentifier(ConstraintViolation):
    code = "invalid_identifier"


class CapExceeded(ConstraintViolation):
    code = "cap_exceeded"

    def __init__(self, category, cap):
        super().__init__(
            f"Category '{category}' is capped at {cap} tags per book.",
            category=category,
            max=cap,
        )
        self.category = category
        self.cap = cap


class SlugCollisionError(ConstraintViolation):
    code = "slug_collision"


class JustificationRequired(ConstraintViolation):
    code = "justification_required"


class StandoutQuoteLimit(ConstraintViolation):
    code = "standout_quote_limit"


class InvalidEvidence(ConstraintViolation):
    code = "invalid_evidence"


class UnknownTags(ConstraintViolation):
    code = "unknown_tags"

    def __init__(self, tag_ids):
        super().__init__("Invalid tag IDs", invalid_tag_ids=list(tag_ids))
        self.tag_ids = list(tag_ids)


class IntakeValidationError(ConstraintViolation):
    code = "invalid_intake"


class DuplicateIntake(ConstraintViolation):
    status_code = 409
    code = "duplicate_intake"


class ConcurrentDuplicateError(ConstraintViolation):
    """A unique identifier appeared between the duplicate check and the insert."""
    status_code = 409
    code = "duplicate_appeared_concurrently"


class InvalidTransition(CatalogError):
    status_code = 409
    code = "invalid_transition"


class ConcurrentModification(CatalogError):
    """Book state changed between the publish pre-check and the commit."""
    status_code = 409
    code = "concurrent_modification"

    def __init__(self, message="Book state changed, please refresh and retry.", **details):
        super().__init__(message, **details)


class PublishRejected(CatalogError):
    status_code = 422
    code = "publish_rejected"

    def __init__(self, validation):
        super().__init__(
            "Book does not satisfy the publish gates.",
            failing_gates=[g.as_dict() for g in validation.failing_gates()],
            contradictions=[c.as_dict() for c in validation.hard_contradictions()],
        )
        self.validation = validation


class TaxonomyNotConfigured(CatalogError):
    code = "taxonomy_not_configured"


class NotAuthorOfBook(ConstraintViolation):
    status_code = 403
    code = "not_author_of_book"


class Forbidden(CatalogError):
    status_code = 403
    code = "forbidden"
