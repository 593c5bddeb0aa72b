from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from catalog.models import Author, Book, Tag, TaxonomyVersion


class Publication(models.Model):
    """
    Immutable snapshot of a book's curated state at publish time.
    Created only by curation.publishing.publish; never updated afterwards.
    """
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="publications")
    taxonomy_version = models.ForeignKey(TaxonomyVersion, on_delete=models.PROTECT, related_name="publications")
    published_by = models.CharField(max_length=100)
    published_at = models.DateTimeField(auto_now_add=True)

    # 1. The full serialized book (metadata, identifiers, cover, axes, tags, evidence, quotes)
    snapshot = models.JSONField()

    # 2. Link to the predecessor and the diff against it (null on first publish)
    previous_publication = models.OneToOneField(
        'self',
        on_delete=models.RESTRICT,
        related_name='next_publication',
        null=True,
        blank=True,
    )
    diff_summary = models.JSONField(null=True, blank=True)

    def save(self, *args, **kwargs):
        if self.pk is not None and Publication.objects.filter(pk=self.pk).exists():
            raise ValidationError("Publications are immutable once written.")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.book_id} @ {self.published_at:%Y-%m-%d %H:%M}"

    class Meta:
        ordering = ['-published_at', '-pk']
        get_latest_by = ['published_at', 'pk']


class IntakeStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class BookIntake(models.Model):
    """
    An author's full-metadata proposal for a book. pending -> approved | rejected,
    both terminal. One live (pending/approved) intake per author and ASIN.
    """
    author = models.ForeignKey(Author, on_delete=models.CASCADE, related_name="intakes")
    submitted_by = models.CharField(max_length=100)
    asin = models.CharField(max_length=10)
    title = models.CharField(max_length=500)
    # Normalized submission as produced by curation.intake.parse_intake
    payload = models.JSONField()

    status = models.CharField(max_length=16, choices=IntakeStatus.choices, default=IntakeStatus.PENDING)
    admin_notes = models.TextField(blank=True, default='')
    decided_by = models.CharField(max_length=100, blank=True, default='')
    decided_at = models.DateTimeField(null=True, blank=True)
    created_book = models.ForeignKey(
        Book,
        on_delete=models.SET_NULL,
        related_name='intakes',
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.title} ({self.status})"

    class Meta:
        ordering = ['-created_at', '-pk']
        constraints = [
            models.UniqueConstraint(
                fields=['author', 'asin'],
                condition=Q(status__in=[IntakeStatus.PENDING, IntakeStatus.APPROVED]),
                name='uniq_live_intake_per_author_asin',
            ),
        ]


class AuthorTagSubmission(models.Model):
    """An author suggesting one tag for one of their books, with an optional evidence anchor."""
    author = models.ForeignKey(Author, on_delete=models.CASCADE, related_name="tag_submissions")
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="tag_submissions")
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name="submissions")
    evidence = models.JSONField(null=True, blank=True)

    status = models.CharField(max_length=16, choices=IntakeStatus.choices, default=IntakeStatus.PENDING)
    reviewer_notes = models.TextField(blank=True, default='')
    submitted_by = models.CharField(max_length=100, blank=True, default='')
    decided_by = models.CharField(max_length=100, blank=True, default='')
    decided_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.tag} for {self.book_id} ({self.status})"

    class Meta:
        ordering = ['-created_at', '-pk']
        constraints = [
            models.UniqueConstraint(fields=['author', 'book', 'tag'], name='uniq_author_tag_submission'),
        ]
