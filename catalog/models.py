from django.db import models
from django.utils import timezone

from .conf import AXIS_CATEGORIES
from .normalize import normalize_author, normalize_title


# --- Taxonomy ---

class TagCategory(models.Model):
    """
    Governs select cardinality for the tags inside it.
    The five axis categories are single-select; everything else is multi-select.
    """
    key = models.CharField(max_length=64, primary_key=True)
    label = models.CharField(max_length=200)
    single_select = models.BooleanField(default=False)
    is_premium = models.BooleanField(default=False)
    sensitive_by_default = models.BooleanField(default=False)
    display_order = models.IntegerField(default=0)

    def __str__(self):
        return self.label

    @property
    def is_axis(self):
        return self.key in AXIS_CATEGORIES

    class Meta:
        verbose_name_plural = "Tag categories"
        ordering = ['display_order', 'key']


class Tag(models.Model):
    """
    A taxonomy leaf. Identity never changes once created; only display
    metadata does. Parent is used for kink detail -> kink bundle nesting.
    """
    category = models.ForeignKey(TagCategory, on_delete=models.PROTECT, related_name="tags")
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200)
    description = models.TextField(blank=True, default='')
    parent = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        related_name='children',
        null=True,
        blank=True,
    )

    # Sensitive tags are excluded from public-facing default views
    sensitive_flag = models.BooleanField(default=False)
    # High-stakes tags need at least one linked Evidence before publish
    requires_evidence = models.BooleanField(default=False)
    is_premium = models.BooleanField(default=False)
    display_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.category_id}:{self.slug}"

    class Meta:
        ordering = ['category', 'display_order', 'name']
        constraints = [
            models.UniqueConstraint(fields=['category', 'slug'], name='uniq_tag_category_slug'),
        ]


class TaxonomyVersion(models.Model):
    """Publications are pinned to whichever version is active when they are made."""
    version = models.CharField(max_length=32, unique=True)
    is_active = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    activated_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.version

    def activate(self):
        TaxonomyVersion.objects.exclude(pk=self.pk).filter(is_active=True).update(is_active=False)
        self.is_active = True
        self.activated_at = timezone.now()
        self.save(update_fields=['is_active', 'activated_at'])

    @classmethod
    def active(cls):
        return cls.objects.filter(is_active=True).order_by('-activated_at', '-pk').first()


# --- Books ---

class Author(models.Model):
    name = models.CharField(max_length=500)
    # Matching key used to reuse an author on book creation
    normalized_name = models.CharField(max_length=500, db_index=True, editable=False)

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_author(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class BookStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"


class Book(models.Model):
    """
    The central catalog entity. A book only becomes 'published' through the
    publication engine, which snapshots its curated state.
    """
    slug = models.SlugField(max_length=255, unique=True)
    title = models.CharField(max_length=500)
    normalized_title = models.CharField(max_length=500, db_index=True, editable=False)
    status = models.CharField(max_length=16, choices=BookStatus.choices, default=BookStatus.DRAFT)

    authors = models.ManyToManyField(Author, related_name="books", blank=True)
    tags = models.ManyToManyField(Tag, through='BookTag', related_name="books", blank=True)

    series_name = models.CharField(max_length=200, blank=True, default='')
    series_position = models.CharField(max_length=16, blank=True, default='')
    publication_date = models.DateField(null=True, blank=True)
    published_year = models.IntegerField(null=True, blank=True)

    first_published_at = models.DateTimeField(null=True, blank=True)
    last_published_at = models.DateTimeField(null=True, blank=True)
    live_publication = models.ForeignKey(
        'curation.Publication',
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        self.normalized_title = normalize_title(self.title)
        if self.pk:
            # The slug is part of public URLs and never changes once set
            stored = Book.objects.filter(pk=self.pk).values_list('slug', flat=True).first()
            if stored and stored != self.slug:
                self.slug = stored
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.title}"

    class Meta:
        ordering = ['title']


class BookTag(models.Model):
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="book_tags")
    tag = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name="book_tags")
    added_by = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['book', 'tag'], name='uniq_book_tag'),
        ]


class BookIdentifier(models.Model):
    book = models.OneToOneField(Book, on_delete=models.CASCADE, related_name="identifiers")
    # Unique when present; the store-level backstop for concurrent creates
    asin = models.CharField(max_length=10, unique=True, null=True, blank=True)
    isbn13 = models.CharField(max_length=13, unique=True, null=True, blank=True)

    def __str__(self):
        return self.asin or self.isbn13 or f"book {self.book_id}"


class BookMetadata(models.Model):
    book = models.OneToOneField(Book, on_delete=models.CASCADE, related_name="metadata")
    description = models.TextField(blank=True, default='')
    publisher = models.CharField(max_length=200, blank=True, default='')
    page_count = models.IntegerField(null=True, blank=True)
    kindle_unlimited = models.BooleanField(null=True, blank=True)
    amazon_url = models.URLField(max_length=500, blank=True, default='')
    goodreads_url = models.URLField(max_length=500, blank=True, default='')

    class Meta:
        verbose_name_plural = "Book metadata"


class BookAxes(models.Model):
    """Exactly one per book. Each slot references a tag from that axis's category."""
    book = models.OneToOneField(Book, on_delete=models.CASCADE, related_name="axes")
    world_framework = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name='+', null=True, blank=True)
    pairing = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name='+', null=True, blank=True)
    heat_level = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name='+', null=True, blank=True)
    series_status = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name='+', null=True, blank=True)
    consent_mode = models.ForeignKey(Tag, on_delete=models.PROTECT, related_name='+', null=True, blank=True)

    def slots(self):
        return {axis: getattr(self, axis) for axis in AXIS_CATEGORIES}

    def missing(self):
        return [axis for axis in AXIS_CATEGORIES if getattr(self, f"{axis}_id") is None]

    def is_complete(self):
        return not self.missing()

    class Meta:
        verbose_name_plural = "Book axes"


# --- Assets ---

class AssetState(models.TextChoices):
    PENDING = "pending", "Pending"
    READY = "ready", "Ready"
    FAILED = "failed", "Failed"


class CoverAssetQuerySet(models.QuerySet):
    def ready_for(self, book):
        return self.filter(book=book, state=AssetState.READY).order_by('-version').first()


class CoverAsset(models.Model):
    """
    Read side of the external cover store: only existence, state and version
    matter to curation.
    """
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="covers")
    version = models.PositiveIntegerField(default=1)
    state = models.CharField(max_length=16, choices=AssetState.choices, default=AssetState.PENDING)
    storage_key = models.CharField(max_length=500, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CoverAssetQuerySet.as_manager()

    def __str__(self):
        return f"{self.book_id} v{self.version} ({self.state})"

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['book', 'version'], name='uniq_cover_version'),
        ]


# --- Evidence ---

class EvidenceType(models.TextChoices):
    QUOTE = "quote", "Quote"
    SCENE_NOTE = "scene_note", "Scene note"
    EXTERNAL_LINK = "external_link", "External link"


class Visibility(models.TextChoices):
    INTERNAL_ONLY = "internal_only", "Internal only"
    MEMBER_SAFE = "member_safe", "Member safe"
    EMAIL_OK = "email_ok", "Email OK"
    AUTHOR_SAFE = "author_safe", "Author safe"


class SpoilerLevel(models.TextChoices):
    NONE = "none", "None"
    MILD = "mild", "Mild"
    MAJOR = "major", "Major"


class PolicyStatus(models.TextChoices):
    OK = "ok", "OK"
    TOO_LONG = "too_long", "Too long"
    BLOCKED = "blocked", "Blocked"
    NEEDS_REDACTION = "needs_redaction", "Needs redaction"


class Evidence(models.Model):
    """A citation substantiating one or more tags on a book."""
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="evidence")
    evidence_type = models.CharField(max_length=16, choices=EvidenceType.choices)
    quote_text = models.TextField(blank=True, default='')
    url = models.URLField(max_length=1000, blank=True, default='')

    # Location pointer inside the book
    chapter = models.CharField(max_length=64, blank=True, default='')
    page = models.CharField(max_length=64, blank=True, default='')
    location = models.CharField(max_length=128, blank=True, default='')
    note = models.TextField(blank=True, default='')

    # Governance
    visibility = models.CharField(max_length=16, choices=Visibility.choices, default=Visibility.INTERNAL_ONLY)
    spoiler = models.CharField(max_length=8, choices=SpoilerLevel.choices, default=SpoilerLevel.NONE)
    policy_status = models.CharField(max_length=16, choices=PolicyStatus.choices, default=PolicyStatus.OK)
    policy_notes = models.TextField(blank=True, default='')
    redacted_text = models.TextField(blank=True, default='')

    created_by = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_evidence_type_display()} for {self.book_id}"

    class Meta:
        verbose_name_plural = "Evidence"
        ordering = ['created_at', 'pk']


class LinkTarget(models.TextChoices):
    TAG = "tag", "Tag"
    AXIS = "axis", "Axis"


class EvidenceLink(models.Model):
    evidence = models.ForeignKey(Evidence, on_delete=models.CASCADE, related_name="links")
    target_type = models.CharField(max_length=8, choices=LinkTarget.choices, default=LinkTarget.TAG)
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name="evidence_links")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['evidence', 'target_type', 'tag'], name='uniq_evidence_link'),
        ]


class StandoutQuote(models.Model):
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="standout_quotes")
    label = models.CharField(max_length=64, blank=True, default='')
    quote_text = models.TextField()
    use_in_drop_email = models.BooleanField(default=False)
    visibility = models.CharField(max_length=16, choices=Visibility.choices, default=Visibility.INTERNAL_ONLY)
    spoiler = models.CharField(max_length=8, choices=SpoilerLevel.choices, default=SpoilerLevel.NONE)
    policy_status = models.CharField(max_length=16, choices=PolicyStatus.choices, default=PolicyStatus.OK)
    policy_notes = models.TextField(blank=True, default='')
    created_by = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'pk']


# --- Audit ---

class ActorType(models.TextChoices):
    SYSTEM = "system", "System"
    CURATOR = "curator", "Curator"
    AUTHOR = "author", "Author"
    MEMBER = "member", "Member"


class AuditEvent(models.Model):
    """One row per state-changing action, with enough payload to reconstruct it."""
    entity_type = models.CharField(max_length=32)
    entity_id = models.CharField(max_length=64, blank=True, default='')
    event_type = models.CharField(max_length=64)
    actor_type = models.CharField(max_length=16, choices=ActorType.choices, default=ActorType.SYSTEM)
    actor_id = models.CharField(max_length=100, blank=True, default='')
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.event_type} {self.entity_type}:{self.entity_id}"

    class Meta:
        ordering = ['-created_at', '-pk']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id']),
            models.Index(fields=['event_type']),
        ]
