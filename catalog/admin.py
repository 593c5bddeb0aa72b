from django.contrib import admin
from .models import (
    AuditEvent,
    Author,
    Book,
    BookAxes,
    BookIdentifier,
    BookMetadata,
    CoverAsset,
    Evidence,
    EvidenceLink,
    StandoutQuote,
    Tag,
    TagCategory,
    TaxonomyVersion,
)


class TagInline(admin.TabularInline):
    model = Tag
    fields = ("name", "slug", "requires_evidence", "sensitive_flag", "display_order")
    extra = 0


class TagCategoryAdmin(admin.ModelAdmin):
    list_display = ("key", "label", "single_select", "display_order")
    inlines = [TagInline]


class TagAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "slug", "requires_evidence", "sensitive_flag")
    list_filter = ("category", "requires_evidence")
    search_fields = ("name", "slug")


class BookIdentifierInline(admin.StackedInline):
    model = BookIdentifier
    can_delete = False


class BookAxesInline(admin.StackedInline):
    model = BookAxes
    can_delete = False


class BookAdmin(admin.ModelAdmin):
    list_display = ("title", "slug", "status", "last_published_at")
    list_filter = ("status",)
    search_fields = ("title", "slug")
    # Publication fields only move through the publish command or endpoint
    readonly_fields = ("slug", "normalized_title", "status", "first_published_at",
                       "last_published_at", "live_publication")
    inlines = [BookIdentifierInline, BookAxesInline]


class EvidenceLinkInline(admin.TabularInline):
    model = EvidenceLink
    extra = 0


class EvidenceAdmin(admin.ModelAdmin):
    list_display = ("book", "evidence_type", "visibility", "spoiler", "policy_status")
    list_filter = ("evidence_type", "policy_status")
    inlines = [EvidenceLinkInline]


class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "event_type", "entity_type", "entity_id", "actor_type", "actor_id")
    list_filter = ("event_type", "entity_type")
    readonly_fields = ("entity_type", "entity_id", "event_type", "actor_type", "actor_id", "payload", "created_at")


admin.site.register(TagCategory, TagCategoryAdmin)
admin.site.register(Tag, TagAdmin)
admin.site.register(TaxonomyVersion)
admin.site.register(Author)
admin.site.register(Book, BookAdmin)
admin.site.register(BookMetadata)
admin.site.register(CoverAsset)
admin.site.register(Evidence, EvidenceAdmin)
admin.site.register(StandoutQuote)
admin.site.register(AuditEvent, AuditEventAdmin)
