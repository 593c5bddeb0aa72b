from django.contrib import admin
from .models import AuthorTagSubmission, BookIntake, Publication


class PublicationAdmin(admin.ModelAdmin):
    list_display = ("book", "published_at", "published_by", "taxonomy_version")
    readonly_fields = ("book", "taxonomy_version", "published_by", "published_at",
                       "snapshot", "previous_publication", "diff_summary")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class BookIntakeAdmin(admin.ModelAdmin):
    list_display = ("title", "asin", "author", "status", "created_at")
    list_filter = ("status",)
    # Decisions go through approve/reject so the catalog side effects happen
    readonly_fields = ("status", "decided_by", "decided_at", "created_book")


admin.site.register(Publication, PublicationAdmin)
admin.site.register(BookIntake, BookIntakeAdmin)
admin.site.register(AuthorTagSubmission)
