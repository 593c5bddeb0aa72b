from django.core.management.base import BaseCommand, CommandError

from catalog.audit import Actor
from catalog.books import get_book
from catalog.exceptions import CatalogError, PublishRejected
from catalog.models import ActorType
from curation.publishing import preview_publish, publish


class Command(BaseCommand):
    help = "Publishes a book by slug, or previews the publish with --dry-run."

    def add_arguments(self, parser):
        parser.add_argument('slug', type=str, help="Slug of the book to publish.")
        parser.add_argument(
            '--actor',
            default='cli',
            help="Curator id recorded as the publisher."
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help="Show validation and the diff without writing anything."
        )

    def handle(self, *args, **options):
        actor = Actor(actor_id=options['actor'], actor_type=ActorType.CURATOR)

        try:
            book = get_book(slug=options['slug'])

            if options['dry_run']:
                preview = preview_publish(book)
                self.report_validation(preview.validation)
                self.report_diff(preview.diff)
                return

            result = publish(book, actor)
        except PublishRejected as e:
            self.report_validation(e.validation)
            raise CommandError(e.message)
        except CatalogError as e:
            raise CommandError(e.message)

        kind = "First publish" if result.first_publish else "Republish"
        self.stdout.write(self.style.SUCCESS(f"{kind} of '{book.title}': publication {result.publication_id}"))
        self.report_diff(result.diff)

    def report_validation(self, validation):
        for gate in validation.gates.values():
            if gate.ok:
                self.stdout.write(f"  {gate.name}: ok")
            else:
                self.stdout.write(self.style.WARNING(f"  {gate.name}: missing {', '.join(gate.missing)}"))
        for contradiction in validation.contradictions:
            self.stdout.write(self.style.ERROR(f"  {contradiction.rule_id} ({contradiction.severity})"))

    def report_diff(self, diff):
        if diff is None:
            self.stdout.write("No previous publication to compare against.")
            return
        tags = diff['tags']
        self.stdout.write(f"Tags added: {', '.join(tags['added']) or '-'}")
        self.stdout.write(f"Tags removed: {', '.join(tags['removed']) or '-'}")
        self.stdout.write(f"Evidence added/removed: {len(diff['evidence']['added'])}/{len(diff['evidence']['removed'])}")
        self.stdout.write(f"Cover changed: {'yes' if diff['cover']['changed'] else 'no'}")
