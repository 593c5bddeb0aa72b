from django.core.management.base import BaseCommand

from catalog.models import Book, BookStatus
from curation.validation import load_book_state, validate


class Command(BaseCommand):
    help = "Lists books with their status and the curator queues they fall into."

    def add_arguments(self, parser):
        parser.add_argument(
            '--status',
            choices=BookStatus.values,
            help="Only list books in this status."
        )
        parser.add_argument(
            '--queue',
            choices=('unfinished', 'needs_evidence', 'contradiction'),
            help="Only list books currently in this queue."
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE("--- Books in Catalog ---"))

        books = Book.objects.prefetch_related('authors').order_by('title')
        if options['status']:
            books = books.filter(status=options['status'])

        if not books.exists():
            self.stdout.write(self.style.WARNING("The catalog contains no matching books."))
            return

        shown = 0
        for book in books:
            result = validate(load_book_state(book))
            queues = result.queues.names()
            if options['queue'] and options['queue'] not in queues:
                continue
            shown += 1

            self.stdout.write("-" * 50)
            self.stdout.write(self.style.SUCCESS(f"TITLE: {book.title} ({book.slug})"))
            self.stdout.write(f"AUTHORS: {', '.join(a.name for a in book.authors.all()) or 'N/A'}")
            self.stdout.write(f"STATUS: {book.status}")
            self.stdout.write(f"QUEUES: {', '.join(queues) or 'none'}")
            for gate in result.failing_gates():
                self.stdout.write(self.style.WARNING(f"  {gate.name}: {', '.join(gate.missing)}"))
            for contradiction in result.contradictions:
                self.stdout.write(self.style.ERROR(f"  {contradiction.rule_id}: {contradiction.message}"))

        self.stdout.write("-" * 50)
        self.stdout.write(self.style.SUCCESS(f"Total Books: {shown}"))
