import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from catalog.exceptions import CatalogError
from catalog.taxonomy import load_taxonomy

DEFAULT_FILE = Path(__file__).resolve().parents[2] / 'fixtures' / 'taxonomy.json'


class Command(BaseCommand):
    help = "Loads tag categories and tags from a JSON file and optionally activates its taxonomy version."

    def add_arguments(self, parser):
        parser.add_argument(
            'json_file',
            nargs='?',
            default=str(DEFAULT_FILE),
            help="Path to the taxonomy JSON file (defaults to the bundled catalog/fixtures/taxonomy.json)."
        )
        parser.add_argument(
            '--taxonomy-version',
            dest='taxonomy_version',
            help="Taxonomy version label; overrides the file's 'version' key."
        )
        parser.add_argument(
            '--activate',
            action='store_true',
            help="Mark the version active so publishes are pinned to it."
        )

    def handle(self, *args, **options):
        json_file = options['json_file']

        try:
            with open(json_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CommandError(f"File not found: {json_file}")
        except json.JSONDecodeError as e:
            raise CommandError(f"Invalid JSON format: {e}")

        self.stdout.write(self.style.SUCCESS(f"Loaded JSON file: {json_file}"))

        try:
            report = load_taxonomy(data, version=options['taxonomy_version'], activate=options['activate'])
        except CatalogError as e:
            raise CommandError(e.message)

        self.stdout.write(
            f"Categories: {report.categories_created} created, {report.categories_updated} updated"
        )
        self.stdout.write(f"Tags: {report.tags_created} created, {report.tags_updated} updated")

        if report.version is not None:
            state = "active" if report.version.is_active else "inactive"
            self.stdout.write(f"Taxonomy version {report.version.version} ({state})")
        elif options['activate']:
            self.stdout.write(self.style.WARNING("No version given, nothing to activate."))

        self.stdout.write(self.style.SUCCESS("Taxonomy seed complete."))
