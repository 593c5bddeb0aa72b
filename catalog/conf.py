from types import MappingProxyType

from django.conf import settings

# The five single-select categories every published book must have set.
AXIS_CATEGORIES = (
    'world_framework',
    'pairing',
    'heat_level',
    'series_status',
    'consent_mode',
)

DEFAULT_CATEGORY_CAPS = {
    'trope': 8,
    'plot_engine': 2,
    'setting_wrapper': 2,
    'seasonal_wrapper': 1,
}

DEFAULT_SLUG_MAX_ATTEMPTS = 20


def get_category_caps():
    """
    Returns the per-category tag ceilings as a read-only mapping.
    Both the add-time check and the validation report take their caps from here.
    """
    caps = getattr(settings, 'CATALOG_CATEGORY_CAPS', DEFAULT_CATEGORY_CAPS)
    return MappingProxyType({str(key): int(value) for key, value in caps.items()})


def get_slug_max_attempts():
    return int(getattr(settings, 'CATALOG_SLUG_MAX_ATTEMPTS', DEFAULT_SLUG_MAX_ATTEMPTS))
