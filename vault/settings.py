"""
Django settings for the vault project.

Deployment-specific values come from the environment:
VAULT_SECRET_KEY, VAULT_DEBUG, VAULT_DB_PATH, VAULT_LOG_LEVEL, VAULT_ALLOWED_HOSTS.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('VAULT_SECRET_KEY', 'django-insecure-vault-development-key')

DEBUG = os.environ.get('VAULT_DEBUG', '0').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [h for h in os.environ.get('VAULT_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'catalog.apps.CatalogConfig',
    'curation.apps.CurationConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'vault.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'vault.wsgi.application'


# Database

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('VAULT_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Internationalization

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'


# Logging

LOG_LEVEL = os.environ.get('VAULT_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'catalog': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'curation': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
}


# Catalog

# Per-category tag ceilings, enforced at tag-add time and reported by validation
CATALOG_CATEGORY_CAPS = {
    'trope': 8,
    'plot_engine': 2,
    'setting_wrapper': 2,
    'seasonal_wrapper': 1,
}

CATALOG_SLUG_MAX_ATTEMPTS = 20

# Dotted path to a callable(request) -> Actor | None
CATALOG_MEMBER_VERIFIER = 'catalog.audit.default_member_verifier'
