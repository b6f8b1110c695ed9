"""
Django settings used to run the external_links app locally and in tests.

Only what the app needs is configured: the static files app (for the
built-in stylesheet), the templates engine (for the template filter and
tag) and the response middleware.

Please consult the Django documentation for additional configuration
options: https://docs.djangoproject.com/en/4.2/ref/settings/
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-change-me')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DJANGO_DEBUG', 'false').lower() == 'true'

RUNNING_TESTS = 'pytest' in sys.modules or os.getenv('PYTEST_CURRENT_TEST') is not None
if RUNNING_TESTS:
    DEBUG = True

if not DEBUG and SECRET_KEY == 'django-insecure-change-me' and not RUNNING_TESTS:
    raise ImproperlyConfigured('DJANGO_SECRET_KEY must be set when DEBUG is False.')

ALLOWED_HOSTS: list[str] = [
    host.strip()
    for host in os.getenv('DJANGO_ALLOWED_HOSTS', '127.0.0.1,localhost,testserver').split(',')
    if host.strip()
]

# Application definition
INSTALLED_APPS = [
    'django.contrib.staticfiles',
    'external_links',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'external_links.middleware.external_links_middleware',
]

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

DATABASES: dict[str, dict[str, object]] = {}

# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = os.getenv('DJANGO_STATIC_URL', '/static/')
STATIC_ROOT = Path(os.getenv('DJANGO_STATIC_ROOT', BASE_DIR / 'staticfiles'))


# External links: merged over the app defaults, optionally on top of a YAML
# file named by EXTERNAL_LINKS_CONFIG.
EXTERNAL_LINKS_CONFIG = os.getenv('EXTERNAL_LINKS_CONFIG') or None
EXTERNAL_LINKS = {
    'base_url': os.getenv('EXTERNAL_LINKS_BASE_URL', ''),
    'document_root': os.getenv('EXTERNAL_LINKS_DOCUMENT_ROOT', str(BASE_DIR)),
    'target': os.getenv('EXTERNAL_LINKS_TARGET', '_blank'),
    'no_follow': os.getenv('EXTERNAL_LINKS_NO_FOLLOW', 'true').lower() == 'true',
    'remote_timeout': float(os.getenv('EXTERNAL_LINKS_REMOTE_TIMEOUT', '5')),
}


log_level = os.getenv('DJANGO_LOG_LEVEL', 'INFO').upper()
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': log_level,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': log_level,
            'propagate': False,
        },
        'external_links': {
            'handlers': ['console'],
            'level': os.getenv('EXTERNAL_LINKS_LOG_LEVEL', log_level).upper(),
            'propagate': False,
        },
    },
}
