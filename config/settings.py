import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_list(name: str, default: str) -> list[str]:
    return [v.strip() for v in os.environ.get(name, default).split(',') if v.strip()]


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'insecure-dev-key')
DEBUG = os.environ.get('DJANGO_DEBUG', '0') == '1'
ALLOWED_HOSTS = _env_list('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1')

INSTALLED_APPS = [
    'catalog_sync',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DATABASE_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'

MEDIA_ROOT = os.environ.get('MEDIA_ROOT', str(BASE_DIR / 'media'))
MEDIA_URL = os.environ.get('MEDIA_URL', '/media/')

STORAGES = {
    'default': {
        'BACKEND': os.environ.get(
            'CATALOG_STORAGE_BACKEND', 'django.core.files.storage.FileSystemStorage'
        ),
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

# Supplier feed
CATALOG_FEED_MANIFEST_URL = os.environ.get(
    'CATALOG_FEED_MANIFEST_URL',
    'https://promidatabase.s3.eu-central-1.amazonaws.com/Profiles/Live/'
    '849c892e-b443-4f49-be3a-61a351cbdd23/Import/Import.txt',
)
CATALOG_FEED_TIMEOUT = (
    float(os.environ.get('CATALOG_FEED_CONNECT_TIMEOUT', '5')),
    float(os.environ.get('CATALOG_FEED_READ_TIMEOUT', '30')),
)
CATALOG_FEED_RATE_LIMIT = int(os.environ.get('CATALOG_FEED_RATE_LIMIT', '10'))

# Sync engine
CATALOG_SYNC_RETRIES = int(os.environ.get('CATALOG_SYNC_RETRIES', '3'))
CATALOG_SYNC_RETRY_DELAY = float(os.environ.get('CATALOG_SYNC_RETRY_DELAY', '1.0'))
CATALOG_SYNC_MAX_RETRY_AFTER = float(os.environ.get('CATALOG_SYNC_MAX_RETRY_AFTER', '60'))
CATALOG_SYNC_DOCUMENT_WORKERS = int(os.environ.get('CATALOG_SYNC_DOCUMENT_WORKERS', '4'))
CATALOG_SYNC_SUPPLIER_WORKERS = int(os.environ.get('CATALOG_SYNC_SUPPLIER_WORKERS', '2'))
CATALOG_LANGUAGE_PRIORITY = _env_list('CATALOG_LANGUAGE_PRIORITY', 'en,nl')

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
        },
    },
    'loggers': {
        'catalog_sync': {
            'handlers': ['console'],
            'level': os.environ.get('CATALOG_SYNC_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
