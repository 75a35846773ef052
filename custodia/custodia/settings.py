"""Django settings for the custodia project."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

APP_VERSION = '0.1.0'

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-custodia-development-key')  # noqa: S105

DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [host for host in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if host]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'certificates',
    'signing',
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

ROOT_URLCONF = 'custodia.urls'

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

WSGI_APPLICATION = 'custodia.wsgi.application'

# Database

DATABASE_ENGINE = os.environ.get('DATABASE_ENGINE', 'django.db.backends.sqlite3')

if DATABASE_ENGINE == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': os.environ.get('DATABASE_NAME', str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DATABASE_ENGINE,
            'NAME': os.environ.get('DATABASE_NAME', 'custodia_db'),
            'USER': os.environ.get('DATABASE_USER', 'admin'),
            'PASSWORD': os.environ.get('DATABASE_PASSWORD', ''),
            'HOST': os.environ.get('DATABASE_HOST', 'localhost'),
            'PORT': os.environ.get('DATABASE_PORT', '5432'),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
}

# Certificate custody

# Either a base64 encoded 32 byte key or an arbitrary passphrase, which is stretched with HKDF.
CUSTODIA_ENCRYPTION_KEY = os.environ.get('CUSTODIA_ENCRYPTION_KEY', SECRET_KEY)

# 'filesystem' or 'object'
CUSTODIA_STORAGE_BACKEND = os.environ.get('CUSTODIA_STORAGE_BACKEND', 'filesystem')

CUSTODIA_FILESYSTEM_ROOT = Path(os.environ.get('CUSTODIA_FILESYSTEM_ROOT', str(BASE_DIR / 'storage' / 'certificates')))

CUSTODIA_OBJECT_STORAGE = {
    'bucket': os.environ.get('CUSTODIA_S3_BUCKET', ''),
    'region_name': os.environ.get('CUSTODIA_S3_REGION', 'us-east-1'),
    'endpoint_url': os.environ.get('CUSTODIA_S3_ENDPOINT_URL') or None,
    'access_key_id': os.environ.get('CUSTODIA_S3_ACCESS_KEY_ID') or None,
    'secret_access_key': os.environ.get('CUSTODIA_S3_SECRET_ACCESS_KEY') or None,
    'max_attempts': int(os.environ.get('CUSTODIA_S3_MAX_ATTEMPTS', '5')),
    'prefix': 'certificates/',
}

# 'legacy' tries original, trimmed, lowercased, uppercased and empty passwords. 'strict' only the original.
CUSTODIA_PASSWORD_VARIANTS = os.environ.get('CUSTODIA_PASSWORD_VARIANTS', 'legacy')

CUSTODIA_AUDIT_SINK = 'certificates.audit.LoggingAuditSink'

# Peers whose X-Forwarded-For header is trusted, comma separated
CUSTODIA_TRUSTED_PROXIES = [
    proxy.strip() for proxy in os.environ.get('CUSTODIA_TRUSTED_PROXIES', '').split(',') if proxy.strip()
]

CUSTODIA_EXPIRY_WARNING_DAYS = 30

CUSTODIA_SIGNATURE_REASON = 'Digitally signed document'
CUSTODIA_SIGNATURE_LOCATION = 'Custodia'

# Logging

LOG_DIR_PATH = Path(os.environ.get('CUSTODIA_LOG_DIR', str(BASE_DIR / 'logs')))
LOG_FILE_PATH = LOG_DIR_PATH / 'custodia.log'
LOG_LEVEL = os.environ.get('CUSTODIA_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'custodia': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': True,
        },
    },
}

if os.environ.get('CUSTODIA_LOG_TO_FILE', 'false').lower() in ('1', 'true', 'yes'):
    LOG_DIR_PATH.mkdir(parents=True, exist_ok=True)
    LOGGING['handlers']['rotatingFile'] = {
        'class': 'logging.handlers.RotatingFileHandler',
        'filename': str(LOG_FILE_PATH),
        'maxBytes': 1024 * 1024 * 10,
        'backupCount': 5,
        'formatter': 'verbose',
    }
    LOGGING['loggers']['custodia']['handlers'].append('rotatingFile')
