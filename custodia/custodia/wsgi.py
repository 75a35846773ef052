"""WSGI config for the custodia project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'custodia.settings')

application = get_wsgi_application()
