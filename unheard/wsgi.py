"""WSGI entry point for the Unheard V2 project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'unheard.settings')

application = get_wsgi_application()
