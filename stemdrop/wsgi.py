"""
WSGI config for the stemdrop project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'stemdrop.settings')

application = get_wsgi_application()
