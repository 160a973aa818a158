"""
WSGI config for the Django application.

Billing serves plain HTTP only (the API and the Stripe webhook endpoint), so
the WSGI callable is the primary deployment target; asgi.py exists for
servers that prefer ASGI.

This file exposes the WSGI callable as a module-level variable named `application`.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
