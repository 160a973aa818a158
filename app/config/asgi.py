"""
ASGI config for the Django application.

ASGI (Asynchronous Server Gateway Interface) exposes the callable as a
module-level variable named `application`. Billing only serves plain HTTP,
so the stock Django handler is used.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
