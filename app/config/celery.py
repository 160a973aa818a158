"""
Celery configuration for the Django application.

Celery runs the billing housekeeping jobs outside the request path:
- Releasing matured creator earnings (pending -> available)
- Cancelling orphaned remote subscriptions that never got a local row
- Pruning old processed webhook markers

Webhook events themselves are processed synchronously inside the request;
Stripe's own redelivery is the retry mechanism, so no task queue sits
between the webhook endpoint and the handlers.

The periodic schedule lives in settings.CELERY_BEAT_SCHEDULE and tasks are
auto-discovered from all installed Django apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
