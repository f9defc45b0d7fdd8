"""
Celery application for guide_booking project.

This module defines the Celery instance used by the notification tasks. It
reads configuration from Django settings under the `CELERY_` namespace and
autodiscovers tasks from installed apps. No beat schedule is installed:
polling tasks are enqueued by the client refresh cycle.
"""

import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "guide_booking.settings")

app = Celery("guide_booking")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django app configs.
app.autodiscover_tasks()
