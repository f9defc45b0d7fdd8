"""
Initialize Django application and Celery app.

Import celery_app at module level so that it is created when Django starts
and the notification tasks are registered.
"""
from .celery import app as celery_app

__all__ = ('celery_app',)
