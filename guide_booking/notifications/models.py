# guide_booking/notifications/models.py - Persistent key-value storage for notification history

from django.db import models


class StoredValue(models.Model):
    """Durable string-keyed JSON value (one row per `<prefix>_<userId>` key)"""

    key = models.CharField(max_length=255, unique=True)
    value = models.TextField(help_text="JSON-serialized payload")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self):
        return self.key
