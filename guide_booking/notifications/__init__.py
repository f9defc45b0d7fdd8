"""Notifications app package.

Keeps tourists and guides informed about booking activity: dedup history
for polled booking snapshots, the realtime notification feed gateway and
the local alert dispatchers. Celery tasks wire them to the document store.
"""
