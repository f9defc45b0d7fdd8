"""Bookings package.

Read-only view of the tour bookings kept in the hosted document store:
the normalized Booking snapshot and the repository that fetches it.
"""
