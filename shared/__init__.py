"""
Shared Kernel

This module contains base classes and utilities shared across the booking
and notification contexts: value objects, domain events and the event bus.
"""
