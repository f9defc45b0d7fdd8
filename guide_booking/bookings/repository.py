"""
Firestore helper layer for bookings.

The document store is the source of truth; every call returns the full
current snapshot for one tourist or one guide, normalized into Booking
objects.

Functions
---------
get_firestore_client()
    Client built with Application Default Credentials (ADC) and the
    project/database from settings.
"""

import logging
from typing import Iterable, List

from django.conf import settings
from google.cloud import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from guide_booking.bookings.domain import Booking
from guide_booking.notifications.exceptions import StorageReadFailure

logger = logging.getLogger(__name__)


def get_firestore_client() -> firestore.Client:
    project = getattr(settings, "FIRESTORE_PROJECT_ID", "") or None
    database = getattr(settings, "FIRESTORE_DATABASE", "(default)")
    return firestore.Client(project=project, database=database)


class FirestoreBookingRepository:
    """Reads booking snapshots from the `bookings` collection."""

    def __init__(self, client: firestore.Client | None = None, collection: str | None = None):
        self._client = client
        self.collection = collection or getattr(settings, "BOOKINGS_COLLECTION", "bookings")

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def list_for_user(self, user_id: str) -> List[Booking]:
        """All bookings made by a tourist."""
        query = self.client.collection(self.collection).where(
            filter=FieldFilter("userId", "==", user_id)
        )
        return self._fetch(query, f"user {user_id}")

    def list_for_guide(self, guide_id: str, guide_doc_id: str | None = None) -> List[Booking]:
        """
        All bookings addressed to a guide.

        Older bookings reference the guide profile document id instead of
        the guide's auth uid, so both are matched when the profile id is known.
        """
        guide_ids = [guide_id]
        if guide_doc_id and guide_doc_id != guide_id:
            guide_ids.append(guide_doc_id)

        if len(guide_ids) == 1:
            condition = FieldFilter("guideId", "==", guide_id)
        else:
            condition = FieldFilter("guideId", "in", guide_ids)

        query = self.client.collection(self.collection).where(filter=condition)
        return self._fetch(query, f"guide {guide_id}")

    def get(self, booking_id: str) -> Booking | None:
        try:
            snapshot = self.client.collection(self.collection).document(booking_id).get()
        except gexc.GoogleCloudError as err:
            raise StorageReadFailure(f"Firestore error reading booking {booking_id}: {err}") from err
        if not snapshot.exists:
            return None
        return Booking.from_document(snapshot.id, snapshot.to_dict() or {})

    def _fetch(self, query, label: str) -> List[Booking]:
        try:
            documents = list(query.stream())
        except gexc.GoogleCloudError as err:  # network / perms
            raise StorageReadFailure(f"Firestore error reading bookings for {label}: {err}") from err

        bookings = list(self._normalize(documents))
        logger.debug(f"Fetched {len(bookings)} bookings for {label}")
        return bookings

    @staticmethod
    def _normalize(documents: Iterable) -> Iterable[Booking]:
        for document in documents:
            yield Booking.from_document(document.id, document.to_dict() or {})
