"""Firestore document store and the user/chat document helpers."""

from linkup.firestore.store import Document, DocumentStore, FirestoreDocumentStore, Subscription

__all__ = ["Document", "DocumentStore", "FirestoreDocumentStore", "Subscription"]
