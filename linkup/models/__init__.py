"""Document models for Firestore and the views built from them."""
