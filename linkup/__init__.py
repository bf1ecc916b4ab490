"""LinkUp chat client libraries.

This package contains the client-side core of the LinkUp chat app:
- common: Configuration, logging and the error taxonomy
- models: Firestore document models and chat/message variants
- firebase / firestore: Collaborators for Firebase Auth, Storage and Firestore
- localstore: Device-local key/value storage (unread counts, theme)
- session: Identity gate and the per-process session context
- chats: Chat list synchronisation, conversation log and chat directory
"""
