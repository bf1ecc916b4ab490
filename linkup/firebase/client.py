import json
import os

import firebase_admin
import structlog
from firebase_admin import credentials
from google.auth.credentials import AnonymousCredentials, Credentials
from google.cloud import firestore
from google.cloud.firestore_v1.async_client import AsyncClient
from google.oauth2.credentials import Credentials as OAuthCredentials

from linkup.common.settings import get_settings

logger = structlog.get_logger(__name__)


def initialize_firebase_app() -> None:
    """
    Initializes the Firebase Admin SDK from the service-account settings.

    Only needed when the client runs against a project without a signed-in
    user (tooling, seeding, the emulator). A user session authenticates
    Firestore with its own ID token instead.
    """
    if firebase_admin._apps:
        return

    settings = get_settings()
    sdk_json_content = settings.firebase_admin_sdk_json
    sdk_json_path = settings.firebase_admin_sdk_path

    cred = None
    if sdk_json_content:
        try:
            cred = credentials.Certificate(json.loads(sdk_json_content))
        except json.JSONDecodeError:
            logger.error("LINKUP_FIREBASE_ADMIN_SDK_JSON is not valid JSON")
            return
    elif sdk_json_path:
        try:
            cred = credentials.Certificate(sdk_json_path)
        except FileNotFoundError:
            logger.error("Firebase credentials file not found", path=sdk_json_path)
            return

    options = {"projectId": settings.firebase_project_id, "storageBucket": settings.storage_bucket}
    if cred:
        firebase_admin.initialize_app(cred, options)
    else:
        logger.warning("No Firebase credentials configured, assuming emulator or application default")
        try:
            firebase_admin.initialize_app(options=options)
        except ValueError:
            # Already initialized, which is fine
            pass


def _firestore_credentials(id_token: str | None) -> Credentials:
    """Pick the credentials Firestore calls are made with.

    A signed-in user's Firebase ID token is sent as the bearer token so the
    project's security rules apply to every read and write.
    """
    if os.getenv("FIRESTORE_EMULATOR_HOST"):
        return AnonymousCredentials()
    if id_token:
        return OAuthCredentials(token=id_token)

    initialize_firebase_app()
    return firebase_admin.get_app().credential.get_credential()


def get_firestore_async_client(id_token: str | None = None) -> AsyncClient:
    """
    Returns an asynchronous Firestore client for reads, writes and transactions.
    """
    settings = get_settings()
    return AsyncClient(
        project=settings.firebase_project_id,
        credentials=_firestore_credentials(id_token),
        database=settings.firestore_database,
    )


def get_firestore_client(id_token: str | None = None) -> firestore.Client:
    """
    Returns a synchronous Firestore client.

    The async client has no ``on_snapshot``; live listeners are opened on
    this one and bridged back onto the event loop.
    """
    settings = get_settings()
    return firestore.Client(
        project=settings.firebase_project_id,
        credentials=_firestore_credentials(id_token),
        database=settings.firestore_database,
    )
