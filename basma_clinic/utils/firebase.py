from basma_clinic.config import get_settings
from basma_clinic.utils.logger import get_logger

settings = get_settings()
logger = get_logger("firebase")

_firebase_app = None


def init_firebase_app():
    """Initialize the Firebase Admin app for the Realtime Database (idempotent).

    Raises ``RuntimeError`` when credentials or the database URL are missing,
    since the firebase record backend cannot work without them.
    """
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    import firebase_admin
    from firebase_admin import credentials

    if not settings.FIREBASE_DATABASE_URL:
        raise RuntimeError("FIREBASE_DATABASE_URL is required when RECORD_BACKEND=firebase")

    if settings.FIREBASE_CREDENTIALS_FILE:
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_FILE)
    else:
        # Fall back to GOOGLE_APPLICATION_CREDENTIALS / metadata server
        cred = credentials.ApplicationDefault()

    _firebase_app = firebase_admin.initialize_app(
        cred, {"databaseURL": settings.FIREBASE_DATABASE_URL}
    )
    logger.info(f"Firebase app initialized for {settings.FIREBASE_DATABASE_URL}")
    return _firebase_app
