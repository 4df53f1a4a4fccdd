"""Shared Firebase Admin SDK app (Realtime Database feed and Storage bucket)"""
import logging
from pathlib import Path
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from app.core.config import settings

logger = logging.getLogger(__name__)

APP_NAME = "sentinel-dashboard"

_app: Optional[firebase_admin.App] = None


def get_firebase_app() -> firebase_admin.App:
    """
    Return the named Firebase app, initializing it on first use.

    Raises:
        FileNotFoundError: The service account file does not exist
        ValueError: FIREBASE_PROJECT_ID is not configured
    """
    global _app
    if _app is not None:
        return _app

    if not settings.FIREBASE_PROJECT_ID:
        raise ValueError("FIREBASE_PROJECT_ID is not configured")

    creds_path = Path(settings.FIREBASE_CREDENTIALS_FILE)
    if not creds_path.exists():
        raise FileNotFoundError(f"Firebase credentials file not found: {creds_path}")

    try:
        _app = firebase_admin.get_app(APP_NAME)
        logger.debug(f"Using existing Firebase app: {APP_NAME}")
    except ValueError:
        options = {
            "projectId": settings.FIREBASE_PROJECT_ID,
            "databaseURL": settings.firebase_database_url,
        }
        if settings.FIREBASE_STORAGE_BUCKET:
            options["storageBucket"] = settings.FIREBASE_STORAGE_BUCKET

        _app = firebase_admin.initialize_app(
            credentials.Certificate(str(creds_path)),
            options=options,
            name=APP_NAME,
        )
        logger.info(
            "Firebase Admin SDK initialized",
            extra={
                "event_type": "firebase_init",
                "project_id": settings.FIREBASE_PROJECT_ID,
                "database_url": settings.firebase_database_url,
            }
        )
    return _app


def close_firebase_app() -> None:
    """Delete the Firebase app if it was initialized."""
    global _app
    if _app is None:
        return
    try:
        firebase_admin.delete_app(_app)
    except ValueError as e:
        logger.warning(f"Error deleting Firebase app: {e}")
    finally:
        _app = None
