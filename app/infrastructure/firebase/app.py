from __future__ import annotations

import logging
import threading

import firebase_admin
from firebase_admin import App, credentials


logger = logging.getLogger(__name__)

_app: App | None = None
_app_lock = threading.Lock()


def get_firebase_app(credentials_path: str | None = None, project_id: str | None = None) -> App:
    """Initialize the default Firebase app once per process."""
    global _app
    with _app_lock:
        if _app is None:
            cred = (
                credentials.Certificate(credentials_path)
                if credentials_path
                else credentials.ApplicationDefault()
            )
            options = {"projectId": project_id} if project_id else None
            _app = firebase_admin.initialize_app(cred, options)
            logger.info(
                "Firebase app initialized",
                extra={"project_id": project_id, "credentials": "file" if credentials_path else "default"},
            )
        return _app
