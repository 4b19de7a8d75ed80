"""
Centralized Firebase initialization module.
The Flask app, the Celery worker and the rank script all initialize the Admin SDK through here.
"""

import logging
import os
import threading

import firebase_admin
from firebase_admin import credentials

_firebase_lock = threading.Lock()


def initialize_firebase():
    """
    Initialize the Firebase Admin SDK once per process.
    Uses GOOGLE_APPLICATION_CREDENTIALS when set, application default credentials otherwise.

    Returns:
        bool: True if the SDK is initialized, False if initialization failed
    """
    with _firebase_lock:
        if firebase_admin._apps:
            logging.debug("Firebase already initialized, skipping.")
            return True

        try:
            key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
            if key_path and os.path.exists(key_path):
                cred = credentials.Certificate(key_path)
            else:
                cred = credentials.ApplicationDefault()
            options = {}
            if os.environ.get("GCP_PROJECT_ID"):
                options['projectId'] = os.environ["GCP_PROJECT_ID"]
            firebase_admin.initialize_app(cred, options or None)
            logging.info("Firebase Admin SDK initialized successfully.")
            return True
        except Exception as e:
            logging.error(f"Failed to initialize Firebase Admin SDK: {e}")
            return False


__all__ = ['initialize_firebase']
