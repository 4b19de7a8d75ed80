"""
Per-request sessions backed by Firebase Authentication.
A Session is created from a verified ID token and handed explicitly to the
services that need to know who is acting.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from firebase_admin import auth

from exceptions import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    uid: str
    email: str = ""
    name: Optional[str] = None

    @property
    def display_name(self):
        if self.name:
            return self.name
        return self.email.split('@')[0] if self.email else 'Anonymous'


class SessionManager:
    def __init__(self, repository, firebase_auth=auth):
        self.repository = repository
        self.auth = firebase_auth

    def sign_up(self, email, password, name) -> Session:
        """Creates the Firebase account and its user profile document."""
        try:
            record = self.auth.create_user(email=email, password=password, display_name=name)
        except self.auth.EmailAlreadyExistsError as e:
            raise ValidationError("User already exists with this email") from e
        except ValueError as e:
            # firebase_admin validates email/password shape locally with ValueError.
            raise ValidationError(str(e)) from e

        self.repository.create_user(record.uid, name=name, email=email)
        logger.info(f"Signed up new user {record.uid}")
        return Session(uid=record.uid, email=email, name=name)

    def session_from_token(self, id_token) -> Session:
        """
        Verifies an ID token and makes sure the user has a profile document; users
        created outside sign_up get a default one on their first request.
        """
        if not id_token:
            raise AuthenticationError("Authentication token is missing", error_code="TOKEN_MISSING")
        try:
            claims = self.auth.verify_id_token(id_token)
        except (self.auth.InvalidIdTokenError, self.auth.ExpiredIdTokenError,
                self.auth.RevokedIdTokenError, ValueError) as e:
            raise AuthenticationError("Authentication token is invalid or expired") from e

        session = Session(uid=claims['uid'], email=claims.get('email') or "", name=claims.get('name'))
        if self.repository.find_user(session.uid) is None:
            logger.info(f"User data not found for {session.uid}, creating default record")
            self.repository.create_user(session.uid, name=session.name or 'User', email=session.email)
        return session

    def sign_out(self, session: Session):
        """Revokes refresh tokens so the client's persisted session ends."""
        self.auth.revoke_refresh_tokens(session.uid)
        logger.info(f"Signed out user {session.uid}")
