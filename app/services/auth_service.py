"""
Sign-in with a primary credential and an anonymous fallback
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from app.core.errors import AuthError
from app.services.firebase_client import get_firebase_app

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    anonymous: bool
    token: Optional[str] = None


class AuthService:
    """Base sign-in provider"""

    def sign_in(self, id_token: Optional[str]) -> Identity:
        raise NotImplementedError

    def sign_in_anonymously(self) -> Identity:
        raise NotImplementedError


class LocalAuthService(AuthService):
    """Tokens map to user ids through configuration; anonymous ids are random"""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = dict(tokens or {})

    def sign_in(self, id_token: Optional[str]) -> Identity:
        if not id_token:
            raise AuthError("No sign-in token provided")
        user_id = self.tokens.get(id_token)
        if not user_id:
            raise AuthError("Invalid sign-in token")
        return Identity(user_id=user_id, anonymous=False, token=id_token)

    def sign_in_anonymously(self) -> Identity:
        user_id = f"anon-{uuid.uuid4().hex}"
        logger.info(f"Issued anonymous identity {user_id}")
        return Identity(user_id=user_id, anonymous=True)


class FirebaseAuthService(AuthService):
    """Verifies Firebase ID tokens; the fallback creates a credential-less user"""

    def sign_in(self, id_token: Optional[str]) -> Identity:
        if not id_token:
            raise AuthError("No sign-in token provided")
        try:
            decoded = firebase_auth.verify_id_token(id_token, app=get_firebase_app())
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise AuthError(f"Token verification failed: {e}") from e
        return Identity(user_id=decoded["uid"], anonymous=False, token=id_token)

    def sign_in_anonymously(self) -> Identity:
        try:
            user = firebase_auth.create_user(app=get_firebase_app())
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise AuthError(f"Anonymous sign-in failed: {e}") from e
        return Identity(user_id=user.uid, anonymous=True)
