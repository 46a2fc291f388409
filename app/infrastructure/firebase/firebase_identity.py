from __future__ import annotations

import logging

from firebase_admin import App, auth

from app.application.exceptions import Unauthenticated
from app.application.ports.identity import IdentityPort, VerifiedToken


class FirebaseIdentity(IdentityPort):
    def __init__(self, app: App, check_revoked: bool = True) -> None:
        self._app = app
        self._check_revoked = check_revoked
        self._logger = logging.getLogger(__name__)

    def verify_token(self, token: str) -> VerifiedToken:
        try:
            decoded = auth.verify_id_token(token, app=self._app, check_revoked=self._check_revoked)
        except auth.ExpiredIdTokenError as e:
            raise Unauthenticated("Token expired. Please sign in again.") from e
        except auth.RevokedIdTokenError as e:
            raise Unauthenticated("Token has been revoked. Please sign in again.") from e
        except (auth.InvalidIdTokenError, auth.UserDisabledError, ValueError) as e:
            self._logger.info("Token verification failed", extra={"error": str(e)})
            raise Unauthenticated("Invalid or expired token") from e
        return VerifiedToken(uid=decoded["uid"], email=decoded.get("email"))
