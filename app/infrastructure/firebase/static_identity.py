from __future__ import annotations

from typing import Mapping

from app.application.exceptions import Unauthenticated
from app.application.ports.identity import IdentityPort, VerifiedToken


class StaticIdentity(IdentityPort):
    """
    Token table for development and tests.

    With allow_uid_tokens, a token of the form "uid:<uid>" authenticates as
    that uid; never enable it outside dev/local.
    """

    def __init__(self, tokens: Mapping[str, str] | None = None, allow_uid_tokens: bool = False) -> None:
        self._tokens = dict(tokens or {})
        self._allow_uid_tokens = allow_uid_tokens

    def add_token(self, token: str, uid: str) -> None:
        self._tokens[token] = uid

    def verify_token(self, token: str) -> VerifiedToken:
        uid = self._tokens.get(token)
        if uid is None and self._allow_uid_tokens and token.startswith("uid:"):
            uid = token[len("uid:") :]
        if not uid:
            raise Unauthenticated("Invalid or expired token")
        return VerifiedToken(uid=uid)
