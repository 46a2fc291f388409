from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class VerifiedToken:
    uid: str
    email: str | None = None


class IdentityPort(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> VerifiedToken:
        """Verify an ID token. Raises Unauthenticated if it is invalid, expired or revoked."""
        raise NotImplementedError
