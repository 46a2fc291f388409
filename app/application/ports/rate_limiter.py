from abc import ABC, abstractmethod


class RateLimiterPort(ABC):
    @abstractmethod
    def check(self, key: str) -> bool:
        """
        Count one request against `key` and report whether it is allowed.

        Advisory only: implementations may fail open.
        """
        raise NotImplementedError
