"""Provider error taxonomy — every adapter failure carries the provider that raised it."""

from dataclasses import dataclass


class ProviderError(Exception):
    """Base class for failures talking to an upstream provider."""

    def __init__(self, message, provider=None, status_code=502, details=None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "provider": self.provider,
            "status_code": self.status_code,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class AuthError(ProviderError):
    """Token exchange failed, credentials are missing, or a signature was rejected."""

    def __init__(self, message, provider=None, status_code=401, details=None):
        super().__init__(message, provider=provider, status_code=status_code, details=details)


class UpstreamError(ProviderError):
    """Provider answered with a non-2xx status. Status and body are kept intact."""

    def __init__(self, message, provider=None, status_code=502, details=None, body=None):
        super().__init__(message, provider=provider, status_code=status_code, details=details)
        self.body = body

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["body"] = self.body
        return data


class TransportError(ProviderError):
    """The provider could not be reached (DNS, connect, read timeout...)."""


class ProviderMismatchError(ProviderError):
    """A search handle was presented to a provider that did not issue it."""

    def __init__(self, message, provider=None, details=None):
        super().__init__(message, provider=provider, status_code=400, details=details)


class SearchTimeoutError(Exception):
    """Poll budget exhausted without results."""

    def __init__(self, provider: str, attempts: int, last_status: str | None = None):
        super().__init__(f"[{provider}] no results after {attempts} poll attempts")
        self.provider = provider
        self.attempts = attempts
        self.last_status = last_status


class UnknownProviderError(ValueError):
    pass


class UnsupportedCurrencyError(ValueError):
    pass


@dataclass(frozen=True)
class NormalizationWarning:
    """One raw proposal that was skipped during normalization."""
    provider: str
    index: int
    reason: str
