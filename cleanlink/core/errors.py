"""Error taxonomy for the sanitizer and its outer surfaces."""
from __future__ import annotations


class SanitizerError(Exception):
    """Base class for errors raised by the engine."""

    pass


class NetworkError(SanitizerError):
    """A network collaborator failed (expansion, manifest fetch, image download).

    Recoverable: every call site has a fallback.
    """

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class ResolutionError(SanitizerError):
    """The manifest API answered but yielded no usable images."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class FatalInputError(SanitizerError):
    """The input could not be scanned at all. No partial output exists."""

    pass


class ConfigError(Exception):
    """Required configuration is missing or invalid."""

    pass
