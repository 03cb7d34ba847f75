from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class AuthError(RuntimeError):
    """Raised when the Redgifs temporary token cannot be fetched or parsed."""


class MediaFetchError(RuntimeError):
    """Raised when a media host detail lookup fails."""


class EntityFetchError(RuntimeError):
    """Raised when a linked Reddit entity cannot be fetched."""
