"""Custom actions: posting a transcription to user-configured endpoints."""

from .external_client import ExternalActionClient, validate_url

__all__ = ["ExternalActionClient", "validate_url"]
