"""Exception taxonomy shared by the registry client and the resolution layers.

Only failures that stop a single lookup are exceptions. Ambiguous and
unresolved modules are ordinary result records (see resolution.models).
"""
from __future__ import annotations

from typing import Optional


class SurveyError(Exception):
    """Base class for errors raised while surveying an installation."""


class MalformedQuery(SurveyError):
    """A registry query was built from an empty or invalid identifier."""

    def __init__(self, field: str, value: object):
        super().__init__(f"malformed query: {field}={value!r}")
        self.field = field
        self.value = value


class RegistryUnavailable(SurveyError):
    """The registry could not be reached after all retry attempts."""

    def __init__(self, url: str, reason: str, attempts: int = 0, status_code: Optional[int] = None):
        msg = f"registry unavailable for {url}: {reason}"
        if attempts:
            msg += f" (after {attempts} attempts)"
        super().__init__(msg)
        self.url = url
        self.reason = reason
        self.attempts = attempts
        self.status_code = status_code


class CacheCorruption(SurveyError):
    """A persisted cache entry could not be decoded and was discarded."""

    def __init__(self, signature: str, detail: str):
        super().__init__(f"corrupt cache entry {signature[:12]}: {detail}")
        self.signature = signature
        self.detail = detail


class ConfigurationError(SurveyError):
    """Invalid configuration file contents or option values."""
