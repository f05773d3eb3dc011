"""Exceptions raised by the discovery engine and its provider clients."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base exception for collection discovery failures."""


class ConfigError(DiscoveryError):
    """Raised when a source configuration entry is missing or malformed."""


class ProviderError(DiscoveryError):
    """Base exception for failures talking to a source-control provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(ProviderError):
    """Raised when the provider rejects the configured credential."""


class UpstreamUnavailable(ProviderError):
    """Raised for network failures, rate limits and provider-side 5xx errors."""


class NotFound(ProviderError):
    """Raised when a repository, ref or path does not resolve."""


class DescriptorParseError(DiscoveryError):
    """Raised when a descriptor file is not valid YAML."""


class NotConnected(DiscoveryError):
    """Raised when run() is called before the orchestrator is connected."""


class RunFailure(DiscoveryError):
    """Raised when a discovery run has to be abandoned as a whole."""


class InvalidSyncFilter(DiscoveryError):
    """Raised when a selective sync filter skips a level of the hierarchy."""


class SyncInProgress(DiscoveryError):
    """Raised when run() is called while another run of the same source is claimed."""
