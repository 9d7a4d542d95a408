"""
Core business exceptions for the exporter application.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains.
"""


class ExporterError(Exception):
    """Base exception for all component-specific errors."""
    pass


# --- Configuration Errors ---

class ConfigurationError(ExporterError):
    """Raised for errors related to application configuration."""
    pass


# --- Infrastructure Errors ---

class InfrastructureError(ExporterError):
    """Base class for errors related to external systems (network, API, etc.)."""
    pass


class CatalogError(InfrastructureError):
    """Raised when the dump listing cannot be fetched."""
    pass


class APIError(InfrastructureError):
    """Raised for errors when communicating with the site's JSON API."""
    pass


class DownloadError(InfrastructureError):
    """Raised when a file download fails."""
    pass


# --- Domain/Business Logic Errors ---

class DomainError(ExporterError):
    """Base class for errors related to business logic failures."""
    pass


class ExtractionError(DomainError):
    """Raised when an archive cannot be decompressed."""
    pass


class CorruptArchiveError(ExtractionError):
    """Raised when an archive is truncated or fails its integrity check."""
    pass


class RetriesExhaustedError(ExtractionError):
    """Raised when an archive is still corrupt after every re-download."""
    pass


class CacheMissError(DomainError):
    """Raised when no decompressed dump is cached for a dataset type."""
    pass
