"""
Core business exceptions for the Solr installer.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains.
"""


class InstallerError(Exception):
    """Base exception for all component-specific errors."""
    pass


# --- Configuration Errors ---

class ConfigurationError(InstallerError):
    """Raised for errors related to application configuration."""
    pass


# --- Infrastructure Errors ---

class InfrastructureError(InstallerError):
    """Base class for errors related to external systems (network, API, etc.)."""
    pass


class APIError(InfrastructureError):
    """Raised for errors when reading the mirror listing endpoint."""
    pass


class DownloadError(InfrastructureError):
    """Raised when a file download fails."""
    pass


class ChecksumFetchError(InfrastructureError):
    """
    Raised when a remote checksum could not be fetched for a reason other
    than it being absent (unexpected status, persistent network failure).
    """
    pass


class MirrorNotFoundError(InfrastructureError):
    """Raised when no mirror candidate responded to the existence probe."""
    pass


# --- Domain/Business Logic Errors ---

class DomainError(InstallerError):
    """Base class for errors related to business logic failures."""
    pass


class VerificationError(DomainError):
    """Raised when a verification step fails."""
    pass


class ChecksumUnavailableError(VerificationError):
    """Raised when no checksum algorithm yielded a digest for the archive."""
    pass


class ChecksumMismatchError(VerificationError):
    """Raised when a digest was obtained but does not match the file."""

    def __init__(self, message: str, algorithm=None, expected=None, actual=None):
        super().__init__(message)
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual


class ProcessingError(DomainError):
    """Raised when an archive cannot be processed."""
    pass


class ArchiveReadError(ProcessingError):
    """Raised when the tar/gzip structure of an archive cannot be read."""
    pass


class UnsafeArchiveEntryError(ProcessingError):
    """Raised when an archive entry would be written outside its destination."""
    pass


class MissingInjectionTargetError(ProcessingError):
    """Raised when repacking finds no library directory in the source archive."""
    pass
