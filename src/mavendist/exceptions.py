"""
Custom exceptions for mavendist.

Configuration errors are fatal and never retried. Download errors describe a
failed transfer attempt or an exhausted attempt budget. Archive errors come
from expanding a downloaded distribution.
"""

from typing import Sequence


class MavenDistError(Exception):
    """
    Base exception for all mavendist errors.

    All custom exceptions in mavendist inherit from this class so callers can
    catch every package-specific error at once.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MavenDistError):
    """
    Exception raised when the resolver is configured with unusable input.

    This includes:
    - Malformed distribution URLs
    - Archives that do not expand to exactly one top-level directory
    - Invalid configuration values
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or parsed."""

    pass


class InvalidDistributionUrlError(ConfigurationError):
    """
    Exception raised when a distribution URL cannot be used.

    Attributes:
        url: The rejected URL.
    """

    def __init__(self, message: str, url: str, details: str | None = None) -> None:
        super().__init__(message, details)
        self.url = url


class ArchiveLayoutError(ConfigurationError):
    """
    Exception raised when an extracted archive has no single root directory.

    Attributes:
        extraction_dir: Directory the archive was expanded into.
        found: Names of the top-level directories that were found.
    """

    def __init__(
        self,
        message: str,
        extraction_dir: str,
        found: Sequence[str] = (),
    ) -> None:
        details = f"found: {', '.join(found)}" if found else None
        super().__init__(message, details)
        self.extraction_dir = extraction_dir
        self.found = list(found)


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(MavenDistError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        attempts: Number of attempts made before the error was raised.
        is_retryable: Whether the failure could be retried.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        attempts: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.attempts = attempts
        self.is_retryable = is_retryable


class DownloadExecutionError(DownloadError):
    """Exception raised when a single transfer attempt fails."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        target: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url=url, attempts=1, is_retryable=True, details=details)
        self.target = target


class DownloadAttemptsExhaustedError(DownloadError):
    """Exception raised when every transfer attempt failed."""

    pass


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(MavenDistError):
    """
    Exception raised for archive-related errors.

    Attributes:
        archive_path: Path to the problematic archive.
    """

    def __init__(
        self,
        message: str,
        archive_path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class ExtractionError(ArchiveError):
    """Exception raised when archive extraction fails."""

    pass
